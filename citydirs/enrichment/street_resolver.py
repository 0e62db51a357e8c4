# -*- coding: utf-8 -*-
"""
Fuzzy street resolution

Matches OCR'd address fragments ("123 Bway", "45½ Mott") to canonical street
names in two steps:

    1. Search: an inverted term index over normalized street names. Short or
       numeric query tokens must match exactly; longer alphabetic tokens match
       any index term within edit distance 2.
    2. Rerank: Levenshtein distance between the whole normalized query and
       each candidate; candidates further than 2 edits are dropped, the
       closest wins.

Ties are broken by (distance, -matched tokens, name) so the same index and
query always give the same street.

Examples:
    index = StreetIndex(["Broadway", "Bowery", "Mott Street"])
    index.resolve("123 Bway")
    # Returns: ResolvedAddress(number="123", street="Broadway", edit_distance=0)

"""
# Standard library
import re
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

# Third-party
from rapidfuzz import process
from rapidfuzz.distance import Levenshtein

# Project imports
from citydirs.enrichment.street_normalizer import StreetNormalizer, normalize_street_name
from citydirs.utils.config import EXACT_TOKEN_MAX_LENGTH, MAX_EDIT_DISTANCE
from citydirs.utils.dataclasses import ResolvedAddress
from citydirs.utils.io import load_json
from citydirs.utils.logger import get_logger

logger = get_logger(__name__)

# House number (optionally with a half) followed by the street
ADDRESS_PATTERN = re.compile(r'^\s*(\d+½?)\s+(.+)$')
TOKEN_PATTERN = re.compile(r'\w+')


def tokenize(text: str) -> List[str]:
    return TOKEN_PATTERN.findall(text.lower())


def split_address(fragment: str) -> Optional[tuple]:
    """
    Split "123 Broadway" into ("123", "Broadway").

    Returns:
        (number, remainder), or None if the fragment has no leading number
    """
    match = ADDRESS_PATTERN.match(fragment)
    if not match:
        return None
    return match.group(1), match.group(2).strip()


class StreetIndex:
    """
    Read-only search index over canonical street names.

    Safe to query from several threads once built.
    """

    def __init__(
        self,
        raw_names: Iterable[str],
        normalizer: StreetNormalizer = normalize_street_name,
        max_distance: int = MAX_EDIT_DISTANCE,
    ):
        """
        Normalize, deduplicate and index street names.

        Args:
            raw_names: Street names, duplicates allowed
            normalizer: Name normalizer, also applied to queries
            max_distance: Maximum edit distance for term expansion and rerank
        """
        self.normalizer = normalizer
        self.max_distance = max_distance

        normalized = {normalizer(name) for name in raw_names if name}
        normalized.discard('')

        # Dense ids in sorted order, stable across runs
        self.names: List[str] = sorted(normalized)

        self.postings: Dict[str, Set[int]] = defaultdict(set)
        for street_id, name in enumerate(self.names):
            for token in tokenize(name):
                self.postings[token].add(street_id)

        self.vocabulary: List[str] = sorted(self.postings)

        logger.info(f"Indexed {len(self.names)} streets ({len(self.vocabulary)} terms)")

    @classmethod
    def from_file(
        cls,
        path: Path,
        normalizer: StreetNormalizer = normalize_street_name,
    ) -> 'StreetIndex':
        """
        Build an index from a JSON array of names (.json) or one name per line.
        """
        path = Path(path)
        if path.suffix == '.json':
            names = load_json(path)
        else:
            with open(path, 'r', encoding='utf-8') as f:
                names = [line.strip() for line in f if line.strip()]
        return cls(names, normalizer=normalizer)

    def __len__(self) -> int:
        return len(self.names)

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    def _expand_token(self, token: str) -> List[str]:
        """Index terms matched by one query token."""
        if len(token) <= EXACT_TOKEN_MAX_LENGTH or not token.isalpha():
            return [token] if token in self.postings else []

        matches = process.extract(
            token,
            self.vocabulary,
            scorer=Levenshtein.distance,
            score_cutoff=self.max_distance,
            limit=None,
        )
        return [term for term, _, _ in matches]

    def search(self, normalized_query: str) -> Dict[int, int]:
        """
        Run an OR query over the query's tokens.

        Returns:
            Mapping street id -> number of query tokens that matched it
        """
        relevance: Dict[int, int] = defaultdict(int)
        for token in set(tokenize(normalized_query)):
            matched: Set[int] = set()
            for term in self._expand_token(token):
                matched |= self.postings[term]
            for street_id in matched:
                relevance[street_id] += 1
        return relevance

    def match_street(self, remainder: str) -> Optional[tuple]:
        """
        Find the canonical street for an address remainder.

        Returns:
            (street name, edit distance), or None if no candidate is close enough
        """
        query = self.normalizer(remainder)
        if not query:
            return None

        ranked = []
        for street_id, matched_tokens in self.search(query).items():
            name = self.names[street_id]
            distance = Levenshtein.distance(query, name)
            if distance <= self.max_distance:
                ranked.append((distance, -matched_tokens, name))

        if not ranked:
            return None

        distance, _, name = min(ranked)
        return name, distance

    def resolve(self, fragment: str) -> Optional[ResolvedAddress]:
        """
        Resolve an address fragment such as "123 Bway".

        Returns:
            ResolvedAddress ("123 Broadway"), or None on a miss
        """
        parts = split_address(fragment)
        if parts is None:
            return None

        number, remainder = parts
        match = self.match_street(remainder)
        if match is None:
            return None

        street, distance = match
        return ResolvedAddress(number=number, street=street, edit_distance=distance)

    def resolve_all(
        self,
        fragments: List[str],
        max_workers: int = 4,
    ) -> List[Optional[ResolvedAddress]]:
        """
        Resolve many fragments in parallel, results in input order.

        The index is read-only after construction, so lookups share it freely.
        """
        if max_workers <= 1 or len(fragments) <= 1:
            return [self.resolve(fragment) for fragment in fragments]

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            return list(executor.map(self.resolve, fragments))
