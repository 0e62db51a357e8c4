# -*- coding: utf-8 -*-
"""
Street name normalization.

Contract: normalizer(raw_name) -> normalized_name. The same normalizer must be
used to build the street index and to normalize queries against it.

normalize_street_name() expands the abbreviations common in nineteenth century
directories ("Bway", "W.", "av.") and title-cases the result, so
"W. 4th st." and "West Fourth"-style variants meet on one spelling:

    >>> normalize_street_name("b'way")
    'Broadway'
    >>> normalize_street_name("W. 4th st.")
    'West 4th Street'
    >>> normalize_street_name("St. Marks pl")
    'Saint Marks Place'
"""
import re
from typing import Callable

StreetNormalizer = Callable[[str], str]

ABBREVIATIONS = {
    'al': 'alley',
    'av': 'avenue',
    'ave': 'avenue',
    'bway': 'broadway',
    'blvd': 'boulevard',
    'ct': 'court',
    'e': 'east',
    'la': 'lane',
    'ln': 'lane',
    'n': 'north',
    'pl': 'place',
    'rd': 'road',
    's': 'south',
    'sq': 'square',
    'st': 'street',
    'str': 'street',
    'ter': 'terrace',
    'w': 'west',
}

# "St." at the start of a multi-word name is a saint, not a street
LEADING_ABBREVIATIONS = {
    'st': 'saint',
}

APOSTROPHES = re.compile(r"['’`]")
SEPARATORS = re.compile(r"[^\w½]+")


def _title(token: str) -> str:
    return token[:1].upper() + token[1:]


def normalize_street_name(name: str) -> str:
    """
    Normalize a street name or address remainder.

    Returns:
        Normalized name, '' when nothing is left
    """
    text = APOSTROPHES.sub('', name.lower())
    tokens = [token for token in SEPARATORS.split(text) if token]

    expanded = []
    for index, token in enumerate(tokens):
        if index == 0 and len(tokens) > 1 and token in LEADING_ABBREVIATIONS:
            expanded.append(LEADING_ABBREVIATIONS[token])
        else:
            expanded.append(ABBREVIATIONS.get(token, token))

    return ' '.join(_title(token) for token in expanded)
