# -*- coding: utf-8 -*-
"""
Graph object construction for the transform stage.

Turns parsed line records into the tagged graph objects written to the sink:

    - object:   one st:Person per line with a subject and at least one
                resolved address
    - relation: Person -st:in-> address, for every geocoded address
    - log:      soft failures (no ID, no subject, unresolved address,
                geocoding miss)

Per line the objects come out as Person, then logs, then relations. Lines
whose addresses all miss produce log objects only.

Example:
    transformer = EntryTransformer(index, geocoder=None, max_workers=4)
    for graph_object in transformer.transform(records):
        writer.write_object(graph_object)
"""
# Standard library
import itertools
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

# Local
from citydirs.enrichment.geocoder import Geocoder
from citydirs.enrichment.street_resolver import StreetIndex
from citydirs.utils.config import TRANSFORM_BATCH_SIZE
from citydirs.utils.dataclasses import GraphObject, LineRecord, PersonObject, ResolvedAddress
from citydirs.utils.errors import GeocodeError, ResolutionMiss
from citydirs.utils.logger import get_logger
from citydirs.utils.progress import ProgressTracker

logger = get_logger(__name__)

Resolution = Tuple[str, Optional[ResolvedAddress]]


def make_geometry(geometries: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """One point stays a Point, several become a MultiPoint, none is None."""
    if not geometries:
        return None
    if len(geometries) == 1:
        return geometries[0]
    return {
        'type': 'MultiPoint',
        'coordinates': [geometry['coordinates'] for geometry in geometries],
    }


def _batches(records: Iterable[LineRecord], size: int) -> Iterator[List[LineRecord]]:
    iterator = iter(records)
    while True:
        batch = list(itertools.islice(iterator, size))
        if not batch:
            return
        yield batch


class EntryTransformer:
    """Resolves, geocodes and converts parsed line records into graph objects."""

    def __init__(
        self,
        index: StreetIndex,
        geocoder: Optional[Geocoder] = None,
        max_workers: int = 4,
        batch_size: int = TRANSFORM_BATCH_SIZE,
        tracker: Optional[ProgressTracker] = None,
    ):
        """
        Args:
            index: Street index used to resolve address fragments
            geocoder: Optional geocoder, called as geocoder(address)
            max_workers: Parallel resolver lookups per batch
            batch_size: Records resolved together
            tracker: Progress tracker, one line counted per record
        """
        self.index = index
        self.geocoder = geocoder
        self.max_workers = max_workers
        self.batch_size = batch_size
        self.tracker = tracker

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    @staticmethod
    def _fragments(record: LineRecord) -> List[str]:
        if record.parsed is None:
            return []
        return [location.value for location in record.parsed.locations if location.value]

    def resolve_batch(self, batch: List[LineRecord]) -> List[List[Resolution]]:
        """
        Resolve the address fragments of a batch of records in parallel.

        Returns:
            One list of (fragment, resolved or None) per record, in batch order
        """
        per_record = [self._fragments(record) for record in batch]
        flat = [fragment for fragments in per_record for fragment in fragments]
        resolved = iter(self.index.resolve_all(flat, max_workers=self.max_workers))

        return [
            [(fragment, next(resolved)) for fragment in fragments]
            for fragments in per_record
        ]

    # -------------------------------------------------------------------------
    # Graph objects
    # -------------------------------------------------------------------------

    def build_objects(
        self,
        record: LineRecord,
        resolutions: List[Resolution],
    ) -> List[GraphObject]:
        """Graph objects for one record, given its resolved fragments."""
        record_id = record.record_id
        if not record_id:
            return [GraphObject.log(error='Could not create ID', line=record.to_dict())]

        subject = record.parsed.main_subject if record.parsed else None
        if subject is None:
            miss = ResolutionMiss('No subject found')
            return [GraphObject.log(record_id, error=str(miss), text=record.text)]

        logs: List[GraphObject] = []
        relations: List[GraphObject] = []
        geometries: List[Dict[str, Any]] = []
        addresses: List[Dict[str, Any]] = []

        for fragment, resolved in resolutions:
            if resolved is None:
                miss = ResolutionMiss('Could not resolve address', address=fragment)
                logs.append(GraphObject.log(record_id, error=str(miss), address=miss.address))
                continue

            address = resolved.to_dict()
            addresses.append(address)

            if self.geocoder is None:
                continue

            try:
                geocoded = self.geocoder(resolved.address)
            except GeocodeError as e:
                logs.append(GraphObject.log(record_id, error=str(e), address=resolved.address))
                continue

            address['id'] = geocoded['id']
            address['name'] = geocoded['name']
            geometries.append(geocoded['geometry'])
            relations.append(GraphObject.relation(record_id, geocoded['id']))

        if not addresses:
            if not resolutions:
                miss = ResolutionMiss('Could not resolve address')
                logs.append(GraphObject.log(record_id, error=str(miss), text=record.text))
            return logs

        person = PersonObject(
            id=record_id,
            name=subject.value,
            valid_since=record.valid_since,
            valid_until=record.valid_until,
            data={
                'volumeUuid': record.uuid,
                'pageUuid': record.page_uuid,
                'pageNum': record.page_num,
                'bbox': record.bbox,
                'text': record.text,
                'occupation': subject.occupation,
                'locations': [location.to_dict() for location in record.parsed.locations],
                'addresses': addresses,
            },
            geometry=make_geometry(geometries),
        )

        return [GraphObject.person(person)] + logs + relations

    def transform(self, records: Iterable[LineRecord]) -> Iterator[GraphObject]:
        """
        Transform records into graph objects, preserving record order.

        Resolution runs in parallel per batch; objects are yielded one at a
        time so the caller writes them sequentially.
        """
        for batch in _batches(records, self.batch_size):
            for record, resolutions in zip(batch, self.resolve_batch(batch)):
                for graph_object in self.build_objects(record, resolutions):
                    yield graph_object
                if self.tracker:
                    self.tracker.line_done("Transformed")
