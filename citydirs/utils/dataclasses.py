# -*- coding: utf-8 -*-
"""
Core data structures for the city directories pipeline

Single source of truth for the records passed between stages: volume manifest
entries, archive pages, detected lines, parsed lines and graph objects. Records
have a fixed set of fields; optional parts are explicit Optional fields rather
than keys merged in along the way.

Examples:
    from citydirs.utils.dataclasses import VolumeManifest, LineRecord

    volume = VolumeManifest.from_dict({
        "uuid": "a1b2", "year": [1850, 1851],
        "startPage": 21, "endPage": 560, "columnCount": 2,
    })
    volume.contains_page(25)  # True

"""
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Literal, Optional, Union

from citydirs.utils.id_generator import format_year, make_record_id

Year = Union[int, List[int]]
GraphObjectType = Literal["object", "relation", "log"]

PERSON_TYPE = "st:Person"
RELATION_IN = "st:in"


# ============================================================================
# MANIFEST
# ============================================================================

@dataclass(frozen=True)
class VolumeManifest:
    """One city directory volume: which archive, which years, which pages."""
    uuid: str
    year: Year
    start_page: int
    end_page: int
    column_count: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VolumeManifest':
        """
        Build from a manifest JSON entry.

        Raises:
            ValueError: If a required field is missing or malformed
        """
        try:
            uuid = data['uuid']
            year = data['year']
            start_page = int(data['startPage'])
            end_page = int(data['endPage'])
            column_count = int(data['columnCount'])
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid manifest entry {data!r}: {e}")

        if not uuid:
            raise ValueError(f"Invalid manifest entry {data!r}: empty uuid")

        if min(start_page, end_page, column_count) < 1:
            raise ValueError(
                f"Invalid manifest entry {data!r}: pages and column count must be positive"
            )

        if isinstance(year, list):
            if len(year) != 2:
                raise ValueError(f"Year range must have two values: {year!r}")
            year = [int(year[0]), int(year[1])]
        else:
            year = int(year)

        return cls(uuid, year, start_page, end_page, column_count)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'uuid': self.uuid,
            'year': self.year,
            'startPage': self.start_page,
            'endPage': self.end_page,
            'columnCount': self.column_count,
        }

    @property
    def min_year(self) -> int:
        return self.year[0] if isinstance(self.year, list) else self.year

    @property
    def max_year(self) -> int:
        return self.year[1] if isinstance(self.year, list) else self.year

    @property
    def year_label(self) -> str:
        return format_year(self.year)

    @property
    def page_count(self) -> int:
        return self.end_page - self.start_page

    def contains_page(self, page_num: int) -> bool:
        return self.start_page <= page_num <= self.end_page

    def within_years(self, min_year: Optional[int], max_year: Optional[int]) -> bool:
        not_too_old = self.min_year >= min_year if min_year else True
        not_too_young = self.max_year <= max_year if max_year else True
        return not_too_old and not_too_young


# ============================================================================
# ARCHIVE PAGES AND DETECTED LINES
# ============================================================================

@dataclass
class PageRecord:
    """One hOCR page read from a volume archive."""
    volume: VolumeManifest
    hocr: str
    page_num: int
    image_id: str
    page_uuid: str


@dataclass
class DetectedLine:
    """Line found by column detection; column_index is None outside columns."""
    bbox: List[int]
    text: str
    column_index: Optional[int] = None


@dataclass
class DetectedPage:
    """Column detection result for one page, lines in reading order."""
    lines: List[DetectedLine] = field(default_factory=list)


# ============================================================================
# PARSED LINES
# ============================================================================

@dataclass
class Subject:
    """Person (or business) named in a directory entry."""
    value: str
    type: str = "primary"
    occupation: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Subject':
        return cls(
            value=data.get('value', ''),
            type=data.get('type', 'primary'),
            occupation=data.get('occupation'),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {'type': self.type, 'value': self.value}
        if self.occupation is not None:
            result['occupation'] = self.occupation
        return result


@dataclass
class Location:
    """Free-text address fragment from a directory entry."""
    value: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Location':
        return cls(value=data.get('value', ''))

    def to_dict(self) -> Dict[str, Any]:
        return {'value': self.value}


@dataclass
class ParsedEntry:
    """Structure returned by the external entry parser for one line."""
    subjects: List[Subject] = field(default_factory=list)
    locations: List[Location] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ParsedEntry':
        """
        Raises:
            ValueError: If data is not a JSON object or lists are malformed
        """
        if not isinstance(data, dict):
            raise ValueError(f"Parsed entry must be an object, got {type(data).__name__}")

        subjects = data.get('subjects') or []
        locations = data.get('locations') or []
        if not isinstance(subjects, list) or not isinstance(locations, list):
            raise ValueError("subjects and locations must be lists")

        return cls(
            subjects=[Subject.from_dict(s) for s in subjects if isinstance(s, dict)],
            locations=[Location.from_dict(l) for l in locations if isinstance(l, dict)],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'subjects': [s.to_dict() for s in self.subjects],
            'locations': [l.to_dict() for l in self.locations],
        }

    @property
    def main_subject(self) -> Optional[Subject]:
        """First primary subject, else the first subject of any type."""
        for subject in self.subjects:
            if subject.type == 'primary' and subject.value:
                return subject
        for subject in self.subjects:
            if subject.value:
                return subject
        return None


@dataclass
class LineRecord:
    """
    One directory line, before and after entry parsing.

    Persisted in lines.ndjson with camelCase keys:
    {uuid, year, imageId, pageUuid, pageNum, bbox, text, parsed}
    """
    uuid: str
    year: Year
    image_id: str
    page_uuid: str
    page_num: int
    bbox: List[int]
    text: str
    parsed: Optional[ParsedEntry] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LineRecord':
        """
        Raises:
            ValueError: If a required field is missing
        """
        try:
            parsed = data.get('parsed')
            return cls(
                uuid=data['uuid'],
                year=data['year'],
                image_id=data['imageId'],
                page_uuid=data['pageUuid'],
                page_num=data['pageNum'],
                bbox=data['bbox'],
                text=data['text'],
                parsed=ParsedEntry.from_dict(parsed) if parsed is not None else None,
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Invalid line record: {e}")

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'uuid': self.uuid,
            'year': self.year,
            'imageId': self.image_id,
            'pageUuid': self.page_uuid,
            'pageNum': self.page_num,
            'bbox': self.bbox,
            'text': self.text,
        }
        if self.parsed is not None:
            result['parsed'] = self.parsed.to_dict()
        return result

    def with_parsed(self, parsed: ParsedEntry) -> 'LineRecord':
        return replace(self, parsed=parsed)

    @property
    def record_id(self) -> Optional[str]:
        return make_record_id(self.year, self.page_num, self.bbox)

    @property
    def valid_since(self) -> Optional[int]:
        return self.year[0] if isinstance(self.year, list) else self.year

    @property
    def valid_until(self) -> Optional[int]:
        return self.year[1] if isinstance(self.year, list) else self.year


# ============================================================================
# RESOLUTION
# ============================================================================

@dataclass(frozen=True)
class ResolvedAddress:
    """Address fragment matched to a canonical street."""
    number: str
    street: str
    edit_distance: int

    @property
    def address(self) -> str:
        return f"{self.number} {self.street}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'address': self.address,
            'number': self.number,
            'street': self.street,
            'editDistance': self.edit_distance,
        }


# ============================================================================
# GRAPH OBJECTS
# ============================================================================

@dataclass
class PersonObject:
    """Person node emitted for a resolved directory entry."""
    id: str
    name: str
    valid_since: Optional[int]
    valid_until: Optional[int]
    data: Dict[str, Any]
    geometry: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'id': self.id,
            'type': PERSON_TYPE,
            'name': self.name,
            'validSince': self.valid_since,
            'validUntil': self.valid_until,
            'data': self.data,
        }
        if self.geometry is not None:
            result['geometry'] = self.geometry
        return result


@dataclass
class GraphObject:
    """Tagged unit handed to the graph sink: {type: object|relation|log, obj}."""
    type: GraphObjectType
    obj: Dict[str, Any]

    @classmethod
    def person(cls, person: PersonObject) -> 'GraphObject':
        return cls('object', person.to_dict())

    @classmethod
    def relation(cls, from_id: str, to_id: str, relation_type: str = RELATION_IN) -> 'GraphObject':
        return cls('relation', {'from': from_id, 'to': to_id, 'type': relation_type})

    @classmethod
    def log(cls, record_id: Optional[str] = None, **payload: Any) -> 'GraphObject':
        obj = {'id': record_id} if record_id else {}
        obj.update(payload)
        return cls('log', obj)

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, 'obj': self.obj}
