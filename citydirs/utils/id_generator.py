# -*- coding: utf-8 -*-
"""
Deterministic ID generation for directory entries.

Single source of truth for record ids. An id is built only from the volume
year, page number and line bounding box, so reruns over the same archives
produce the same ids.

Example:
    from citydirs.utils.id_generator import make_record_id

    make_record_id([1850, 1851], 25, [120, 340, 980, 372])
    # Returns: "1850-1851.25.120-340-980-372"
"""
from typing import List, Optional, Sequence, Union

Year = Union[int, List[int]]


def format_year(year: Year) -> str:
    """
    Format a volume year or year range.

    Example:
        >>> format_year([1850, 1851])
        "1850-1851"
        >>> format_year(1854)
        "1854"
    """
    if isinstance(year, (list, tuple)):
        return '-'.join(str(part) for part in year)
    return str(year)


def make_record_id(
    year: Optional[Year],
    page_num: Optional[int],
    bbox: Optional[Sequence[int]],
) -> Optional[str]:
    """
    Build the id of one directory line.

    Format: "<year-or-range>.<pageNum>.<x0-y0-x1-y1>"

    Returns:
        Record id, or None when year, page number or bbox is missing
    """
    if not year or page_num is None or not bbox:
        return None

    bbox_part = '-'.join(str(coordinate) for coordinate in bbox)
    return f"{format_year(year)}.{page_num}.{bbox_part}"
