# -*- coding: utf-8 -*-
"""
Column detection for multi-column directory pages.

Directory pages are printed in columns; OCR emits lines in whatever order it
found them. A column detector reflows them into reading order (column by
column, top to bottom) and tags each line with its column index. Lines that do
not sit inside a single column (running heads, spanning headings) get no
column index and are dropped by the parse stage.

Contract:
    detector(hocr, column_count) -> [DetectedPage(lines=[DetectedLine, ...]), ...]

detect_columns() is a simple implementation of that contract that splits the
page into equal-width columns. Any callable with the same signature can be
passed to the pipeline instead.
"""
# Standard library
import re
from typing import Callable, List, Optional

# Third-party
from bs4 import BeautifulSoup

# Local
from citydirs.utils.dataclasses import DetectedLine, DetectedPage

ColumnDetector = Callable[[str, int], List[DetectedPage]]

BBOX_PATTERN = re.compile(r'bbox\s+(\d+)\s+(\d+)\s+(\d+)\s+(\d+)')

# A line wider than this share of a column spans columns
SPAN_TOLERANCE = 1.2


def parse_bbox(title: Optional[str]) -> Optional[List[int]]:
    """Read [x0, y0, x1, y1] from an hOCR title attribute."""
    if not title:
        return None
    match = BBOX_PATTERN.search(title)
    if not match:
        return None
    return [int(value) for value in match.groups()]


def _line_text(line) -> str:
    words = [word.get_text() for word in line.select('.ocrx_word')]
    text = ' '.join(words) if words else line.get_text(' ')
    return ' '.join(text.split())


def _column_index(bbox: List[int], page_width: int, column_count: int) -> Optional[int]:
    column_width = page_width / column_count
    if column_width <= 0:
        return None

    if bbox[2] - bbox[0] > column_width * SPAN_TOLERANCE:
        return None

    centre = (bbox[0] + bbox[2]) / 2
    index = int(centre // column_width)
    return min(max(index, 0), column_count - 1)


def _detect_page(page, column_count: int) -> DetectedPage:
    lines = []
    for element in page.select('.ocr_line'):
        bbox = parse_bbox(element.get('title'))
        text = _line_text(element)
        if bbox is None or not text:
            continue
        lines.append(DetectedLine(bbox=bbox, text=text))

    if not lines:
        return DetectedPage()

    page_bbox = parse_bbox(page.get('title'))
    page_width = page_bbox[2] if page_bbox else max(line.bbox[2] for line in lines)

    for line in lines:
        line.column_index = _column_index(line.bbox, page_width, column_count)

    in_columns = sorted(
        (line for line in lines if line.column_index is not None),
        key=lambda line: (line.column_index, line.bbox[1], line.bbox[0]),
    )
    outside = [line for line in lines if line.column_index is None]

    return DetectedPage(lines=in_columns + outside)


def detect_columns(hocr: str, column_count: int) -> List[DetectedPage]:
    """
    Split hOCR lines into equal-width columns.

    Args:
        hocr: hOCR document
        column_count: Number of printed columns on the page

    Returns:
        One DetectedPage per ocr_page element (or one for the whole document
        when it has no page element)
    """
    if column_count < 1:
        raise ValueError(f"column_count must be at least 1, got {column_count}")

    soup = BeautifulSoup(hocr, 'lxml')
    pages = soup.select('.ocr_page') or [soup]

    return [_detect_page(page, column_count) for page in pages]
