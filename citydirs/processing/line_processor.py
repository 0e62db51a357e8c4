# -*- coding: utf-8 -*-
"""
Page-to-line processing for the parse stage.

Turns the pages of the selected volumes into one ordered stream of line
records ready for the entry parser:

    volumes -> archive pages -> page range filter -> column detection
            -> lines with a column -> LineRecord

Volumes are read one after another (never interleaved) so the entry parser
sees a single ordered sequence.

Example:
    processor = LineProcessor(download_dir, detect_columns, tracker)
    for record in processor.iter_records(volumes):
        bridge.submit(record)
"""
# Standard library
import itertools
import re
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

# Local
from citydirs.ingestion.archive_extractor import archive_filename, read_volume_pages
from citydirs.processing.column_detector import ColumnDetector
from citydirs.utils.dataclasses import LineRecord, PageRecord, VolumeManifest
from citydirs.utils.logger import get_logger
from citydirs.utils.progress import ProgressTracker

logger = get_logger(__name__)

DOT_RUN_PATTERN = re.compile(r'\.+')


def clean_line_text(text: str) -> str:
    """Collapse runs of dots (leaders in printed directories) to one."""
    return DOT_RUN_PATTERN.sub('.', text)


def select_volumes(
    volumes: Iterable[VolumeManifest],
    download_dir: Path,
    min_year: Optional[int] = None,
    max_year: Optional[int] = None,
) -> List[VolumeManifest]:
    """
    Keep volumes inside the year bounds whose archive was downloaded.

    Missing archives are logged and skipped.
    """
    selected = []
    for volume in volumes:
        if not volume.within_years(min_year, max_year):
            continue

        if not (Path(download_dir) / archive_filename(volume.uuid)).exists():
            logger.warning(f"Archive for {volume.year_label} ({volume.uuid}) not found, skipping")
            continue

        selected.append(volume)

    logger.info(f"Selected {len(selected)} volumes")
    return selected


class LineProcessor:
    """Produces line records from volume archives."""

    def __init__(
        self,
        download_dir: Path,
        detector: ColumnDetector,
        tracker: Optional[ProgressTracker] = None,
    ):
        """
        Args:
            download_dir: Directory holding <uuid>.tar.gz archives
            detector: Column detector, called as detector(hocr, column_count)
            tracker: Progress tracker owned by the pipeline
        """
        self.download_dir = Path(download_dir)
        self.detector = detector
        self.tracker = tracker or ProgressTracker()

    def iter_pages(self, volumes: List[VolumeManifest]) -> Iterator[PageRecord]:
        """Pages of all volumes in sequence, limited to each volume's page range."""
        pages = itertools.chain.from_iterable(
            read_volume_pages(self.download_dir, volume) for volume in volumes
        )
        for page in pages:
            if page.volume.contains_page(page.page_num):
                yield page

    def page_lines(self, page: PageRecord) -> List[LineRecord]:
        """
        Detect columns on one page and build its line records.

        Lines without a column index are dropped.
        """
        volume = page.volume
        detected_pages = self.detector(page.hocr, volume.column_count)
        if not detected_pages:
            return []

        return [
            LineRecord(
                uuid=volume.uuid,
                year=volume.year,
                image_id=page.image_id,
                page_uuid=page.page_uuid,
                page_num=page.page_num,
                bbox=list(line.bbox),
                text=clean_line_text(line.text),
            )
            for line in detected_pages[0].lines
            if line.column_index is not None
        ]

    def iter_records(self, volumes: List[VolumeManifest]) -> Iterator[LineRecord]:
        """All line records of the given volumes, in page and reading order."""
        for page in self.iter_pages(volumes):
            self.tracker.page_done(page.volume)
            yield from self.page_lines(page)
