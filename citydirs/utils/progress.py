# -*- coding: utf-8 -*-
"""
Progress tracking for the parse and transform stages.

One ProgressTracker is created per stage run by the pipeline and passed to the
code that processes pages and lines, so counters never outlive a run.

Example:
    tracker = ProgressTracker(page_every=100, line_every=10000)
    tracker.page_done(volume)      # logs every 100 pages
    tracker.line_done("Transformed")
    tracker.get_stats()
"""
import logging
from collections import defaultdict
from datetime import datetime
from threading import Lock
from typing import Dict, Optional

from citydirs.utils.config import LOG_EVERY_LINE, LOG_EVERY_PAGE
from citydirs.utils.dataclasses import VolumeManifest

logger = logging.getLogger(__name__)


class ProgressTracker:
    """
    Page and line counters with periodic progress logging.

    Thread-safe so resolver workers may report lines concurrently.
    """

    def __init__(self, page_every: int = LOG_EVERY_PAGE, line_every: int = LOG_EVERY_LINE):
        self.page_every = page_every
        self.line_every = line_every

        self.lock = Lock()

        self.page_count = 0
        self.pages_per_volume: Dict[str, int] = defaultdict(int)
        self.line_count = 0
        self.skipped_count = 0
        self.start_time: Optional[datetime] = None

    def start(self):
        self.start_time = datetime.now()

    def page_done(self, volume: VolumeManifest):
        """Count one page of a volume, logging every page_every pages."""
        with self.lock:
            self.page_count += 1
            self.pages_per_volume[volume.uuid] += 1

            if self.page_count % self.page_every == 0:
                volume_pages = self.pages_per_volume[volume.uuid]
                total = volume.page_count or 1
                percentage = round(volume_pages / total * 100)
                logger.info(
                    f"Parsed {self.page_count} pages - "
                    f"city directory: {volume.year_label} - "
                    f"page: {volume_pages} ({percentage}%)"
                )

    def line_done(self, verb: str = "Processed"):
        """Count one line, logging every line_every lines."""
        with self.lock:
            self.line_count += 1
            if self.line_count % self.line_every == 0:
                logger.info(f"{verb} {self.line_count} lines")

    def line_skipped(self):
        with self.lock:
            self.skipped_count += 1

    def get_stats(self) -> Dict:
        """
        Get current counters.

        Returns:
            Dictionary with page/line counts and elapsed time
        """
        with self.lock:
            elapsed = (datetime.now() - self.start_time).total_seconds() if self.start_time else 0
            return {
                'pages': self.page_count,
                'volumes': len(self.pages_per_volume),
                'lines': self.line_count,
                'skipped': self.skipped_count,
                'elapsed_sec': round(elapsed, 1),
            }
