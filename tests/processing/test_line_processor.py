"""
Line processor tests: volume selection, page range filtering before column
detection, dropping of lines outside columns and text cleanup.

Run: pytest tests/processing/test_line_processor.py -v
"""

from unittest.mock import Mock

from citydirs.ingestion.archive_extractor import archive_filename
from citydirs.processing.column_detector import detect_columns
from citydirs.processing.line_processor import LineProcessor, clean_line_text, select_volumes
from citydirs.utils.dataclasses import DetectedLine, DetectedPage, VolumeManifest
from citydirs.utils.progress import ProgressTracker


def test_clean_line_text():
    assert clean_line_text("Smith John.......12 Mott") == "Smith John.12 Mott"
    assert clean_line_text("Smith John, 12 Mott") == "Smith John, 12 Mott"


class TestSelectVolumes:
    """Test year filtering and missing archives"""

    def test_year_bounds(self, tmp_path, make_archive):
        volumes = [
            VolumeManifest("a", [1850, 1851], 1, 10, 2),
            VolumeManifest("b", 1860, 1, 10, 2),
        ]
        for volume in volumes:
            make_archive(tmp_path / archive_filename(volume.uuid), {})

        assert [v.uuid for v in select_volumes(volumes, tmp_path, min_year=1855)] == ["b"]
        assert [v.uuid for v in select_volumes(volumes, tmp_path, max_year=1851)] == ["a"]
        assert len(select_volumes(volumes, tmp_path)) == 2

    def test_missing_archive_skipped(self, tmp_path, make_archive):
        volumes = [VolumeManifest("a", 1850, 1, 10, 2), VolumeManifest("b", 1851, 1, 10, 2)]
        make_archive(tmp_path / archive_filename("b"), {})

        assert [v.uuid for v in select_volumes(volumes, tmp_path)] == ["b"]


class TestLineProcessor:
    """Test pages -> line records"""

    def test_pages_outside_range_not_detected(self, tmp_path, volume, make_archive, page_name):
        """Page 20 is before startPage 21 and never reaches the detector"""
        make_archive(tmp_path / archive_filename(volume.uuid), {
            page_name(20): "<html>title page</html>",
            page_name(25): "<html>page 25</html>",
        })
        detector = Mock(return_value=[DetectedPage([
            DetectedLine([100, 200, 900, 240], "Smith John 12 Mott", 0),
        ])])

        records = list(LineProcessor(tmp_path, detector).iter_records([volume]))

        detector.assert_called_once_with("<html>page 25</html>", 2)
        assert [record.page_num for record in records] == [25]

    def test_line_records(self, tmp_path, volume, make_archive, make_hocr, page_name):
        make_archive(tmp_path / archive_filename(volume.uuid), {
            page_name(25): make_hocr([
                ([100, 50, 1900, 100], "NEW-YORK CITY DIRECTORY"),
                ([100, 200, 900, 240], "Smith John.....12 Mott"),
            ]),
        })
        tracker = ProgressTracker()

        records = list(LineProcessor(tmp_path, detect_columns, tracker).iter_records([volume]))

        assert len(records) == 1
        record = records[0]
        assert record.text == "Smith John.12 Mott"
        assert record.uuid == volume.uuid
        assert record.year == [1850, 1851]
        assert record.page_num == 25
        assert record.page_uuid == "page-0025"
        assert record.image_id == "56886389"
        assert record.bbox == [100, 200, 900, 240]
        assert record.record_id == "1850-1851.25.100-200-900-240"
        assert tracker.get_stats()['pages'] == 1

    def test_volumes_chained_in_order(self, tmp_path, make_archive, page_name):
        first = VolumeManifest("first", 1850, 1, 10, 1)
        second = VolumeManifest("second", 1851, 1, 10, 1)
        for volume in (first, second):
            make_archive(tmp_path / archive_filename(volume.uuid), {
                page_name(1): "p1", page_name(2): "p2",
            })
        detector = Mock(return_value=[DetectedPage([DetectedLine([0, 0, 10, 10], "x", 0)])])

        records = list(LineProcessor(tmp_path, detector).iter_records([first, second]))

        assert [(r.uuid, r.page_num) for r in records] == [
            ("first", 1), ("first", 2), ("second", 1), ("second", 2)
        ]
