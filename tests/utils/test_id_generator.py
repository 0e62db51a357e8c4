"""
Record id tests.

Run: pytest tests/utils/test_id_generator.py -v
"""

import pytest

from citydirs.utils.id_generator import format_year, make_record_id


class TestMakeRecordId:

    def test_year_range(self):
        assert make_record_id([1850, 1851], 25, [120, 340, 980, 372]) == \
            "1850-1851.25.120-340-980-372"

    def test_single_year(self):
        assert make_record_id(1854, 3, [1, 2, 3, 4]) == "1854.3.1-2-3-4"

    def test_same_input_same_id(self):
        assert make_record_id(1854, 3, [1, 2, 3, 4]) == make_record_id(1854, 3, (1, 2, 3, 4))

    @pytest.mark.parametrize("year, page_num, bbox", [
        (None, 3, [1, 2, 3, 4]),
        (1854, None, [1, 2, 3, 4]),
        (1854, 3, []),
        (1854, 3, None),
    ])
    def test_missing_part(self, year, page_num, bbox):
        assert make_record_id(year, page_num, bbox) is None


def test_format_year():
    assert format_year([1850, 1851]) == "1850-1851"
    assert format_year(1854) == "1854"
