"""
End-to-end pipeline tests: download (HTTP mocked), parse (stand-in entry
parser process) and transform, reading and writing the stage directories.

Run: pytest tests/test_pipeline_end_to_end.py -v
"""

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from citydirs.ingestion.archive_extractor import archive_filename
from citydirs.ingestion.manifest import save_manifest
from citydirs.pipeline import CityDirectoryPipeline, STAGES, get_stages_to_run
from citydirs.utils.config import PipelineConfig
from citydirs.utils.errors import ConfigurationError, StageError

TABLE = """
<table>
  <thead><tr><th>uuid</th><th>year</th><th>startPage</th><th>endPage</th><th>columnCount</th></tr></thead>
  <tbody><tr><td>c6725860</td><td>1850/51</td><td>21</td><td>560</td><td>2</td></tr></tbody>
</table>
"""


@pytest.fixture
def config(tmp_path, fake_parser, python_executable):
    parser_dir, training = fake_parser("lines")
    streets = tmp_path / "streets.json"
    streets.write_text(json.dumps(["Broadway", "Bowery", "Mott Street"]), encoding='utf-8')
    return PipelineConfig(
        data_dir=tmp_path / "data",
        table_url="https://example.org/directories.html",
        data_url="https://example.org/data/",
        parser_path=parser_dir,
        parser_training=training,
        parser_python=python_executable,
        streets_path=streets,
    )


@pytest.fixture
def downloaded(config, volume, make_archive, make_hocr, page_name):
    """Download stage output: directories.json and one archive with pages 20 and 25."""
    download_dir = config.stage_dir("download")
    save_manifest([volume], download_dir / "directories.json")
    make_archive(download_dir / archive_filename(volume.uuid), {
        page_name(20): make_hocr([
            ([100, 200, 900, 240], "Jones Peter 5 Bowery"),
        ]),
        page_name(25): make_hocr([
            ([100, 50, 1900, 100], "NEW-YORK CITY DIRECTORY"),
            ([100, 200, 900, 240], "John Smith 123 Broadway"),
        ]),
    })
    return download_dir


def read_ndjson(path):
    return [json.loads(line) for line in path.read_text(encoding='utf-8').splitlines()]


def test_get_stages_to_run():
    assert get_stages_to_run("download", "transform") == STAGES
    assert get_stages_to_run("parse", "parse") == ["parse"]
    with pytest.raises(ValueError):
        get_stages_to_run("transform", "download")


class TestParseAndTransform:
    """Archive pages through the entry parser to graph objects"""

    def test_one_person_from_page_25(self, config, downloaded):
        pipeline = CityDirectoryPipeline(config)

        results = pipeline.run("parse", "transform")

        lines = read_ndjson(config.stage_dir("parse") / "lines.ndjson")
        assert len(lines) == 1
        assert lines[0]["pageNum"] == 25
        assert lines[0]["parsed"]["subjects"][0]["value"] == "John Smith"

        objects = read_ndjson(config.stage_dir("transform") / "objects.ndjson")
        assert len(objects) == 1
        assert objects[0]["type"] == "object"
        assert objects[0]["obj"]["id"] == "1850-1851.25.100-200-900-240"
        assert objects[0]["obj"]["name"] == "John Smith"
        assert objects[0]["obj"]["data"]["addresses"][0]["address"] == "123 Broadway"

        assert results["parse"]["pages"] == 1
        assert results["transform"]["objects"] == 1

    def test_rerun_is_idempotent(self, config, downloaded):
        pipeline = CityDirectoryPipeline(config)
        objects_path = config.stage_dir("transform") / "objects.ndjson"

        pipeline.run("parse", "transform")
        first = objects_path.read_bytes()
        pipeline.run("transform", "transform")

        assert objects_path.read_bytes() == first

    def test_year_filter(self, config, downloaded):
        config.min_year = 1852
        CityDirectoryPipeline(config).run("parse", "parse")
        assert (config.stage_dir("parse") / "lines.ndjson").read_text() == ""

    def test_malformed_lines_skipped(self, config, downloaded):
        pipeline = CityDirectoryPipeline(config)
        pipeline.run("parse", "parse")

        lines_path = config.stage_dir("parse") / "lines.ndjson"
        with open(lines_path, 'a', encoding='utf-8') as f:
            f.write("{not json\n")
            f.write('{"uuid": "missing fields"}\n')

        stats = pipeline.run_transform()

        assert stats["skipped"] == 2
        assert stats["objects"] == 1

    def test_undecodable_line_skipped(self, config, downloaded):
        pipeline = CityDirectoryPipeline(config)
        pipeline.run("parse", "parse")

        lines_path = config.stage_dir("parse") / "lines.ndjson"
        with open(lines_path, 'ab') as f:
            f.write(b"\xff\xfe bad\n")

        stats = pipeline.run_transform()

        assert stats["skipped"] == 1
        assert stats["objects"] == 1

    def test_collaborator_failure_names_stage(self, config, downloaded):
        detector = MagicMock(side_effect=ValueError("bad layout"))

        with pytest.raises(StageError) as excinfo:
            CityDirectoryPipeline(config, detector=detector).run("parse", "parse")

        assert excinfo.value.stage == "parse"
        assert isinstance(excinfo.value.__cause__, ValueError)

    def test_corrupt_archive_aborts(self, config, downloaded, volume):
        (downloaded / archive_filename(volume.uuid)).write_bytes(b"\x1f\x8b" + b"garbage" * 100)

        with pytest.raises(StageError) as excinfo:
            CityDirectoryPipeline(config).run("parse", "parse")

        assert excinfo.value.stage == "parse"
        assert excinfo.value.record.endswith(archive_filename(volume.uuid))

    def test_parser_not_installed(self, config, downloaded, tmp_path):
        config.parser_path = tmp_path / "nowhere"
        with pytest.raises(StageError) as excinfo:
            CityDirectoryPipeline(config).run_parse()
        assert "parse.py" in str(excinfo.value)

    def test_missing_configuration(self, config):
        config.streets_path = None
        with pytest.raises(ConfigurationError):
            CityDirectoryPipeline(config).run_transform()

    def test_transform_needs_parse_output(self, config):
        with pytest.raises(ConfigurationError):
            CityDirectoryPipeline(config).run_transform()


class TestDownload:
    """Download stage with HTTP mocked"""

    def test_manifest_saved_and_failures_marked(self, config):
        table_response = MagicMock(text=TABLE)

        archive_response = MagicMock()
        archive_response.__enter__.return_value = archive_response
        archive_response.__exit__.return_value = False
        archive_response.iter_content.return_value = [b"<Error/>"]
        archive_response.raise_for_status.side_effect = requests.HTTPError("403")

        session = MagicMock()
        session.get.return_value = archive_response

        with patch('citydirs.ingestion.manifest.requests.get', return_value=table_response), \
                patch('citydirs.ingestion.downloader.requests.Session', return_value=session):
            stats = CityDirectoryPipeline(config).run("download", "download")["download"]

        download_dir = config.stage_dir("download")
        manifest = json.loads((download_dir / "directories.json").read_text(encoding='utf-8'))
        assert manifest == [{
            "uuid": "c6725860", "year": [1850, 1851],
            "startPage": 21, "endPage": 560, "columnCount": 2,
        }]
        assert stats == {"volumes": 1, "downloaded": 0}
        assert (download_dir / "c6725860.xml").exists()
        assert not (download_dir / "c6725860.tar.gz").exists()
