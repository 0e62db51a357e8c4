# -*- coding: utf-8 -*-
"""
City directories pipeline orchestrator

Runs the three stages in order. Every stage reads the previous stage's
persisted output from disk, so any stage can be rerun on its own:

    download   -> data/download/directories.json, data/download/<uuid>.tar.gz
    parse      -> data/parse/lines.ndjson
    transform  -> data/transform/objects.ndjson (and Neo4j when configured)

Failure policy: fatal errors abort the stage with a StageError naming the
stage (and the record when known). Malformed individual records are logged
and skipped. The entry parser process and every file handle are released on
all exit paths.

Example:
    config = PipelineConfig.from_env()
    pipeline = CityDirectoryPipeline(config)
    pipeline.run(start_stage="parse", end_stage="transform")
"""
# Standard library
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

# Third-party
import requests
from neo4j.exceptions import DriverError, Neo4jError

# Local
from citydirs.enrichment.geocoder import AddressPointGeocoder, Geocoder
from citydirs.enrichment.street_normalizer import StreetNormalizer, normalize_street_name
from citydirs.enrichment.street_resolver import StreetIndex
from citydirs.graph.graph_writer import Neo4jGraphWriter, NdjsonGraphWriter
from citydirs.graph.transform import EntryTransformer
from citydirs.ingestion.downloader import ArchiveDownloader
from citydirs.ingestion.manifest import fetch_manifest, load_manifest, save_manifest
from citydirs.processing.column_detector import ColumnDetector, detect_columns
from citydirs.processing.entry_parser import EntryParserBridge
from citydirs.processing.line_processor import LineProcessor, select_volumes
from citydirs.utils.config import (
    LINES_FILENAME,
    MANIFEST_FILENAME,
    OBJECTS_FILENAME,
    PipelineConfig,
)
from citydirs.utils.dataclasses import LineRecord
from citydirs.utils.errors import (
    ArchiveReadError,
    CityDirectoryError,
    ConfigurationError,
    ProcessWriteError,
    StageError,
)
from citydirs.utils.io import dumps_record, stream_jsonl_lenient
from citydirs.utils.logger import get_logger
from citydirs.utils.progress import ProgressTracker

logger = get_logger(__name__)

STAGES = ["download", "parse", "transform"]

STAGE_DESCRIPTIONS = {
    "download": "Fetch volume list and archives",
    "parse": "Split pages into lines and parse entries",
    "transform": "Resolve addresses and build graph objects",
}


def get_stages_to_run(start: str, end: str) -> List[str]:
    """Get list of stages between start and end (inclusive)."""
    try:
        start_idx = STAGES.index(start)
        end_idx = STAGES.index(end)
    except ValueError as e:
        raise ValueError(f"Invalid stage: {e}. Valid stages: {STAGES}")

    if start_idx > end_idx:
        raise ValueError(f"Start stage {start} comes after end stage {end}")

    return STAGES[start_idx:end_idx + 1]


def _failed_record(error: Exception) -> Optional[str]:
    """Identify the record (or archive) a fatal error is about, when known."""
    if isinstance(error, ProcessWriteError) and isinstance(error.record, LineRecord):
        return error.record.record_id or error.record.uuid
    if isinstance(error, ArchiveReadError):
        return error.archive
    return None


class CityDirectoryPipeline:
    """
    Sequences download, parse and transform.

    Collaborators (column detector, street normalizer, geocoder) can be
    swapped; the defaults are the implementations shipped with the package.
    """

    def __init__(
        self,
        config: PipelineConfig,
        detector: ColumnDetector = detect_columns,
        normalizer: StreetNormalizer = normalize_street_name,
        geocoder: Optional[Geocoder] = None,
    ):
        self.config = config
        self.detector = detector
        self.normalizer = normalizer
        self.geocoder = geocoder

        self.stage_runners = {
            "download": self.run_download,
            "parse": self.run_parse,
            "transform": self.run_transform,
        }

    def stage_dir(self, stage: str) -> Path:
        path = self.config.stage_dir(stage)
        path.mkdir(parents=True, exist_ok=True)
        return path

    # =========================================================================
    # DOWNLOAD
    # =========================================================================

    def run_download(self) -> Dict[str, Any]:
        """
        Fetch the volume table, save directories.json and download archives.

        Failed archive downloads are logged and skipped.
        """
        self.config.require_download()
        output_dir = self.stage_dir("download")

        try:
            volumes = fetch_manifest(self.config.table_url)
        except requests.RequestException as e:
            raise StageError("download", e) from e

        save_manifest(volumes, output_dir / MANIFEST_FILENAME)
        logger.info(f"Found {len(volumes)} city directories")

        downloader = ArchiveDownloader(
            self.config.data_url,
            output_dir,
            max_workers=self.config.max_download_workers,
        )
        downloaded = downloader.download_all(volumes)

        return {'volumes': len(volumes), 'downloaded': len(downloaded)}

    # =========================================================================
    # PARSE
    # =========================================================================

    def run_parse(self) -> Dict[str, Any]:
        """
        Turn downloaded archives into parsed line records (lines.ndjson).

        Raises:
            StageError: On archive, parser process or correlation failure, or any
                other failure of a collaborator (column detector, line processor)
        """
        self.config.require_parser()

        download_dir = self.config.stage_dir("download")
        volumes = load_manifest(download_dir / MANIFEST_FILENAME)
        selected = select_volumes(
            volumes, download_dir, self.config.min_year, self.config.max_year
        )

        output_path = self.stage_dir("parse") / LINES_FILENAME

        tracker = ProgressTracker()
        tracker.start()
        processor = LineProcessor(download_dir, self.detector, tracker)

        bridge = None
        try:
            bridge = EntryParserBridge(
                self.config.parser_path,
                self.config.parser_training,
                python=self.config.parser_python,
            )
            with open(output_path, 'w', encoding='utf-8') as f:
                for record in bridge.parse(processor.iter_records(selected)):
                    f.write(dumps_record(record.to_dict()) + '\n')
                    tracker.line_done("Parsed")
        except (CityDirectoryError, OSError) as e:
            logger.error(f"Parse stage failed: {e}")
            raise StageError("parse", e, record=_failed_record(e)) from e
        except Exception as e:
            logger.exception(f"Parse stage raised exception: {e}")
            raise StageError("parse", e) from e
        finally:
            if bridge is not None:
                bridge.close()

        stats = tracker.get_stats()
        logger.info(f"Parsed {stats['lines']} lines from {stats['pages']} pages")
        return stats

    # =========================================================================
    # TRANSFORM
    # =========================================================================

    def _read_lines(self, path: Path, tracker: ProgressTracker) -> Iterator[LineRecord]:
        """Stream parsed line records, logging and skipping malformed lines."""
        for line_number, data in stream_jsonl_lenient(path):
            if data is None:
                logger.warning(f"{path.name}:{line_number}: invalid JSON, skipping")
                tracker.line_skipped()
                continue
            try:
                yield LineRecord.from_dict(data)
            except ValueError as e:
                logger.warning(f"{path.name}:{line_number}: {e}, skipping")
                tracker.line_skipped()

    def _load_geocoder(self) -> Optional[Geocoder]:
        if self.geocoder is not None:
            return self.geocoder
        if self.config.addresses_path:
            return AddressPointGeocoder.from_file(self.config.addresses_path)
        return None

    def _open_writers(self, output_dir: Path, writers: list):
        """Open the sinks into writers, so the caller can close whatever was opened."""
        writers.append(NdjsonGraphWriter(output_dir / OBJECTS_FILENAME))
        if self.config.uses_neo4j:
            neo4j_writer = Neo4jGraphWriter(
                self.config.neo4j_uri,
                self.config.neo4j_user or 'neo4j',
                self.config.neo4j_password,
            )
            writers.append(neo4j_writer)
            neo4j_writer.create_constraints()

    def run_transform(self) -> Dict[str, Any]:
        """
        Resolve addresses of parsed lines and write graph objects.

        Raises:
            StageError: If the sink or a collaborator fails
        """
        self.config.require_streets()

        lines_path = self.config.stage_dir("parse") / LINES_FILENAME
        if not lines_path.exists():
            raise ConfigurationError(f"{lines_path} not found (run the parse stage first)")

        index = StreetIndex.from_file(self.config.streets_path, normalizer=self.normalizer)
        geocoder = self._load_geocoder()

        tracker = ProgressTracker()
        tracker.start()
        transformer = EntryTransformer(
            index,
            geocoder=geocoder,
            max_workers=self.config.resolver_workers,
            tracker=tracker,
        )

        writers = []
        objects = 0
        try:
            self._open_writers(self.stage_dir("transform"), writers)
            for graph_object in transformer.transform(self._read_lines(lines_path, tracker)):
                for writer in writers:
                    writer.write_object(graph_object)
                objects += 1
        except (CityDirectoryError, OSError, DriverError, Neo4jError) as e:
            logger.error(f"Transform stage failed: {e}")
            raise StageError("transform", e, record=_failed_record(e)) from e
        except Exception as e:
            logger.exception(f"Transform stage raised exception: {e}")
            raise StageError("transform", e) from e
        finally:
            for writer in writers:
                writer.close()

        stats = tracker.get_stats()
        stats['objects'] = objects
        logger.info(
            f"Transformed {stats['lines']} lines into {objects} graph objects "
            f"({stats['skipped']} skipped)"
        )
        return stats

    # =========================================================================
    # ORCHESTRATION
    # =========================================================================

    def run(self, start_stage: str = "download", end_stage: str = "transform") -> Dict[str, Dict]:
        """
        Run stages from start_stage to end_stage (inclusive).

        Returns:
            Stats per completed stage

        Raises:
            StageError: First fatal stage error (later stages are not run)
        """
        stages = get_stages_to_run(start_stage, end_stage)

        logger.info("=" * 60)
        logger.info("CITY DIRECTORIES PIPELINE")
        logger.info(f"Stages: {start_stage} → {end_stage}")
        logger.info(f"Started: {datetime.now().isoformat()}")
        logger.info("=" * 60)

        results = {}
        for stage in stages:
            logger.info(f">>> Starting {stage}: {STAGE_DESCRIPTIONS[stage]}")
            results[stage] = self.stage_runners[stage]()
            logger.info(f"<<< Completed {stage}")

        logger.info("=" * 60)
        logger.info("PIPELINE COMPLETE")
        logger.info(f"Finished: {datetime.now().isoformat()}")
        logger.info("=" * 60)

        return results
