# -*- coding: utf-8 -*-
"""
Configuration for the city directories pipeline

Loads deployment settings (URLs, parser location, data directory) from .env and
the environment, and keeps the pipeline's own tuning constants here.

Example:
    from citydirs.utils.config import PipelineConfig
    config = PipelineConfig.from_env()
    config.require_parser()
"""
# Standard library
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Third-party
from dotenv import load_dotenv

# Local
from citydirs.utils.errors import ConfigurationError

load_dotenv()

# ============================================================================
# PATHS
# ============================================================================
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_PATH = Path(os.getenv('CITYDIRS_DATA_PATH', 'data/'))

if not DATA_PATH.is_absolute():
    DATA_PATH = PROJECT_ROOT / DATA_PATH

LOGS_PATH = DATA_PATH / "logs"

# Persisted artifacts, one directory per stage
MANIFEST_FILENAME = "directories.json"
LINES_FILENAME = "lines.ndjson"
OBJECTS_FILENAME = "objects.ndjson"

# ============================================================================
# PIPELINE CONSTANTS
# ============================================================================
PAGE_SUFFIX = ".hocr"
LOG_EVERY_PAGE = 100
LOG_EVERY_LINE = 10000

# Parser bridge
PARSER_SCRIPT = "parse.py"
PARSER_PYTHON = os.getenv('CITYDIRS_PARSER_PYTHON', 'python3')
PARSER_READ_CHUNK = 4096  # bytes per stdout read

# Street resolver
MAX_EDIT_DISTANCE = 2
EXACT_TOKEN_MAX_LENGTH = 3

# Transform stage
TRANSFORM_BATCH_SIZE = 500

# Downloads
DOWNLOAD_TIMEOUT = 60  # seconds
DOWNLOAD_CHUNK_SIZE = 1024 * 64


def _env_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value.strip() == '':
        return None
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


def _env_path(name: str) -> Optional[Path]:
    value = os.getenv(name)
    return Path(value) if value else None


@dataclass
class PipelineConfig:
    """
    Run configuration.

    Every stage validates only what it needs (require_* methods), so a stage
    can be rerun without configuring the others.
    """
    data_dir: Path = DATA_PATH
    table_url: Optional[str] = None
    data_url: Optional[str] = None
    parser_path: Optional[Path] = None
    parser_training: Optional[Path] = None
    parser_python: str = PARSER_PYTHON
    streets_path: Optional[Path] = None
    addresses_path: Optional[Path] = None
    min_year: Optional[int] = None
    max_year: Optional[int] = None
    max_download_workers: int = 4
    resolver_workers: int = 4
    neo4j_uri: Optional[str] = None
    neo4j_user: Optional[str] = None
    neo4j_password: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'PipelineConfig':
        """Build configuration from CITYDIRS_* (and NEO4J_*) environment variables."""
        return cls(
            data_dir=DATA_PATH,
            table_url=os.getenv('CITYDIRS_TABLE_URL'),
            data_url=os.getenv('CITYDIRS_DATA_URL'),
            parser_path=_env_path('CITYDIRS_PARSER_PATH'),
            parser_training=_env_path('CITYDIRS_PARSER_TRAINING'),
            streets_path=_env_path('CITYDIRS_STREETS_PATH'),
            addresses_path=_env_path('CITYDIRS_ADDRESSES_PATH'),
            min_year=_env_int('CITYDIRS_MIN_YEAR'),
            max_year=_env_int('CITYDIRS_MAX_YEAR'),
            max_download_workers=_env_int('CITYDIRS_DOWNLOAD_WORKERS') or 4,
            resolver_workers=_env_int('CITYDIRS_RESOLVER_WORKERS') or 4,
            neo4j_uri=os.getenv('NEO4J_URI'),
            neo4j_user=os.getenv('NEO4J_USER'),
            neo4j_password=os.getenv('NEO4J_PASSWORD'),
        )

    # ------------------------------------------------------------------------
    # Stage directories
    # ------------------------------------------------------------------------

    def stage_dir(self, stage: str) -> Path:
        return Path(self.data_dir) / stage

    # ------------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------------

    def require_download(self) -> None:
        if not self.table_url or not self.data_url:
            raise ConfigurationError(
                "Please set both CITYDIRS_TABLE_URL and CITYDIRS_DATA_URL"
            )
        if self.max_download_workers < 1:
            raise ConfigurationError("CITYDIRS_DOWNLOAD_WORKERS must be at least 1")

    def require_parser(self) -> None:
        if not self.parser_path or not self.parser_training:
            raise ConfigurationError(
                "Please set both CITYDIRS_PARSER_PATH and CITYDIRS_PARSER_TRAINING"
            )

    def require_streets(self) -> None:
        if not self.streets_path:
            raise ConfigurationError("Please set CITYDIRS_STREETS_PATH")
        if not Path(self.streets_path).exists():
            raise ConfigurationError(f"Streets file does not exist: {self.streets_path}")
        if self.resolver_workers < 1:
            raise ConfigurationError("CITYDIRS_RESOLVER_WORKERS must be at least 1")
        if self.addresses_path and not Path(self.addresses_path).exists():
            raise ConfigurationError(f"Addresses file does not exist: {self.addresses_path}")

    @property
    def uses_neo4j(self) -> bool:
        return bool(self.neo4j_uri)
