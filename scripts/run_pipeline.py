# -*- coding: utf-8 -*-
"""
City Directories Pipeline CLI

Runs the city directories pipeline: download volume archives, split their
hOCR pages into lines and parse them with the external entry parser, then
resolve addresses to streets and write Person, relation and log objects.

Settings come from .env / the environment (see citydirs.utils.config);
flags override the most common ones.

Modes:
    --start-stage    First stage to execute (default: download)
    --end-stage      Last stage to execute (default: transform)
    --list-stages    Display all available stages and exit

Examples:
    # Run full pipeline
    python scripts/run_pipeline.py

    # Re-parse downloaded archives for the 1850s only
    python scripts/run_pipeline.py -s parse -e parse --min-year 1850 --max-year 1859

    # Rebuild graph objects from existing lines.ndjson
    python scripts/run_pipeline.py -s transform
"""

import argparse
import logging
import sys
from pathlib import Path

# Project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from citydirs.pipeline import STAGE_DESCRIPTIONS, STAGES, CityDirectoryPipeline
from citydirs.utils.config import LOGS_PATH, PipelineConfig
from citydirs.utils.errors import CityDirectoryError
from citydirs.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def build_config(args: argparse.Namespace) -> PipelineConfig:
    """Environment configuration with command-line overrides applied."""
    config = PipelineConfig.from_env()

    if args.data_dir:
        config.data_dir = Path(args.data_dir)
    if args.min_year is not None:
        config.min_year = args.min_year
    if args.max_year is not None:
        config.max_year = args.max_year
    if args.workers is not None:
        config.max_download_workers = args.workers
        config.resolver_workers = args.workers

    return config


def main():
    parser = argparse.ArgumentParser(
        description="Run city directories pipeline (download, parse, transform)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Stages:
  download   Fetch volume list and archives
  parse      Split pages into lines and parse entries
  transform  Resolve addresses and build graph objects

Examples:
  python run_pipeline.py                       # Full pipeline
  python run_pipeline.py --start-stage parse   # From parsing
  python run_pipeline.py -s transform          # Just graph objects
        """
    )

    parser.add_argument(
        "-s", "--start-stage",
        default="download",
        choices=STAGES,
        help="First stage to run (default: download)"
    )

    parser.add_argument(
        "-e", "--end-stage",
        default="transform",
        choices=STAGES,
        help="Last stage to run (default: transform)"
    )

    parser.add_argument(
        "--list-stages",
        action="store_true",
        help="List all stages and exit"
    )

    parser.add_argument("--data-dir", help="Data directory (default: CITYDIRS_DATA_PATH)")
    parser.add_argument("--min-year", type=int, help="Skip volumes before this year")
    parser.add_argument("--max-year", type=int, help="Skip volumes after this year")
    parser.add_argument("--workers", type=int, help="Download and resolver workers")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()

    if args.list_stages:
        print("\nAvailable stages:")
        for stage in STAGES:
            print(f"  {stage:<10} {STAGE_DESCRIPTIONS[stage]}")
        sys.exit(0)

    setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        log_file=str(LOGS_PATH / "pipeline.log"),
    )

    try:
        pipeline = CityDirectoryPipeline(build_config(args))
        pipeline.run(args.start_stage, args.end_stage)
    except (CityDirectoryError, ValueError) as e:
        logger.error(f"Pipeline failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
