# -*- coding: utf-8 -*-
"""
Centralized logging configuration for the city directories pipeline

Console output plus an optional log file, configured once at the entry point.
Modules then use logger = get_logger(__name__).

Examples:
    # In the CLI entry point
    from citydirs.utils.logger import setup_logging
    setup_logging(log_file="data/logs/pipeline.log")

    # In any module
    from citydirs.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("Parsed 100 pages")

"""
# Standard library
import logging
import sys
from pathlib import Path
from typing import Optional

# Chatty third-party loggers kept at WARNING
NOISY_LOGGERS = ('urllib3', 'neo4j')

_logging_configured = False


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    format_string: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
) -> None:
    """
    Configure logging for the pipeline.

    Safe to call multiple times; only the first call installs handlers.

    Args:
        level: Logging level (default: logging.INFO)
        log_file: Optional path to a log file, parent directories are created
        format_string: Log message format
    """
    global _logging_configured

    if _logging_configured:
        return

    formatter = logging.Formatter(format_string)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    handlers = [console_handler]

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, mode='a', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _logging_configured = True


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module (typically called with __name__)."""
    return logging.getLogger(name)
