# -*- coding: utf-8 -*-
"""
I/O utilities for pipeline artifacts

Helpers for the manifest JSON and the NDJSON files passed between stages.
Every record is serialized the same way (dumps_record) so reruns on identical
input produce byte-identical files.

Examples:
    from citydirs.utils.io import load_json, save_json, stream_jsonl
    volumes = load_json("data/download/directories.json")

    for record in stream_jsonl("data/parse/lines.ndjson"):
        process(record)

"""
import json
import logging
from pathlib import Path
from typing import Any, Iterator, Tuple, Union

logger = logging.getLogger(__name__)


# ============================================================================
# JSON (manifest, street lists)
# ============================================================================

def load_json(path: Union[str, Path]) -> Any:
    """
    Load JSON file.

    Args:
        path: Path to JSON file

    Returns:
        Parsed JSON content
    """
    path = Path(path)
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    logger.info(f"Loaded {path} ({_size_str(path)})")
    return data


def save_json(data: Any, path: Union[str, Path], indent: int = 2) -> str:
    """
    Save data to JSON file, creating parent directories.

    Returns:
        Path string
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=indent, ensure_ascii=False)

    logger.info(f"Saved {path} ({_size_str(path)})")
    return str(path)


# ============================================================================
# NDJSON (lines.ndjson, objects.ndjson)
# ============================================================================

def dumps_record(record: Any) -> str:
    """Serialize one record as a single NDJSON line (without newline)."""
    return json.dumps(record, ensure_ascii=False, separators=(',', ':'))


def stream_jsonl(path: Union[str, Path]) -> Iterator[Any]:
    """
    Stream JSONL file (memory efficient). Blank lines are skipped.

    Yields:
        Records one at a time
    """
    for _, record in stream_jsonl_lenient(path, strict=True):
        yield record


def stream_jsonl_lenient(
    path: Union[str, Path],
    strict: bool = False,
) -> Iterator[Tuple[int, Any]]:
    """
    Stream JSONL file yielding (line_number, record).

    With strict=False, a line that is not valid UTF-8 JSON yields
    (line_number, None) and the caller decides how to report it.
    """
    path = Path(path)
    with open(path, 'rb') as f:
        for line_number, raw in enumerate(f, 1):
            if not raw.strip():
                continue
            try:
                yield line_number, json.loads(raw.decode('utf-8'))
            except (UnicodeDecodeError, json.JSONDecodeError):
                if strict:
                    raise
                yield line_number, None


# ============================================================================
# HELPERS
# ============================================================================

def _size_str(path: Path) -> str:
    """Human-readable file size."""
    size = path.stat().st_size
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"
