# -*- coding: utf-8 -*-
"""
Volume manifest: which city directories to process.

The list of volumes is published as an HTML table (uuid, year, startPage,
endPage, columnCount, ...). The download stage fetches and parses it once and
saves directories.json; later stages only read that file.

Examples:
    volumes = parse_manifest_table(html)
    save_manifest(volumes, Path("data/download/directories.json"))
    volumes = load_manifest(Path("data/download/directories.json"))

"""
# Standard library
from pathlib import Path
from typing import Dict, List, Optional, Union

# Third-party
import requests
from bs4 import BeautifulSoup

# Local
from citydirs.utils.dataclasses import VolumeManifest
from citydirs.utils.errors import ConfigurationError
from citydirs.utils.io import load_json, save_json
from citydirs.utils.logger import get_logger

logger = get_logger(__name__)

REQUIRED_COLUMNS = ('uuid', 'year', 'startPage', 'endPage', 'columnCount')


def parse_year(value: str) -> Union[int, List[int], None]:
    """
    Parse a table year cell.

    "1854" -> 1854, "1850/51" -> [1850, 1851] (a volume covering two years)
    """
    years = value.split('/')
    try:
        first = int(years[0])
    except ValueError:
        return None
    if len(years) == 2:
        return [first, first + 1]
    return first


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def parse_manifest_table(html: str) -> List[VolumeManifest]:
    """
    Parse the volumes table.

    Column names come from the table header. Rows missing any of uuid, year,
    startPage, endPage or columnCount are dropped, as are rows where a page or
    column value is 0.

    Args:
        html: HTML page containing one <table> with <thead> and <tbody>

    Returns:
        List of VolumeManifest in table order
    """
    soup = BeautifulSoup(html, 'lxml')

    keys = [th.get_text().strip() for th in soup.select('table thead th')]

    volumes = []
    dropped = 0
    for tr in soup.select('table tbody tr'):
        values = [td.get_text().strip() or None for td in tr.find_all('td')]
        row: Dict[str, Optional[str]] = dict(zip(keys, values))

        if not all(row.get(column) for column in REQUIRED_COLUMNS):
            dropped += 1
            continue

        entry = {
            'uuid': row['uuid'],
            'year': parse_year(row['year']),
            'startPage': _parse_int(row['startPage']),
            'endPage': _parse_int(row['endPage']),
            'columnCount': _parse_int(row['columnCount']),
        }
        if any(entry[column] is None for column in REQUIRED_COLUMNS):
            dropped += 1
            continue

        try:
            volumes.append(VolumeManifest.from_dict(entry))
        except ValueError as e:
            logger.warning(f"Dropping manifest row: {e}")
            dropped += 1

    logger.info(f"Parsed {len(volumes)} volumes from manifest table ({dropped} rows dropped)")
    return volumes


def fetch_manifest(table_url: str, timeout: int = 30) -> List[VolumeManifest]:
    """
    Download and parse the volumes table.

    Raises:
        requests.RequestException: If the table cannot be fetched
    """
    logger.info(f"Fetching volume list from {table_url}")
    response = requests.get(table_url, timeout=timeout)
    response.raise_for_status()
    return parse_manifest_table(response.text)


def save_manifest(volumes: List[VolumeManifest], path: Path) -> str:
    return save_json([volume.to_dict() for volume in volumes], path)


def load_manifest(path: Path) -> List[VolumeManifest]:
    """
    Load directories.json.

    Malformed entries are logged and skipped.

    Raises:
        ConfigurationError: If the manifest file does not exist
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Manifest not found: {path} (run the download stage first)")

    volumes = []
    for entry in load_json(path):
        try:
            volumes.append(VolumeManifest.from_dict(entry))
        except ValueError as e:
            logger.warning(f"Skipping manifest entry: {e}")

    return volumes
