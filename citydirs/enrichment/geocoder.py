# -*- coding: utf-8 -*-
"""
Address geocoding for resolved addresses.

Contract: geocoder(address) -> {"id", "name", "geometry"}; raises GeocodeError
when the address is unknown. The transform stage treats GeocodeError as a soft
failure and emits a log object.

AddressPointGeocoder looks addresses up in a JSON file of address points:

    [{"address": "123 Broadway", "id": "addr-123-broadway",
      "coordinates": [-74.0101, 40.7087]}, ...]
"""
# Standard library
from pathlib import Path
from typing import Any, Callable, Dict

# Local
from citydirs.utils.errors import ConfigurationError, GeocodeError
from citydirs.utils.io import load_json
from citydirs.utils.logger import get_logger

logger = get_logger(__name__)

Geocoder = Callable[[str], Dict[str, Any]]


def _address_key(address: str) -> str:
    return ' '.join(address.lower().split())


class AddressPointGeocoder:
    """Exact lookup of resolved addresses in an address point dataset."""

    def __init__(self, points: Dict[str, Dict[str, Any]]):
        self.points = points

    @classmethod
    def from_file(cls, path: Path) -> 'AddressPointGeocoder':
        """
        Raises:
            ConfigurationError: If an entry lacks address, id or coordinates
        """
        points = {}
        for entry in load_json(path):
            try:
                address = entry['address']
                points[_address_key(address)] = {
                    'id': entry['id'],
                    'name': entry.get('name', address),
                    'geometry': {
                        'type': 'Point',
                        'coordinates': list(entry['coordinates']),
                    },
                }
            except (KeyError, TypeError) as e:
                raise ConfigurationError(f"Invalid address point in {path}: {entry!r} ({e})")

        logger.info(f"Loaded {len(points)} address points")
        return cls(points)

    def __call__(self, address: str) -> Dict[str, Any]:
        point = self.points.get(_address_key(address))
        if point is None:
            raise GeocodeError(f"Address not found: {address}")
        return point
