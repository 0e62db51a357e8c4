# -*- coding: utf-8 -*-
"""
Exception hierarchy for the city directories pipeline.

Fatal errors (configuration, archive reading, parser process, correlation)
abort the running batch. Soft errors (download, resolution, geocoding) are logged by the
caller and the run continues with the remaining items.
"""
from typing import Any, Optional


class CityDirectoryError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(CityDirectoryError):
    """Required setting, path or resource is missing."""


class ArchiveReadError(CityDirectoryError):
    """Archive is corrupt, truncated or cannot be opened."""

    def __init__(self, message: str, archive: Optional[str] = None):
        super().__init__(message)
        self.archive = archive


class ProcessStartError(CityDirectoryError):
    """External entry parser could not be started."""


class ProcessWriteError(CityDirectoryError):
    """A record could not be written to the external parser."""

    def __init__(self, message: str, record: Any = None):
        super().__init__(message)
        self.record = record


class CorrelationError(CityDirectoryError):
    """Replies from the external parser no longer line up with requests."""

    def __init__(self, message: str, line: Optional[bytes] = None):
        super().__init__(message)
        self.line = line


class DownloadError(CityDirectoryError):
    """Archive download failed (soft, per item)."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class ResolutionMiss(CityDirectoryError):
    """Entry has no subject, or an address that matches no street (soft)."""

    def __init__(self, message: str, address: Optional[str] = None):
        super().__init__(message)
        self.address = address


class GeocodeError(CityDirectoryError):
    """Address could not be geocoded (soft, per address)."""


class StageError(CityDirectoryError):
    """Fatal error inside a pipeline stage."""

    def __init__(self, stage: str, cause: Exception, record: Optional[str] = None):
        where = f"stage '{stage}'"
        if record:
            where += f" (record {record})"
        super().__init__(f"{where} failed: {cause}")
        self.stage = stage
        self.cause = cause
        self.record = record
