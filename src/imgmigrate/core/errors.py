"""
Exception taxonomy for the migration pipeline.

Extraction anomalies are recorded on the extractor, never raised. Fetch
errors are always absorbed into the reference mapping as identity fallbacks.
Dataset errors are fatal and abort the run before any output is written.
"""

from typing import Optional


class MigrationError(Exception):
    """Base class for every error raised by imgmigrate."""


class ExtractionAnomaly(MigrationError):
    """
    An embedded-image opener that did not yield a usable locator.

    Recorded on the extractor and logged, never raised.
    """

    def __init__(self, snippet: str, position: int):
        super().__init__(f"Unparseable image reference at offset {position}: {snippet!r}")
        self.snippet = snippet
        self.position = position


class FetchError(MigrationError):
    """A single reference could not be fetched."""

    reason = "fetch_error"

    def __init__(self, url: str, message: str):
        super().__init__(f"{message} ({url})")
        self.url = url
        self.message = message


class FetchTimeout(FetchError):
    reason = "timeout"


class FetchHttpError(FetchError):

    def __init__(self, url: str, status_code: int, message: Optional[str] = None):
        super().__init__(url, message or f"HTTP {status_code}")
        self.status_code = status_code

    @property
    def reason(self) -> str:
        return f"http_{self.status_code}"


class FetchTransportError(FetchError):
    reason = "transport_error"


class MappingConflict(MigrationError):
    """A second value was written for a reference already in the mapping."""


class DatasetError(MigrationError):
    """Reading or writing a record dataset failed."""

    operation = "access"

    def __init__(self, path, message: str):
        super().__init__(f"Failed to {self.operation} dataset {path}: {message}")
        self.path = path


class DatasetReadError(DatasetError):
    operation = "read"


class DatasetWriteError(DatasetError):
    operation = "write"
