"""Exceptions raised by the log shipping domain."""

from pathlib import Path
from typing import Optional


class LogShippingError(Exception):
    """Base class for log shipping failures."""


class ConfigurationError(LogShippingError):
    """Settings cannot describe a valid run. Raised before anything is restored."""


class SegmentSelectionError(LogShippingError):
    """The backup directory could not be listed."""

    def __init__(self, directory: Path, message: str):
        super().__init__(f"Error listing '{directory}': {message}")
        self.directory = directory


class LiveRestoreError(LogShippingError):
    """A segment failed to restore while monitoring. Live mode cannot recover from this."""

    def __init__(self, path: Path, cause: Optional[Exception] = None):
        super().__init__(f"Log restore failed for '{path}' while monitoring: {cause}")
        self.path = path


class RestoreError(LogShippingError):
    """A RESTORE statement failed."""

    def __init__(self, message: str, query: Optional[str] = None):
        super().__init__(message)
        self.query = query


class RestoreConnectionError(RestoreError):
    """No connection could be opened to SQL Server."""
