"""
Exception types shared by the scanner subsystem.
"""
from typing import Optional


class ScannerError(Exception):
    """Base class for scanner errors."""


class UniverseFetchError(ScannerError):
    """The ticker universe (or losers listing) could not be fetched.

    Fatal to a scan run: the caller sees the error and no history entry is written.
    """


class UpstreamHTTPError(ScannerError):
    """Upstream answered with a non-200 status."""

    def __init__(self, status: int, url: Optional[str] = None):
        self.status = status
        self.url = url
        super().__init__(f"HTTP {status}" + (f" for {url}" if url else ""))


class JournalWriteError(ScannerError):
    """A result journal could not be persisted."""


class UnknownCategoryError(ScannerError):
    """No scan category with the requested name is configured."""
