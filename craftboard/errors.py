"""Error taxonomy for the craftboard data layer.

- ConfigurationMissing: nothing to fetch from (no base URL / token / collection id)
- FetchFailure: network or HTTP failure reaching the document API or a feed
- ParseFailure: payload arrived but could not be understood

A record that fails validation is not an error; it is silently dropped.
"""

from __future__ import annotations

from typing import Optional


class CraftboardError(Exception):
    """Base class for craftboard data errors"""
    pass


class ConfigurationMissing(CraftboardError):
    """Raised when a view has no API URL, token or collection id configured"""
    pass


class FetchFailure(CraftboardError):
    """Network/HTTP failure. Recoverable on explicit refresh."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class ParseFailure(FetchFailure):
    """Malformed JSON or feed content"""
    pass


class StoreError(CraftboardError):
    """Persistent key-value store could not be read or written"""
    pass
