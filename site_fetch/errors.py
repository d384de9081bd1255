"""site_fetch.errors: exception taxonomy.

Only :class:`ValidationError` and argument errors ever reach a caller. The
per-page and per-cache-operation errors exist so faults can be named in logs
and in structured outcomes; the crawler and the cache absorb them into data.
"""
from __future__ import annotations

__all__ = [
    "SiteFetchError",
    "ValidationError",
    "NetworkError",
    "ContentTypeError",
    "RobotsFetchError",
    "CacheError",
    "CacheReadError",
    "CacheWriteError",
    "CacheCorruptionError",
    "UnsupportedOperationWarning",
]


class SiteFetchError(Exception):
    """Base class for all SiteFetch errors."""


class ValidationError(SiteFetchError, ValueError):
    """A source URL was rejected by the validator."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Invalid URL {url!r}: {reason}")
        self.url = url
        self.reason = reason


class NetworkError(SiteFetchError):
    """Timeout, connection failure or non-2xx status for a single page."""


class ContentTypeError(SiteFetchError):
    """A page was fetched but is not HTML."""


class RobotsFetchError(SiteFetchError):
    """robots.txt could not be retrieved; the crawl falls back to allow-all."""


class CacheError(SiteFetchError):
    """Base class for cache backend faults."""


class CacheReadError(CacheError):
    pass


class CacheWriteError(CacheError):
    pass


class CacheCorruptionError(CacheReadError):
    """Persisted metadata or payload could not be decoded."""


class UnsupportedOperationWarning(UserWarning):
    """Emitted when a backend cannot perform an operation (e.g. edge ``clear``)."""
