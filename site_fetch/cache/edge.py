"""
Cache backend on top of a hosting platform's edge cache.

The platform object only needs ``match``/``put``/``delete`` keyed by request
URL, which is what serverless edge runtimes expose. Entries are stored under
``{base_url}/cache/{namespace}/{sha256(key)}`` as JSON documents whose
lifetime is also advertised through ``Cache-Control``.
"""
from __future__ import annotations

import json
import logging
import re
import warnings
from dataclasses import dataclass, field
from email.utils import format_datetime
from typing import Dict, Optional, Protocol, runtime_checkable

from site_fetch.cache.interface import CacheBackend, CacheEntry, CacheOptions, ReadOutcome, ReadStatus
from site_fetch.cache.keys import hash_key
from site_fetch.errors import CacheCorruptionError, UnsupportedOperationWarning

_MAX_AGE_RE = re.compile(r"\bmax-age=(\d+)", re.I)


@dataclass(slots=True)
class PlatformResponse:
    body: str
    headers: Dict[str, str] = field(default_factory=dict)


@runtime_checkable
class PlatformCache(Protocol):
    async def match(self, request_url: str) -> Optional[PlatformResponse]: ...

    async def put(self, request_url: str, response: PlatformResponse) -> None: ...

    async def delete(self, request_url: str) -> bool: ...


class EdgeCache(CacheBackend):
    """Delegates storage to a :class:`PlatformCache`; cannot enumerate or clear it."""

    kind = "edge"
    supports_paths = False

    def __init__(
        self,
        platform_cache: PlatformCache,
        options: Optional[CacheOptions] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(options, logger)
        self.platform_cache = platform_cache

    def request_url(self, key: str) -> str:
        base = self.options.base_url.rstrip("/")
        return f"{base}/cache/{self.options.namespace}/{hash_key(key)}"

    async def _read(self, key: str) -> ReadOutcome:
        response = await self.platform_cache.match(self.request_url(key))
        if response is None:
            return ReadOutcome.miss()

        age = response.headers.get("Age")
        max_age = _max_age(response.headers.get("Cache-Control", ""))
        if age is not None and age.isdigit() and max_age is not None and int(age) > max_age:
            return ReadOutcome(ReadStatus.EXPIRED, detail=f"age {age}s over max-age {max_age}s")

        try:
            data = json.loads(response.body)
        except (json.JSONDecodeError, TypeError) as exc:
            raise CacheCorruptionError(f"edge entry for {key!r}: {exc}") from exc
        return ReadOutcome.hit(CacheEntry.from_dict(data))

    async def _write(self, entry: CacheEntry, ttl: float) -> None:
        body = json.dumps(entry.to_dict(), ensure_ascii=False)
        headers = {
            "Content-Type": "application/json",
            "Cache-Control": f"public, max-age={int(ttl)}",
            "Expires": format_datetime(entry.expires_at, usegmt=True),
        }
        await self.platform_cache.put(self.request_url(entry.key), PlatformResponse(body, headers))

    async def _remove(self, key: str) -> None:
        await self.platform_cache.delete(self.request_url(key))

    async def _clear(self) -> None:
        message = "edge cache cannot be cleared programmatically; purge it from the platform dashboard"
        warnings.warn(message, UnsupportedOperationWarning, stacklevel=3)
        self.logger.warning(message)


def _max_age(cache_control: str) -> Optional[int]:
    """``max-age`` of a ``Cache-Control`` value, as written for the entry's own TTL."""
    match = _MAX_AGE_RE.search(cache_control)
    return int(match.group(1)) if match else None
