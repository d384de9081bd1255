"""
Cache interface shared by every SiteFetch backend.

Backends only implement the raw storage primitives (``_read``, ``_write``,
``_remove``, ``_clear``, ``_stats``). The public operations live here so that
lazy expiration and the "a cache fault is a miss, never an error" rule behave
identically everywhere:

* ``_read`` reports a :class:`ReadOutcome`; ``get``/``has`` turn anything but
  a fresh hit into ``None``/``False`` and drop expired, stale or corrupt
  entries on the way.
* write and delete faults are logged and swallowed.
"""
from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from site_fetch.errors import CacheCorruptionError, CacheReadError, CacheWriteError
from site_fetch.logger import get_logger

DEFAULT_TTL = 3600
DEFAULT_NAMESPACE = "site_fetch"

PayloadKind = Literal["serialized", "filesystem"]


class CacheOptions(BaseModel):
    """Construction options understood by all backends (each ignores what it cannot use)."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    namespace: str = Field(DEFAULT_NAMESPACE, min_length=1)
    ttl: float = Field(DEFAULT_TTL, gt=0, description="Default entry lifetime (seconds).")
    max_size: Optional[int] = Field(None, gt=0, description="Size budget in bytes; backend default if unset.")
    cache_dir: Optional[Path] = Field(None, description="Filesystem backend root directory.")
    base_url: str = Field("https://cache.site-fetch.internal", description="Edge backend key prefix.")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class CacheEntry:
    """One cached value with its lifetime metadata."""

    key: str
    fetched_at: datetime
    expires_at: datetime
    payload: Any
    backend_kind: str
    payload_kind: PayloadKind = "serialized"

    @property
    def created_at(self) -> datetime:
        return self.fetched_at

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at <= (now or _utcnow())

    def to_dict(self) -> Dict[str, Any]:
        payload = str(self.payload) if self.payload_kind == "filesystem" else self.payload
        return {
            "metadata": {
                "key": self.key,
                "fetched_at": self.fetched_at.isoformat(),
                "expires_at": self.expires_at.isoformat(),
                "backend_kind": self.backend_kind,
                "payload_kind": self.payload_kind,
            },
            "payload": payload,
        }

    @classmethod
    def from_dict(cls, data: Any) -> CacheEntry:
        """Rebuild an entry from :meth:`to_dict` output; bad shapes raise CacheCorruptionError."""
        try:
            meta = data["metadata"]
            payload_kind = meta.get("payload_kind", "serialized")
            if payload_kind not in ("serialized", "filesystem"):
                raise ValueError(f"unknown payload kind {payload_kind!r}")
            payload = data["payload"]
            if payload_kind == "filesystem":
                payload = Path(payload)
            fetched_at = datetime.fromisoformat(meta["fetched_at"])
            expires_at = datetime.fromisoformat(meta["expires_at"])
            if fetched_at.tzinfo is None or expires_at.tzinfo is None:
                raise ValueError("timestamps without a timezone")
            return cls(
                key=str(meta["key"]),
                fetched_at=fetched_at,
                expires_at=expires_at,
                payload=payload,
                backend_kind=str(meta.get("backend_kind", "")),
                payload_kind=payload_kind,
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise CacheCorruptionError(f"malformed cache entry: {exc}") from exc


class ReadStatus(str, Enum):
    HIT = "hit"
    MISS = "miss"
    EXPIRED = "expired"
    STALE = "stale"  # entry points at a filesystem path that is gone
    CORRUPT = "corrupt"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ReadOutcome:
    """Result of a raw backend read."""

    status: ReadStatus
    entry: Optional[CacheEntry] = None
    detail: str = ""

    @classmethod
    def hit(cls, entry: CacheEntry) -> ReadOutcome:
        return cls(ReadStatus.HIT, entry)

    @classmethod
    def miss(cls) -> ReadOutcome:
        return cls(ReadStatus.MISS)

    @property
    def must_evict(self) -> bool:
        return self.status in (ReadStatus.EXPIRED, ReadStatus.STALE, ReadStatus.CORRUPT)


@dataclass(slots=True)
class CacheStats:
    """Advisory numbers; backends without introspection report zeros."""

    entry_count: int = 0
    size_bytes: int = 0
    per_kind: Dict[str, int] = field(default_factory=dict)

    @property
    def size_mb(self) -> float:
        return self.size_bytes / (1024 * 1024)


class CacheBackend(ABC):
    """Async, TTL-expiring key/value cache."""

    kind: ClassVar[str] = "abstract"
    supports_paths: ClassVar[bool] = False

    def __init__(self, options: Optional[CacheOptions] = None, logger: Optional[logging.Logger] = None) -> None:
        self.options = options or CacheOptions()
        self.logger = logger or get_logger("cache")

    # ------------------------------------------------------------------ #
    # public interface                                                    #
    # ------------------------------------------------------------------ #

    async def init(self) -> None:
        """Prepare backing storage. Safe to call more than once."""

    async def get(self, key: str) -> Optional[CacheEntry]:
        outcome = await self.read(key)
        return outcome.entry if outcome.status is ReadStatus.HIT else None

    async def has(self, key: str) -> bool:
        return await self.get(key) is not None

    async def read(self, key: str) -> ReadOutcome:
        """Raw read with lazy expiration applied; never raises."""
        try:
            outcome = await self._read(key)
        except CacheCorruptionError as exc:
            outcome = ReadOutcome(ReadStatus.CORRUPT, detail=str(exc))
        except (OSError, CacheReadError) as exc:
            outcome = ReadOutcome(ReadStatus.ERROR, detail=str(exc))

        if outcome.status is ReadStatus.HIT and outcome.entry is not None and outcome.entry.is_expired():
            outcome = ReadOutcome(ReadStatus.EXPIRED, outcome.entry)

        if outcome.status is ReadStatus.ERROR:
            self.logger.warning("%s cache read failed for %r: %s", self.kind, key, outcome.detail)
        elif outcome.status is not ReadStatus.HIT:
            self.logger.debug("%s cache %s for %r %s", self.kind, outcome.status.value, key, outcome.detail)

        if outcome.must_evict:
            await self.delete(key)
        return outcome

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        effective_ttl = self.options.ttl if ttl is None else ttl
        if effective_ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl!r}")
        entry = self._make_entry(key, value, effective_ttl)
        try:
            await self._write(entry, effective_ttl)
        except (OSError, TypeError, ValueError, CacheWriteError) as exc:
            # caching is best effort, the caller already has its data
            self.logger.warning("%s", CacheWriteError(f"{self.kind} cache write failed for {key!r}: {exc}"))

    async def delete(self, key: str) -> None:
        try:
            await self._remove(key)
        except OSError as exc:
            self.logger.warning("%s cache delete failed for %r: %s", self.kind, key, exc)

    async def clear(self) -> None:
        try:
            await self._clear()
        except OSError as exc:
            self.logger.warning("%s cache clear failed: %s", self.kind, exc)

    async def get_stats(self) -> CacheStats:
        try:
            return await self._stats()
        except OSError as exc:
            self.logger.warning("%s cache stats failed: %s", self.kind, exc)
            return CacheStats()

    # ------------------------------------------------------------------ #
    # backend primitives                                                  #
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def _read(self, key: str) -> ReadOutcome: ...

    @abstractmethod
    async def _write(self, entry: CacheEntry, ttl: float) -> None: ...

    @abstractmethod
    async def _remove(self, key: str) -> None: ...

    @abstractmethod
    async def _clear(self) -> None: ...

    async def _stats(self) -> CacheStats:
        return CacheStats()

    # ------------------------------------------------------------------ #

    def _make_entry(self, key: str, value: Any, ttl: float) -> CacheEntry:
        now = _utcnow()
        is_path = isinstance(value, os.PathLike)
        if is_path and not self.supports_paths:
            value = os.fspath(value)
        return CacheEntry(
            key=key,
            fetched_at=now,
            expires_at=now + timedelta(seconds=ttl),
            payload=Path(value) if is_path and self.supports_paths else value,
            backend_kind=self.kind,
            payload_kind="filesystem" if is_path and self.supports_paths else "serialized",
        )
