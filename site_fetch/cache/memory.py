"""In-process cache backend; contents do not survive the process."""
from __future__ import annotations

import json
import logging
from collections import Counter
from typing import Dict, Optional

from site_fetch.cache.interface import CacheBackend, CacheEntry, CacheOptions, CacheStats, ReadOutcome

DEFAULT_MAX_SIZE = 50 * 1024 * 1024
ESTIMATED_ENTRY_SIZE = 10 * 1024
EVICT_FRACTION = 0.2


class MemoryCache(CacheBackend):
    """Dict-backed cache bounded by an entry count derived from ``max_size``.

    When full, the entries closest to expiry (a fifth of the store) are
    evicted before the new one is inserted.
    """

    kind = "memory"
    supports_paths = False

    def __init__(self, options: Optional[CacheOptions] = None, logger: Optional[logging.Logger] = None) -> None:
        super().__init__(options, logger)
        max_size = self.options.max_size or DEFAULT_MAX_SIZE
        self.max_entries = max(1, max_size // ESTIMATED_ENTRY_SIZE)
        self._store: Dict[str, CacheEntry] = {}

    async def _read(self, key: str) -> ReadOutcome:
        entry = self._store.get(key)
        return ReadOutcome.hit(entry) if entry is not None else ReadOutcome.miss()

    async def _write(self, entry: CacheEntry, ttl: float) -> None:
        if entry.key not in self._store and len(self._store) >= self.max_entries:
            self._evict()
        self._store[entry.key] = entry

    async def _remove(self, key: str) -> None:
        self._store.pop(key, None)

    async def _clear(self) -> None:
        self._store.clear()

    async def _stats(self) -> CacheStats:
        size = 0
        for entry in self._store.values():
            size += len(json.dumps(entry.payload, default=str))
        kinds = Counter(entry.payload_kind for entry in self._store.values())
        return CacheStats(entry_count=len(self._store), size_bytes=size, per_kind=dict(kinds))

    def _evict(self) -> None:
        expired = [k for k, e in self._store.items() if e.is_expired()]
        for key in expired:
            del self._store[key]
        if len(self._store) < self.max_entries:
            return
        victims = sorted(self._store.values(), key=lambda e: e.expires_at)
        count = max(1, int(len(victims) * EVICT_FRACTION))
        for entry in victims[:count]:
            del self._store[entry.key]
        self.logger.debug("memory cache evicted %d entries", len(expired) + count)
