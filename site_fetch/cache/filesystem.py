"""
Persistent cache backend that keeps one JSON file per entry.

Layout under ``<cache_dir>/<namespace>/``:

    entries/<sha256(key)>.json   serialized payloads
    repos/<sha256(key)>.json     entries whose payload is a filesystem path

All disk work runs in worker threads so the event loop never blocks.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional, Tuple

from site_fetch.cache.interface import (
    CacheBackend,
    CacheEntry,
    CacheOptions,
    CacheStats,
    ReadOutcome,
    ReadStatus,
)
from site_fetch.cache.keys import hash_key
from site_fetch.errors import CacheCorruptionError

DEFAULT_MAX_SIZE = 100 * 1024 * 1024
EVICT_TARGET = 0.8
ENTRIES_DIR = "entries"
REPOS_DIR = "repos"


def default_cache_dir() -> Path:
    return Path(tempfile.gettempdir()) / "site-fetch-cache"


class FileSystemCache(CacheBackend):
    """JSON-file cache with an LRU size budget.

    Reads touch the entry file's mtime, which serves as the last-access time
    for eviction (atime is unreliable on ``relatime``/``noatime`` mounts).
    """

    kind = "filesystem"
    supports_paths = True

    def __init__(self, options: Optional[CacheOptions] = None, logger: Optional[logging.Logger] = None) -> None:
        super().__init__(options, logger)
        self.root = Path(self.options.cache_dir or default_cache_dir()) / self.options.namespace
        self.max_size = self.options.max_size or DEFAULT_MAX_SIZE

    @property
    def entries_dir(self) -> Path:
        return self.root / ENTRIES_DIR

    @property
    def repos_dir(self) -> Path:
        return self.root / REPOS_DIR

    async def init(self) -> None:
        await asyncio.to_thread(self._ensure_dirs)

    def _ensure_dirs(self) -> None:
        self.entries_dir.mkdir(parents=True, exist_ok=True)
        self.repos_dir.mkdir(parents=True, exist_ok=True)

    def _paths_for(self, key: str) -> Tuple[Path, Path]:
        name = f"{hash_key(key)}.json"
        return self.entries_dir / name, self.repos_dir / name

    # ------------------------------------------------------------------ #

    async def _read(self, key: str) -> ReadOutcome:
        return await asyncio.to_thread(self._read_sync, key)

    def _read_sync(self, key: str) -> ReadOutcome:
        for path in self._paths_for(key):
            if not path.is_file():
                continue
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                raise CacheCorruptionError(f"{path.name}: {exc}") from exc
            entry = CacheEntry.from_dict(data)
            if entry.payload_kind == "filesystem" and not Path(entry.payload).exists():
                return ReadOutcome(ReadStatus.STALE, entry, detail=f"{entry.payload} no longer exists")
            os.utime(path)
            return ReadOutcome.hit(entry)
        return ReadOutcome.miss()

    async def _write(self, entry: CacheEntry, ttl: float) -> None:
        await asyncio.to_thread(self._write_sync, entry)

    def _write_sync(self, entry: CacheEntry) -> None:
        self._ensure_dirs()
        entries_path, repos_path = self._paths_for(entry.key)
        target, other = (repos_path, entries_path) if entry.payload_kind == "filesystem" else (entries_path, repos_path)
        # serialize first so an unserializable payload leaves no partial file behind
        body = json.dumps(entry.to_dict(), ensure_ascii=False)
        tmp = target.with_suffix(".tmp")
        tmp.write_text(body, encoding="utf-8")
        os.replace(tmp, target)
        other.unlink(missing_ok=True)
        self._enforce_budget()

    async def _remove(self, key: str) -> None:
        await asyncio.to_thread(self._remove_sync, key)

    def _remove_sync(self, key: str) -> None:
        for path in self._paths_for(key):
            path.unlink(missing_ok=True)

    async def _clear(self) -> None:
        await asyncio.to_thread(self._clear_sync)

    def _clear_sync(self) -> None:
        if self.root.exists():
            shutil.rmtree(self.root)
        self._ensure_dirs()

    async def _stats(self) -> CacheStats:
        return await asyncio.to_thread(self._stats_sync)

    def _stats_sync(self) -> CacheStats:
        stats = CacheStats(per_kind={"serialized": 0, "filesystem": 0})
        for kind, directory in (("serialized", self.entries_dir), ("filesystem", self.repos_dir)):
            if not directory.is_dir():
                continue
            for path in directory.glob("*.json"):
                stats.entry_count += 1
                stats.size_bytes += path.stat().st_size
                stats.per_kind[kind] += 1
        return stats

    # ------------------------------------------------------------------ #

    def _entry_files(self) -> List[Tuple[float, int, Path]]:
        files = []
        for directory in (self.entries_dir, self.repos_dir):
            if not directory.is_dir():
                continue
            for path in directory.glob("*.json"):
                try:
                    st = path.stat()
                except FileNotFoundError:
                    continue
                files.append((st.st_mtime, st.st_size, path))
        return files

    def _enforce_budget(self) -> None:
        files = self._entry_files()
        total = sum(size for _, size, _ in files)
        if total <= self.max_size:
            return
        target = self.max_size * EVICT_TARGET
        removed = 0
        for _, size, path in sorted(files, key=lambda f: f[0]):
            if total <= target:
                break
            path.unlink(missing_ok=True)
            total -= size
            removed += 1
        self.logger.info("filesystem cache over budget, evicted %d least recently used entries", removed)
