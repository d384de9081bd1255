"""Backend selection."""
from __future__ import annotations

import logging
import tempfile
import uuid
from pathlib import Path
from typing import Optional

from site_fetch.cache.edge import EdgeCache, PlatformCache
from site_fetch.cache.filesystem import FileSystemCache, default_cache_dir
from site_fetch.cache.interface import CacheBackend, CacheOptions
from site_fetch.cache.memory import MemoryCache
from site_fetch.logger import get_logger

CACHE_KINDS = ("memory", "filesystem", "edge")


def filesystem_writable(directory: Optional[Path] = None) -> bool:
    """True when a probe file can be created (and removed) under *directory*."""
    target = Path(directory or default_cache_dir())
    try:
        target.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=target, prefix=f".probe-{uuid.uuid4().hex}"):
            pass
    except OSError:
        return False
    return True


def create_cache_of_type(
    kind: str,
    options: Optional[CacheOptions] = None,
    *,
    platform_cache: Optional[PlatformCache] = None,
    logger: Optional[logging.Logger] = None,
) -> CacheBackend:
    """Build a backend by name. Call ``await cache.init()`` before use."""
    if kind == "memory":
        return MemoryCache(options, logger)
    if kind == "filesystem":
        return FileSystemCache(options, logger)
    if kind == "edge":
        if platform_cache is None:
            raise ValueError("edge cache requires a platform cache object")
        return EdgeCache(platform_cache, options, logger)
    raise ValueError(f"Unknown cache type: {kind!r} (expected one of {', '.join(CACHE_KINDS)})")


async def create_cache(
    options: Optional[CacheOptions] = None,
    *,
    platform_cache: Optional[PlatformCache] = None,
    logger: Optional[logging.Logger] = None,
) -> CacheBackend:
    """
    Pick the best backend for the running environment and initialize it:
    a platform edge cache if one is provided, else the filesystem if it is
    writable, else memory.
    """
    options = options or CacheOptions()
    log = logger or get_logger("cache")
    if platform_cache is not None:
        kind = "edge"
    elif filesystem_writable(options.cache_dir):
        kind = "filesystem"
    else:
        kind = "memory"
    log.debug("Selected %s cache backend (namespace %s)", kind, options.namespace)
    cache = create_cache_of_type(kind, options, platform_cache=platform_cache, logger=logger)
    await cache.init()
    return cache
