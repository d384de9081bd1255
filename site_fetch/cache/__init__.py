from site_fetch.cache.edge import EdgeCache, PlatformCache, PlatformResponse
from site_fetch.cache.factory import CACHE_KINDS, create_cache, create_cache_of_type, filesystem_writable
from site_fetch.cache.filesystem import FileSystemCache
from site_fetch.cache.interface import (
    DEFAULT_TTL,
    CacheBackend,
    CacheEntry,
    CacheOptions,
    CacheStats,
    ReadOutcome,
    ReadStatus,
)
from site_fetch.cache.keys import generate_cache_key, hash_key
from site_fetch.cache.memory import MemoryCache

__all__ = [
    "CACHE_KINDS",
    "DEFAULT_TTL",
    "CacheBackend",
    "CacheEntry",
    "CacheOptions",
    "CacheStats",
    "EdgeCache",
    "FileSystemCache",
    "MemoryCache",
    "PlatformCache",
    "PlatformResponse",
    "ReadOutcome",
    "ReadStatus",
    "create_cache",
    "create_cache_of_type",
    "filesystem_writable",
    "generate_cache_key",
    "hash_key",
]
