# File: tests/test_cache.py
from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Dict, Optional

import pytest
import pytest_asyncio

from site_fetch.cache import (
    CacheOptions,
    EdgeCache,
    FileSystemCache,
    MemoryCache,
    PlatformResponse,
    ReadStatus,
    create_cache,
    create_cache_of_type,
    filesystem_writable,
    generate_cache_key,
    hash_key,
)
from site_fetch.cache import factory as factory_module
from site_fetch.errors import UnsupportedOperationWarning


class FakePlatformCache:
    """In-memory stand-in for a platform edge cache (match/put/delete by URL)."""

    def __init__(self) -> None:
        self.store: Dict[str, PlatformResponse] = {}

    async def match(self, request_url: str) -> Optional[PlatformResponse]:
        return self.store.get(request_url)

    async def put(self, request_url: str, response: PlatformResponse) -> None:
        self.store[request_url] = response

    async def delete(self, request_url: str) -> bool:
        return self.store.pop(request_url, None) is not None


@pytest.fixture()
def platform() -> FakePlatformCache:
    return FakePlatformCache()


@pytest_asyncio.fixture(params=["memory", "filesystem", "edge"])
async def any_cache(request, tmp_path, platform):
    options = CacheOptions(namespace="tests", cache_dir=tmp_path)
    cache = create_cache_of_type(request.param, options, platform_cache=platform)
    await cache.init()
    return cache


# --------------------------------------------------------------------------- #
#                        behaviour shared by every backend                    #
# --------------------------------------------------------------------------- #


@pytest.mark.asyncio()
async def test_set_get_roundtrip(any_cache):
    payload = {"kind": "website", "pages": [{"url": "https://example.com/", "title": "Home"}]}
    await any_cache.set("k1", payload)

    entry = await any_cache.get("k1")
    assert entry is not None
    assert entry.key == "k1"
    assert entry.payload == payload
    assert entry.backend_kind == any_cache.kind
    assert entry.payload_kind == "serialized"
    assert entry.expires_at > entry.fetched_at
    assert await any_cache.has("k1")


@pytest.mark.asyncio()
async def test_missing_key_is_a_miss(any_cache):
    assert await any_cache.get("nope") is None
    assert not await any_cache.has("nope")
    assert (await any_cache.read("nope")).status is ReadStatus.MISS


@pytest.mark.asyncio()
async def test_entries_expire_after_ttl(any_cache):
    await any_cache.set("short", "value", ttl=0.05)
    assert await any_cache.has("short")
    await asyncio.sleep(0.1)
    assert await any_cache.get("short") is None
    assert not await any_cache.has("short")


@pytest.mark.asyncio()
async def test_default_ttl_comes_from_options():
    cache = create_cache_of_type("memory", CacheOptions(ttl=120))
    await cache.set("k", 1)
    entry = await cache.get("k")
    assert 119 <= (entry.expires_at - entry.fetched_at).total_seconds() <= 121


@pytest.mark.asyncio()
async def test_delete_is_idempotent(any_cache):
    await any_cache.set("k", [1, 2, 3])
    await any_cache.delete("k")
    await any_cache.delete("k")
    assert await any_cache.get("k") is None


@pytest.mark.asyncio()
async def test_last_write_wins(any_cache):
    await any_cache.set("k", "first")
    await any_cache.set("k", "second")
    assert (await any_cache.get("k")).payload == "second"


@pytest.mark.asyncio()
async def test_non_positive_ttl_is_rejected(any_cache):
    with pytest.raises(ValueError):
        await any_cache.set("k", "v", ttl=0)


@pytest.mark.asyncio()
async def test_read_fault_is_a_miss():
    class Failing(MemoryCache):
        async def _read(self, key):
            raise OSError("disk on fire")

    cache = Failing()
    await cache.set("k", "v")
    assert await cache.get("k") is None
    assert (await cache.read("k")).status is ReadStatus.ERROR


# --------------------------------------------------------------------------- #
#                                   memory                                    #
# --------------------------------------------------------------------------- #


@pytest.mark.asyncio()
async def test_memory_evicts_soonest_to_expire():
    cache = MemoryCache(CacheOptions(max_size=5 * 10 * 1024))
    assert cache.max_entries == 5
    for i, ttl in enumerate([50, 10, 40, 30, 20]):
        await cache.set(f"k{i}", i, ttl=ttl)
    await cache.set("new", "x", ttl=60)

    assert not await cache.has("k1")
    for key in ("k0", "k2", "k3", "k4", "new"):
        assert await cache.has(key)


@pytest.mark.asyncio()
async def test_memory_expired_entry_is_removed_lazily():
    cache = MemoryCache()
    await cache.set("k", "v", ttl=0.05)
    await asyncio.sleep(0.1)
    assert (await cache.read("k")).status is ReadStatus.EXPIRED
    assert "k" not in cache._store


@pytest.mark.asyncio()
async def test_memory_stats_and_clear():
    cache = MemoryCache()
    await cache.set("a", {"x": 1})
    await cache.set("b", Path("/tmp/somewhere"))
    stats = await cache.get_stats()
    assert stats.entry_count == 2
    assert stats.size_bytes > 0
    # paths are stored as plain strings outside the filesystem backend
    assert stats.per_kind == {"serialized": 2}
    assert (await cache.get("b")).payload == str(Path("/tmp/somewhere"))

    await cache.clear()
    await cache.clear()
    assert (await cache.get_stats()).entry_count == 0


# --------------------------------------------------------------------------- #
#                                 filesystem                                  #
# --------------------------------------------------------------------------- #


@pytest_asyncio.fixture
async def fs_cache(tmp_path) -> FileSystemCache:
    cache = FileSystemCache(CacheOptions(namespace="tests", cache_dir=tmp_path / "store"))
    await cache.init()
    return cache


@pytest.mark.asyncio()
async def test_filesystem_layout(fs_cache):
    assert fs_cache.entries_dir.is_dir()
    assert fs_cache.repos_dir.is_dir()
    await fs_cache.set("site-key", {"a": 1})

    path = fs_cache.entries_dir / f"{hash_key('site-key')}.json"
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["payload"] == {"a": 1}
    assert data["metadata"]["key"] == "site-key"
    assert data["metadata"]["payload_kind"] == "serialized"
    assert set(data["metadata"]) >= {"fetched_at", "expires_at", "backend_kind"}


@pytest.mark.asyncio()
async def test_filesystem_entries_survive_new_instance(fs_cache):
    await fs_cache.set("persisted", [1, 2])
    again = FileSystemCache(fs_cache.options)
    assert (await again.get("persisted")).payload == [1, 2]


@pytest.mark.asyncio()
async def test_filesystem_path_entry(fs_cache, tmp_path):
    checkout = tmp_path / "checkout"
    checkout.mkdir()
    await fs_cache.set("repo-key", checkout)

    assert (fs_cache.repos_dir / f"{hash_key('repo-key')}.json").is_file()
    entry = await fs_cache.get("repo-key")
    assert entry.payload_kind == "filesystem"
    assert entry.payload == checkout
    assert isinstance(entry.payload, Path)


@pytest.mark.asyncio()
async def test_filesystem_path_entry_with_deleted_path_is_a_miss(fs_cache, tmp_path):
    checkout = tmp_path / "checkout"
    checkout.mkdir()
    await fs_cache.set("repo-key", checkout)
    checkout.rmdir()

    assert (await fs_cache.read("repo-key")).status is ReadStatus.STALE
    assert await fs_cache.get("repo-key") is None
    assert not (fs_cache.repos_dir / f"{hash_key('repo-key')}.json").exists()


NAIVE_TIMESTAMPS = json.dumps({
    "metadata": {"key": "k", "fetched_at": "2024-01-01T00:00:00", "expires_at": "2999-01-01T00:00:00"},
    "payload": "v",
})


@pytest.mark.asyncio()
@pytest.mark.parametrize(
    "garbage",
    ["{not json", json.dumps({"unexpected": True}), json.dumps([1, 2]), NAIVE_TIMESTAMPS],
)
async def test_filesystem_corrupt_entry_is_a_miss_and_removed(fs_cache, garbage):
    await fs_cache.set("k", "v")
    path = fs_cache.entries_dir / f"{hash_key('k')}.json"
    path.write_text(garbage, encoding="utf-8")

    assert await fs_cache.get("k") is None
    assert not path.exists()


@pytest.mark.asyncio()
async def test_filesystem_unserializable_payload_is_not_stored(fs_cache):
    await fs_cache.set("k", object())
    assert await fs_cache.get("k") is None
    assert list(fs_cache.entries_dir.iterdir()) == []


@pytest.mark.asyncio()
async def test_filesystem_evicts_least_recently_used(tmp_path):
    root = tmp_path / "lru"
    roomy = FileSystemCache(CacheOptions(namespace="tests", cache_dir=root))
    await roomy.init()
    for key in ("a", "b", "c"):
        await roomy.set(key, "x" * 500)
    files = {key: roomy.entries_dir / f"{hash_key(key)}.json" for key in ("a", "b", "c")}
    size = files["a"].stat().st_size
    # a is the oldest, then c, then b
    for key, stamp in (("a", 1_000_000), ("c", 2_000_000), ("b", 3_000_000)):
        os.utime(files[key], (stamp, stamp))

    tight = FileSystemCache(CacheOptions(namespace="tests", cache_dir=root, max_size=int(size * 3.5)))
    await tight.set("d", "x" * 500)

    assert not files["a"].exists()
    assert not files["c"].exists()
    assert files["b"].exists()
    assert await tight.has("d")


@pytest.mark.asyncio()
async def test_filesystem_stats_and_clear(fs_cache, tmp_path):
    checkout = tmp_path / "co"
    checkout.mkdir()
    await fs_cache.set("a", {"x": 1})
    await fs_cache.set("b", "text")
    await fs_cache.set("c", checkout)

    stats = await fs_cache.get_stats()
    assert stats.entry_count == 3
    assert stats.per_kind == {"serialized": 2, "filesystem": 1}
    assert stats.size_bytes > 0

    await fs_cache.clear()
    await fs_cache.clear()
    assert (await fs_cache.get_stats()).entry_count == 0
    assert fs_cache.entries_dir.is_dir()
    # the wrapped directory itself is never touched
    assert checkout.is_dir()


# --------------------------------------------------------------------------- #
#                                     edge                                    #
# --------------------------------------------------------------------------- #


@pytest.mark.asyncio()
async def test_edge_request_url_and_headers(platform):
    cache = EdgeCache(platform, CacheOptions(namespace="docs", base_url="https://cache.example.net/"))
    await cache.set("k", {"v": 1}, ttl=90)

    url = f"https://cache.example.net/cache/docs/{hash_key('k')}"
    assert cache.request_url("k") == url
    assert list(platform.store) == [url]
    response = platform.store[url]
    assert response.headers["Cache-Control"] == "public, max-age=90"
    assert response.headers["Content-Type"] == "application/json"
    assert json.loads(response.body)["payload"] == {"v": 1}


@pytest.mark.asyncio()
async def test_edge_age_beyond_ttl_is_expired(platform):
    cache = EdgeCache(platform, CacheOptions(ttl=60))
    await cache.set("k", "v")
    url = cache.request_url("k")
    platform.store[url].headers["Age"] = "61"

    assert (await cache.read("k")).status is ReadStatus.EXPIRED
    assert url not in platform.store


@pytest.mark.asyncio()
async def test_edge_age_is_measured_against_the_entry_ttl(platform):
    cache = EdgeCache(platform, CacheOptions(ttl=60))
    await cache.set("k", "v", ttl=3600)
    url = cache.request_url("k")
    platform.store[url].headers["Age"] = "120"

    entry = await cache.get("k")
    assert entry is not None
    assert entry.payload == "v"
    assert url in platform.store


@pytest.mark.asyncio()
async def test_edge_corrupt_body_is_a_miss(platform):
    cache = EdgeCache(platform)
    url = cache.request_url("k")
    platform.store[url] = PlatformResponse(body="<html>oops</html>")

    assert await cache.get("k") is None
    assert url not in platform.store


@pytest.mark.asyncio()
async def test_edge_clear_warns_and_keeps_entries(platform):
    cache = EdgeCache(platform)
    await cache.set("k", "v")
    with pytest.warns(UnsupportedOperationWarning):
        await cache.clear()
    assert await cache.has("k")


@pytest.mark.asyncio()
async def test_edge_stats_are_zero(platform):
    cache = EdgeCache(platform)
    await cache.set("k", "v")
    stats = await cache.get_stats()
    assert (stats.entry_count, stats.size_bytes) == (0, 0)


# --------------------------------------------------------------------------- #
#                                    factory                                  #
# --------------------------------------------------------------------------- #


@pytest.mark.asyncio()
async def test_factory_prefers_platform_cache(tmp_path, platform):
    cache = await create_cache(CacheOptions(cache_dir=tmp_path), platform_cache=platform)
    assert isinstance(cache, EdgeCache)


@pytest.mark.asyncio()
async def test_factory_uses_filesystem_when_writable(tmp_path):
    cache = await create_cache(CacheOptions(namespace="probe", cache_dir=tmp_path / "fs"))
    assert isinstance(cache, FileSystemCache)
    assert (tmp_path / "fs" / "probe" / "entries").is_dir()


@pytest.mark.asyncio()
async def test_factory_falls_back_to_memory(tmp_path, monkeypatch):
    monkeypatch.setattr(factory_module, "filesystem_writable", lambda directory=None: False)
    cache = await create_cache(CacheOptions(cache_dir=tmp_path))
    assert isinstance(cache, MemoryCache)


def test_filesystem_writable_probe(tmp_path):
    assert filesystem_writable(tmp_path / "new-dir")
    blocker = tmp_path / "file.txt"
    blocker.write_text("x", encoding="utf-8")
    assert not filesystem_writable(blocker / "sub")


def test_create_cache_of_type_rejects_unknown_kinds():
    with pytest.raises(ValueError):
        create_cache_of_type("redis")
    with pytest.raises(ValueError):
        create_cache_of_type("edge")


# --------------------------------------------------------------------------- #
#                                     keys                                    #
# --------------------------------------------------------------------------- #


def test_cache_key_is_order_insensitive_for_lists():
    a = generate_cache_key("https://example.com/docs", {"extensions": [".py", ".md"], "exclude_dirs": ["b", "a"]})
    b = generate_cache_key("https://example.com/docs", {"extensions": [".md", ".py"], "exclude_dirs": ["a", "b"]})
    assert a == b
    assert a == "https://example.com/docs|ext:.md,.py|exclude:a,b"


def test_cache_key_ignores_unrelated_options():
    base = generate_cache_key("https://example.com", {"format": "json"})
    assert generate_cache_key("https://example.com", {"format": "json", "verbose": True}) == base
    assert generate_cache_key("https://example.com", {"format": "markdown"}) != base


def test_cache_key_normalizes_source():
    assert generate_cache_key("Example.com/docs/") == generate_cache_key("https://example.com/docs")
    assert generate_cache_key("https://example.com/docs#intro") == generate_cache_key("https://example.com/docs")


def test_cache_key_includes_token_options():
    key = generate_cache_key("https://example.com", {"max_tokens": 5000, "token_encoder": "cl100k"})
    assert key == "https://example.com/|tokens:5000|encoder:cl100k"


def test_hash_key_is_stable_hex():
    digest = hash_key("anything")
    assert digest == hash_key("anything")
    assert len(digest) == 64
    assert all(c in "0123456789abcdef" for c in digest)
