# File: site_fetch/engine.py
"""site_fetch.engine: orchestration of validation, fetching and caching of one source."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, NamedTuple, Optional, Tuple, Union

from aiohttp import ClientSession

from site_fetch.cache import CacheBackend, CacheOptions, PlatformCache, create_cache, create_cache_of_type
from site_fetch.cache.keys import generate_cache_key
from site_fetch.config import FetchConfig, load_config
from site_fetch.crawler.crawler import crawl
from site_fetch.crawler.models import CrawlReport
from site_fetch.errors import SiteFetchError, ValidationError
from site_fetch.logger import get_logger
from site_fetch.parser.html_parser import Renderer, render
from site_fetch.validator import ParsedSource, SourceKind, classify

__all__ = ["Engine", "RepositoryFile", "SourceSnapshot", "build_cache"]


class RepositoryFile(NamedTuple):
    path: str
    content: str


RepositoryFetcher = Callable[[ParsedSource], Awaitable[Iterable[Union[RepositoryFile, Tuple[str, str]]]]]


@dataclass(slots=True)
class SourceSnapshot:
    """What :meth:`Engine.fetch_source` produced for one source."""

    source: ParsedSource
    cache_key: str
    from_cache: bool = False
    report: Optional[CrawlReport] = None
    files: Optional[List[RepositoryFile]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "source": self.source.normalized_url,
            "kind": self.source.kind.value,
            "cache_key": self.cache_key,
            "from_cache": self.from_cache,
        }
        if self.report is not None:
            data["report"] = self.report.to_dict()
        if self.files is not None:
            data["files"] = [f._asdict() for f in self.files]
        return data


def cache_options(config: FetchConfig) -> CacheOptions:
    return CacheOptions(
        namespace=config.cache_namespace,
        ttl=config.cache_ttl,
        max_size=config.cache_max_size,
        cache_dir=config.cache_dir,
    )


async def build_cache(
    config: FetchConfig,
    *,
    platform_cache: Optional[PlatformCache] = None,
    logger: Optional[logging.Logger] = None,
) -> Optional[CacheBackend]:
    """Cache backend selected by ``config.cache_backend`` (``None`` when disabled)."""
    if config.cache_backend == "none":
        return None
    options = cache_options(config)
    if config.cache_backend == "auto":
        return await create_cache(options, platform_cache=platform_cache, logger=logger)
    cache = create_cache_of_type(config.cache_backend, options, platform_cache=platform_cache, logger=logger)
    await cache.init()
    return cache


class Engine:
    """Facade for the CLI and tests: validate, serve from cache or fetch, then cache."""

    @staticmethod
    def load_config(path: Optional[str]) -> FetchConfig:
        return load_config(path)

    def __init__(
        self,
        config: Optional[FetchConfig] = None,
        cache: Optional[CacheBackend] = None,
        *,
        fetch_repository: Optional[RepositoryFetcher] = None,
        renderer: Renderer = render,
        session: Optional[ClientSession] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config or FetchConfig()
        self.cache = cache
        self.fetch_repository = fetch_repository
        self.renderer = renderer
        self.session = session
        self.logger = logger or get_logger("engine")

    async def fetch_source(self, url: str, *, refresh: bool = False) -> SourceSnapshot:
        """
        Fetch *url* as a repository file list or a website crawl report.

        Raises :class:`~site_fetch.errors.ValidationError` for rejected input,
        before any network or cache access. ``refresh`` bypasses cached data
        (the fresh result is still written back).
        """
        source = classify(url)
        if source.kind is SourceKind.REJECTED:
            self.logger.warning("Rejected %r: %s", url, source.reason)
            raise ValidationError(str(url), source.reason or "rejected")

        key = generate_cache_key(source.normalized_url, self.config.key_options())
        if self.cache is not None and not refresh:
            snapshot = await self._from_cache(source, key)
            if snapshot is not None:
                self.logger.info("Serving %s from %s cache", source.normalized_url, self.cache.kind)
                return snapshot

        if source.is_git_repository:
            snapshot = await self._fetch_repository(source, key)
            payload: Optional[Dict[str, Any]] = {
                "kind": source.kind.value,
                "files": [list(f) for f in snapshot.files or []],
            }
        else:
            snapshot = await self._crawl_website(source, key)
            report = snapshot.report
            payload = {"kind": source.kind.value, "report": report.to_dict()} if report and report.succeeded else None

        if self.cache is not None and payload is not None:
            await self.cache.set(key, payload, self.config.cache_ttl)
        return snapshot

    def run(self, url: str, *, refresh: bool = False, timeout: Optional[float] = None) -> SourceSnapshot:
        """Blocking wrapper around :meth:`fetch_source` with an optional overall timeout."""
        try:
            return asyncio.run(asyncio.wait_for(self.fetch_source(url, refresh=refresh), timeout=timeout))
        except asyncio.TimeoutError:
            self.logger.error("Fetching %s did not finish within %s seconds", url, timeout)
            raise

    async def _fetch_repository(self, source: ParsedSource, key: str) -> SourceSnapshot:
        if self.fetch_repository is None:
            raise SiteFetchError(f"{source.normalized_url} is a git repository and no repository fetcher is configured")
        self.logger.info("Fetching repository %s/%s (%s)", source.owner, source.repo, source.ref or "default branch")
        files = [RepositoryFile(*item) for item in await self.fetch_repository(source)]
        return SourceSnapshot(source=source, cache_key=key, files=files)

    async def _crawl_website(self, source: ParsedSource, key: str) -> SourceSnapshot:
        report = await crawl(
            source.normalized_url,
            self.config.crawl_budget(),
            get_logger("crawler"),
            renderer=self.renderer,
            session=self.session,
        )
        if not report.succeeded:
            self.logger.warning("No page of %s could be fetched; result not cached", source.normalized_url)
        return SourceSnapshot(source=source, cache_key=key, report=report)

    async def _from_cache(self, source: ParsedSource, key: str) -> Optional[SourceSnapshot]:
        entry = await self.cache.get(key)  # type: ignore[union-attr]
        if entry is None:
            return None
        payload = entry.payload
        try:
            if payload["kind"] != source.kind.value:
                raise ValueError(f"cached kind {payload['kind']!r}")
            if source.is_git_repository:
                files = [RepositoryFile(*item) for item in payload["files"]]
                return SourceSnapshot(source=source, cache_key=key, from_cache=True, files=files)
            report = CrawlReport.from_dict(payload["report"])
            return SourceSnapshot(source=source, cache_key=key, from_cache=True, report=report)
        except (KeyError, TypeError, ValueError) as exc:
            self.logger.warning("Discarding unusable cache entry for %s: %s", source.normalized_url, exc)
            await self.cache.delete(key)  # type: ignore[union-attr]
            return None
