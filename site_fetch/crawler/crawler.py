# site_fetch/crawler/crawler.py
"""
Breadth-first website crawler.

:func:`crawl` loads robots.txt, seeds the frontier from sitemaps and then
walks same-host links level by level until the :class:`CrawlBudget` runs out.
Failed pages are recorded in the :class:`CrawlReport`, never raised.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter, deque
from typing import Any, Deque, List, Mapping, Optional, Set, Tuple, Union
from urllib.parse import urljoin, urlsplit

from aiohttp import ClientSession, ClientTimeout

from site_fetch.crawler.fetcher import Fetcher
from site_fetch.crawler.link_extractor import extract_links, hostname_of, normalize_url, skip_reason
from site_fetch.crawler.models import CrawlBudget, CrawlReport, PageResult
from site_fetch.crawler.robots import RobotsPolicy
from site_fetch.errors import RobotsFetchError
from site_fetch.logger import get_logger
from site_fetch.parser.html_parser import RenderedPage, Renderer, extract_text_fallback, extract_title, render
from site_fetch.parser.sitemap_parser import parse_sitemap

__all__ = ("WebCrawler", "crawl")

DEFAULT_SITEMAPS = ("/sitemap.xml", "/sitemap_index.xml")
SITEMAP_DEPTH = 1

BudgetLike = Union[CrawlBudget, Mapping[str, Any], None]


def _coerce_budget(budget: BudgetLike) -> CrawlBudget:
    if budget is None:
        return CrawlBudget()
    if isinstance(budget, CrawlBudget):
        return budget
    if isinstance(budget, Mapping):
        # raises pydantic.ValidationError (a ValueError) for e.g. max_pages=0
        return CrawlBudget.model_validate(dict(budget))
    raise TypeError(f"budget must be a CrawlBudget or a mapping, got {type(budget).__name__}")


class WebCrawler:
    """Breadth-first crawler for one website, bounded by a :class:`CrawlBudget`.

    The frontier and visited set belong to a single :meth:`crawl` call. Pages
    are fetched in batches of ``budget.concurrency`` taken in frontier order;
    a batch's results and outbound links are recorded in that same order once
    the batch completes, so the report is in discovery order regardless of
    which response arrived first.
    """

    def __init__(
        self,
        root_url: str,
        budget: BudgetLike = None,
        logger: Optional[logging.Logger] = None,
        *,
        renderer: Renderer = render,
        session: Optional[ClientSession] = None,
    ) -> None:
        parts = urlsplit(root_url) if isinstance(root_url, str) else None
        if parts is None or parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValueError(f"root URL must be an absolute http(s) URL, got {root_url!r}")
        self.root_url = root_url
        self.root_host = hostname_of(root_url)
        self.budget = _coerce_budget(budget)
        self.logger = logger or get_logger("crawler")
        self.renderer = renderer
        self._session = session

        self.frontier: Deque[Tuple[str, int]] = deque()
        self.visited: Set[str] = set()
        self.results: List[PageResult] = []
        self.policy = RobotsPolicy.allow_all()
        self.skipped: Counter[str] = Counter()

    async def crawl(self) -> CrawlReport:
        self.logger.info("Starting crawl of %s (max depth %d, max pages %d)",
                         self.root_url, self.budget.max_depth, self.budget.max_pages)
        start = time.monotonic()
        session = self._session or ClientSession(timeout=ClientTimeout(total=self.budget.timeout_per_page))
        try:
            fetcher = Fetcher(session, self.budget, self.logger)
            if not self.budget.ignore_robots:
                self.policy = await self._load_robots(fetcher)
            self._enqueue(self.root_url, 0)
            if not self.budget.ignore_robots:
                await self._load_sitemaps(fetcher)
            await self._run(fetcher)
        finally:
            if self._session is None:
                await session.close()

        duration = time.monotonic() - start
        failed = sum(1 for p in self.results if not p.ok)
        self.logger.info("Crawled %d pages (%d failed) in %.2f s, %d URLs left in queue",
                         len(self.results), failed, duration, len(self.frontier))
        if self.skipped:
            self.logger.debug("Skipped URLs by reason: %s", dict(self.skipped))
        return CrawlReport(root_url=self.root_url, pages=list(self.results))

    async def _run(self, fetcher: Fetcher) -> None:
        max_pages = self.budget.max_pages
        while self.frontier and len(self.results) < max_pages:
            room = min(self.budget.concurrency, max_pages - len(self.results))
            batch: List[Tuple[str, int]] = []
            while self.frontier and len(batch) < room:
                url, depth = self.frontier.popleft()
                if depth > self.budget.max_depth:
                    self.skipped["depth-exceeded"] += 1
                    continue
                batch.append((url, depth))
            if not batch:
                break

            pages = await asyncio.gather(*(self._visit(fetcher, url, depth) for url, depth in batch))
            for page in pages:
                self.results.append(page)
                self.logger.debug("[%d/%d] %s (depth=%d) -> %s", len(self.results), max_pages,
                                  page.url, page.depth, page.error or page.title)
                if page.ok and page.depth < self.budget.max_depth:
                    for link in page.extracted_links:
                        self._enqueue(link, page.depth + 1)

            if self.budget.delay and self.frontier:
                await asyncio.sleep(self.budget.delay)

    async def _visit(self, fetcher: Fetcher, url: str, depth: int) -> PageResult:
        outcome = await fetcher.fetch(url, html_only=True)
        if not outcome.ok:
            return PageResult(
                url=url,
                depth=depth,
                status_code=outcome.status_code,
                content_type=outcome.content_type,
                error=outcome.error,
            )
        rendered = self._render(outcome.body, url)
        return PageResult(
            url=url,
            depth=depth,
            status_code=outcome.status_code,
            content_type=outcome.content_type,
            raw_body=outcome.body,
            extracted_links=tuple(extract_links(outcome.body, url)),
            title=rendered.title,
            text=rendered.text,
        )

    def _render(self, html: str, url: str) -> RenderedPage:
        try:
            return self.renderer(html, url)
        except Exception as exc:  # renderer is third-party code, degrade to raw text
            self.logger.warning("Rendering failed for %s (%s), using text fallback", url, exc)
            return RenderedPage(title=extract_title(html), text=extract_text_fallback(html))

    def _enqueue(self, url: str, depth: int) -> bool:
        """Discovered -> queued, or Discovered -> skipped. Returns True when queued."""
        key = normalize_url(url)
        if key in self.visited:
            return False
        if depth > self.budget.max_depth:
            self.skipped["depth-exceeded"] += 1
            return False
        reason = skip_reason(url, self.root_host)
        if reason is None and not self.policy.is_allowed(urlsplit(url).path):
            reason = "robots-disallowed"
        if reason is not None:
            self.skipped[reason] += 1
            self.logger.debug("Skipping %s (%s)", url, reason)
            return False
        self.visited.add(key)
        self.frontier.append((url, depth))
        return True

    async def _load_robots(self, fetcher: Fetcher) -> RobotsPolicy:
        robots_url = urljoin(self.root_url, "/robots.txt")
        outcome = await fetcher.fetch(robots_url, html_only=False, quiet=True)
        if not outcome.ok:
            self.logger.debug("%s", RobotsFetchError(f"{robots_url}: {outcome.error}; allowing all"))
            return RobotsPolicy.allow_all()
        policy = RobotsPolicy.parse(outcome.body)
        self.logger.info("robots.txt: %d disallow, %d allow rules, %d sitemaps",
                         len(policy.disallowed_prefixes), len(policy.allowed_prefixes), len(policy.sitemaps))
        return policy

    async def _load_sitemaps(self, fetcher: Fetcher) -> None:
        """Seed the frontier from sitemaps; every failure here is ignored."""
        pending: Deque[Tuple[str, int]] = deque()
        seen: Set[str] = set()
        for candidate in [*self.policy.sitemaps, *DEFAULT_SITEMAPS]:
            pending.append((urljoin(self.root_url, candidate), 0))

        fetched = added = 0
        while pending and fetched < self.budget.max_sitemaps:
            sitemap_url, nesting = pending.popleft()
            if sitemap_url in seen or hostname_of(sitemap_url) != self.root_host:
                continue
            seen.add(sitemap_url)
            fetched += 1
            outcome = await fetcher.fetch(sitemap_url, html_only=False, quiet=True)
            if not outcome.ok:
                continue
            doc = parse_sitemap(outcome.body)
            for url in doc.urls:
                if self._enqueue(url, SITEMAP_DEPTH):
                    added += 1
            if nesting == 0:
                pending.extend((child, 1) for child in doc.sitemaps)
        if added:
            self.logger.info("Added %d URLs from sitemaps to the crawl queue", added)


async def crawl(
    root_url: str,
    budget: BudgetLike = None,
    logger: Optional[logging.Logger] = None,
    *,
    renderer: Renderer = render,
    session: Optional[ClientSession] = None,
) -> CrawlReport:
    """Crawl *root_url* breadth-first within *budget* and return the ordered report.

    Page-level faults end up in ``PageResult.error``; only malformed arguments raise.
    """
    return await WebCrawler(root_url, budget, logger, renderer=renderer, session=session).crawl()
