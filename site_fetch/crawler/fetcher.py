# site_fetch/crawler/fetcher.py
"""
Fetcher module: one HTTP GET per call, bounded by a timeout, never retried.

Every fault (timeout, connection error, non-2xx status, wrong content type,
refused redirect) comes back as a :class:`FetchOutcome` with ``error`` set.
Redirects are followed by hand: each hop must stay on the original host and
may not lead to a blocked address, so a refused target is never requested.
"""
from __future__ import annotations

import asyncio
import logging
from typing import FrozenSet, Optional
from urllib.parse import urljoin, urlsplit

from aiohttp import ClientError, ClientSession, ClientTimeout

from site_fetch.crawler.models import NOT_HTML_ERROR, CrawlBudget, FetchOutcome
from site_fetch.crawler.link_extractor import hostname_of, skip_reason
from site_fetch.errors import ContentTypeError, NetworkError
from site_fetch.logger import get_logger
from site_fetch.validator import validate

HTML_ACCEPT = "text/html,application/xhtml+xml;q=0.9,*/*;q=0.1"
MAX_BODY_BYTES = 5 * 1024 * 1024
MAX_REDIRECTS = 5
READ_CHUNK_BYTES = 64 * 1024
REDIRECT_STATUSES: FrozenSet[int] = frozenset({301, 302, 303, 307, 308})


class Fetcher:
    """Issues single requests on a shared session for one crawl run."""

    def __init__(
        self,
        session: ClientSession,
        budget: CrawlBudget,
        logger: Optional[logging.Logger] = None,
        max_body_bytes: int = MAX_BODY_BYTES,
    ) -> None:
        self.session = session
        self.budget = budget
        self.logger = logger or get_logger("crawler")
        self.max_body_bytes = max_body_bytes
        self._timeout = ClientTimeout(total=budget.timeout_per_page)

    async def fetch(self, url: str, *, html_only: bool = True, quiet: bool = False) -> FetchOutcome:
        """
        GET *url*. With ``html_only`` a non-HTML 2xx response is reported as
        ``"Not HTML content"`` and its body is not read. ``quiet`` logs
        failures at DEBUG instead of WARNING (robots.txt, sitemaps).
        """
        try:
            # the budget covers the whole redirect chain, not each hop
            outcome = await asyncio.wait_for(self._get(url, html_only), self.budget.timeout_per_page)
        except asyncio.TimeoutError:
            outcome = self._failed(url, NetworkError(f"Timeout after {self.budget.timeout_per_page:g}s"))
        except ClientError as exc:
            outcome = self._failed(url, NetworkError(f"{type(exc).__name__}: {exc}"))
        except ValueError as exc:
            # yarl rejects some hrefs that urljoin accepted
            outcome = self._failed(url, NetworkError(f"Invalid URL: {exc}"))

        if outcome.error and outcome.error != NOT_HTML_ERROR:
            self.logger.log(logging.DEBUG if quiet else logging.WARNING, "Failed %s: %s", url, outcome.error)
        return outcome

    async def _get(self, url: str, html_only: bool) -> FetchOutcome:
        origin_host = hostname_of(url)
        origin_public = validate(url).valid
        current = url
        for _ in range(MAX_REDIRECTS + 1):
            async with self.session.get(
                current,
                timeout=self._timeout,
                allow_redirects=False,
                headers={"User-Agent": self.budget.user_agent, "Accept": HTML_ACCEPT},
            ) as resp:
                status = resp.status
                ctype = resp.headers.get("Content-Type", "").lower()

                if status in REDIRECT_STATUSES:
                    location = resp.headers.get("Location")
                    if not location:
                        return self._failed(url, NetworkError(f"HTTP {status} without Location"), status, ctype)
                    target = urljoin(current, location)
                    refusal = self._refuse_redirect(target, origin_host, origin_public, html_only)
                    if refusal is not None:
                        return self._failed(url, NetworkError(refusal), status, ctype)
                    self.logger.debug("%s redirected to %s", current, target)
                    current = target
                    continue

                if not 200 <= status < 300:
                    return self._failed(url, NetworkError(f"HTTP {status}: {resp.reason or ''}".rstrip(": ")), status, ctype)

                if html_only and not FetchOutcome(url, content_type=ctype).is_html:
                    self.logger.debug("%s is %s, not HTML", url, ctype or "untyped")
                    return self._failed(url, ContentTypeError(NOT_HTML_ERROR), status, ctype)

                if resp.content_length is not None and resp.content_length > self.max_body_bytes:
                    return self._failed(url, NetworkError(f"Response too large ({resp.content_length} bytes)"), status, ctype)

                # chunked responses carry no Content-Length, so cap the read itself
                chunks, size = [], 0
                async for chunk in resp.content.iter_chunked(READ_CHUNK_BYTES):
                    size += len(chunk)
                    if size > self.max_body_bytes:
                        return self._failed(url, NetworkError(f"Response too large (over {self.max_body_bytes} bytes)"), status, ctype)
                    chunks.append(chunk)
                return FetchOutcome(url=url, status_code=status, content_type=ctype, body=_decode(b"".join(chunks), resp.charset))

        return self._failed(url, NetworkError(f"Too many redirects (more than {MAX_REDIRECTS})"))

    @staticmethod
    def _refuse_redirect(target: str, origin_host: str, origin_public: bool, html_only: bool) -> Optional[str]:
        """Why the redirect to *target* must not be followed, or ``None``."""
        scheme = urlsplit(target).scheme
        if scheme not in ("http", "https"):
            return f"Redirected to unsupported scheme {scheme or '(none)'}"
        host = hostname_of(target)
        if host != origin_host:
            return f"Redirected off-host to {host}"
        verdict = validate(target)
        if origin_public and not verdict.valid:
            return f"Redirect target rejected: {verdict.reason}"
        if html_only:
            reason = skip_reason(target, origin_host)
            if reason is not None:
                return f"Redirect target skipped ({reason})"
        return None

    @staticmethod
    def _failed(url: str, exc: Exception, status: Optional[int] = None, ctype: str = "") -> FetchOutcome:
        return FetchOutcome(url=url, status_code=status, content_type=ctype, error=str(exc))


def _decode(raw: bytes, charset: Optional[str]) -> str:
    try:
        return raw.decode(charset or "utf-8", errors="replace")
    except LookupError:
        return raw.decode("utf-8", errors="replace")
