"""
Link extraction, URL normalization and crawl filters for SiteFetch.
"""
from __future__ import annotations

import re
from typing import List, Optional
from urllib.parse import parse_qsl, urldefrag, urlencode, urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup
from bs4.element import Tag

TRACKING_PARAMS = frozenset(
    {"utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term", "fbclid", "gclid"}
)

NON_CONTENT_EXTENSIONS = (
    ".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp", ".ico", ".bmp",
    ".pdf", ".zip", ".tar", ".gz", ".tgz", ".bz2", ".7z", ".rar",
    ".exe", ".dmg", ".iso", ".msi", ".deb", ".rpm",
    ".mp3", ".mp4", ".wav", ".avi", ".mov", ".webm",
    ".css", ".js", ".woff", ".woff2", ".ttf",
)

_AUTH_API_RE = re.compile(r"/(?:login|signin|signup|register|logout|auth)(?:/|$|[?#._-])|/(?:api|graphql)/", re.I)


def normalize_url(url: str) -> str:
    """
    Visited-set key: lower-case scheme and host, fragment stripped,
    trailing slash removed (except for the root path), tracking params dropped.
    """
    url, _ = urldefrag(url)
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    netloc = parts.netloc.lower()
    path = parts.path or "/"
    if path != "/" and path.endswith("/"):
        path = path.rstrip("/") or "/"
    query = urlencode(
        [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k.lower() not in TRACKING_PARAMS],
        doseq=True,
    )
    return urlunsplit((scheme, netloc, path, query, ""))


def hostname_of(url: str) -> str:
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def is_same_domain(url: str, root_host: str) -> bool:
    """Identical host to the crawl root; subdomains do not count."""
    return bool(root_host) and hostname_of(url) == root_host.lower()


def skip_reason(url: str, root_host: str) -> Optional[str]:
    """Return why *url* must not be fetched, or ``None`` when it may be."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return "malformed"
    if parts.scheme not in ("http", "https"):
        return "non-http"
    if not is_same_domain(url, root_host):
        return "off-domain"
    if parts.path.lower().endswith(NON_CONTENT_EXTENSIONS):
        return "non-content"
    if _AUTH_API_RE.search(parts.path):
        return "auth-or-api"
    return None


def extract_links(html: str, base_url: str) -> List[str]:
    """
    Return every anchor target of *html* resolved against *base_url*.

    Only http(s) targets are kept (mailto:, javascript: etc. are dropped);
    order of first appearance is preserved, duplicates removed.
    """
    soup = BeautifulSoup(html, "html.parser")
    base_tag = soup.find("base", href=True)
    if isinstance(base_tag, Tag) and isinstance(base_tag.get("href"), str):
        base_url = urljoin(base_url, base_tag["href"].strip())

    links: List[str] = []
    for tag in soup.find_all("a", href=True):
        if not isinstance(tag, Tag):
            continue
        href_val = tag.get("href")
        if not isinstance(href_val, str):
            continue
        raw = href_val.strip()
        if not raw or raw.startswith(("mailto:", "javascript:", "tel:", "data:")):
            continue
        try:
            absolute, _ = urldefrag(urljoin(base_url, raw))
            scheme = urlsplit(absolute).scheme
        except ValueError:
            continue
        if scheme in ("http", "https"):
            links.append(absolute)
    return list(dict.fromkeys(links))
