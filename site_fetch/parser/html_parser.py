"""HTML to text rendering for SiteFetch.

The crawler treats rendering as a collaborator: anything with the signature
``render(html, base_url) -> RenderedPage`` can be injected. The default below
is deliberately small:

* title — document ``<title>`` text, ``"Untitled"`` if absent.
* text  — visible text of the main content area (``<main>``, ``<article>``
  or ``<body>``), one block per line.

If a renderer raises, the crawler falls back to :func:`extract_text_fallback`,
a regex-only stripper that cannot fail on malformed markup.
"""
from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Callable

from bs4 import BeautifulSoup

__all__: Sequence[str] = ("RenderedPage", "Renderer", "render", "extract_title", "extract_text_fallback")

_NOISE_TAGS = ("script", "style", "noscript", "template", "nav", "footer", "header", "aside", "form", "iframe", "svg")
_BLANK_LINES_RE = re.compile(r"\n\s*\n+")
_TITLE_RE = re.compile(r"<title[^>]*>([^<]+)</title>", re.I)
_SCRIPT_RE = re.compile(r"<(script|style)[^>]*>[\s\S]*?</\1>", re.I)
_BODY_RE = re.compile(r"<body[^>]*>([\s\S]*)</body>", re.I)
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")

FALLBACK_LIMIT = 5000


@dataclass(frozen=True, slots=True)
class RenderedPage:
    """Title and readable text of an HTML page."""

    title: str
    text: str


Renderer = Callable[[str, str], RenderedPage]


def render(html: str, base_url: str) -> RenderedPage:
    """Default renderer built on BeautifulSoup."""
    soup = BeautifulSoup(html, "html.parser")

    title_tag = soup.find("title")
    title = title_tag.get_text(strip=True) if title_tag else ""

    for element in soup(list(_NOISE_TAGS)):
        element.decompose()

    root = soup.find("main") or soup.find("article") or soup.body or soup
    text = root.get_text("\n", strip=True)
    text = _BLANK_LINES_RE.sub("\n\n", text)

    return RenderedPage(title=title or "Untitled", text=text)


def extract_title(html: str) -> str:
    match = _TITLE_RE.search(html)
    return match.group(1).strip() if match else "Untitled"


def extract_text_fallback(html: str) -> str:
    """Strip scripts, styles and tags with regexes; truncated to ``FALLBACK_LIMIT`` chars."""
    text = _SCRIPT_RE.sub("", html)
    body = _BODY_RE.search(text)
    if body:
        text = body.group(1)
    text = _TAG_RE.sub(" ", text)
    text = _WS_RE.sub(" ", text).strip()
    if len(text) > FALLBACK_LIMIT:
        text = text[:FALLBACK_LIMIT] + "..."
    return text
