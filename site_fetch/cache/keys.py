"""Cache key derivation."""
from __future__ import annotations

import hashlib
import re
from typing import Any, Iterable, List, Mapping, Optional

from site_fetch.crawler.link_extractor import normalize_url

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*://")


def hash_key(key: str) -> str:
    """Collision-resistant, filesystem- and URL-safe digest of a logical key."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def normalize_source(source: str) -> str:
    source = source.strip()
    if not _SCHEME_RE.match(source):
        source = f"https://{source}"
    return normalize_url(source)


def _sorted_csv(values: Optional[Iterable[str]]) -> str:
    items: List[str] = sorted({str(v) for v in values or () if str(v)})
    return ",".join(items)


def generate_cache_key(source: str, options: Optional[Mapping[str, Any]] = None) -> str:
    """
    Key of a fetched snapshot: the normalized source URL plus the options
    that change the produced output (format, token budget, encoder, extension
    and excluded-directory lists). List options are order-insensitive; any
    other option is ignored.
    """
    parts = [normalize_source(source)]
    opts = options or {}
    if opts.get("format"):
        parts.append(f"format:{opts['format']}")
    if opts.get("max_tokens"):
        parts.append(f"tokens:{opts['max_tokens']}")
    if opts.get("token_encoder"):
        parts.append(f"encoder:{opts['token_encoder']}")
    extensions = _sorted_csv(opts.get("extensions"))
    if extensions:
        parts.append(f"ext:{extensions}")
    excluded = _sorted_csv(opts.get("exclude_dirs"))
    if excluded:
        parts.append(f"exclude:{excluded}")
    return "|".join(parts)
