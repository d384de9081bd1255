# site_fetch/__init__.py
"""
SiteFetch package initializer.
Defines the package version and exposes the public API and the CLI.
"""
__version__ = "0.1.0"

from site_fetch.cache import create_cache, create_cache_of_type, generate_cache_key
from site_fetch.crawler import CrawlBudget, CrawlReport, PageResult, crawl
from site_fetch.engine import Engine
from site_fetch.validator import ParsedSource, SourceKind, ValidationVerdict, classify, parse, validate

# Expose CLI entry point
from .cli import cli  # noqa: E402

__all__ = [
    "__version__",
    "CrawlBudget",
    "CrawlReport",
    "Engine",
    "PageResult",
    "ParsedSource",
    "SourceKind",
    "ValidationVerdict",
    "classify",
    "cli",
    "crawl",
    "create_cache",
    "create_cache_of_type",
    "generate_cache_key",
    "parse",
    "validate",
]
