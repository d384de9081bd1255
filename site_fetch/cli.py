# === FILE: site_fetch/cli.py ===
#!/usr/bin/env python3
"""
Command-line entry point of SiteFetch.

Commands:
  fetch URL     Fetch a website (crawl) or git repository, served from cache when fresh
  validate URL  Check a URL against the SSRF rules and show its classification
  cache stats   Show cache statistics
  cache clear   Remove every cache entry of the configured namespace
  config        Show the effective configuration

Common options:
  --config PATH       YAML/JSON config file (defaults if omitted)
  --log-level LEVEL   Logging level (DEBUG, INFO, ...)
  --log-file PATH     Also log to this file (rotating)
  --log-format FORMAT logging.Formatter format string

fetch options:
  --max-depth N / --max-pages N / --ignore-robots   override crawl settings
  --no-cache / --refresh                            skip or bypass the cache
  --json PATH                                       save the result to a file
  --pretty                                          indent JSON output
  --fetch-timeout SEC                               overall time limit

Example:
  site-fetch --log-level DEBUG fetch https://docs.example.com --max-pages 20 --pretty
"""
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click

from site_fetch import __version__
from site_fetch.config import FetchConfig, load_config
from site_fetch.engine import Engine, SourceSnapshot, build_cache
from site_fetch.errors import SiteFetchError, ValidationError
from site_fetch.logger import init_logging
from site_fetch.report.json_report import render_json
from site_fetch.validator import SourceKind, classify

CONTEXT_SETTINGS = dict(help_option_names=["--help", "-h"])


def print_error(message: str):
    click.secho(message, fg="red", err=True)
    sys.exit(1)


async def fetch_snapshot(cfg: FetchConfig, url: str, *, refresh: bool = False) -> SourceSnapshot:
    """Build the configured cache and run one Engine fetch."""
    cache = await build_cache(cfg)
    return await Engine(cfg, cache).fetch_source(url, refresh=refresh)


async def cache_stats(cfg: FetchConfig) -> Dict[str, Any]:
    cache = await build_cache(cfg)
    if cache is None:
        raise SiteFetchError("cache is disabled (cache_backend: none)")
    stats = await cache.get_stats()
    return {
        "backend": cache.kind,
        "entry_count": stats.entry_count,
        "size_bytes": stats.size_bytes,
        "size_mb": round(stats.size_mb, 3),
        "per_kind": stats.per_kind,
    }


async def cache_clear(cfg: FetchConfig) -> str:
    cache = await build_cache(cfg)
    if cache is None:
        raise SiteFetchError("cache is disabled (cache_backend: none)")
    await cache.clear()
    return cache.kind


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, "--version", "-v", message="SiteFetch, version %(version)s")
@click.option(
    "--config", "-c", "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to a YAML or JSON configuration file.",
)
@click.option(
    "--log-level", "log_level",
    default="WARNING", show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    help="Logging level.",
)
@click.option(
    "--log-file", "log_file",
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help="Log file (stderr only if omitted).",
)
@click.option(
    "--log-format", "log_format",
    default="%(asctime)s %(levelname)s %(name)s %(message)s",
    show_default=True,
    help="Log format string.",
)
@click.pass_context
def cli(ctx, config_path, log_level, log_file, log_format):
    """SiteFetch command group."""
    init_logging(level=log_level, log_file=str(log_file) if log_file else None, log_format=log_format)
    try:
        cfg = load_config(config_path)
    except Exception as e:
        print_error(f"Failed to load configuration: {e}")
    ctx.ensure_object(dict)
    ctx.obj["config"] = cfg


@cli.command("fetch", context_settings=CONTEXT_SETTINGS)
@click.argument("url")
@click.option("--max-depth", type=click.IntRange(min=0), default=None, help="Override max_depth.")
@click.option("--max-pages", type=click.IntRange(min=1), default=None, help="Override max_pages.")
@click.option("--ignore-robots", is_flag=True, default=False, help="Do not read robots.txt or sitemaps.")
@click.option("--no-cache", is_flag=True, default=False, help="Neither read nor write the cache.")
@click.option("--refresh", is_flag=True, default=False, help="Ignore cached data, then update the cache.")
@click.option(
    "--json", "-j", "json_output",
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help="Save the JSON result to a file.",
)
@click.option("--pretty", is_flag=True, help="Indent JSON output (2 spaces).")
@click.option("--fetch-timeout", "fetch_timeout", type=float, default=None, help="Overall time limit (seconds).")
@click.pass_context
def fetch(ctx, url, max_depth, max_pages, ignore_robots, no_cache, refresh, json_output, pretty, fetch_timeout):
    """Fetch URL and print the result as JSON."""
    cfg: FetchConfig = ctx.obj["config"]
    overrides: Dict[str, Any] = {}
    if max_depth is not None:
        overrides["max_depth"] = max_depth
    if max_pages is not None:
        overrides["max_pages"] = max_pages
    if ignore_robots:
        overrides["ignore_robots"] = True
    if no_cache:
        overrides["cache_backend"] = "none"
    if overrides:
        cfg = cfg.model_copy(update=overrides)

    try:
        snapshot = asyncio.run(asyncio.wait_for(fetch_snapshot(cfg, url, refresh=refresh), timeout=fetch_timeout))
    except asyncio.TimeoutError:
        print_error(f"Fetching did not finish within {fetch_timeout} seconds")
    except ValidationError as e:
        print_error(f"Rejected: {e.reason}")
    except Exception as e:
        print_error(f"Fetch failed: {e}")

    data = snapshot.to_dict()
    if json_output:
        try:
            saved = render_json(data, json_output, pretty=pretty)
        except OSError as e:
            print_error(f"Failed to save JSON: {e}")
        click.echo(f"JSON report: {saved}")
        return
    click.echo(json.dumps(data, ensure_ascii=False, indent=2 if pretty else None))


@cli.command("validate", context_settings=CONTEXT_SETTINGS)
@click.argument("url")
def validate_url(url):
    """Validate URL and show how it is classified. Exit code 1 when rejected."""
    source = classify(url)
    data: Dict[str, Optional[Any]] = {
        "valid": source.kind is not SourceKind.REJECTED,
        "kind": source.kind.value,
        "reason": source.reason,
        "normalized_url": source.normalized_url,
        "domain": source.domain,
        "provider": source.provider,
        "owner": source.owner,
        "repo": source.repo,
        "ref": source.ref,
    }
    click.echo(json.dumps(data, ensure_ascii=False, indent=2))
    if source.kind is SourceKind.REJECTED:
        sys.exit(1)


@cli.group("cache", context_settings=CONTEXT_SETTINGS)
def cache_group():
    """Inspect or clear the cache."""


@cache_group.command("stats", context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_cache_stats(ctx):
    """Show entry count and size of the cache."""
    try:
        stats = asyncio.run(cache_stats(ctx.obj["config"]))
    except (SiteFetchError, ValueError) as e:
        print_error(str(e))
    click.echo(json.dumps(stats, indent=2))


@cache_group.command("clear", context_settings=CONTEXT_SETTINGS)
@click.pass_context
def clear_cache(ctx):
    """Remove all cache entries of the configured namespace."""
    try:
        kind = asyncio.run(cache_clear(ctx.obj["config"]))
    except (SiteFetchError, ValueError) as e:
        print_error(str(e))
    click.echo(f"Cleared {kind} cache")


@cli.command("config", context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_config(ctx):
    """Show the effective configuration as JSON."""
    cfg = ctx.obj["config"]
    click.echo(cfg.model_dump_json(indent=2))


if __name__ == "__main__":
    cli()
