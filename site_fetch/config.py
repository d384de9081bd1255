"""
Loading and validation of the SiteFetch configuration.
The schema is described with Pydantic; files may be YAML or JSON.
"""
from __future__ import annotations

import errno
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from site_fetch.crawler.models import CrawlBudget

CacheBackendName = Literal["auto", "memory", "filesystem", "edge", "none"]


class FetchConfig(BaseModel):
    """Settings for one SiteFetch run: crawl defaults, cache and output shape."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    # crawl
    max_depth: int = Field(2, ge=0, description="Maximum link depth from the root page.")
    max_pages: int = Field(50, ge=1, description="Hard limit on fetched pages.")
    timeout_per_page: float = Field(10.0, gt=0, description="Per-request timeout (seconds).")
    user_agent: str = Field("SiteFetch/1.0", min_length=1, description="User-Agent header.")
    concurrency: int = Field(3, ge=1, le=16, description="Politeness fan-out per batch.")
    delay: float = Field(0.0, ge=0, description="Pause between fetch batches (seconds).")
    ignore_robots: bool = Field(False, description="Skip robots.txt and sitemaps.")

    # cache
    cache_backend: CacheBackendName = Field("auto", description="Cache backend, 'auto' probes the runtime.")
    cache_dir: Optional[Path] = Field(None, description="Root directory of the filesystem cache.")
    cache_namespace: str = Field("site_fetch", min_length=1)
    cache_ttl: int = Field(3600, gt=0, description="Default entry lifetime (seconds).")
    cache_max_size: Optional[int] = Field(None, gt=0, description="Cache budget in bytes.")

    # options that shape the produced snapshot (part of the cache key)
    format: Literal["markdown", "json"] = "markdown"
    max_tokens: Optional[int] = Field(None, gt=0)
    token_encoder: Optional[str] = None
    extensions: List[str] = Field(default_factory=list)
    exclude_dirs: List[str] = Field(default_factory=list)

    @field_validator("extensions", mode="before")
    def _dot_extensions(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = [part for part in v.split(",") if part.strip()]
        if isinstance(v, list):
            return [e.strip() if e.strip().startswith(".") else f".{e.strip()}" for e in v]
        return v

    def crawl_budget(self) -> CrawlBudget:
        return CrawlBudget(
            max_depth=self.max_depth,
            max_pages=self.max_pages,
            ignore_robots=self.ignore_robots,
            timeout_per_page=self.timeout_per_page,
            user_agent=self.user_agent,
            concurrency=self.concurrency,
            delay=self.delay,
        )

    def key_options(self) -> Dict[str, Any]:
        """Options that change the shape of the output, as consumed by the cache key."""
        return {
            "format": self.format,
            "max_tokens": self.max_tokens,
            "token_encoder": self.token_encoder,
            "extensions": list(self.extensions),
            "exclude_dirs": list(self.exclude_dirs),
        }


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Top level of YAML must be a mapping, got {type(data).__name__}")
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8")) or {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Top level of JSON must be a mapping, got {type(data).__name__}")
    return data


def load_config(path: Union[str, Path, None] = None) -> FetchConfig:
    """
    Read YAML or JSON and return a validated FetchConfig.
    ``None`` yields the defaults; a missing file raises FileNotFoundError.
    """
    if path is None:
        return FetchConfig()

    path_obj = Path(path).expanduser().resolve()
    if not path_obj.is_file():
        raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))

    suffix = path_obj.suffix.lower()
    if suffix in (".yaml", ".yml"):
        data = _read_yaml(path_obj)
    elif suffix == ".json":
        data = _read_json(path_obj)
    else:
        raise ValueError(f"Unsupported config format: {suffix}")

    return FetchConfig(**data)
