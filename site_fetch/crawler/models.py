"""
Data models for the SiteFetch crawler.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

NOT_HTML_ERROR = "Not HTML content"


class CrawlBudget(BaseModel):
    """Bounds of one crawl run."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_depth: int = Field(2, ge=0, description="Links deeper than this are never fetched.")
    max_pages: int = Field(50, ge=1, description="Page results collected before stopping.")
    ignore_robots: bool = Field(False, description="Skip robots.txt and sitemap discovery.")
    timeout_per_page: float = Field(10.0, gt=0, description="Timeout of each request (seconds).")
    user_agent: str = Field("SiteFetch/1.0", min_length=1)
    concurrency: int = Field(3, ge=1, le=16, description="Fetches issued per batch.")
    delay: float = Field(0.0, ge=0, description="Pause between batches (seconds).")
    max_sitemaps: int = Field(10, ge=0, description="Sitemap documents fetched per run.")


@dataclass(frozen=True, slots=True)
class PageResult:
    """Outcome of one fetch attempt. ``error`` is ``None`` only for extracted HTML pages."""

    url: str
    depth: int
    status_code: Optional[int] = None
    content_type: str = ""
    raw_body: str = ""
    extracted_links: Tuple[str, ...] = ()
    title: str = ""
    text: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["extracted_links"] = list(self.extracted_links)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PageResult:
        values = dict(data)
        values["extracted_links"] = tuple(values.get("extracted_links") or ())
        return cls(**values)


@dataclass(slots=True)
class CrawlReport:
    """Page results of one crawl in breadth-first discovery order, root first."""

    root_url: str
    pages: List[PageResult] = field(default_factory=list)

    def __iter__(self) -> Iterator[PageResult]:
        return iter(self.pages)

    def __len__(self) -> int:
        return len(self.pages)

    def __getitem__(self, index: int) -> PageResult:
        return self.pages[index]

    @property
    def urls(self) -> List[str]:
        return [p.url for p in self.pages]

    @property
    def succeeded(self) -> List[PageResult]:
        return [p for p in self.pages if p.ok]

    @property
    def failed(self) -> List[PageResult]:
        return [p for p in self.pages if not p.ok]

    def to_dict(self) -> Dict[str, Any]:
        return {"root_url": self.root_url, "pages": [p.to_dict() for p in self.pages]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> CrawlReport:
        return cls(
            root_url=data["root_url"],
            pages=[PageResult.from_dict(p) for p in data.get("pages", [])],
        )


@dataclass(frozen=True, slots=True)
class FetchOutcome:
    """What a single HTTP request produced; faults are data, not exceptions."""

    url: str
    status_code: Optional[int] = None
    content_type: str = ""
    body: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_html(self) -> bool:
        return "text/html" in self.content_type or "application/xhtml+xml" in self.content_type
