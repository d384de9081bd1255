# site_fetch/report/json_report.py

"""
JSON report output for SiteFetch.

Accepts a :class:`~site_fetch.crawler.models.CrawlReport`, an Engine
:class:`~site_fetch.engine.SourceSnapshot`, a repository file list or an
already JSON-ready mapping.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping, Sequence, Tuple, Union


def report_data(report: Any) -> Any:
    """Convert *report* to plain JSON-serializable data."""
    if hasattr(report, "to_dict"):
        return report.to_dict()
    if isinstance(report, Mapping):
        return dict(report)
    if isinstance(report, Sequence) and not isinstance(report, (str, bytes)):
        # (path, content) pairs of a repository snapshot
        return [{"path": item[0], "content": item[1]} if isinstance(item, tuple) else item for item in report]
    raise TypeError(f"cannot render {type(report).__name__} as a JSON report")


def render_json(report: Union[Any, Sequence[Tuple[str, str]]], output_path: Path | str, *, pretty: bool = True) -> Path:
    """
    Write *report* as JSON to *output_path* and return the path.

    Example:
    ```python
    from site_fetch.report.json_report import render_json
    path = render_json(crawl_report, "reports/docs.json")
    print(f"JSON report saved to: {path}")
    ```
    """
    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)
    data = report_data(report)
    with output.open("w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2 if pretty else None)
    return output
