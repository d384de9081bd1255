# File: site_fetch/report/__init__.py
"""site_fetch.report: report writers used by the CLI and tests."""

from site_fetch.report.json_report import render_json, report_data

__all__ = ["render_json", "report_data"]
