"""Reporting helpers for conformance runs."""

from .reports import (
    default_report_path,
    render_summary,
    summary_context,
    summary_lines,
    timing_summary_lines,
    write_results,
    write_summary,
)

__all__ = [
    "default_report_path",
    "render_summary",
    "summary_context",
    "summary_lines",
    "timing_summary_lines",
    "write_results",
    "write_summary",
]
