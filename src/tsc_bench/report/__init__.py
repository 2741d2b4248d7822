"""Comparison against previous scans and its markdown / console rendering."""

from .deltas import (
    ComparisonReport,
    PackageComparison,
    build_comparison,
    compare_scans,
    format_delta,
    percent_delta,
)
from .markdown import ReportContext, render_markdown, write_report
from .table import print_comparison, results_table

__all__ = [
    "ComparisonReport",
    "PackageComparison",
    "build_comparison",
    "compare_scans",
    "format_delta",
    "percent_delta",
    "ReportContext",
    "render_markdown",
    "write_report",
    "print_comparison",
    "results_table",
]
