"""Parsing of tsc diagnostic output and analyze-trace hot-spot reports."""

from .hotspots import aggregate_hot_spots, load_hot_spot_report
from .parser import normalize_key, parse_extended_diagnostics, parse_value

__all__ = [
    "parse_extended_diagnostics",
    "parse_value",
    "normalize_key",
    "aggregate_hot_spots",
    "load_hot_spot_report",
]
