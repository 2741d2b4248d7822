"""Persistence layer: SQLite history of scans and package results."""

from .database import HistoryDB
from .reader import load_previous_scan, load_recent_scans, load_scan_by_commit
from .writer import save_scan

__all__ = [
    "HistoryDB",
    "save_scan",
    "load_recent_scans",
    "load_scan_by_commit",
    "load_previous_scan",
]
