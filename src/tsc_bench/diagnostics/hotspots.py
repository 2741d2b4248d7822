"""Reduce ``@typescript/analyze-trace --json`` output to two scalars.

analyze-trace writes one entry per analysed trace::

    [
      {"configFilePath": "...", "tracePath": "...", "result": {
          "hotSpots": [{"description": "...", "timeMs": 812.4, "children": [...]}],
          "duplicatePackages": []
      }}
    ]

A single-project trace may also come out as the bare ``result`` object or
as ``{"results": [...]}``. Only top-level hot spots are counted; children
are sub-ranges of their parent's time and would be double counted.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterator, Optional

from ..logging_config import get_logger
from ..models import HotSpotMetrics

logger = get_logger(__name__)


def load_hot_spot_report(path: Path) -> Optional[Any]:
    """Read analyze-trace JSON; None when absent, empty or malformed."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.warning("Cannot read hot-spot report %s: %s", path, e)
        return None

    if not text.strip():
        return None

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("Malformed hot-spot report %s: %s", path, e)
        return None


def _iter_results(report: Any) -> Iterator[dict]:
    if isinstance(report, list):
        entries = report
    elif isinstance(report, dict) and isinstance(report.get("results"), list):
        entries = report["results"]
    elif isinstance(report, dict):
        entries = [report]
    else:
        return

    for entry in entries:
        if not isinstance(entry, dict):
            continue
        inner = entry.get("result", entry)
        if isinstance(inner, dict):
            yield inner


def _duration_ms(hot_spot: dict) -> float:
    value = hot_spot.get("timeMs", hot_spot.get("durationMs", 0))
    try:
        duration = float(value)
    except (TypeError, ValueError):
        return 0.0
    return duration if duration > 0 else 0.0


def aggregate_hot_spots(report: Any, analyze_file_size: int = 0) -> HotSpotMetrics:
    """Count flagged ranges and sum their durations across all results.

    Never raises: an absent or malformed report yields zero metrics.

    >>> aggregate_hot_spots(None)
    HotSpotMetrics(num_hot_spots=0, duration_ms_hot_spots=0.0, analyze_file_size=0)
    """
    num_hot_spots = 0
    duration_ms = 0.0

    if report is None:
        return HotSpotMetrics(analyze_file_size=analyze_file_size)

    for result in _iter_results(report):
        hot_spots = result.get("hotSpots") or []
        if not isinstance(hot_spots, list):
            continue
        for hot_spot in hot_spots:
            if not isinstance(hot_spot, dict):
                continue
            num_hot_spots += 1
            duration_ms += _duration_ms(hot_spot)

    return HotSpotMetrics(
        num_hot_spots=num_hot_spots,
        duration_ms_hot_spots=round(duration_ms, 3),
        analyze_file_size=analyze_file_size,
    )
