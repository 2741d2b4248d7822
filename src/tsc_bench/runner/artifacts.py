"""Read the trace bundle written by ``tsc --generateTrace``.

A single project writes ``trace.json`` and ``types.json``. Project
references (``tsc -b``) write numbered pairs (``trace.1.json``,
``types.1.json``, ...); those are summed.
"""

from __future__ import annotations

import json
from pathlib import Path

from ..exceptions import ArtifactError
from ..logging_config import get_logger
from ..models import TraceMetrics

logger = get_logger(__name__)


def _bundle_files(trace_path: Path, stem: str) -> list[Path]:
    single = trace_path / f"{stem}.json"
    if single.is_file():
        return [single]
    return sorted(trace_path.glob(f"{stem}.*.json"))


def count_json_elements(package_name: str, path: Path) -> int:
    """Number of top-level elements of a JSON array file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ArtifactError(package_name, str(path), "file not found")
    except (OSError, UnicodeDecodeError) as e:
        raise ArtifactError(package_name, str(path), str(e))
    except json.JSONDecodeError as e:
        raise ArtifactError(package_name, str(path), f"invalid JSON: {e}")

    if not isinstance(data, list):
        raise ArtifactError(
            package_name, str(path), f"expected a JSON array, got {type(data).__name__}"
        )
    return len(data)


def read_trace_bundle(package_name: str, trace_path: Path) -> TraceMetrics:
    """Count trace events and types, and record the file sizes.

    Raises:
        ArtifactError: If either half of the bundle is missing or unparsable.
    """
    trace_files = _bundle_files(trace_path, "trace")
    type_files = _bundle_files(trace_path, "types")

    if not trace_files:
        raise ArtifactError(package_name, str(trace_path / "trace.json"), "file not found")
    if not type_files:
        raise ArtifactError(package_name, str(trace_path / "types.json"), "file not found")

    metrics = TraceMetrics()
    for path in trace_files:
        metrics.num_trace_events += count_json_elements(package_name, path)
        metrics.trace_file_size += path.stat().st_size
    for path in type_files:
        metrics.num_types += count_json_elements(package_name, path)
        metrics.types_file_size += path.stat().st_size

    logger.debug(
        "%s: %d trace events, %d types", package_name, metrics.num_trace_events, metrics.num_types
    )
    return metrics
