"""Data model shared by the runner, the history database and the report.

A benchmark run produces one ``Scan`` and one ``PackageResult`` per
package. ``PackageResult`` is a tagged union of ``PackageSuccess`` and
``PackageFailure`` with a fixed field set per case, so the persistence
schema and the comparison logic never have to guess which fields exist.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from pathlib import Path
from typing import Any, Literal, Optional, Union

from .exceptions import ErrorCode


@dataclass(frozen=True)
class Package:
    """One workspace package: its ``package.json`` name and absolute directory."""

    name: str
    absolute_path: Path

    def __post_init__(self) -> None:
        object.__setattr__(self, "absolute_path", Path(self.absolute_path))


@dataclass
class DiagnosticMetrics:
    """Counters and phase timings from ``tsc --extendedDiagnostics``.

    Times are seconds, ``memory_used`` is kilobytes. Keys tsc prints that
    are not listed here are kept in ``extra``.
    """

    files: int = 0
    lines_of_library: int = 0
    lines_of_definitions: int = 0
    lines_of_typescript: int = 0
    lines_of_javascript: int = 0
    lines_of_json: int = 0
    lines_of_other: int = 0
    identifiers: int = 0
    symbols: int = 0
    types: int = 0
    instantiations: int = 0
    memory_used: int = 0
    assignability_cache_size: int = 0
    identity_cache_size: int = 0
    subtype_cache_size: int = 0
    strict_subtype_cache_size: int = 0
    tracing_time: float = 0.0
    io_read_time: float = 0.0
    parse_time: float = 0.0
    resolve_module_time: float = 0.0
    resolve_type_reference_time: float = 0.0
    resolve_library_time: float = 0.0
    program_time: float = 0.0
    bind_time: float = 0.0
    check_time: float = 0.0
    print_time: float = 0.0
    emit_time: float = 0.0
    dump_types_time: float = 0.0
    total_time: float = 0.0
    extra: dict[str, float] = field(default_factory=dict)

    @classmethod
    def column_names(cls) -> list[str]:
        """Names of the fixed metric fields (everything except ``extra``)."""
        return [f.name for f in fields(cls) if f.name != "extra"]

    @classmethod
    def from_raw(cls, raw: dict[str, float]) -> "DiagnosticMetrics":
        """Split a parsed diagnostics map into known fields and ``extra``."""
        known = set(cls.column_names())
        kwargs: dict[str, Any] = {}
        extra: dict[str, float] = {}
        for key, value in raw.items():
            if key in known:
                kwargs[key] = value
            else:
                extra[key] = value
        return cls(extra=extra, **kwargs)


@dataclass
class TraceMetrics:
    """Sizes of the ``--generateTrace`` bundle."""

    num_types: int = 0
    num_trace_events: int = 0
    types_file_size: int = 0
    trace_file_size: int = 0


@dataclass
class HotSpotMetrics:
    """Reduction of the analyze-trace JSON into scalars."""

    num_hot_spots: int = 0
    duration_ms_hot_spots: float = 0.0
    analyze_file_size: int = 0


@dataclass
class PackageSuccess:
    """A package that compiled (or was served from cache) and was measured."""

    package: Package
    duration_ms: float
    cached: bool = False
    diagnostics: DiagnosticMetrics = field(default_factory=DiagnosticMetrics)
    trace: TraceMetrics = field(default_factory=TraceMetrics)
    hot_spots: HotSpotMetrics = field(default_factory=HotSpotMetrics)

    status: Literal["SUCCESS"] = field(default="SUCCESS", init=False)

    @property
    def success(self) -> bool:
        return True

    @property
    def package_name(self) -> str:
        return self.package.name


@dataclass
class PackageFailure:
    """A package whose compile or artifact read failed; no metrics."""

    package: Package
    duration_ms: float
    error: str
    error_code: ErrorCode = ErrorCode.EXECUTION_ERROR
    cached: bool = False

    status: Literal["FAILURE"] = field(default="FAILURE", init=False)

    def __post_init__(self) -> None:
        if not self.error:
            self.error = "unknown error"

    @property
    def success(self) -> bool:
        return False

    @property
    def package_name(self) -> str:
        return self.package.name


PackageResult = Union[PackageSuccess, PackageFailure]


@dataclass(frozen=True)
class CommitInfo:
    """The commit a scan is recorded against."""

    hash: str
    message: str
    date: datetime
    files_changed: Optional[int] = None
    insertions: Optional[int] = None
    deletions: Optional[int] = None


@dataclass(frozen=True)
class HostInfo:
    """CPU of the machine that ran the benchmark."""

    cpu_model: str
    logical_cores: int

    @property
    def descriptor(self) -> str:
        return f"{self.cpu_model} x {self.logical_cores}"


@dataclass
class Scan:
    """One benchmark run of a repository at a commit.

    At most one scan exists per ``(repository, commit.hash)``; saving a scan
    for the same key again replaces the stored one.
    """

    tool_version: str
    owner: str
    repository: str
    commit: CommitInfo
    host: HostInfo
    scanned_at: datetime = field(default_factory=lambda: datetime.now().astimezone())


@dataclass
class StoredResult:
    """A package result as read back from the history database.

    Metric columns are flat and zero for failures so old and new runs can be
    compared column by column.
    """

    package: str
    success: bool
    cached: bool
    duration_ms: float
    error: Optional[str]
    error_code: Optional[str]
    diagnostics: DiagnosticMetrics
    trace: TraceMetrics
    hot_spots: HotSpotMetrics

    @property
    def package_name(self) -> str:
        return self.package


@dataclass
class StoredScan:
    """A scan row with its package results attached."""

    id: int
    tool_version: str
    owner: str
    repository: str
    commit: CommitInfo
    scanned_at: datetime
    cpus: str
    results: list[StoredResult] = field(default_factory=list)

    def result_for(self, package_name: str) -> Optional[StoredResult]:
        for r in self.results:
            if r.package == package_name:
                return r
        return None

    def to_summary(self) -> dict[str, Any]:
        """Plain-dict summary used by ``history --json``."""
        succeeded = sum(1 for r in self.results if r.success)
        return {
            "id": self.id,
            "repository": f"{self.owner}/{self.repository}",
            "commit_hash": self.commit.hash,
            "commit_message": self.commit.message,
            "commit_date": self.commit.date.isoformat(),
            "scanned_at": self.scanned_at.isoformat(),
            "tool_version": self.tool_version,
            "cpus": self.cpus,
            "packages": len(self.results),
            "succeeded": succeeded,
            "failed": len(self.results) - succeeded,
        }


def result_to_dict(result: PackageResult) -> dict[str, Any]:
    """JSON-friendly view of a live result (``run --json``)."""
    base: dict[str, Any] = {
        "package": result.package.name,
        "path": str(result.package.absolute_path),
        "status": result.status,
        "cached": result.cached,
        "duration_ms": round(result.duration_ms, 3),
    }
    if isinstance(result, PackageSuccess):
        base["diagnostics"] = asdict(result.diagnostics)
        base["trace"] = asdict(result.trace)
        base["hot_spots"] = asdict(result.hot_spots)
    else:
        base["error"] = result.error
        base["error_code"] = result.error_code.value
    return base
