"""Compare a run against the previous scan, package by package.

Each tracked metric gets a signed one-decimal percentage. Packages are
bucketed by the change in their type count (the most stable signal of
type-level cost): regressed, improved, unchanged, or errored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Literal, Optional, Union

from ..models import PackageResult, StoredResult, StoredScan

NO_BASELINE = "N/A"
NO_CHANGE = ""

Status = Literal["regressed", "improved", "unchanged", "errored"]
ResultLike = Union[PackageResult, StoredResult]


@dataclass(frozen=True)
class TrackedMetric:
    """A metric shown in the report, with how to read it from a result."""

    name: str
    label: str
    unit: str
    getter: Callable[[Any], float]


TRACKED_METRICS: tuple[TrackedMetric, ...] = (
    TrackedMetric("trace_types", "Types", "", lambda r: r.trace.num_types),
    TrackedMetric("types_file_size", "Types size", "", lambda r: r.trace.types_file_size),
    TrackedMetric("total_time", "Total time", "s", lambda r: r.diagnostics.total_time),
    TrackedMetric("memory_used", "Memory used", "K", lambda r: r.diagnostics.memory_used),
)

# Metric whose direction decides the bucket.
BUCKET_METRIC = "trace_types"


def percent_delta(before: float, after: float) -> Optional[float]:
    """Relative change in percent; None when there is no baseline.

    >>> percent_delta(100, 121)
    21.0
    >>> percent_delta(0, 5) is None
    True
    """
    if before == 0:
        return None
    return (after - before) / abs(before) * 100.0


def format_delta(before: float, after: float) -> str:
    """Signed one-decimal percentage, ``"N/A"`` without baseline, ``""`` for no change.

    >>> format_delta(100, 121)
    '+21.0%'
    >>> format_delta(100, 92)
    '-8.0%'
    >>> format_delta(0, 92)
    'N/A'
    >>> format_delta(1000, 1000.4)
    ''
    """
    diff = percent_delta(before, after)
    if diff is None:
        return NO_BASELINE

    magnitude = f"{abs(diff):.1f}"
    if magnitude == "0.0":
        return NO_CHANGE

    sign = "+" if diff >= 0 else "-"
    return f"{sign}{magnitude}%"


@dataclass
class MetricComparison:
    """One metric of one package, before and after."""

    name: str
    label: str
    unit: str
    after: float
    before: Optional[float]
    delta: str

    @property
    def display(self) -> str:
        """``"644 (+21.0%)"``-style cell text."""
        value = _format_number(self.after) + self.unit
        if self.delta:
            return f"{value} ({self.delta})"
        return value


@dataclass
class PackageComparison:
    """All tracked metrics of one package, or its error."""

    package: str
    status: Status
    cached: bool = False
    metrics: dict[str, MetricComparison] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def num_types(self) -> float:
        metric = self.metrics.get(BUCKET_METRIC)
        return metric.after if metric else 0


@dataclass
class ComparisonReport:
    """A run compared against its predecessor, grouped for presentation."""

    current_commit: Optional[str]
    previous_commit: Optional[str]
    regressed: list[PackageComparison] = field(default_factory=list)
    improved: list[PackageComparison] = field(default_factory=list)
    unchanged: list[PackageComparison] = field(default_factory=list)
    errored: list[PackageComparison] = field(default_factory=list)

    @property
    def packages(self) -> list[PackageComparison]:
        return self.improved + self.regressed + self.unchanged + self.errored

    def counts(self) -> dict[str, int]:
        return {
            "regressed": len(self.regressed),
            "improved": len(self.improved),
            "unchanged": len(self.unchanged),
            "errored": len(self.errored),
        }


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}"


def _result_name(result: ResultLike) -> str:
    return result.package_name


def _error_of(result: ResultLike) -> str:
    error = getattr(result, "error", None)
    return error or "unknown error"


def _baseline(previous: Optional[StoredResult]) -> Optional[StoredResult]:
    if previous is None or not previous.success or previous.cached:
        return None
    return previous


def compare_package(result: ResultLike, previous: Optional[StoredResult]) -> PackageComparison:
    """Compare one result with the same package in the previous scan.

    A failed, cached or missing previous result counts as no baseline. A
    cached result was not compiled in this run, so it has nothing to
    compare: every delta is ``N/A`` and the package lands in "unchanged".
    """
    name = _result_name(result)
    if not result.success:
        return PackageComparison(
            package=name, status="errored", cached=result.cached, error=_error_of(result)
        )

    baseline = _baseline(previous) if not result.cached else None
    metrics: dict[str, MetricComparison] = {}
    for metric in TRACKED_METRICS:
        after = float(metric.getter(result))
        before = float(metric.getter(baseline)) if baseline is not None else None
        metrics[metric.name] = MetricComparison(
            name=metric.name,
            label=metric.label,
            unit=metric.unit,
            after=after,
            before=before,
            delta=format_delta(before or 0.0, after),
        )

    bucket_delta = metrics[BUCKET_METRIC].delta
    if bucket_delta.startswith("+"):
        status: Status = "regressed"
    elif bucket_delta.startswith("-"):
        status = "improved"
    else:
        status = "unchanged"

    return PackageComparison(package=name, status=status, cached=result.cached, metrics=metrics)


def build_comparison(
    results: Iterable[ResultLike],
    previous_scan: Optional[StoredScan],
    current_commit: Optional[str] = None,
) -> ComparisonReport:
    """Compare every result against ``previous_scan`` and bucket them.

    Within a bucket, packages are ordered by type count (largest first),
    then by name; errored packages by name.
    """
    report = ComparisonReport(
        current_commit=current_commit,
        previous_commit=previous_scan.commit.hash if previous_scan else None,
    )

    for result in results:
        previous = previous_scan.result_for(_result_name(result)) if previous_scan else None
        comparison = compare_package(result, previous)
        getattr(report, comparison.status).append(comparison)

    for bucket in (report.regressed, report.improved, report.unchanged):
        bucket.sort(key=lambda c: (-c.num_types, c.package))
    report.errored.sort(key=lambda c: c.package)
    return report


def compare_scans(current: StoredScan, previous: Optional[StoredScan]) -> ComparisonReport:
    """Comparison between two stored scans (report regeneration)."""
    return build_comparison(current.results, previous, current_commit=current.commit.hash)
