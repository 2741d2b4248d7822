"""Whole-run orchestration: discover, benchmark, persist, compare, report.

Example:
    >>> from tsc_bench import run_bench
    >>> from tsc_bench.config import load_config
    >>>
    >>> outcome = run_bench(load_config(workers=4), Path("."))
    >>> outcome.failed
    0
    >>> outcome.report_path
    PosixPath('ts-bench-report.md')
"""

from __future__ import annotations

import asyncio
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Sequence

from . import __version__
from .config import BenchConfig
from .discovery import find_git_root, list_cached_packages, list_packages
from .environment import (
    checkout,
    current_ref,
    detect_host,
    list_commits,
    read_head_commit,
    repository_identity,
)
from .exceptions import InfrastructureError, TscBenchError
from .logging_config import get_logger
from .models import Package, PackageResult, Scan, StoredScan
from .persistence import HistoryDB, load_previous_scan, load_recent_scans, save_scan
from .report import (
    ComparisonReport,
    ReportContext,
    build_comparison,
    compare_scans,
    render_markdown,
    write_report,
)
from .runner import PackageRunner, WorkerPool

logger = get_logger(__name__)


@dataclass
class BenchOutcome:
    """Everything one benchmark run produced."""

    scan: Scan
    scan_id: int
    results: list[PackageResult]
    comparison: ComparisonReport
    markdown: str
    report_path: Optional[Path]
    max_concurrency: int

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded


@dataclass
class SpanOutcome:
    """Per-commit outcomes of a span run; commits that could not be prepared are in ``errors``."""

    outcomes: list[BenchOutcome] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


def resolve_root(start: Optional[Path] = None) -> Path:
    """Git root containing ``start``.

    Raises:
        InfrastructureError: ``start`` is not inside a git repository.
    """
    root = find_git_root(start)
    if root is None:
        raise InfrastructureError(
            f"Not inside a git repository: {(start or Path.cwd()).resolve()}"
        )
    return root


def history_path(config: BenchConfig, root: Path) -> Path:
    """History DB location; relative paths are taken from the repository root."""
    db_path = Path(config.db_path)
    return db_path if db_path.is_absolute() else root / db_path


def _benchmark(
    config: BenchConfig,
    packages: Sequence[Package],
    max_concurrency: int,
    is_cached: Callable[[Package], bool],
    cancel_event: Optional[asyncio.Event],
) -> list[PackageResult]:
    pool = WorkerPool(PackageRunner(config), max_concurrency=max_concurrency, is_cached=is_cached)

    async def _run() -> list[PackageResult]:
        return await pool.run(packages, deadline=config.deadline_seconds, cancel_event=cancel_event)

    return asyncio.run(_run())


def run_bench(
    config: BenchConfig,
    repo_root: Optional[Path] = None,
    packages: Optional[Sequence[Package]] = None,
    cancel_event: Optional[asyncio.Event] = None,
    write_markdown: bool = True,
) -> BenchOutcome:
    """Benchmark every package of the repository and record the scan.

    The pipeline:
    1. Resolve the git root and read ``HEAD`` metadata
    2. Discover packages (unless given) and ask the build cache which are fresh
    3. Run the worker pool under the configured deadline
    4. Save the scan and its results in one transaction
    5. Compare against the previous scan and render the markdown report

    Package failures are part of the outcome; only infrastructure errors
    (no git metadata, unreachable storage, machine resource exhaustion)
    are raised.

    Raises:
        InfrastructureError: If the run itself cannot complete.
    """
    root = resolve_root(repo_root)
    commit = read_head_commit(root)
    owner, repository = repository_identity(root)
    host = detect_host()
    logger.info("Benchmarking %s/%s at %s", owner, repository, commit.hash[:8])

    if packages is None:
        packages = list_packages(root)
    cached = list_cached_packages(root) if config.use_build_cache else frozenset()
    max_concurrency = config.resolve_workers(host.logical_cores)

    results = _benchmark(
        config,
        packages,
        max_concurrency,
        lambda package: package.name in cached,
        cancel_event,
    )

    scan = Scan(
        tool_version=__version__,
        owner=owner,
        repository=repository,
        commit=commit,
        host=host,
    )
    with HistoryDB(history_path(config, root)) as db:
        scan_id = save_scan(db.conn, scan, results)
        previous = load_previous_scan(db.conn, scan_id)

    comparison = build_comparison(results, previous, current_commit=commit.hash)
    context = ReportContext(
        tool_version=__version__,
        max_concurrency=max_concurrency,
        total_cpus=host.logical_cores,
        cpu_descriptor=host.descriptor,
    )
    markdown = render_markdown(comparison, context)
    report_path = write_report(markdown, Path(config.report_path)) if write_markdown else None

    return BenchOutcome(
        scan=scan,
        scan_id=scan_id,
        results=results,
        comparison=comparison,
        markdown=markdown,
        report_path=report_path,
        max_concurrency=max_concurrency,
    )


def run_prepare_commands(config: BenchConfig, root: Path) -> None:
    """Run the configured prepare commands in ``root``, stopping at the first failure.

    Raises:
        InfrastructureError: A command could not be started or exited non-zero.
    """
    for command in config.prepare_commands:
        argv = shlex.split(command)
        logger.info("Running command: %s", command)
        try:
            result = subprocess.run(argv, cwd=str(root), capture_output=True, text=True)
        except OSError as e:
            raise InfrastructureError(
                f"Prepare command failed to start: {command}", details={"reason": str(e)}
            )
        if result.returncode != 0:
            tail = "\n".join(result.stderr.strip().splitlines()[-20:])
            raise InfrastructureError(
                f"Prepare command exited with code {result.returncode}: {command}",
                details={"stderr": tail},
            )


def run_span(
    config: BenchConfig,
    count: int,
    skip: int = 0,
    repo_root: Optional[Path] = None,
) -> SpanOutcome:
    """Benchmark the ``count`` most recent commits, oldest first.

    Each commit is checked out, prepared and benchmarked. A commit whose
    preparation or benchmark fails with an infrastructure error is recorded
    in ``SpanOutcome.errors`` and the span moves on. The original ref is
    checked out again at the end, also on failure.
    """
    if count < 1:
        raise ValueError("count must be at least 1")
    if skip < 0:
        raise ValueError("skip must be non-negative")

    root = resolve_root(repo_root)
    original_ref = current_ref(root)
    commits = list(reversed(list_commits(root, count, skip)))
    logger.info("Benchmarking %d commits (restoring %s afterwards)", len(commits), original_ref)

    span = SpanOutcome()
    try:
        for index, commit_hash in enumerate(commits, 1):
            logger.info("[%d/%d] %s", index, len(commits), commit_hash[:8])
            try:
                checkout(root, commit_hash)
                run_prepare_commands(config, root)
                span.outcomes.append(run_bench(config, root))
            except InfrastructureError as e:
                logger.error("Skipping %s: %s", commit_hash[:8], e)
                span.errors[commit_hash] = str(e)
    finally:
        checkout(root, original_ref)
    return span


def load_history(
    config: BenchConfig, repo_root: Optional[Path] = None, limit: int = 10
) -> list[StoredScan]:
    """The ``limit`` most recent stored scans, newest first."""
    root = resolve_root(repo_root)
    db_path = history_path(config, root)
    if not db_path.exists():
        return []
    with HistoryDB(db_path) as db:
        return load_recent_scans(db.conn, limit=limit)


def regenerate_report(
    config: BenchConfig,
    repo_root: Optional[Path] = None,
    write_markdown: bool = True,
) -> tuple[ComparisonReport, str, Optional[Path]]:
    """Rebuild the report from the two most recent stored scans.

    Raises:
        TscBenchError: No scan has been recorded yet.
    """
    scans = load_history(config, repo_root, limit=2)
    if not scans:
        raise TscBenchError("No scans recorded yet; run `tsc-bench run` first")

    current = scans[0]
    previous = scans[1] if len(scans) > 1 else None
    comparison = compare_scans(current, previous)

    cores = _cores_of(current.cpus)
    context = ReportContext(
        tool_version=current.tool_version,
        max_concurrency=config.resolve_workers(cores),
        total_cpus=cores,
        cpu_descriptor=current.cpus,
    )
    markdown = render_markdown(comparison, context)
    report_path = write_report(markdown, Path(config.report_path)) if write_markdown else None
    return comparison, markdown, report_path


def _cores_of(descriptor: str) -> int:
    """Core count from a ``"<model> x <cores>"`` descriptor (1 when unknown)."""
    _, _, cores = descriptor.rpartition(" x ")
    return int(cores) if cores.isdigit() else 1
