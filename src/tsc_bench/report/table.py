"""Console rendering of results and comparisons with rich."""

from __future__ import annotations

from typing import Iterable, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..models import PackageResult, PackageSuccess
from .deltas import TRACKED_METRICS, ComparisonReport, PackageComparison

_STATUS_STYLE = {
    "regressed": "[red]regressed[/red]",
    "improved": "[green]improved[/green]",
    "unchanged": "[dim]unchanged[/dim]",
    "errored": "[bold red]errored[/bold red]",
}

_SECTION_TITLES = {
    "improved": "Reduced types",
    "regressed": "Increased types",
    "unchanged": "No change",
}


def results_table(results: Iterable[PackageResult]) -> Table:
    """One row per package result, sorted by package name."""
    table = Table(title="tsc results", show_lines=False, pad_edge=True)
    table.add_column("Package", style="cyan", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("Duration", justify="right")
    table.add_column("Types", justify="right")
    table.add_column("Trace events", justify="right")
    table.add_column("Hot spots", justify="right")
    table.add_column("Total time", justify="right")
    table.add_column("Memory", justify="right")
    table.add_column("Error", style="red")

    for r in sorted(results, key=lambda r: r.package.name):
        duration = f"{r.duration_ms:,.0f}ms"
        if isinstance(r, PackageSuccess):
            status = "[yellow]cached[/yellow]" if r.cached else "[green]ok[/green]"
            table.add_row(
                escape(r.package.name),
                status,
                duration,
                f"{r.trace.num_types:,}",
                f"{r.trace.num_trace_events:,}",
                f"{r.hot_spots.num_hot_spots} ({r.hot_spots.duration_ms_hot_spots:,.0f}ms)",
                f"{r.diagnostics.total_time:.2f}s",
                f"{r.diagnostics.memory_used:,}K",
                "",
            )
        else:
            first_line = r.error.strip().splitlines()[0] if r.error.strip() else r.error
            table.add_row(
                escape(r.package.name),
                "[red]failed[/red]",
                duration,
                "",
                "",
                "",
                "",
                "",
                escape(first_line),
            )
    return table


def _comparison_table(title: str, packages: list[PackageComparison]) -> Table:
    table = Table(title=title, expand=False)
    table.add_column("Package", style="yellow")
    for m in TRACKED_METRICS:
        table.add_column(m.label, justify="right")
    for p in packages:
        table.add_row(escape(p.package), *(p.metrics[m.name].display for m in TRACKED_METRICS))
    return table


def print_comparison(report: ComparisonReport, console: Optional[Console] = None) -> None:
    """Summary panel, then one table per non-empty bucket."""
    console = console or Console()
    counts = report.counts()
    parts = [
        f"{_STATUS_STYLE[status]}: {counts[status]}"
        for status in ("regressed", "improved", "unchanged", "errored")
        if counts[status]
    ]
    summary = "  |  ".join(parts) if parts else "No packages"
    compared = report.previous_commit[:8] if report.previous_commit else "N/A"
    console.print(
        Panel(summary, title=f"[bold cyan]Compared to {compared}[/bold cyan]", expand=False)
    )

    for status in ("improved", "regressed", "unchanged"):
        packages = getattr(report, status)
        if packages:
            console.print(_comparison_table(_SECTION_TITLES[status], packages))

    if report.errored:
        table = Table(title="Errors", expand=False)
        table.add_column("Package", style="yellow")
        table.add_column("Error", style="red")
        for p in report.errored:
            table.add_row(escape(p.package), escape(p.error or ""))
        console.print(table)
    console.print()
