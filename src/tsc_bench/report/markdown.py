"""Markdown report suitable for a PR comment (``ts-bench-report.md``)."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from ..logging_config import get_logger
from .deltas import TRACKED_METRICS, ComparisonReport, PackageComparison

logger = get_logger(__name__)

DEFAULT_REPORT_NAME = "ts-bench-report.md"


@dataclass(frozen=True)
class ReportContext:
    """Run facts printed in the report header and footer."""

    tool_version: str
    max_concurrency: int
    total_cpus: int
    cpu_descriptor: str


def _escape_cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\r", "").replace("\n", "<br>")


def _table(header: Sequence[str], align: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    lines = [
        "| " + " | ".join(header) + " |",
        "|" + "|".join(":---" if a == "left" else "---:" for a in align) + "|",
    ]
    for row in rows:
        lines.append("| " + " | ".join(_escape_cell(cell) for cell in row) + " |")
    return "\n".join(lines)


def _metrics_table(packages: Sequence[PackageComparison]) -> str:
    header = ["Package"] + [m.label for m in TRACKED_METRICS]
    align = ["left"] + ["right"] * len(TRACKED_METRICS)
    rows = []
    for p in packages:
        name = f"{p.package} (cached)" if p.cached else p.package
        rows.append([name] + [p.metrics[m.name].display for m in TRACKED_METRICS])
    return _table(header, align, rows)


def _error_table(packages: Sequence[PackageComparison]) -> str:
    rows = [[p.package, p.error or ""] for p in packages]
    return _table(["Package", "Error"], ["left", "left"], rows)


def render_markdown(report: ComparisonReport, context: ReportContext) -> str:
    """Render the four buckets as markdown sections.

    Reduced and increased types are shown open; unchanged and errored
    packages are folded into ``<details>`` blocks.
    """
    compared_to = report.previous_commit or "N/A"
    parts = [
        f"**Tsc benchmark {context.max_concurrency} / {context.total_cpus} CPUs** "
        f"(compared to {compared_to})",
        "",
    ]

    if report.improved:
        parts += ["#### Reduced types :+1:", "", _metrics_table(report.improved), ""]
    if report.regressed:
        parts += ["#### Increased types :bangbang:", "", _metrics_table(report.regressed), ""]
    if report.unchanged:
        parts += [
            "<details><summary>No change</summary>",
            "",
            _metrics_table(report.unchanged),
            "",
            "</details>",
            "",
        ]
    if report.errored:
        parts += [
            "<details><summary>Error</summary>",
            "",
            _error_table(report.errored),
            "",
            "</details>",
            "",
        ]
    if not report.packages:
        parts += ["_No packages were benchmarked._", ""]

    parts.append(f'<p align="right">v{context.tool_version} ({context.cpu_descriptor})</p>')
    return "\n".join(parts) + "\n"


def write_report(content: str, path: Optional[Path] = None) -> Path:
    """Write the report (default: ``ts-bench-report.md`` in the working directory)."""
    target = path or Path.cwd() / DEFAULT_REPORT_NAME
    target.write_text(content, encoding="utf-8")
    logger.info("Report written to %s", target)
    return target
