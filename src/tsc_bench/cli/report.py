"""Report command: rebuild the markdown report from stored scans."""

from pathlib import Path
from typing import Optional

import typer

from ..bench import regenerate_report
from ..exceptions import TscBenchError
from ..report import print_comparison
from . import app
from ._common import console, repo_path, resolve_config


@app.command()
def report(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="TOML configuration file",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", help="Concurrency shown in the report header", min=1
    ),
    stdout: bool = typer.Option(
        False,
        "--stdout",
        help="Print the markdown instead of writing ts-bench-report.md",
    ),
):
    """
    Regenerate the report from the two most recent scans without running tsc.

    [bold cyan]Examples:[/bold cyan]

      tsc-bench report

      tsc-bench report --stdout > comment.md
    """
    try:
        settings = resolve_config(config, workers=workers)
        comparison, markdown, path = regenerate_report(
            settings, repo_path(ctx), write_markdown=not stdout
        )
    except TscBenchError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(e.exit_code)

    if stdout:
        print(markdown, end="")
        return

    print_comparison(comparison, console)
    console.print(f"[dim]Report written to {path}[/dim]")
