"""Span command: benchmark a series of recent commits."""

from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape
from rich.table import Table

from ..bench import run_span
from ..exceptions import ConfigurationError, InfrastructureError
from ..logging_config import get_logger, setup_logging
from . import app
from ._common import console, repo_path, resolve_config

logger = get_logger(__name__)


@app.command()
def span(
    ctx: typer.Context,
    count: int = typer.Option(
        10,
        "--count",
        "-n",
        help="Number of commits to benchmark",
        min=1,
        max=1000,
    ),
    skip: int = typer.Option(
        0,
        "--skip",
        "-s",
        help="Commits to skip between two benchmarked commits",
        min=0,
    ),
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
        None, "--workers", "-w", help="Packages compiled at once", min=1, max=256
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="Deadline per commit in minutes (0 disables)", min=0
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Append a DEBUG log covering every commit to this file",
        dir_okay=False,
        resolve_path=True,
    ),
):
    """
    Check out, prepare and benchmark the most recent commits, oldest first.

    The prepare commands (default [bold]pnpm install[/bold] and
    [bold]pnpm build[/bold]) run before each benchmark. The original branch
    is checked out again at the end. Build cache lookups are disabled.

    [bold cyan]Examples:[/bold cyan]

      tsc-bench span --count 20

      tsc-bench span --count 10 --skip 4
    """
    try:
        settings = resolve_config(
            config, workers=workers, timeout=timeout, verbose=verbose, use_build_cache=False
        )
        setup_logging(settings.verbosity, log_file=log_file)

        outcome = run_span(settings, count=count, skip=skip, repo_root=repo_path(ctx))

    except (ConfigurationError, InfrastructureError) as e:
        logger.error(f"{e.__class__.__name__}: {e}")
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(e.exit_code)

    except KeyboardInterrupt:
        console.print("\n[yellow]Span interrupted[/yellow]")
        raise typer.Exit(130)

    table = Table(title="Span results", show_lines=False, pad_edge=True)
    table.add_column("Commit", style="cyan")
    table.add_column("Scan", justify="right")
    table.add_column("Succeeded", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Error", style="red")

    for bench in outcome.outcomes:
        table.add_row(
            bench.scan.commit.hash[:8],
            str(bench.scan_id),
            str(bench.succeeded),
            str(bench.failed),
            "",
        )
    for commit_hash, error in outcome.errors.items():
        table.add_row(commit_hash[:8], "-", "-", "-", escape(error))

    console.print()
    console.print(table)

    if not outcome.outcomes:
        raise typer.Exit(1)
