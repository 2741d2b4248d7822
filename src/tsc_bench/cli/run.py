"""Benchmark command: run tsc for every package and record the scan."""

import json
from pathlib import Path
from typing import Optional

import typer

from ..bench import run_bench
from ..exceptions import ConfigurationError, InfrastructureError
from ..logging_config import get_logger, setup_logging
from ..models import result_to_dict
from ..report import print_comparison, results_table
from . import app
from ._common import console, repo_path, resolve_config

logger = get_logger(__name__)


@app.command()
def run(
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
        None,
        "--workers",
        "-w",
        help="Packages compiled at once (default: 80% of CPUs)",
        min=1,
        max=256,
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        "-t",
        help="Deadline for the whole run in minutes (0 disables)",
        min=0,
    ),
    no_cache: bool = typer.Option(
        False,
        "--no-cache",
        help="Benchmark every package even when the build cache is fresh",
    ),
    no_report: bool = typer.Option(
        False,
        "--no-report",
        help="Do not write ts-bench-report.md",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output results in machine-readable JSON format",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show compiler output and debug logging",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Only log errors",
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Append a DEBUG log (compiler output included) to this file",
        dir_okay=False,
        resolve_path=True,
    ),
):
    """
    Benchmark every package of the repository at the current commit.

    Failing packages are reported but do not change the exit code; only
    errors that stop the run itself (no git commit, unreachable history
    database) exit with code 1.

    [bold cyan]Examples:[/bold cyan]

      tsc-bench run

      tsc-bench run --workers 4 --timeout 30

      tsc-bench -C packages/app run --no-cache --json

      tsc-bench run --log-file logs/tsc-bench.log
    """
    try:
        settings = resolve_config(
            config,
            workers=workers,
            timeout=timeout,
            verbose=verbose,
            quiet=quiet,
            use_build_cache=False if no_cache else None,
        )
        setup_logging(settings.verbosity, log_file=log_file)

        outcome = run_bench(settings, repo_path(ctx), write_markdown=not no_report)

        if json_output:
            payload = {
                "scan_id": outcome.scan_id,
                "commit": outcome.scan.commit.hash,
                "compared_to": outcome.comparison.previous_commit,
                "max_concurrency": outcome.max_concurrency,
                "results": [result_to_dict(r) for r in outcome.results],
            }
            print(json.dumps(payload, indent=2))
            return

        console.print()
        console.print(results_table(outcome.results))
        print_comparison(outcome.comparison, console)
        console.print(
            f"[bold]{outcome.succeeded}[/bold] succeeded, "
            f"[bold]{outcome.failed}[/bold] failed "
            f"(scan {outcome.scan_id}, commit {outcome.scan.commit.hash[:8]})"
        )
        if outcome.report_path is not None:
            console.print(f"[dim]Report written to {outcome.report_path}[/dim]")

    except (ConfigurationError, InfrastructureError) as e:
        logger.error(f"{e.__class__.__name__}: {e}")
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(e.exit_code)

    except KeyboardInterrupt:
        console.print("\n[yellow]Benchmark interrupted[/yellow]")
        raise typer.Exit(130)
