"""History CLI command -- list recorded scans."""

import json
from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape
from rich.table import Table

from ..bench import load_history
from ..exceptions import ConfigurationError, InfrastructureError
from . import app
from ._common import console, repo_path, resolve_config


@app.command()
def history(
    ctx: typer.Context,
    limit: int = typer.Option(
        20,
        "--limit",
        "-n",
        help="Maximum number of scans to list",
        min=1,
        max=1000,
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
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in machine-readable JSON format",
    ),
):
    """
    List past benchmark scans, newest commit first.

    [bold cyan]Examples:[/bold cyan]

      tsc-bench history

      tsc-bench history --json --limit 5
    """
    try:
        settings = resolve_config(config)
        scans = load_history(settings, repo_path(ctx), limit=limit)
    except (ConfigurationError, InfrastructureError) as e:
        console.print(f"[red]Error reading history:[/red] {e}")
        raise typer.Exit(e.exit_code)

    if json_output:
        print(json.dumps([s.to_summary() for s in scans], indent=2))
        return

    if not scans:
        console.print(
            "[yellow]No history found.[/yellow] "
            "Run [bold]tsc-bench run[/bold] first to record a scan."
        )
        return

    table = Table(title="Benchmark History", show_lines=False, pad_edge=True)
    table.add_column("ID", style="bold", justify="right")
    table.add_column("Commit", style="cyan")
    table.add_column("Date", style="green")
    table.add_column("Message")
    table.add_column("Packages", justify="right")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Version", style="dim")

    for scan in scans:
        summary = scan.to_summary()
        table.add_row(
            str(scan.id),
            scan.commit.hash[:8],
            scan.commit.date.strftime("%Y-%m-%d %H:%M"),
            escape(scan.commit.message[:60]),
            str(summary["packages"]),
            str(summary["failed"]),
            scan.tool_version,
        )

    console.print()
    console.print(table)
