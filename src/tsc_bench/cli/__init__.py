"""CLI entry point: registers all subcommands."""

from pathlib import Path
from typing import Optional

import typer

from .. import __version__
from ._common import console

app = typer.Typer(
    name="tsc-bench",
    help="tsc-bench - TypeScript compiler performance tracking for monorepos",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"tsc-bench {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    path: Path = typer.Option(
        Path("."),
        "--path",
        "-C",
        help="Directory inside the repository to benchmark",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
):
    """
    Benchmark [bold cyan]tsc[/bold cyan] across every package of a monorepo.

    Each run is stored against the current commit and compared with the
    previous one.
    """
    ctx.ensure_object(dict)
    ctx.obj["path"] = path


# Import subcommands to register them
from .run import run as _run  # noqa: F401, E402
from .span import span as _span  # noqa: F401, E402
from .history import history as _history  # noqa: F401, E402
from .report import report as _report  # noqa: F401, E402
