"""Shared CLI helpers."""

from pathlib import Path
from typing import Optional

from rich.console import Console

from ..config import BenchConfig, load_config

console = Console()


def resolve_config(
    config: Optional[Path] = None,
    workers: Optional[int] = None,
    timeout: Optional[float] = None,
    verbose: bool = False,
    quiet: bool = False,
    **extra,
) -> BenchConfig:
    """Build configuration from CLI options."""
    overrides = dict(extra)
    if workers is not None:
        overrides["workers"] = workers
    if timeout is not None:
        overrides["timeout_minutes"] = timeout
    if verbose:
        overrides["verbose"] = True
    if quiet:
        overrides["quiet"] = True
    return load_config(config_file=config, **overrides)


def repo_path(ctx) -> Path:
    """Repository path chosen with the global ``--path`` option."""
    obj = ctx.obj or {}
    return obj.get("path", Path.cwd())
