"""Argument vectors and environment for the compiler and analyzer processes."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

from ..config import BenchConfig

ANALYZE_FILE_NAME = "analyze.json"


def tsc_trace_argv(config: BenchConfig) -> list[str]:
    """``tsc --noEmit --extendedDiagnostics --incremental false --generateTrace <dir>``.

    Incremental builds are disabled so every run does the full check and
    the timings stay comparable across commits.
    """
    return [
        *config.compiler_command,
        "--noEmit",
        "--extendedDiagnostics",
        "--incremental",
        "false",
        "--generateTrace",
        config.trace_dir,
    ]


def analyze_trace_argv(config: BenchConfig, trace_path: Path) -> list[str]:
    """``analyze-trace <trace dir> --skipMillis N --forceMillis M --json``."""
    return [
        *config.analyzer_command,
        str(trace_path),
        "--skipMillis",
        str(config.skip_millis),
        "--forceMillis",
        str(config.force_millis),
        "--json",
    ]


def compiler_env(
    config: BenchConfig, base: Optional[Mapping[str, str]] = None
) -> dict[str, str]:
    """Process environment with the Node heap ceiling appended to NODE_OPTIONS."""
    env = dict(os.environ if base is None else base)
    heap_flag = f"--max-old-space-size={config.max_old_space_size_mb}"
    existing = env.get("NODE_OPTIONS", "").strip()
    env["NODE_OPTIONS"] = f"{existing} {heap_flag}".strip()
    return env
