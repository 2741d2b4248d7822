"""Benchmark one package: compile with tracing, analyze, read artifacts.

Steps within a package are strictly sequential (compile, then analyze,
then read the bundle). ``PackageRunner.run`` never raises for package
problems; they become a ``PackageFailure``. Only cancellation and
infrastructure failures propagate.
"""

from __future__ import annotations

import asyncio
import errno
import os
import shutil
import signal
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional

from ..config import BenchConfig
from ..diagnostics import aggregate_hot_spots, load_hot_spot_report, parse_extended_diagnostics
from ..exceptions import AnalysisError, ArtifactError, InfrastructureError, PackageExecutionError
from ..logging_config import get_logger
from ..models import (
    DiagnosticMetrics,
    HotSpotMetrics,
    Package,
    PackageFailure,
    PackageResult,
    PackageSuccess,
    TraceMetrics,
)
from .artifacts import read_trace_bundle
from .commands import ANALYZE_FILE_NAME, analyze_trace_argv, compiler_env, tsc_trace_argv

logger = get_logger(__name__)

# Lines of compiler output kept in a failure message.
_ERROR_TAIL_LINES = 20

# errno values that mean the machine, not the package, is the problem.
_RESOURCE_ERRNOS = frozenset({errno.EAGAIN, errno.EMFILE, errno.ENFILE, errno.ENOMEM})


@dataclass
class ProcessOutput:
    returncode: int
    stdout: str
    stderr: str


def elapsed_ms(start: float) -> float:
    """Milliseconds since a ``time.perf_counter()`` reading."""
    return (time.perf_counter() - start) * 1000.0


def _tail(text: str, lines: int = _ERROR_TAIL_LINES) -> str:
    kept = [line for line in text.strip().splitlines() if line.strip()]
    return "\n".join(kept[-lines:])


def _terminate(proc: asyncio.subprocess.Process) -> None:
    """Kill the process and everything it spawned (npx forks node)."""
    if proc.returncode is not None:
        return
    try:
        if os.name == "posix":
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except ProcessLookupError:
        pass


@asynccontextmanager
async def spawned(
    argv: list[str], cwd: Path, env: Optional[dict[str, str]] = None
) -> AsyncIterator[asyncio.subprocess.Process]:
    """Start a process and guarantee it is gone when the block exits.

    The child gets its own process group so a kill on cancellation also
    reaches grandchildren.
    """
    proc = await asyncio.create_subprocess_exec(
        *argv,
        cwd=str(cwd),
        env=env,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        start_new_session=(os.name == "posix"),
    )
    try:
        yield proc
    finally:
        if proc.returncode is None:
            _terminate(proc)
            await proc.wait()


async def run_process(
    argv: list[str], cwd: Path, env: Optional[dict[str, str]] = None
) -> ProcessOutput:
    """Run a process to completion and capture its output."""
    async with spawned(argv, cwd, env) as proc:
        stdout, stderr = await proc.communicate()
        returncode = await proc.wait()
    return ProcessOutput(
        returncode=returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


class PackageRunner:
    """Runs the compiler and the hot-spot analysis for single packages."""

    def __init__(self, config: BenchConfig) -> None:
        self.config = config
        self._env = compiler_env(config)

    def trace_path(self, package: Package) -> Path:
        return package.absolute_path / self.config.trace_dir

    async def run(self, package: Package, cached: bool = False) -> PackageResult:
        """Produce exactly one result for ``package``.

        Args:
            package: The package to benchmark.
            cached: The build cache already validated this package; the
                compiler is skipped and any trace left by an earlier run is
                read instead.
        """
        if cached:
            return await self._collect_cached(package)

        logger.info("[START] %s", package.name)
        trace_path = self.trace_path(package)
        start = time.perf_counter()

        try:
            await asyncio.to_thread(shutil.rmtree, trace_path, True)
            start = time.perf_counter()
            stdout = await self._compile(package)
        except PackageExecutionError as e:
            duration_ms = elapsed_ms(start)
            logger.warning("[FAILURE] %s in %.2fms: %s", package.name, duration_ms, e.reason)
            return PackageFailure(
                package=package, duration_ms=duration_ms, error=str(e), error_code=e.code
            )
        duration_ms = elapsed_ms(start)

        diagnostics = DiagnosticMetrics.from_raw(parse_extended_diagnostics(stdout))
        hot_spots = await self._analyze(package)

        try:
            trace = await asyncio.to_thread(read_trace_bundle, package.name, trace_path)
        except ArtifactError as e:
            logger.warning("[FAILURE] %s: %s", package.name, e)
            return PackageFailure(
                package=package, duration_ms=duration_ms, error=str(e), error_code=e.code
            )

        logger.info(
            "[SUCCESS] %s in %.2fms (%d types, %d hot spots)",
            package.name,
            duration_ms,
            trace.num_types,
            hot_spots.num_hot_spots,
        )
        return PackageSuccess(
            package=package,
            duration_ms=duration_ms,
            diagnostics=diagnostics,
            trace=trace,
            hot_spots=hot_spots,
        )

    async def _compile(self, package: Package) -> str:
        """Run tsc with tracing; return its stdout.

        Raises:
            PackageExecutionError: tsc exited non-zero or could not be started.
            InfrastructureError: the OS refused to create a process.
        """
        argv = tsc_trace_argv(self.config)
        logger.debug("%s: %s", package.name, " ".join(argv))

        try:
            output = await run_process(argv, package.absolute_path, self._env)
        except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
            raise PackageExecutionError(package.name, f"Cannot start compiler: {e}")
        except OSError as e:
            if e.errno in _RESOURCE_ERRNOS:
                raise InfrastructureError(
                    f"Cannot spawn compiler process: {e}", details={"package": package.name}
                )
            raise PackageExecutionError(package.name, f"Cannot start compiler: {e}")

        if output.stderr.strip():
            logger.debug("%s stderr:\n%s", package.name, output.stderr)

        if output.returncode != 0:
            detail = _tail(output.stdout + "\n" + output.stderr)
            reason = f"Compiler exited with code {output.returncode}"
            if detail:
                reason = f"{reason}: {detail}"
            raise PackageExecutionError(
                package.name, reason, returncode=output.returncode, stderr=output.stderr
            )

        return output.stdout

    async def _analyze(self, package: Package) -> HotSpotMetrics:
        """Run analyze-trace over the fresh bundle. Failures degrade to zeros."""
        try:
            return await self._run_analyzer(package)
        except AnalysisError as e:
            logger.warning("%s: hot-spot analysis unavailable: %s", package.name, e.reason)
            return HotSpotMetrics()

    async def _run_analyzer(self, package: Package) -> HotSpotMetrics:
        trace_path = self.trace_path(package)
        analyze_file = trace_path / ANALYZE_FILE_NAME
        argv = analyze_trace_argv(self.config, trace_path)

        try:
            output = await run_process(argv, package.absolute_path, self._env)
        except OSError as e:
            raise AnalysisError(package.name, f"Cannot start analyzer: {e}")

        # A non-zero exit can still carry a valid report (hot spots found),
        # so only the content decides.
        if not output.stdout.strip():
            raise AnalysisError(
                package.name,
                f"Analyzer produced no output (exit code {output.returncode})",
            )

        try:
            await asyncio.to_thread(analyze_file.write_text, output.stdout, "utf-8")
        except OSError as e:
            raise AnalysisError(package.name, f"Cannot write {analyze_file}: {e}")

        report = load_hot_spot_report(analyze_file)
        if report is None:
            raise AnalysisError(
                package.name, f"Analyzer output is not JSON (exit code {output.returncode})"
            )
        return aggregate_hot_spots(report, analyze_file_size=analyze_file.stat().st_size)

    async def _collect_cached(self, package: Package) -> PackageResult:
        """Reuse whatever trace an earlier run left behind; zeros if none."""
        start = time.perf_counter()
        trace_path = self.trace_path(package)
        analyze_file = trace_path / ANALYZE_FILE_NAME

        try:
            trace = await asyncio.to_thread(read_trace_bundle, package.name, trace_path)
        except ArtifactError as e:
            logger.debug("%s: no previous trace for cached package (%s)", package.name, e.reason)
            trace = TraceMetrics()

        report = await asyncio.to_thread(load_hot_spot_report, analyze_file)
        size = analyze_file.stat().st_size if report is not None else 0
        hot_spots = aggregate_hot_spots(report, analyze_file_size=size)

        logger.info("[CACHED] %s", package.name)
        return PackageSuccess(
            package=package,
            duration_ms=elapsed_ms(start),
            cached=True,
            trace=trace,
            hot_spots=hot_spots,
        )
