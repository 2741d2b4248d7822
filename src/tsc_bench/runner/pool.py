"""Run the package runner over many packages with bounded concurrency.

A semaphore gates admission: at most ``max_concurrency`` packages compile
at once and the next queued package starts as soon as one finishes. The
pool returns only once every package has a result. A deadline or a
cancel event stops the run early: running compiles are killed, and every
package without a result gets a ``CANCELLED`` failure.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Iterable, Optional, Protocol, Sequence

from ..exceptions import InfrastructureError, RunCancelledError
from ..logging_config import get_logger
from ..models import Package, PackageFailure, PackageResult
from .package_runner import elapsed_ms

logger = get_logger(__name__)

CachePredicate = Callable[[Package], bool]


class Runner(Protocol):
    async def run(self, package: Package, cached: bool = False) -> PackageResult: ...


def _never_cached(package: Package) -> bool:
    return False


class WorkerPool:
    """Dispatches ``Runner.run`` for each package.

    Usage::

        pool = WorkerPool(PackageRunner(config), max_concurrency=6)
        results = await pool.run(packages, deadline=3600)
    """

    def __init__(
        self,
        runner: Runner,
        max_concurrency: int,
        is_cached: Optional[CachePredicate] = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.runner = runner
        self.max_concurrency = max_concurrency
        self.is_cached = is_cached or _never_cached

    async def run(
        self,
        packages: Sequence[Package],
        deadline: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> list[PackageResult]:
        """Benchmark every package and return one result per package.

        Results come back in input order regardless of completion order.

        Args:
            packages: Packages to benchmark.
            deadline: Seconds the whole run may take (None = unlimited).
            cancel_event: Setting this event cancels the run like a deadline.

        Raises:
            InfrastructureError: A runner hit a machine-level failure; the
                remaining packages are cancelled first.
        """
        if not packages:
            return []

        semaphore = asyncio.Semaphore(self.max_concurrency)
        started: dict[int, float] = {}

        async def run_one(index: int, package: Package) -> PackageResult:
            async with semaphore:
                started[index] = time.perf_counter()
                return await self.runner.run(package, cached=self.is_cached(package))

        tasks = [
            asyncio.create_task(run_one(i, pkg), name=f"tsc-bench:{pkg.name}")
            for i, pkg in enumerate(packages)
        ]
        logger.info(
            "Benchmarking %d packages with concurrency %d", len(packages), self.max_concurrency
        )

        try:
            cancelled_reason = await self._wait(tasks, deadline, cancel_event)
        finally:
            await self._cancel_pending(tasks)

        results: list[PackageResult] = []
        for index, (package, task) in enumerate(zip(packages, tasks)):
            if task.cancelled():
                reason = cancelled_reason or "Run cancelled before package completed"
                if index not in started:
                    reason = f"{reason} (not started)"
                error = RunCancelledError(package.name, reason)
                duration = elapsed_ms(started[index]) if index in started else 0.0
                results.append(
                    PackageFailure(
                        package=package,
                        duration_ms=duration,
                        error=str(error),
                        error_code=error.code,
                    )
                )
            elif task.exception() is not None:
                exc = task.exception()
                logger.error("Runner crashed on %s", package.name, exc_info=exc)
                results.append(
                    PackageFailure(
                        package=package,
                        duration_ms=elapsed_ms(started[index]) if index in started else 0.0,
                        error=f"{type(exc).__name__}: {exc}",
                    )
                )
            else:
                results.append(task.result())

        failed = sum(1 for r in results if not r.success)
        logger.info("Finished %d packages (%d failed)", len(results), failed)
        return results

    async def _wait(
        self,
        tasks: list[asyncio.Task],
        deadline: Optional[float],
        cancel_event: Optional[asyncio.Event],
    ) -> Optional[str]:
        """Wait for all tasks; return a cancellation reason if stopped early."""
        loop = asyncio.get_running_loop()
        expires_at = None if deadline is None else loop.time() + deadline
        pending: set[asyncio.Future] = set(tasks)
        event_waiter: Optional[asyncio.Task] = None
        if cancel_event is not None:
            event_waiter = asyncio.create_task(cancel_event.wait())

        try:
            while pending:
                timeout = None if expires_at is None else max(0.0, expires_at - loop.time())
                wait_on = set(pending)
                if event_waiter is not None:
                    wait_on.add(event_waiter)

                done, _ = await asyncio.wait(
                    wait_on, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
                )

                if not done:
                    logger.warning(
                        "Deadline of %.0fs reached; cancelling %d packages",
                        deadline,
                        len(pending),
                    )
                    return f"Run deadline of {deadline:.0f}s exceeded"

                if event_waiter is not None and event_waiter in done:
                    logger.warning("Run cancelled; cancelling %d packages", len(pending))
                    return "Run cancelled"

                for task in done:
                    pending.discard(task)
                    if not task.cancelled() and isinstance(task.exception(), InfrastructureError):
                        raise task.exception()  # type: ignore[misc]
            return None
        finally:
            if event_waiter is not None and not event_waiter.done():
                event_waiter.cancel()

    @staticmethod
    async def _cancel_pending(tasks: Iterable[asyncio.Task]) -> None:
        """Cancel unfinished tasks and wait until their processes are reaped."""
        unfinished = [t for t in tasks if not t.done()]
        for task in unfinished:
            task.cancel()
        if unfinished:
            await asyncio.gather(*unfinished, return_exceptions=True)


def run_packages(
    runner: Runner,
    packages: Sequence[Package],
    max_concurrency: int,
    is_cached: Optional[CachePredicate] = None,
    deadline: Optional[float] = None,
) -> list[PackageResult]:
    """Synchronous entry point: run the pool on a fresh event loop."""
    pool = WorkerPool(runner, max_concurrency=max_concurrency, is_cached=is_cached)
    return asyncio.run(pool.run(packages, deadline=deadline))
