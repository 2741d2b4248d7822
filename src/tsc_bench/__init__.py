"""
tsc-bench - TypeScript compiler performance tracking for monorepos.

Runs ``tsc --extendedDiagnostics --generateTrace`` for every package of a
repository, records the metrics against the current commit in a local
history database and reports what changed since the previous run.
"""

__version__ = "0.3.0"

from .bench import BenchOutcome, run_bench
from .models import Package, PackageFailure, PackageResult, PackageSuccess, Scan

__all__ = [
    "run_bench",  # Main entry point
    "BenchOutcome",
    "Package",
    "PackageResult",
    "PackageSuccess",
    "PackageFailure",
    "Scan",
]
