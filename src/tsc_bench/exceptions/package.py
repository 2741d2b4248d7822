"""Package-level errors: captured into a failed result, never abort a run."""

from typing import Any, Optional

from .base import TscBenchError
from .taxonomy import ErrorCode


class PackageError(TscBenchError):
    """Base class for errors scoped to a single package."""

    code = ErrorCode.EXECUTION_ERROR

    def __init__(self, package_name: str, reason: str, details: Optional[dict] = None):
        merged: dict[str, Any] = {"package": package_name}
        merged.update(details or {})
        super().__init__(reason, details=merged)
        self.package_name = package_name
        self.reason = reason


class PackageExecutionError(PackageError):
    """Raised when the compiler process exits non-zero or cannot be spawned."""

    code = ErrorCode.EXECUTION_ERROR

    def __init__(
        self,
        package_name: str,
        reason: str,
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        details: dict[str, Any] = {}
        if returncode is not None:
            details["returncode"] = returncode
        super().__init__(package_name, reason, details=details)
        self.returncode = returncode
        self.stderr = stderr


class ArtifactError(PackageError):
    """Raised when a trace artifact is missing or unparsable after a successful compile."""

    code = ErrorCode.ARTIFACT_READ_ERROR

    def __init__(self, package_name: str, path: str, reason: str):
        super().__init__(
            package_name,
            f"Cannot read trace artifact {path}: {reason}",
            details={"path": path},
        )
        self.path = path


class AnalysisError(PackageError):
    """Raised when the hot-spot analysis pass fails.

    The package runner catches this and degrades hot-spot metrics to zero.
    """

    code = ErrorCode.ANALYSIS_ERROR


class RunCancelledError(PackageError):
    """Marks a package that was interrupted or never started before the deadline."""

    code = ErrorCode.CANCELLED

    def __init__(self, package_name: str, reason: str = "Run cancelled before package completed"):
        super().__init__(package_name, reason)
