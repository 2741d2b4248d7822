"""Error codes attached to package results and infrastructure failures.

Package-level codes are stored alongside a failed ``PackageResult`` so the
history database can tell a broken compile from a missing artifact.
Infrastructure codes only ever appear on exceptions that abort a run.
"""

from enum import Enum


class ErrorCode(Enum):
    """Structured error codes for results and logs."""

    # Package-level (recorded, run continues)
    EXECUTION_ERROR = "EXECUTION_ERROR"  # compiler failed or was not found
    ANALYSIS_ERROR = "ANALYSIS_ERROR"  # hot-spot analysis failed (degrades only)
    ARTIFACT_READ_ERROR = "ARTIFACT_READ_ERROR"  # trace/type file missing or corrupt
    CANCELLED = "CANCELLED"  # run deadline hit before the package finished

    # Infrastructure-level (fatal)
    INFRASTRUCTURE_ERROR = "INFRASTRUCTURE_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    @property
    def is_fatal(self) -> bool:
        return self in (
            ErrorCode.INFRASTRUCTURE_ERROR,
            ErrorCode.STORAGE_ERROR,
            ErrorCode.CONFIGURATION_ERROR,
        )
