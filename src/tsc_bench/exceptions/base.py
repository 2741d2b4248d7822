"""Base exception for tsc-bench."""

from typing import Any, Mapping, Optional

from .taxonomy import ErrorCode


class TscBenchError(Exception):
    """Base exception for all tsc-bench errors.

    ``code`` classifies the error: it is stored with failed package results
    and decides the exit status when a command stops on the error. Detail
    values are kept as strings so they serialize into the history database
    and JSON output unchanged.
    """

    code: ErrorCode = ErrorCode.INFRASTRUCTURE_ERROR

    def __init__(self, message: str, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = {key: str(value) for key, value in (details or {}).items()}

    @property
    def exit_code(self) -> int:
        """1 for errors that stop a run, 0 for errors a run records and survives."""
        return 1 if self.code.is_fatal else 0

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message
