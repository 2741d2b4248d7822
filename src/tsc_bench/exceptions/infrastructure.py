"""Run-level errors: anything here aborts the whole benchmark."""

from pathlib import Path
from typing import Any, Optional

from .base import TscBenchError
from .taxonomy import ErrorCode


class InfrastructureError(TscBenchError):
    """Raised when the run itself cannot proceed (processes, git, storage)."""

    code = ErrorCode.INFRASTRUCTURE_ERROR


class StorageError(InfrastructureError):
    """Raised when the history database cannot be opened or written."""

    code = ErrorCode.STORAGE_ERROR

    def __init__(self, db_path: Path, reason: str):
        super().__init__(
            f"History database error: {reason}",
            details={"db_path": db_path},
        )
        self.db_path = db_path
        self.reason = reason


class GitMetadataError(InfrastructureError):
    """Raised when commit metadata for the scan cannot be read."""

    def __init__(self, repo_path: Path, reason: str):
        super().__init__(f"Cannot read git metadata: {reason}", details={"repo": repo_path})
        self.repo_path = repo_path
        self.reason = reason


class ConfigurationError(TscBenchError):
    """Raised when configuration values or files are invalid."""

    code = ErrorCode.CONFIGURATION_ERROR

    def __init__(self, message: str, key: Optional[str] = None, value: Any = None):
        details: dict[str, Any] = {}
        if key is not None:
            details["key"] = key
            details["value"] = value
        super().__init__(message, details=details)
        self.key = key
        self.value = value
