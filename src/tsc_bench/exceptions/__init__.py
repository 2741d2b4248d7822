"""Exception hierarchy for tsc-bench."""

from .base import TscBenchError
from .infrastructure import (
    ConfigurationError,
    GitMetadataError,
    InfrastructureError,
    StorageError,
)
from .package import (
    AnalysisError,
    ArtifactError,
    PackageError,
    PackageExecutionError,
    RunCancelledError,
)
from .taxonomy import ErrorCode

__all__ = [
    "TscBenchError",
    "ErrorCode",
    "PackageError",
    "PackageExecutionError",
    "ArtifactError",
    "AnalysisError",
    "RunCancelledError",
    "InfrastructureError",
    "StorageError",
    "GitMetadataError",
    "ConfigurationError",
]
