"""Configuration loading and management for tsc-bench.

Configuration sources are merged in priority order:
    1. Defaults (defined in BenchConfig)
    2. Global config (~/.tsc-bench.toml)
    3. Project config (./tsc-bench.toml)
    4. Explicit config file
    5. Environment variables (TSBENCH_* prefix)
    6. CLI overrides (passed as kwargs)

Example:
    >>> config = load_config(workers=4, timeout_minutes=30)
    >>> config.workers
    4
    >>> config.deadline_seconds
    1800.0
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Optional, get_type_hints

from .exceptions import ConfigurationError

Verbosity = Literal["quiet", "normal", "verbose"]

# Share of logical cores used for concurrent compiles. The rest is left to
# the measured tsc processes so contention does not skew their timings.
CPU_USAGE_RATIO = 0.8


def default_concurrency(logical_cores: int) -> int:
    """80% of the logical cores, floored, never below one.

    >>> [default_concurrency(n) for n in (1, 4, 8, 16)]
    [1, 3, 6, 12]
    """
    return max(1, int(logical_cores * CPU_USAGE_RATIO))


@dataclass(frozen=True)
class BenchConfig:
    """Configuration for a benchmark run.

    Attributes:
        Concurrency:
            workers: Packages compiled at once (None = 80% of logical cores)
            timeout_minutes: Deadline for the whole run (0 = no deadline)

        Compiler invocation:
            compiler_command: Argv prefix that launches tsc
            max_old_space_size_mb: Node heap ceiling passed via NODE_OPTIONS
            trace_dir: Package-relative directory for --generateTrace output

        Hot-spot analysis:
            analyzer_command: Argv prefix that launches analyze-trace
            skip_millis: Events shorter than this are ignored
            force_millis: Events longer than this are always reported

        Build cache:
            use_build_cache: Skip compiles for packages turbo reports as cached

        Storage and output:
            db_path: History database location (relative to repository root)
            report_path: Markdown report written after each run

        Span runs:
            prepare_commands: Shell commands run after each checkout

        Output control:
            verbosity: Logging verbosity level
    """

    # Concurrency
    workers: Optional[int] = None
    timeout_minutes: float = 60.0

    # Compiler invocation
    compiler_command: list[str] = field(default_factory=lambda: ["npx", "tsc"])
    max_old_space_size_mb: int = 6144
    trace_dir: str = ".tsc-bench-trace"

    # Hot-spot analysis (defaults of @typescript/analyze-trace are 100 / 500)
    analyzer_command: list[str] = field(
        default_factory=lambda: ["npx", "@typescript/analyze-trace"]
    )
    skip_millis: int = 100
    force_millis: int = 150

    # Build cache
    use_build_cache: bool = True

    # Storage and output
    db_path: str = ".tsc-bench/history.db"
    report_path: str = "ts-bench-report.md"

    # Span runs
    prepare_commands: list[str] = field(
        default_factory=lambda: ["pnpm install", "pnpm build"]
    )

    # Output control
    verbosity: Verbosity = "normal"

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.workers is not None and self.workers < 1:
            raise ValueError("workers must be at least 1")
        if self.timeout_minutes < 0:
            raise ValueError("timeout_minutes must be non-negative")

        if not self.compiler_command:
            raise ValueError("compiler_command must not be empty")
        if not self.analyzer_command:
            raise ValueError("analyzer_command must not be empty")
        if self.max_old_space_size_mb < 128:
            raise ValueError("max_old_space_size_mb must be at least 128")
        if not self.trace_dir or Path(self.trace_dir).is_absolute():
            raise ValueError("trace_dir must be a non-empty relative path")

        if self.skip_millis < 0 or self.force_millis < 0:
            raise ValueError("skip_millis and force_millis must be non-negative")
        if self.force_millis < self.skip_millis:
            raise ValueError("force_millis must not be smaller than skip_millis")

        if self.verbosity not in ("quiet", "normal", "verbose"):
            raise ValueError(f"verbosity must be quiet, normal or verbose, got {self.verbosity!r}")

    @property
    def deadline_seconds(self) -> Optional[float]:
        """Whole-run deadline in seconds, or None when disabled."""
        if self.timeout_minutes == 0:
            return None
        return float(self.timeout_minutes * 60)

    def resolve_workers(self, logical_cores: int) -> int:
        """Explicit worker count, or the CPU-derived default."""
        if self.workers is not None:
            return self.workers
        return default_concurrency(logical_cores)


def load_config(config_file: Optional[Path] = None, **overrides) -> BenchConfig:
    """Load configuration with auto-discovery and merging.

    Args:
        config_file: Optional explicit config file path
        **overrides: Direct overrides (typically from CLI flags); ``None``
            values are ignored so unset options fall through to files.

    Returns:
        Validated BenchConfig instance

    Raises:
        ConfigurationError: If a config file is invalid or missing, or a
            value fails validation

    Example:
        >>> config = load_config(config_file=Path("ci.toml"), verbose=True)
        >>> config.verbosity
        'verbose'
    """
    merged: dict = {}

    global_config = Path.home() / ".tsc-bench.toml"
    if global_config.exists():
        try:
            merged.update(_load_toml_file(global_config))
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Invalid global config '{global_config}': {e}")

    project_config = Path.cwd() / "tsc-bench.toml"
    if project_config.exists():
        try:
            merged.update(_load_toml_file(project_config))
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Invalid project config '{project_config}': {e}")

    if config_file is not None:
        if not config_file.exists():
            raise ConfigurationError(f"Config file not found: {config_file}")
        try:
            merged.update(_load_toml_file(config_file))
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Invalid config file '{config_file}': {e}")

    merged.update(_load_env_vars())

    # Convert verbosity boolean flags to string
    if "verbose" in overrides:
        if overrides["verbose"]:
            overrides["verbosity"] = "verbose"
        del overrides["verbose"]
    if "quiet" in overrides:
        if overrides["quiet"]:
            overrides["verbosity"] = "quiet"
        del overrides["quiet"]

    merged.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return BenchConfig(**merged)
    except TypeError as e:
        # Unknown field in config
        raise ConfigurationError(f"Invalid configuration: {e}")
    except ValueError as e:
        raise ConfigurationError(f"Invalid configuration: {e}")


def _load_env_vars() -> dict[str, Any]:
    """Load configuration from TSBENCH_* environment variables.

    Every scalar field of BenchConfig can be set this way, e.g.
    ``TSBENCH_WORKERS=4`` or ``TSBENCH_USE_BUILD_CACHE=false``. List fields
    are only configurable from TOML.
    """
    type_hints = get_type_hints(BenchConfig)

    result: dict[str, Any] = {}

    for field_name in BenchConfig.__dataclass_fields__:
        env_key = f"TSBENCH_{field_name.upper()}"
        env_value = os.environ.get(env_key)

        if env_value is None:
            continue

        type_hint = type_hints.get(field_name)
        if type_hint is None:
            continue

        try:
            parsed = _parse_env_value(env_value, type_hint)
            if parsed is not None:
                result[field_name] = parsed
        except ValueError as e:
            raise ConfigurationError(f"Invalid {env_key}: {e}", key=env_key, value=env_value)

    return result


def _parse_env_value(value: str, type_hint: Any) -> Any:
    """Parse environment variable string to the correct type.

    Returns None for types that cannot be expressed as a single string.

    Raises:
        ValueError: If value can't be parsed to expected type
    """
    origin = getattr(type_hint, "__origin__", None)

    # Optional[X] is Union[X, None]
    args = getattr(type_hint, "__args__", ())
    if type(None) in args:
        non_none_types = [t for t in args if t is not type(None)]
        if non_none_types:
            type_hint = non_none_types[0]
            origin = getattr(type_hint, "__origin__", None)

    if origin is list or type_hint is list:
        return None

    if type_hint is bool:
        lower = value.lower()
        if lower in ("true", "1", "yes", "on"):
            return True
        elif lower in ("false", "0", "no", "off"):
            return False
        else:
            raise ValueError(f"expected true/false, got '{value}'")

    if type_hint is int:
        return int(value)

    if type_hint is float:
        return float(value)

    # String (including Literal types like Verbosity)
    if type_hint is str or origin is Literal:
        return value

    return None


def _load_toml_file(path: Path) -> dict:
    """Load TOML file and return parsed dict.

    A ``[tool.tsc-bench]`` table is honoured so the same keys can live in a
    shared pyproject-style file.
    """
    try:
        # Python 3.11+ has tomllib in stdlib
        import tomllib
    except ModuleNotFoundError:
        try:
            # Fallback to tomli for Python 3.10
            import tomli as tomllib  # type: ignore
        except ImportError:
            raise ConfigurationError(
                "TOML support requires Python 3.11+ or 'tomli' package. "
                "Install with: pip install tomli"
            )

    with open(path, "rb") as f:
        data = tomllib.load(f)

    tool_section = data.get("tool", {}).get("tsc-bench")
    if isinstance(tool_section, dict):
        return dict(tool_section)
    return data
