"""
Logging configuration for tsc-bench.

Log records go to stderr through rich so they never interleave with the
tables and JSON that commands print on stdout. An optional log file keeps
the full DEBUG stream (compiler and analyzer output included) whatever the
console verbosity, so a CI job can upload it after a failed run.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "tsc_bench"

CONSOLE_LEVELS = {
    "quiet": logging.ERROR,
    "normal": logging.INFO,
    "verbose": logging.DEBUG,
}

FILE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging(
    verbosity: str = "normal", log_file: Optional[Union[str, Path]] = None
) -> logging.Logger:
    """
    Route tsc_bench records to a rich console handler and, optionally, a file.

    Args:
        verbosity: ``quiet``, ``normal`` or ``verbose`` (console level only)
        log_file: File that receives every record at DEBUG level. Parent
                  directories are created; the file is appended to.

    Returns:
        The ``tsc_bench`` logger
    """
    console_level = CONSOLE_LEVELS[verbosity]
    verbose = verbosity == "verbose"

    console_handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        tracebacks_show_locals=verbose,
        markup=False,
        show_time=True,
        show_path=verbose,
    )
    console_handler.setLevel(console_level)
    handlers: list[logging.Handler] = [console_handler]

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handlers.append(file_handler)

    # The root logger stays quiet; only our namespace is let through at DEBUG
    # so the file handler sees subprocess output even on a normal console.
    logging.basicConfig(
        level=logging.WARNING, format="%(message)s", datefmt="[%X]", handlers=handlers, force=True
    )

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if log_file else console_level)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger namespaced under ``tsc_bench`` (``get_logger("runner.pool")``)."""
    if name is None:
        return logging.getLogger(LOGGER_NAME)

    if not name.startswith(LOGGER_NAME):
        name = f"{LOGGER_NAME}.{name}"

    return logging.getLogger(name)
