"""SQLite-backed history database (``.tsc-bench/history.db`` by default)."""

from __future__ import annotations

import sqlite3
from dataclasses import fields
from pathlib import Path
from typing import Optional, Union

from ..exceptions import StorageError
from ..logging_config import get_logger
from ..models import DiagnosticMetrics, HotSpotMetrics, TraceMetrics

logger = get_logger(__name__)

# Current schema version (bump when tables change).
_SCHEMA_VERSION = 1

IN_MEMORY = ":memory:"


def _metric_columns(cls: type, exclude: tuple[str, ...] = ()) -> list[tuple[str, str]]:
    sql_types = {"int": "INTEGER", "float": "REAL"}
    return [
        (f.name, sql_types[str(f.type)])
        for f in fields(cls)
        if f.name not in exclude
    ]


# (column, sqlite type) for every metric stored on a result row.
DIAGNOSTIC_COLUMNS = _metric_columns(DiagnosticMetrics, exclude=("extra",))
TRACE_COLUMNS = _metric_columns(TraceMetrics)
HOT_SPOT_COLUMNS = _metric_columns(HotSpotMetrics)
METRIC_COLUMNS = DIAGNOSTIC_COLUMNS + TRACE_COLUMNS + HOT_SPOT_COLUMNS


class HistoryDB:
    """Owns one connection to the history database.

    The handle is passed explicitly to the writer and reader functions so a
    run, or a test, controls its own connection lifecycle. ``":memory:"``
    gives a throwaway database.

    Usage::

        with HistoryDB(repo_root / ".tsc-bench" / "history.db") as db:
            save_scan(db.conn, scan, results)
    """

    def __init__(self, db_path: Union[str, Path]) -> None:
        self.in_memory = str(db_path) == IN_MEMORY
        self.db_path: Path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def conn(self) -> sqlite3.Connection:
        """Return the active connection. Raises if not connected."""
        if self._conn is None:
            raise RuntimeError("HistoryDB is not connected. Use as context manager or call connect().")
        return self._conn

    # ── lifecycle ─────────────────────────────────────────────────

    def _ensure_dir(self) -> None:
        """Create the database directory with a .gitignore so it stays untracked."""
        db_dir = self.db_path.parent
        db_dir.mkdir(parents=True, exist_ok=True)
        gitignore = db_dir / ".gitignore"
        if db_dir.name.startswith(".") and not gitignore.exists():
            gitignore.write_text("*\n")

    def connect(self) -> sqlite3.Connection:
        """Open (or create) the database and create missing tables.

        Raises:
            StorageError: If the file cannot be created or opened.
        """
        try:
            if self.in_memory:
                conn = sqlite3.connect(IN_MEMORY)
            else:
                self._ensure_dir()
                conn = sqlite3.connect(str(self.db_path))
                conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            conn.row_factory = sqlite3.Row
            self._conn = conn
            self._migrate()
        except (sqlite3.Error, OSError) as e:
            self.close()
            raise StorageError(self.db_path, str(e)) from e
        logger.debug("History DB connected at %s", self.db_path)
        return conn

    def close(self) -> None:
        """Close the connection if open."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "HistoryDB":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ── schema ────────────────────────────────────────────────────

    def _migrate(self) -> None:
        """Idempotently create all tables."""
        c = self.conn

        c.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER NOT NULL
            )
            """
        )
        row = c.execute("SELECT version FROM schema_version").fetchone()
        if row is None:
            c.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (_SCHEMA_VERSION,),
            )
        elif row["version"] > _SCHEMA_VERSION:
            raise sqlite3.DatabaseError(
                f"database schema v{row['version']} is newer than supported v{_SCHEMA_VERSION}"
            )

        # ── scan ─────────────────────────────────────────────────
        # Dates are epoch milliseconds (UTC) so ORDER BY is chronological.
        c.execute(
            """
            CREATE TABLE IF NOT EXISTS scan (
                id              INTEGER PRIMARY KEY AUTOINCREMENT,
                version         TEXT    NOT NULL,
                owner           TEXT    NOT NULL,
                repository      TEXT    NOT NULL,
                changed         INTEGER,
                insertions      INTEGER,
                deletions       INTEGER,
                commit_hash     TEXT    NOT NULL,
                commit_message  TEXT    NOT NULL,
                commit_date     INTEGER NOT NULL,
                scanned_at      INTEGER NOT NULL,
                cpus            TEXT    NOT NULL
            )
            """
        )

        # ── result ───────────────────────────────────────────────
        metric_ddl = ",\n".join(
            f"                {name:<28}{sql_type:<8}NOT NULL DEFAULT 0"
            for name, sql_type in METRIC_COLUMNS
        )
        c.execute(
            f"""
            CREATE TABLE IF NOT EXISTS result (
                id              INTEGER PRIMARY KEY AUTOINCREMENT,
                scan_id         INTEGER NOT NULL
                                REFERENCES scan(id) ON DELETE CASCADE ON UPDATE CASCADE,
                package         TEXT    NOT NULL,
                package_path    TEXT    NOT NULL DEFAULT '',
                is_success      INTEGER NOT NULL,
                is_cached       INTEGER NOT NULL DEFAULT 0,
                duration_ms     REAL    NOT NULL DEFAULT 0,
{metric_ddl},
                extra_diagnostics TEXT  NOT NULL DEFAULT '{{}}',
                error           TEXT,
                error_code      TEXT
            )
            """
        )

        # ── indexes ──────────────────────────────────────────────
        c.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS uq_scan_repository_commit_hash "
            "ON scan(repository, commit_hash)"
        )
        c.execute("CREATE INDEX IF NOT EXISTS idx_scan_commit_date ON scan(commit_date)")
        c.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS uq_result_scan_id_package ON result(scan_id, package)"
        )

        c.commit()
