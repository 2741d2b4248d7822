"""Write a scan and its package results in a single transaction."""

from __future__ import annotations

import json
import sqlite3
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional

from ..exceptions import StorageError
from ..logging_config import get_logger
from ..models import PackageResult, PackageSuccess, Scan
from .database import METRIC_COLUMNS

logger = get_logger(__name__)

_SCAN_COLUMNS = (
    "version",
    "owner",
    "repository",
    "changed",
    "insertions",
    "deletions",
    "commit_hash",
    "commit_message",
    "commit_date",
    "scanned_at",
    "cpus",
)

_RESULT_COLUMNS = (
    "scan_id",
    "package",
    "package_path",
    "is_success",
    "is_cached",
    "duration_ms",
    *(name for name, _ in METRIC_COLUMNS),
    "extra_diagnostics",
    "error",
    "error_code",
)


def to_epoch_ms(value: datetime) -> int:
    """Datetime to UTC epoch milliseconds; naive values are taken as local time."""
    if value.tzinfo is None:
        value = value.astimezone()
    return int(value.astimezone(timezone.utc).timestamp() * 1000)


def _scan_row(scan: Scan) -> tuple[Any, ...]:
    return (
        scan.tool_version,
        scan.owner,
        scan.repository,
        scan.commit.files_changed,
        scan.commit.insertions,
        scan.commit.deletions,
        scan.commit.hash,
        scan.commit.message,
        to_epoch_ms(scan.commit.date),
        to_epoch_ms(scan.scanned_at),
        scan.host.descriptor,
    )


def _result_row(scan_id: int, result: PackageResult) -> tuple[Any, ...]:
    metrics: dict[str, Any] = {name: 0 for name, _ in METRIC_COLUMNS}
    extra = "{}"
    error: Optional[str] = None
    error_code: Optional[str] = None

    if isinstance(result, PackageSuccess):
        diagnostics = asdict(result.diagnostics)
        extra = json.dumps(diagnostics.pop("extra"), sort_keys=True)
        metrics.update(diagnostics)
        metrics.update(asdict(result.trace))
        metrics.update(asdict(result.hot_spots))
    else:
        error = result.error
        error_code = result.error_code.value

    return (
        scan_id,
        result.package.name,
        str(result.package.absolute_path),
        int(result.success),
        int(result.cached),
        float(result.duration_ms),
        *(metrics[name] for name, _ in METRIC_COLUMNS),
        extra,
        error,
        error_code,
    )


def save_scan(conn: sqlite3.Connection, scan: Scan, results: Iterable[PackageResult]) -> int:
    """Persist a scan and its results atomically.

    A scan for the same ``(repository, commit hash)`` is updated in place,
    and results for the same ``(scan, package)`` replace the stored row.
    Either everything is written or nothing is.

    Parameters
    ----------
    conn:
        An open ``sqlite3.Connection`` (from ``HistoryDB.connect()``).
    scan:
        The scan metadata.
    results:
        One result per benchmarked package.

    Returns
    -------
    int
        The ``scan.id`` of the inserted or updated row.

    Raises
    ------
    StorageError
        If any statement fails; the transaction is rolled back.
    """
    results = list(results)
    cur = conn.cursor()
    try:
        cur.execute("BEGIN")

        # ── scan row (upsert) ────────────────────────────────────
        placeholders = ", ".join("?" for _ in _SCAN_COLUMNS)
        updates = ", ".join(f"{col} = excluded.{col}" for col in _SCAN_COLUMNS)
        cur.execute(
            f"""
            INSERT INTO scan ({", ".join(_SCAN_COLUMNS)})
            VALUES ({placeholders})
            ON CONFLICT(repository, commit_hash) DO UPDATE SET {updates}
            """,
            _scan_row(scan),
        )
        row = cur.execute(
            "SELECT id FROM scan WHERE repository = ? AND commit_hash = ?",
            (scan.repository, scan.commit.hash),
        ).fetchone()
        if row is None:
            raise sqlite3.IntegrityError("scan row missing after upsert")
        scan_id = int(row[0])

        # ── result rows (batch upsert) ───────────────────────────
        if results:
            placeholders = ", ".join("?" for _ in _RESULT_COLUMNS)
            updates = ", ".join(
                f"{col} = excluded.{col}"
                for col in _RESULT_COLUMNS
                if col not in ("scan_id", "package")
            )
            cur.executemany(
                f"""
                INSERT INTO result ({", ".join(_RESULT_COLUMNS)})
                VALUES ({placeholders})
                ON CONFLICT(scan_id, package) DO UPDATE SET {updates}
                """,
                [_result_row(scan_id, r) for r in results],
            )

        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        raise StorageError(_database_path(conn), str(e)) from e
    except Exception:
        conn.rollback()
        raise

    logger.info(
        "Saved scan %d (%s/%s @ %s) with %d results",
        scan_id,
        scan.owner,
        scan.repository,
        scan.commit.hash[:8],
        len(results),
    )
    return scan_id


def _database_path(conn: sqlite3.Connection) -> Path:
    try:
        row = conn.execute("PRAGMA database_list").fetchone()
    except sqlite3.Error:
        return Path("<unknown>")
    return Path(row[2] or ":memory:") if row else Path("<unknown>")

