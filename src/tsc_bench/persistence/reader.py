"""Read scans back from the history database."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from ..models import (
    CommitInfo,
    DiagnosticMetrics,
    HotSpotMetrics,
    StoredResult,
    StoredScan,
    TraceMetrics,
)
from .database import DIAGNOSTIC_COLUMNS, HOT_SPOT_COLUMNS, TRACE_COLUMNS


def from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)


def load_recent_scans(
    conn: sqlite3.Connection, limit: int = 2, offset: int = 0
) -> list[StoredScan]:
    """The ``limit`` most recent scans by commit date, newest first.

    Parameters
    ----------
    conn:
        An open ``sqlite3.Connection`` (from ``HistoryDB.connect()``).
    limit:
        Maximum number of scans to return.
    offset:
        Number of newer scans to skip.

    Returns
    -------
    list[StoredScan]
        Scans with their package results attached.
    """
    rows = conn.execute(
        """
        SELECT * FROM scan
        ORDER BY commit_date DESC, id DESC
        LIMIT ? OFFSET ?
        """,
        (limit, offset),
    ).fetchall()
    return [_hydrate(conn, row) for row in rows]


def load_scan_by_commit(
    conn: sqlite3.Connection, repository: str, commit_hash: str
) -> Optional[StoredScan]:
    """The scan recorded for a commit, or ``None``.

    ``commit_hash`` may be an abbreviated hash.
    """
    row = conn.execute(
        """
        SELECT * FROM scan
        WHERE repository = ? AND commit_hash LIKE ? || '%'
        ORDER BY commit_date DESC
        LIMIT 1
        """,
        (repository, commit_hash),
    ).fetchone()
    if row is None:
        return None
    return _hydrate(conn, row)


def load_previous_scan(conn: sqlite3.Connection, scan_id: int) -> Optional[StoredScan]:
    """The scan immediately preceding ``scan_id`` by commit date, or ``None``."""
    row = conn.execute(
        """
        SELECT prev.* FROM scan AS cur
        JOIN scan AS prev
          ON prev.repository = cur.repository
         AND prev.id != cur.id
         AND (prev.commit_date < cur.commit_date
              OR (prev.commit_date = cur.commit_date AND prev.id < cur.id))
        WHERE cur.id = ?
        ORDER BY prev.commit_date DESC, prev.id DESC
        LIMIT 1
        """,
        (scan_id,),
    ).fetchone()
    if row is None:
        return None
    return _hydrate(conn, row)


def count_scans(conn: sqlite3.Connection) -> int:
    return int(conn.execute("SELECT COUNT(*) FROM scan").fetchone()[0])


# ── hydration ────────────────────────────────────────────────────


def _hydrate(conn: sqlite3.Connection, row: sqlite3.Row) -> StoredScan:
    result_rows = conn.execute(
        "SELECT * FROM result WHERE scan_id = ? ORDER BY package",
        (row["id"],),
    ).fetchall()

    return StoredScan(
        id=row["id"],
        tool_version=row["version"],
        owner=row["owner"],
        repository=row["repository"],
        commit=CommitInfo(
            hash=row["commit_hash"],
            message=row["commit_message"],
            date=from_epoch_ms(row["commit_date"]),
            files_changed=row["changed"],
            insertions=row["insertions"],
            deletions=row["deletions"],
        ),
        scanned_at=from_epoch_ms(row["scanned_at"]),
        cpus=row["cpus"],
        results=[_hydrate_result(r) for r in result_rows],
    )


def _hydrate_result(row: sqlite3.Row) -> StoredResult:
    try:
        extra = json.loads(row["extra_diagnostics"] or "{}")
    except json.JSONDecodeError:
        extra = {}

    diagnostics = DiagnosticMetrics(
        extra=extra, **{name: row[name] for name, _ in DIAGNOSTIC_COLUMNS}
    )
    trace = TraceMetrics(**{name: row[name] for name, _ in TRACE_COLUMNS})
    hot_spots = HotSpotMetrics(**{name: row[name] for name, _ in HOT_SPOT_COLUMNS})

    return StoredResult(
        package=row["package"],
        success=bool(row["is_success"]),
        cached=bool(row["is_cached"]),
        duration_ms=row["duration_ms"],
        error=row["error"],
        error_code=row["error_code"],
        diagnostics=diagnostics,
        trace=trace,
        hot_spots=hot_spots,
    )
