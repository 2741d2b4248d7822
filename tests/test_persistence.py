"""Tests for the history database (schema, writer, reader)."""

from datetime import datetime, timedelta, timezone

import pytest

from tsc_bench.exceptions import ErrorCode, StorageError
from tsc_bench.models import (
    CommitInfo,
    DiagnosticMetrics,
    HostInfo,
    HotSpotMetrics,
    Package,
    PackageFailure,
    PackageSuccess,
    Scan,
    TraceMetrics,
)
from tsc_bench.persistence import (
    HistoryDB,
    load_previous_scan,
    load_recent_scans,
    load_scan_by_commit,
    save_scan,
)
from tsc_bench.persistence.reader import count_scans

BASE_DATE = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _scan(commit_hash="a" * 40, days=0, repository="monorepo"):
    return Scan(
        tool_version="0.3.0",
        owner="acme",
        repository=repository,
        commit=CommitInfo(
            hash=commit_hash,
            message=f"commit {commit_hash[:4]}",
            date=BASE_DATE + timedelta(days=days),
            files_changed=3,
            insertions=10,
            deletions=2,
        ),
        host=HostInfo(cpu_model="Test CPU", logical_cores=8),
    )


def _success(name, types=100, total_time=1.5):
    return PackageSuccess(
        package=Package(name=name, absolute_path=f"/repo/packages/{name}"),
        duration_ms=1234.5,
        diagnostics=DiagnosticMetrics(
            types=types, total_time=total_time, memory_used=2048, extra={"emit_blocks": 3}
        ),
        trace=TraceMetrics(num_types=types, num_trace_events=50, types_file_size=999),
        hot_spots=HotSpotMetrics(num_hot_spots=2, duration_ms_hot_spots=420.5),
    )


def _failure(name, error="Compiler exited with code 2"):
    return PackageFailure(
        package=Package(name=name, absolute_path=f"/repo/packages/{name}"),
        duration_ms=10.0,
        error=error,
    )


@pytest.fixture
def db():
    with HistoryDB(":memory:") as handle:
        yield handle


class TestHistoryDB:
    def test_creates_directory_and_gitignore(self, tmp_path):
        path = tmp_path / ".tsc-bench" / "history.db"
        with HistoryDB(path) as handle:
            assert handle.conn is not None
        assert path.exists()
        assert (path.parent / ".gitignore").read_text() == "*\n"

    def test_context_manager_closes(self, tmp_path):
        handle = HistoryDB(tmp_path / "history.db")
        with handle:
            pass
        with pytest.raises(RuntimeError):
            handle.conn

    def test_migrate_idempotent(self, tmp_path):
        path = tmp_path / "history.db"
        with HistoryDB(path) as handle:
            save_scan(handle.conn, _scan(), [_success("app")])
        with HistoryDB(path) as handle:
            assert count_scans(handle.conn) == 1

    def test_unique_indexes_exist(self, db):
        names = {
            r["name"]
            for r in db.conn.execute("SELECT name FROM sqlite_master WHERE type='index'")
        }
        assert "uq_scan_repository_commit_hash" in names
        assert "uq_result_scan_id_package" in names

    def test_unreachable_database(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(StorageError):
            HistoryDB(blocker / "history.db").connect()


class TestSaveScan:
    def test_round_trip(self, db):
        scan_id = save_scan(db.conn, _scan(), [_success("app", types=644), _failure("lib")])

        stored = load_recent_scans(db.conn)[0]

        assert stored.id == scan_id
        assert stored.owner == "acme"
        assert stored.commit.hash == "a" * 40
        assert stored.commit.date == BASE_DATE
        assert stored.commit.files_changed == 3
        assert stored.cpus == "Test CPU x 8"

        app = stored.result_for("app")
        assert app.success
        assert app.diagnostics.types == 644
        assert app.diagnostics.total_time == pytest.approx(1.5)
        assert app.diagnostics.extra == {"emit_blocks": 3}
        assert app.trace.types_file_size == 999
        assert app.hot_spots.duration_ms_hot_spots == pytest.approx(420.5)

    def test_failures_store_zero_metrics(self, db):
        save_scan(db.conn, _scan(), [_failure("lib", error="boom")])

        lib = load_recent_scans(db.conn)[0].result_for("lib")

        assert not lib.success
        assert lib.error == "boom"
        assert lib.error_code == ErrorCode.EXECUTION_ERROR.value
        assert lib.diagnostics.types == 0
        assert lib.trace.num_types == 0

    def test_same_commit_is_replaced_not_duplicated(self, db):
        """Saving a scan twice for one commit keeps one scan and one row per package."""
        first = save_scan(db.conn, _scan(), [_success("app", types=100)])
        second = save_scan(db.conn, _scan(), [_success("app", types=200)])

        assert first == second
        assert count_scans(db.conn) == 1
        rows = db.conn.execute("SELECT COUNT(*) FROM result").fetchone()[0]
        assert rows == 1
        assert load_recent_scans(db.conn)[0].result_for("app").diagnostics.types == 200

    def test_same_commit_other_repository_is_separate(self, db):
        save_scan(db.conn, _scan(repository="one"), [_success("app")])
        save_scan(db.conn, _scan(repository="two"), [_success("app")])
        assert count_scans(db.conn) == 2

    def test_empty_results(self, db):
        scan_id = save_scan(db.conn, _scan(), [])
        assert load_recent_scans(db.conn)[0].id == scan_id
        assert load_recent_scans(db.conn)[0].results == []

    def test_write_is_atomic(self, db):
        """A failing result row rolls back the scan row too."""
        bad = _success("bad")
        bad.diagnostics.files = ["not", "a", "number"]

        with pytest.raises(StorageError):
            save_scan(db.conn, _scan(), [_success("good"), bad])

        assert count_scans(db.conn) == 0
        assert db.conn.execute("SELECT COUNT(*) FROM result").fetchone()[0] == 0

    def test_deleting_scan_cascades(self, db):
        scan_id = save_scan(db.conn, _scan(), [_success("app"), _success("lib")])

        db.conn.execute("DELETE FROM scan WHERE id = ?", (scan_id,))
        db.conn.commit()

        assert db.conn.execute("SELECT COUNT(*) FROM result").fetchone()[0] == 0


class TestReader:
    def test_recent_scans_newest_commit_first(self, db):
        save_scan(db.conn, _scan("b" * 40, days=2), [_success("app")])
        save_scan(db.conn, _scan("a" * 40, days=1), [_success("app")])
        save_scan(db.conn, _scan("c" * 40, days=3), [_success("app")])

        scans = load_recent_scans(db.conn, limit=2)

        assert [s.commit.hash[0] for s in scans] == ["c", "b"]
        assert [s.commit.hash[0] for s in load_recent_scans(db.conn, limit=5, offset=1)] == [
            "b",
            "a",
        ]

    def test_previous_scan(self, db):
        older = save_scan(db.conn, _scan("a" * 40, days=1), [_success("app")])
        newer = save_scan(db.conn, _scan("b" * 40, days=2), [_success("app")])

        assert load_previous_scan(db.conn, newer).id == older
        assert load_previous_scan(db.conn, older) is None

    def test_previous_scan_ignores_other_repositories(self, db):
        save_scan(db.conn, _scan("a" * 40, days=1, repository="other"), [])
        newer = save_scan(db.conn, _scan("b" * 40, days=2), [])
        assert load_previous_scan(db.conn, newer) is None

    def test_results_sorted_by_package(self, db):
        save_scan(db.conn, _scan(), [_success("zeta"), _success("alpha"), _failure("mid")])
        names = [r.package for r in load_recent_scans(db.conn)[0].results]
        assert names == ["alpha", "mid", "zeta"]

    def test_load_by_abbreviated_commit(self, db):
        save_scan(db.conn, _scan("abc123" + "0" * 34), [_success("app")])

        assert load_scan_by_commit(db.conn, "monorepo", "abc123") is not None
        assert load_scan_by_commit(db.conn, "monorepo", "fff") is None
        assert load_scan_by_commit(db.conn, "elsewhere", "abc123") is None

    def test_summary(self, db):
        save_scan(db.conn, _scan(), [_success("app"), _failure("lib")])
        summary = load_recent_scans(db.conn)[0].to_summary()
        assert summary["repository"] == "acme/monorepo"
        assert summary["packages"] == 2
        assert summary["succeeded"] == 1
        assert summary["failed"] == 1
