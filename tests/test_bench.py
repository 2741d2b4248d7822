"""End-to-end tests: a git repository benchmarked with fake compilers."""

import shutil
from dataclasses import replace

import pytest

from conftest import commit_file, git, init_repo, make_package
from tsc_bench import run_bench
from tsc_bench.bench import load_history, regenerate_report, run_span
from tsc_bench.exceptions import ErrorCode, GitMetadataError, InfrastructureError, TscBenchError
from tsc_bench.models import Package

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


@pytest.fixture
def repo(tmp_path, monkeypatch):
    """Monorepo with two healthy packages and one that fails to compile."""
    monkeypatch.delenv("GITHUB_REPOSITORY", raising=False)
    root = init_repo(tmp_path / "repo")
    (root / "package.json").write_text('{"name": "monorepo", "private": true}')
    make_package(root, "app")
    make_package(root, "lib")
    make_package(root, "broken", "FAIL")
    git(root, "add", "-A")
    git(root, "commit", "--quiet", "-m", "initial")
    return root


@pytest.fixture
def config(bench_config, tmp_path):
    return replace(bench_config, report_path=str(tmp_path / "ts-bench-report.md"))


class TestRunBench:
    def test_first_run(self, repo, config, tmp_path):
        outcome = run_bench(config, repo)

        assert [r.package.name for r in outcome.results] == ["app", "broken", "lib"]
        assert outcome.succeeded == 2
        assert outcome.failed == 1
        assert outcome.max_concurrency == 2
        assert outcome.scan.commit.hash == git(repo, "rev-parse", "HEAD")
        assert outcome.scan.repository == "repo"

        assert outcome.comparison.previous_commit is None
        assert [p.package for p in outcome.comparison.errored] == ["broken"]
        assert outcome.report_path == tmp_path / "ts-bench-report.md"
        assert outcome.report_path.read_text() == outcome.markdown
        assert "(compared to N/A)" in outcome.markdown

        assert (repo / ".tsc-bench" / "history.db").exists()

    def test_second_commit_compares_with_first(self, repo, config):
        first = run_bench(config, repo)
        commit_file(repo, "README.md", "docs\n", "docs")

        second = run_bench(config, repo, write_markdown=False)

        assert second.scan_id != first.scan_id
        assert second.report_path is None
        assert second.comparison.previous_commit == first.scan.commit.hash
        assert sorted(p.package for p in second.comparison.unchanged) == ["app", "lib"]

        scans = load_history(config, repo)
        assert [s.id for s in scans] == [second.scan_id, first.scan_id]

    def test_rerun_same_commit_replaces_scan(self, repo, config):
        first = run_bench(config, repo)
        second = run_bench(config, repo)

        assert first.scan_id == second.scan_id
        assert len(load_history(config, repo)) == 1

    def test_explicit_packages_and_cache(self, repo, config, monkeypatch):
        monkeypatch.setattr(
            "tsc_bench.bench.list_cached_packages", lambda root: frozenset({"lib"})
        )
        packages = [
            Package("app", repo / "packages" / "app"),
            Package("lib", repo / "packages" / "lib"),
        ]

        outcome = run_bench(replace(config, use_build_cache=True), repo, packages=packages)

        assert [(r.package.name, r.cached) for r in outcome.results] == [
            ("app", False),
            ("lib", True),
        ]

    def test_cached_package_is_not_reported_as_improved(self, repo, config, monkeypatch):
        run_bench(config, repo, write_markdown=False)
        commit_file(repo, "README.md", "docs\n", "docs")
        monkeypatch.setattr(
            "tsc_bench.bench.list_cached_packages", lambda root: frozenset({"lib"})
        )

        outcome = run_bench(replace(config, use_build_cache=True), repo, write_markdown=False)

        assert "lib" not in [p.package for p in outcome.comparison.improved]
        lib = next(p for p in outcome.comparison.unchanged if p.package == "lib")
        assert lib.cached
        assert lib.metrics["total_time"].delta == "N/A"

    def test_deadline_marks_packages_cancelled(self, repo, config):
        (repo / "packages" / "lib" / "SLOW").write_text("")
        git(repo, "add", "-A")
        git(repo, "commit", "--quiet", "-m", "slow lib")

        outcome = run_bench(replace(config, timeout_minutes=0.02), repo)

        lib = next(r for r in outcome.results if r.package.name == "lib")
        assert lib.error_code == ErrorCode.CANCELLED
        assert outcome.scan_id > 0

    def test_not_a_repository(self, tmp_path, config, monkeypatch):
        monkeypatch.setattr("tsc_bench.bench.find_git_root", lambda start: None)
        with pytest.raises(InfrastructureError, match="Not inside a git repository"):
            run_bench(config, tmp_path)

    def test_repository_without_commits(self, tmp_path, config):
        root = init_repo(tmp_path / "empty")
        with pytest.raises(GitMetadataError):
            run_bench(config, root)


class TestRegenerateReport:
    def test_from_stored_scans(self, repo, config):
        first = run_bench(config, repo)
        commit_file(repo, "README.md", "docs\n", "docs")
        second = run_bench(config, repo)

        comparison, markdown, path = regenerate_report(config, repo)

        assert comparison.current_commit == second.scan.commit.hash
        assert comparison.previous_commit == first.scan.commit.hash
        assert path.read_text() == markdown
        assert "**Tsc benchmark" in markdown

    def test_without_history(self, repo, config):
        with pytest.raises(TscBenchError, match="No scans recorded"):
            regenerate_report(config, repo)


@pytest.mark.slow
class TestRunSpan:
    def test_benchmarks_each_commit_and_restores_ref(self, repo, config):
        first = git(repo, "rev-parse", "HEAD")
        second = commit_file(repo, "README.md", "docs\n", "docs")
        span_config = replace(config, prepare_commands=["true"])

        span = run_span(span_config, count=2, repo_root=repo)

        assert [o.scan.commit.hash for o in span.outcomes] == [first, second]
        assert span.errors == {}
        assert git(repo, "rev-parse", "--abbrev-ref", "HEAD") == "main"

    def test_prepare_failure_skips_commit(self, repo, config):
        span = run_span(replace(config, prepare_commands=["false"]), count=1, repo_root=repo)

        assert span.outcomes == []
        assert list(span.errors) == [git(repo, "rev-parse", "HEAD")]
        assert "exited with code 1" in next(iter(span.errors.values()))
        assert git(repo, "rev-parse", "--abbrev-ref", "HEAD") == "main"

    def test_invalid_count(self, repo, config):
        with pytest.raises(ValueError):
            run_span(config, count=0, repo_root=repo)
