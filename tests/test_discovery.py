"""Tests for package discovery and the turbo build-cache lookup."""

import json
import subprocess
from unittest.mock import patch

from tsc_bench.discovery import (
    find_git_root,
    list_cached_packages,
    list_packages,
    parse_turbo_dry_run,
)


def _write_package(directory, name=None, raw=None):
    directory.mkdir(parents=True, exist_ok=True)
    content = raw if raw is not None else json.dumps({"name": name} if name else {})
    (directory / "package.json").write_text(content)


class TestFindGitRoot:
    def test_finds_ancestor(self, tmp_path):
        (tmp_path / ".git").mkdir()
        nested = tmp_path / "packages" / "app" / "src"
        nested.mkdir(parents=True)
        assert find_git_root(nested) == tmp_path.resolve()

    def test_none_outside_repository(self, tmp_path):
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        with patch("pathlib.Path.exists", return_value=False):
            assert find_git_root(nested) is None


class TestListPackages:
    def test_finds_named_packages_sorted(self, tmp_path):
        _write_package(tmp_path, "monorepo-root")
        _write_package(tmp_path / "packages" / "web", "@acme/web")
        _write_package(tmp_path / "packages" / "api", "@acme/api")
        _write_package(tmp_path / "tools" / "lint" / "nested", "lint-rules")

        packages = list_packages(tmp_path)

        assert [p.name for p in packages] == ["@acme/api", "@acme/web", "lint-rules"]
        assert packages[0].absolute_path == (tmp_path / "packages" / "api").resolve()

    def test_excluded_directories(self, tmp_path):
        _write_package(tmp_path / "packages" / "app", "app")
        for excluded in ("node_modules", "dist", ".git", "generated"):
            _write_package(tmp_path / "packages" / "app" / excluded / "dep", f"in-{excluded}")

        assert [p.name for p in list_packages(tmp_path)] == ["app"]

    def test_unnamed_and_broken_manifests_are_skipped(self, tmp_path):
        _write_package(tmp_path / "a")
        _write_package(tmp_path / "b", raw="{broken")
        _write_package(tmp_path / "c", raw="[]")
        _write_package(tmp_path / "d", "real")

        assert [p.name for p in list_packages(tmp_path)] == ["real"]

    def test_empty_repository(self, tmp_path):
        assert list_packages(tmp_path) == []


class TestTurboCache:
    DRY_RUN = {
        "tasks": [
            {"taskId": "@acme/web#typecheck", "task": "typecheck", "package": "@acme/web",
             "cache": {"status": "HIT", "local": True}},
            {"taskId": "@acme/api#typecheck", "task": "typecheck", "package": "@acme/api",
             "cache": {"status": "MISS"}},
            {"taskId": "@acme/api#build", "task": "build", "package": "@acme/api",
             "cache": {"status": "HIT"}},
        ]
    }

    def test_parse_hits(self):
        assert parse_turbo_dry_run(json.dumps(self.DRY_RUN)) == frozenset({"@acme/web"})

    def test_parse_garbage(self):
        assert parse_turbo_dry_run("not json") == frozenset()
        assert parse_turbo_dry_run("[]") == frozenset()
        assert parse_turbo_dry_run('{"tasks": {}}') == frozenset()

    def test_lookup_success(self, tmp_path):
        completed = subprocess.CompletedProcess([], 0, stdout=json.dumps(self.DRY_RUN), stderr="")
        with patch("tsc_bench.discovery.subprocess.run", return_value=completed) as run:
            assert list_cached_packages(tmp_path) == frozenset({"@acme/web"})
        argv = run.call_args.args[0]
        assert "--dry-run=json" in argv
        assert "typecheck" in argv

    def test_lookup_failure_means_nothing_cached(self, tmp_path):
        failed = subprocess.CompletedProcess([], 1, stdout="", stderr="turbo: not found")
        with patch("tsc_bench.discovery.subprocess.run", return_value=failed):
            assert list_cached_packages(tmp_path) == frozenset()

        with patch("tsc_bench.discovery.subprocess.run", side_effect=FileNotFoundError("npx")):
            assert list_cached_packages(tmp_path) == frozenset()
