"""Tests for configuration loading and validation."""

import dataclasses
import os

import pytest

from tsc_bench.config import BenchConfig, default_concurrency, load_config
from tsc_bench.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """No user or project config files, no TSBENCH_* variables."""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("TSBENCH_"):
            monkeypatch.delenv(key)


class TestBenchConfig:
    def test_defaults(self):
        config = BenchConfig()
        assert config.workers is None
        assert config.compiler_command == ["npx", "tsc"]
        assert config.max_old_space_size_mb == 6144
        assert config.skip_millis == 100
        assert config.force_millis == 150
        assert config.deadline_seconds == 3600.0

    def test_zero_timeout_disables_deadline(self):
        assert BenchConfig(timeout_minutes=0).deadline_seconds is None

    def test_worker_resolution(self):
        assert BenchConfig(workers=3).resolve_workers(64) == 3
        assert BenchConfig().resolve_workers(10) == 8

    def test_default_concurrency(self):
        assert default_concurrency(10) == 8
        assert default_concurrency(8) == 6
        assert default_concurrency(1) == 1

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"workers": 0},
            {"timeout_minutes": -1},
            {"compiler_command": []},
            {"max_old_space_size_mb": 10},
            {"trace_dir": "/abs/trace"},
            {"skip_millis": 200, "force_millis": 100},
            {"verbosity": "loud"},
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            BenchConfig(**kwargs)

    def test_frozen(self):
        config = BenchConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.workers = 4


class TestLoadConfig:
    def test_defaults_without_sources(self):
        assert load_config() == BenchConfig()

    def test_overrides(self):
        config = load_config(workers=4, timeout_minutes=30, verbose=True)
        assert config.workers == 4
        assert config.deadline_seconds == 1800.0
        assert config.verbosity == "verbose"

    def test_none_overrides_are_ignored(self, tmp_path):
        (tmp_path / "tsc-bench.toml").write_text("workers = 5\n")
        assert load_config(workers=None).workers == 5

    def test_project_file(self, tmp_path):
        (tmp_path / "tsc-bench.toml").write_text(
            'skip_millis = 50\nforce_millis = 75\nprepare_commands = ["yarn"]\n'
        )
        config = load_config()
        assert config.skip_millis == 50
        assert config.prepare_commands == ["yarn"]

    def test_tool_table(self, tmp_path):
        path = tmp_path / "custom.toml"
        path.write_text('[tool.tsc-bench]\ntrace_dir = "out/trace"\n')
        assert load_config(config_file=path).trace_dir == "out/trace"

    def test_precedence(self, tmp_path, monkeypatch):
        home = tmp_path / "home"
        home.mkdir()
        (home / ".tsc-bench.toml").write_text("workers = 1\ntimeout_minutes = 5\n")
        (tmp_path / "tsc-bench.toml").write_text("workers = 2\n")
        monkeypatch.setenv("TSBENCH_WORKERS", "3")

        config = load_config()
        assert config.workers == 3
        assert config.timeout_minutes == 5

        assert load_config(workers=9).workers == 9

    def test_env_bool(self, monkeypatch):
        monkeypatch.setenv("TSBENCH_USE_BUILD_CACHE", "false")
        assert load_config().use_build_cache is False

    def test_bad_env_value(self, monkeypatch):
        monkeypatch.setenv("TSBENCH_WORKERS", "many")
        with pytest.raises(ConfigurationError):
            load_config()

    def test_unknown_key(self, tmp_path):
        (tmp_path / "tsc-bench.toml").write_text("colour = 'blue'\n")
        with pytest.raises(ConfigurationError):
            load_config()

    def test_invalid_value(self):
        with pytest.raises(ConfigurationError):
            load_config(workers=0)

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(config_file=tmp_path / "nope.toml")
