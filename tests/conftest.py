"""Shared test fixtures for tsc-bench tests."""

import json
import stat
import subprocess
from pathlib import Path

import pytest

from tsc_bench.config import BenchConfig
from tsc_bench.models import Package


def pytest_addoption(parser):
    """Add --run-slow option for slow tests."""
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="run slow tests",
    )


def pytest_configure(config):
    """Configure slow marker."""
    config.addinivalue_line("markers", "slow: mark test as slow to run")


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless --run-slow is given."""
    if config.getoption("--run-slow"):
        return
    skip_slow = pytest.mark.skip(reason="need --run-slow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


# Behaves like `tsc --extendedDiagnostics --generateTrace <dir>`. Marker
# files in the package directory change its behaviour:
#   FAIL      exit 2 with a type error
#   SLOW      hang until killed
#   NO_TRACE  succeed without writing the trace bundle
FAKE_TSC = """#!/bin/sh
trace_dir=""
while [ $# -gt 0 ]; do
  if [ "$1" = "--generateTrace" ]; then trace_dir="$2"; fi
  shift
done
if [ -f FAIL ]; then
  echo "src/index.ts(1,7): error TS2322: Type 'string' is not assignable to type 'number'."
  exit 2
fi
if [ -f SLOW ]; then
  exec sleep 30
fi
if [ ! -f NO_TRACE ]; then
  mkdir -p "$trace_dir"
  printf '[{"ph":"B"},{"ph":"E"},{"ph":"X"}]' > "$trace_dir/trace.json"
  printf '[{"id":1},{"id":2}]' > "$trace_dir/types.json"
fi
cat <<'OUT'
Files:                         618
Lines of TypeScript:         12345
Types:                         644
Memory used:               285146K
Check time:                  0.69s
Total time:                  1.41s
OUT
"""

# Two top-level hot spots (120.5ms + 300ms); the child must not be counted.
HOT_SPOT_REPORT = [
    {
        "result": {
            "hotSpots": [
                {"description": "Check file a.ts", "timeMs": 120.5, "children": [{"timeMs": 100}]},
                {"description": "Check file b.ts", "timeMs": 300},
            ]
        }
    }
]

FAKE_ANALYZER = "#!/bin/sh\ncat <<'OUT'\n" + json.dumps(HOT_SPOT_REPORT) + "\nOUT\nexit 1\n"


def write_script(path: Path, body: str) -> Path:
    path.write_text(body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def make_package(root: Path, name: str, *markers: str) -> Package:
    """Create ``root/packages/<name>`` with a package.json and marker files."""
    directory = root / "packages" / name
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "package.json").write_text(json.dumps({"name": name}))
    for marker in markers:
        (directory / marker).write_text("")
    return Package(name=name, absolute_path=directory)


def git(repo, *args):
    """Run git in ``repo`` with a throwaway identity; return stripped stdout."""
    return subprocess.run(
        [
            "git",
            "-C",
            str(repo),
            "-c",
            "user.name=Test",
            "-c",
            "user.email=test@example.com",
            "-c",
            "commit.gpgsign=false",
            *args,
        ],
        check=True,
        capture_output=True,
        text=True,
    ).stdout.strip()


def init_repo(path):
    path.mkdir(parents=True, exist_ok=True)
    git(path, "init", "--quiet")
    git(path, "symbolic-ref", "HEAD", "refs/heads/main")
    return path


def commit_file(repo, name, content, message):
    (repo / name).write_text(content)
    git(repo, "add", name)
    git(repo, "commit", "--quiet", "-m", message)
    return git(repo, "rev-parse", "HEAD")


@pytest.fixture
def fake_tsc(tmp_path):
    """Path to an executable fake compiler."""
    tools = tmp_path / "tools"
    tools.mkdir(exist_ok=True)
    return write_script(tools / "tsc", FAKE_TSC)


@pytest.fixture
def fake_analyzer(tmp_path):
    """Path to an executable fake analyze-trace that finds two hot spots."""
    tools = tmp_path / "tools"
    tools.mkdir(exist_ok=True)
    return write_script(tools / "analyze-trace", FAKE_ANALYZER)


@pytest.fixture
def bench_config(fake_tsc, fake_analyzer):
    """Configuration that runs the fake tools without a deadline."""
    return BenchConfig(
        workers=2,
        timeout_minutes=0,
        compiler_command=[str(fake_tsc)],
        analyzer_command=[str(fake_analyzer)],
        use_build_cache=False,
        prepare_commands=[],
    )
