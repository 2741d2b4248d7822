"""Facts about the machine and the commit a scan is recorded against.

Example:
    >>> host = detect_host()
    >>> host.logical_cores
    8
    >>> commit = read_head_commit(Path("."))
    >>> commit.hash[:8]
    '3f9c2a1b'
"""

from __future__ import annotations

import os
import platform
import re
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Optional

from .exceptions import GitMetadataError
from .logging_config import get_logger
from .models import CommitInfo, HostInfo

logger = get_logger(__name__)

UNKNOWN = "unknown"

_SHORTSTAT_RE = {
    "files": re.compile(r"(\d+) files? changed"),
    "insertions": re.compile(r"(\d+) insertions?\(\+\)"),
    "deletions": re.compile(r"(\d+) deletions?\(-\)"),
}


# ── host ──────────────────────────────────────────────────────────


def _cpu_model() -> str:
    cpuinfo = Path("/proc/cpuinfo")
    if cpuinfo.exists():
        try:
            for line in cpuinfo.read_text(errors="replace").splitlines():
                if line.lower().startswith("model name"):
                    return line.split(":", 1)[1].strip()
        except OSError:
            pass

    if platform.system() == "Darwin":
        try:
            result = subprocess.run(
                ["sysctl", "-n", "machdep.cpu.brand_string"],
                capture_output=True,
                text=True,
                timeout=5,
            )
            if result.returncode == 0 and result.stdout.strip():
                return result.stdout.strip()
        except (FileNotFoundError, subprocess.TimeoutExpired):
            pass

    return platform.processor() or platform.machine() or UNKNOWN


def detect_host() -> HostInfo:
    """CPU model and logical core count of this machine."""
    return HostInfo(cpu_model=_cpu_model(), logical_cores=os.cpu_count() or 1)


# ── git ───────────────────────────────────────────────────────────


def _git(repo_path: Path, *args: str) -> subprocess.CompletedProcess:
    return subprocess.run(
        ["git", "-C", str(repo_path), *args],
        capture_output=True,
        text=True,
        timeout=30,
    )


def parse_shortstat(text: str) -> tuple[Optional[int], Optional[int], Optional[int]]:
    """``" 3 files changed, 10 insertions(+), 2 deletions(-)"`` -> ``(3, 10, 2)``.

    Missing parts are 0 when a stat line exists, None when there is none
    (e.g. an empty merge commit).
    """
    if not _SHORTSTAT_RE["files"].search(text):
        return None, None, None

    def grab(key: str) -> int:
        match = _SHORTSTAT_RE[key].search(text)
        return int(match.group(1)) if match else 0

    return grab("files"), grab("insertions"), grab("deletions")


def read_head_commit(repo_path: Path) -> CommitInfo:
    """Hash, subject, author date and diff stats of ``HEAD``.

    Raises:
        GitMetadataError: Not a git repository, or no commit to record.
    """
    try:
        result = _git(repo_path, "log", "-1", "--format=%H%x00%aI%x00%s", "--shortstat")
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        raise GitMetadataError(repo_path, str(e))

    if result.returncode != 0 or not result.stdout.strip():
        reason = result.stderr.strip() or "no commits found"
        raise GitMetadataError(
            repo_path, f"{reason}. Please run this command on a clean working tree."
        )

    header, _, stat = result.stdout.strip().partition("\n")
    try:
        commit_hash, iso_date, subject = header.split("\x00", 2)
        date = datetime.fromisoformat(iso_date)
    except ValueError as e:
        raise GitMetadataError(repo_path, f"unexpected git log output: {e}")

    files, insertions, deletions = parse_shortstat(stat)
    return CommitInfo(
        hash=commit_hash,
        message=subject,
        date=date,
        files_changed=files,
        insertions=insertions,
        deletions=deletions,
    )


def list_commits(repo_path: Path, count: int, skip: int = 0) -> list[str]:
    """Hashes of the ``count`` most recent commits, keeping every ``skip+1``-th.

    Raises:
        GitMetadataError: If git log fails.
    """
    try:
        result = _git(repo_path, "log", "--format=%H", f"-n{count * (skip + 1)}")
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        raise GitMetadataError(repo_path, str(e))
    if result.returncode != 0:
        raise GitMetadataError(repo_path, result.stderr.strip() or "git log failed")

    hashes = [line.strip() for line in result.stdout.splitlines() if line.strip()]
    return hashes[:: skip + 1][:count]


def current_ref(repo_path: Path) -> str:
    """Branch name, or the commit hash when HEAD is detached."""
    result = _git(repo_path, "rev-parse", "--abbrev-ref", "HEAD")
    ref = result.stdout.strip()
    if result.returncode != 0 or not ref:
        raise GitMetadataError(repo_path, result.stderr.strip() or "cannot resolve HEAD")
    if ref == "HEAD":
        ref = _git(repo_path, "rev-parse", "HEAD").stdout.strip()
    return ref


def checkout(repo_path: Path, ref: str) -> None:
    """Check out ``ref`` (detached for hashes)."""
    result = _git(repo_path, "checkout", "--quiet", ref)
    if result.returncode != 0:
        raise GitMetadataError(repo_path, f"checkout {ref} failed: {result.stderr.strip()}")


def parse_remote_url(url: str) -> tuple[str, str]:
    """Owner and repository name from a git remote URL.

    >>> parse_remote_url("git@github.com:ToyB0x/repo-monitor.git")
    ('ToyB0x', 'repo-monitor')
    >>> parse_remote_url("https://github.com/ToyB0x/repo-monitor")
    ('ToyB0x', 'repo-monitor')
    """
    path = url.strip().rstrip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    # scp-like syntax: user@host:owner/repo
    if "://" not in path and ":" in path:
        path = path.split(":", 1)[1]
    segments = [s for s in re.split(r"[/:]", path) if s]
    if len(segments) < 2:
        return UNKNOWN, segments[-1] if segments else UNKNOWN
    return segments[-2], segments[-1]


def repository_identity(repo_path: Path) -> tuple[str, str]:
    """``(owner, repository)`` from ``GITHUB_REPOSITORY`` or the origin remote."""
    github_repository = os.environ.get("GITHUB_REPOSITORY", "")
    if "/" in github_repository:
        owner, repo = github_repository.split("/", 1)
        return owner, repo

    try:
        result = _git(repo_path, "config", "--get", "remote.origin.url")
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return UNKNOWN, repo_path.resolve().name

    url = result.stdout.strip()
    if result.returncode != 0 or not url:
        logger.debug("No origin remote; using directory name as repository")
        return UNKNOWN, repo_path.resolve().name
    return parse_remote_url(url)
