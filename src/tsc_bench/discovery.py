"""Find the packages of a monorepo and ask turbo which ones are cached."""

from __future__ import annotations

import json
import os
import subprocess
from pathlib import Path
from typing import Optional

from .logging_config import get_logger
from .models import Package

logger = get_logger(__name__)

EXCLUDED_DIRS = frozenset({"node_modules", "dist", ".git", "generated"})

TYPECHECK_TASK = "typecheck"


def find_git_root(start: Optional[Path] = None) -> Optional[Path]:
    """Closest ancestor of ``start`` (inclusive) that contains ``.git``."""
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        if (directory / ".git").exists():
            return directory
    return None


def _package_name(package_json: Path) -> Optional[str]:
    try:
        data = json.loads(package_json.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Skipping unreadable %s: %s", package_json, e)
        return None
    name = data.get("name") if isinstance(data, dict) else None
    return name if isinstance(name, str) and name else None


def list_packages(root: Path) -> list[Package]:
    """Every named ``package.json`` below ``root``, excluding ``root`` itself.

    ``node_modules``, ``dist``, ``.git`` and ``generated`` directories are
    not searched. Packages are sorted by name.
    """
    root = root.resolve()
    packages: list[Package] = []

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in EXCLUDED_DIRS)
        directory = Path(dirpath)
        if directory == root or "package.json" not in filenames:
            continue
        name = _package_name(directory / "package.json")
        if name is not None:
            packages.append(Package(name=name, absolute_path=directory))

    packages.sort(key=lambda p: p.name)
    logger.debug("Discovered %d packages under %s", len(packages), root)
    return packages


def parse_turbo_dry_run(stdout: str, task: str = TYPECHECK_TASK) -> frozenset[str]:
    """Package names whose ``task`` has cache status ``HIT`` in a turbo dry run."""
    try:
        dry_run = json.loads(stdout)
    except json.JSONDecodeError:
        return frozenset()

    tasks = dry_run.get("tasks") if isinstance(dry_run, dict) else None
    if not isinstance(tasks, list):
        return frozenset()

    cached = set()
    for entry in tasks:
        if not isinstance(entry, dict) or entry.get("task") != task:
            continue
        cache = entry.get("cache") or {}
        if isinstance(cache, dict) and cache.get("status") == "HIT":
            package = entry.get("package")
            if isinstance(package, str):
                cached.add(package)
    return frozenset(cached)


def list_cached_packages(root: Path, task: str = TYPECHECK_TASK) -> frozenset[str]:
    """Ask ``turbo run <task> --dry-run=json`` which packages are cache hits.

    Any failure (no turbo, no such task, bad output) means nothing is cached.
    """
    command = ["npx", "--no-install", "turbo", "run", task, "--dry-run=json"]
    logger.info("Running command: %s", " ".join(command))
    try:
        result = subprocess.run(
            command, cwd=str(root), capture_output=True, text=True, timeout=120
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.warning("Build cache lookup failed: %s", e)
        return frozenset()

    if result.returncode != 0:
        logger.warning("Build cache lookup failed: %s", result.stderr.strip()[:200])
        return frozenset()

    cached = parse_turbo_dry_run(result.stdout, task)
    logger.info("%d packages cached by turbo", len(cached))
    return cached
