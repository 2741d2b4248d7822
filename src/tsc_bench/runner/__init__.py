"""Compiler invocation: one package at a time, or many through the pool."""

from .package_runner import PackageRunner
from .pool import WorkerPool, run_packages

__all__ = ["PackageRunner", "WorkerPool", "run_packages"]
