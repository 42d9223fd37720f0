"""Trellis: dependency-aware task tracker with a per-task iteration ledger."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("trellis")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from trellis.core import Task, TrellisDB

__all__ = ["Task", "TrellisDB", "__version__"]
