"""Garbage collection of stale build outputs."""

from targetgc.gc.lock import LOCK_FILE_NAME, exclusive_output_dir
from targetgc.gc.sweeper import (
    RESERVED_NAMES,
    GcReport,
    RemovedEntry,
    Zone,
    gc_workspace,
    remove_recursive,
    stale_entries,
    sweep_output_dir,
)

__all__ = [
    "LOCK_FILE_NAME",
    "RESERVED_NAMES",
    "GcReport",
    "RemovedEntry",
    "Zone",
    "exclusive_output_dir",
    "gc_workspace",
    "remove_recursive",
    "stale_entries",
    "sweep_output_dir",
]
