"""Live-set collection: which names each output directory must keep."""

from targetgc.collect.enumerator import (
    DEFAULT_MODES,
    DEFAULT_PROFILE_DIRS,
    OutputDir,
    collect_live_sets,
    discover_output_dirs,
)
from targetgc.collect.outputs import FileFlavor, FileType, PlatformNaming, rustc_outputs
from targetgc.collect.reachable import LiveSet, collect_graph, collect_units

__all__ = [
    "DEFAULT_MODES",
    "DEFAULT_PROFILE_DIRS",
    "FileFlavor",
    "FileType",
    "LiveSet",
    "OutputDir",
    "PlatformNaming",
    "collect_graph",
    "collect_live_sets",
    "collect_units",
    "discover_output_dirs",
    "rustc_outputs",
]
