"""Configuration enumeration.

An output root holds a host subtree plus one subtree per cross-compiled
platform (``target/x86_64-unknown-linux-musl/``), each with ``debug`` and
``release`` profile directories. For every profile directory that exists
we ask the planner for a unit graph per compile purpose and union the
resulting names into that directory's live set.

Every graph is planned before anything is deleted: a planning failure
aborts the run with the output tree untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from targetgc.collect.reachable import LiveSet, collect_graph
from targetgc.foundation.errors import enumeration_error
from targetgc.incremental.hasher import FingerprintContext
from targetgc.units.planner import BuildPlanner, ModeRequest, PlanRequest

logger = logging.getLogger(__name__)

DEFAULT_PROFILE_DIRS = ("debug", "release")

DEFAULT_MODES = (
    ModeRequest.TEST,
    ModeRequest.BUILD,
    ModeRequest.CHECK,
    ModeRequest.CHECK_TEST,
    ModeRequest.BENCH,
)
"""Doc and doctest are left out: their outputs are not collected."""


@dataclass(frozen=True, slots=True)
class OutputDir:
    """One profile directory of the output tree."""

    output_root: Path
    """The target directory this profile directory lives under."""

    platform: str | None
    """Target triple, or None for the host subtree."""

    profile_dir: str
    """Directory name: "debug", "release", or a custom profile name."""

    @property
    def path(self) -> Path:
        if self.platform is None:
            return self.output_root / self.profile_dir
        return self.output_root / self.platform / self.profile_dir

    @property
    def profile(self) -> str:
        """Profile to request from the planner ("debug" holds the "dev" profile)."""
        return "dev" if self.profile_dir == "debug" else self.profile_dir

    def __str__(self) -> str:
        if self.platform is None:
            return self.profile_dir
        return f"{self.platform}/{self.profile_dir}"


def discover_output_dirs(
    output_root: Path,
    profile_dirs: Iterable[str] = DEFAULT_PROFILE_DIRS,
) -> list[OutputDir]:
    """Find every existing profile directory under ``output_root``.

    Platform subtrees are recognised by a hyphen in the directory name,
    which every target triple has.

    Raises:
        TargetGcError: ENUMERATION_FAILED if ``output_root`` cannot be listed.
    """
    profile_dirs = tuple(profile_dirs)
    if not output_root.is_dir():
        logger.debug("No output root at %s", output_root)
        return []

    try:
        platforms = sorted(
            entry.name for entry in output_root.iterdir() if entry.is_dir() and "-" in entry.name
        )
    except OSError as e:
        raise enumeration_error(output_root, e) from e

    found = []
    for platform in (None, *platforms):
        for profile_dir in profile_dirs:
            output_dir = OutputDir(output_root, platform, profile_dir)
            if output_dir.path.is_dir():
                found.append(output_dir)
    return found


def collect_live_sets(
    output_dirs: Iterable[OutputDir],
    planner: BuildPlanner,
    ctx: FingerprintContext,
    modes: Iterable[ModeRequest] = DEFAULT_MODES,
    manifest_path: Path | None = None,
    on_event: Callable[[str, str], None] | None = None,
) -> dict[OutputDir, LiveSet]:
    """Plan every (output dir, compile purpose) pair and build the live sets.

    Host units that appear in a cross-compilation graph (build scripts,
    proc-macros) are built into the host subtree, so their names go to the
    host output dir of the same profile.

    Args:
        output_dirs: Profile directories to collect.
        planner: Build planner to ask for unit graphs.
        ctx: Toolchain and workspace inputs for fingerprinting.
        modes: Compile purposes to request per output dir.
        manifest_path: Workspace manifest passed to the planner.
        on_event: Optional callback, called as ("collect", "<output dir>")
            before each output dir is planned.

    Returns:
        Live set per output dir.

    Raises:
        TargetGcError: Any planning error, unchanged. Nothing has been
            deleted at that point.
    """
    output_dirs = list(output_dirs)
    modes = tuple(modes)
    live_sets: dict[OutputDir, LiveSet] = {od: LiveSet() for od in output_dirs}

    for output_dir in output_dirs:
        host_dir = OutputDir(output_dir.output_root, None, output_dir.profile_dir)
        host_live = live_sets.get(host_dir)
        if host_live is None:
            # No host profile dir on disk: host units have nothing to protect
            host_live = LiveSet()

        logger.info("Collecting %s", output_dir)
        if on_event:
            on_event("collect", str(output_dir))
        for mode in modes:
            request = PlanRequest(
                output_root=output_dir.output_root,
                platform=output_dir.platform,
                profile=output_dir.profile,
                mode=mode,
                manifest_path=manifest_path,
            )
            graph = planner.plan(request)
            collect_graph(graph, ctx, live_sets[output_dir], host_live=host_live)

    return live_sets
