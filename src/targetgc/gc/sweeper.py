"""Sweeping stale entries out of output directories.

Each profile directory has four zones:

- ``.fingerprint/``: one directory per unit
- ``build/``: one directory per build script compile or run
- ``deps/``: compiled artifacts and ``.d`` dependency listings
- the profile directory itself: uplifted outputs and ``.cargo-lock``

A sweep is a set difference: any direct child of a zone that is not in the
zone's live set goes. Sweeping twice with no build in between removes
nothing the second time.

Example:
    >>> report = gc_workspace(Path("target"), planner, ctx, dry_run=True)
    >>> report.bytes_freed
    48213504
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from targetgc.collect.enumerator import (
    DEFAULT_MODES,
    DEFAULT_PROFILE_DIRS,
    collect_live_sets,
    discover_output_dirs,
)
from targetgc.collect.outputs import file_stem
from targetgc.collect.reachable import LiveSet
from targetgc.foundation.errors import (
    TargetGcError,
    deletion_error,
    enumeration_error,
)
from targetgc.gc.lock import LOCK_FILE_NAME, exclusive_output_dir
from targetgc.incremental.hasher import FingerprintContext
from targetgc.units.planner import BuildPlanner, ModeRequest

logger = logging.getLogger(__name__)

RESERVED_NAMES = frozenset({LOCK_FILE_NAME})
"""Top-level names that are never collected."""


class Zone(Enum):
    """Recognised children of a profile directory."""

    FINGERPRINT = ".fingerprint"
    BUILD_SCRIPT = "build"
    DEPENDENCY = "deps"
    TOP_LEVEL = "."

    def directory(self, output_dir: Path) -> Path:
        if self is Zone.TOP_LEVEL:
            return output_dir
        return output_dir / self.value


@dataclass(frozen=True, slots=True)
class RemovedEntry:
    """One entry removed (or, in a dry run, that would be removed)."""

    path: Path
    zone: Zone
    size: int
    """Recursive size in bytes, as listed by ``lstat``."""

    def to_dict(self) -> dict[str, Any]:
        return {"path": str(self.path), "zone": self.zone.name.lower(), "size": self.size}


@dataclass(slots=True)
class GcReport:
    """Outcome of one collection run."""

    dry_run: bool = False
    removed: list[RemovedEntry] = field(default_factory=list)
    errors: list[TargetGcError] = field(default_factory=list)
    """Errors that ended an output dir's pass early."""

    swept: list[str] = field(default_factory=list)
    """Output dirs whose pass ran to completion."""

    @property
    def bytes_freed(self) -> int:
        """Bytes freed, or that would be freed in a dry run."""
        return sum(entry.size for entry in self.removed)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "bytes_freed": self.bytes_freed,
            "removed": [entry.to_dict() for entry in self.removed],
            "swept": list(self.swept),
            "errors": [error.to_dict() for error in self.errors],
        }


def tree_size(path: Path) -> int:
    """Sum of ``lstat`` sizes of ``path`` and, for a directory, everything in it.

    Symlinks count as themselves and are not followed.
    """
    total = 0
    stack = [path]
    while stack:
        current = stack.pop()
        st = current.lstat()
        total += st.st_size
        if current.is_dir() and not current.is_symlink():
            with os.scandir(current) as entries:
                stack.extend(Path(entry.path) for entry in entries)
    return total


def remove_recursive(path: Path, *, dry_run: bool = False) -> int:
    """Remove a file, symlink or directory tree and return its size.

    The size is measured before anything is removed, so a dry run reports
    exactly what the real removal would free.

    Raises:
        OSError: If the entry cannot be measured or removed.
    """
    size = tree_size(path)
    if dry_run:
        return size
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()
    return size


def _list_zone(directory: Path) -> list[os.DirEntry]:
    try:
        with os.scandir(directory) as entries:
            return sorted(entries, key=lambda entry: entry.name)
    except FileNotFoundError:
        # Nothing built into this zone yet
        return []
    except OSError as e:
        raise enumeration_error(directory, e) from e


def stale_entries(output_dir: Path, live: LiveSet) -> list[tuple[Zone, Path]]:
    """List every entry of ``output_dir`` that is absent from its zone's live set.

    All zones are listed before this returns, so a listing failure happens
    before any deletion.

    Raises:
        TargetGcError: ENUMERATION_FAILED if a zone cannot be listed.
    """
    stale: list[tuple[Zone, Path]] = []

    for entry in _list_zone(Zone.FINGERPRINT.directory(output_dir)):
        if entry.name not in live.fingerprints:
            stale.append((Zone.FINGERPRINT, Path(entry.path)))

    for entry in _list_zone(Zone.BUILD_SCRIPT.directory(output_dir)):
        if entry.name not in live.builds:
            stale.append((Zone.BUILD_SCRIPT, Path(entry.path)))

    dep_stems = live.dep_stems
    for entry in _list_zone(Zone.DEPENDENCY.directory(output_dir)):
        if file_stem(entry.name) not in dep_stems:
            stale.append((Zone.DEPENDENCY, Path(entry.path)))

    for entry in _list_zone(Zone.TOP_LEVEL.directory(output_dir)):
        # Only regular files: zone directories and symlinks stay
        if not entry.is_file(follow_symlinks=False):
            continue
        if entry.name in RESERVED_NAMES or entry.name in live.uplifts:
            continue
        stale.append((Zone.TOP_LEVEL, Path(entry.path)))

    return stale


def sweep_output_dir(
    output_dir: Path,
    live: LiveSet,
    *,
    dry_run: bool = False,
    report: GcReport | None = None,
    on_event: Callable[[str, str], None] | None = None,
) -> GcReport:
    """Remove every stale entry of one output directory.

    Removals are recorded in ``report`` as they happen, so when a deletion
    fails the report still holds everything removed before it.

    Args:
        output_dir: The profile directory.
        live: Names to keep, per zone.
        dry_run: Measure and report but remove nothing.
        report: Report to append to (a new one by default).
        on_event: Optional callback, called as ("remove", "<path>") per entry.

    Returns:
        The report.

    Raises:
        TargetGcError: ENUMERATION_FAILED before anything is removed, or
            DELETION_FAILED, which ends this output dir's pass.
    """
    if report is None:
        report = GcReport(dry_run=dry_run)

    for zone, path in stale_entries(output_dir, live):
        try:
            size = remove_recursive(path, dry_run=dry_run)
        except OSError as e:
            raise deletion_error(path, e) from e

        report.removed.append(RemovedEntry(path=path, zone=zone, size=size))
        logger.info("%s %s (%d bytes)", "Would remove" if dry_run else "Removing", path, size)
        if on_event:
            on_event("remove", str(path))

    return report


def gc_workspace(
    output_root: Path,
    planner: BuildPlanner,
    ctx: FingerprintContext,
    *,
    profile_dirs: Iterable[str] = DEFAULT_PROFILE_DIRS,
    modes: Iterable[ModeRequest] = DEFAULT_MODES,
    manifest_path: Path | None = None,
    dry_run: bool = False,
    lock: bool = True,
    on_event: Callable[[str, str], None] | None = None,
) -> GcReport:
    """Collect garbage from every output directory under ``output_root``.

    Every output directory is planned first. A planning error propagates
    with nothing deleted. After that, errors are per output directory: an
    unlistable zone, a held lock or a failed deletion ends that directory's
    pass (keeping what was already removed) and the next one is swept.

    Args:
        output_root: The target directory.
        planner: Build planner to ask for unit graphs.
        ctx: Toolchain and workspace inputs for fingerprinting.
        profile_dirs: Profile directory names to look for.
        modes: Compile purposes to plan per output dir.
        manifest_path: Workspace manifest passed to the planner.
        dry_run: Report what would be removed without removing it.
        lock: Hold each output dir's build lock while sweeping it.
        on_event: Optional callback for ("collect" | "remove" | "error", detail).

    Returns:
        Combined report of every output dir.

    Raises:
        TargetGcError: Planning, unit graph or enumeration errors of the
            output root itself.
    """
    output_dirs = discover_output_dirs(output_root, profile_dirs)
    live_sets = collect_live_sets(
        output_dirs,
        planner,
        ctx,
        modes=modes,
        manifest_path=manifest_path,
        on_event=on_event,
    )

    report = GcReport(dry_run=dry_run)
    for output_dir, live in live_sets.items():
        logger.debug("Sweeping %s against %d live names", output_dir, len(live))
        try:
            if lock:
                with exclusive_output_dir(output_dir.path, create=not dry_run):
                    sweep_output_dir(
                        output_dir.path, live, dry_run=dry_run, report=report, on_event=on_event
                    )
            else:
                sweep_output_dir(
                    output_dir.path, live, dry_run=dry_run, report=report, on_event=on_event
                )
        except TargetGcError as e:
            if e.is_fatal:
                raise
            logger.warning("Skipping rest of %s: %s", output_dir, e)
            report.errors.append(e)
            if on_event:
                on_event("error", str(e))
            continue
        report.swept.append(str(output_dir))

    logger.info(
        "%s %d entries, %d bytes",
        "Would remove" if dry_run else "Removed",
        len(report.removed),
        report.bytes_freed,
    )
    return report
