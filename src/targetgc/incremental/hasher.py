"""Content-addressed fingerprints for compilation units.

The fingerprint is the hash suffix the build tool puts on a unit's
artifacts and fingerprint directory (``foo-1a2b3c4d5e6f7a8b``). It captures
everything that makes two compilations of the same target produce
different output:

1. The unit's own identity (package, target, profile, mode, platform,
   features, LTO requirement)
2. The compiler (full version on stable, channel + host on nightlies)
3. The fingerprints of all dependencies (transitive closure), sorted so
   edge order does not matter

Hash length: 16 hex characters (64 bits), the width of the metadata
suffix the build tool writes.

These are not cargo's own metadata hashes. Cargo's inputs and encoding are
an internal detail that changes between releases, so a real target
directory may hold live artifacts under suffixes computed differently.
The collector then sees them as stale.

Example:
    >>> lto = generate(graph)
    >>> fingerprints = compute_fingerprints(graph, lto, ctx)
    >>> fingerprints[0]
    '3f9c0a5be21d7e44'
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from targetgc.foundation.errors import unit_graph_error
from targetgc.incremental.lto import Lto, LtoMap
from targetgc.units.model import Unit, UnitGraph
from targetgc.units.toolchain import RustcInfo

METADATA_VERSION = 1
"""Bump to invalidate every fingerprint this tool has ever computed."""

FINGERPRINT_LENGTH = 16


@dataclass(frozen=True, slots=True)
class FingerprintContext:
    """Inputs to the fingerprint that do not come from the unit graph.

    Attributes:
        rustc: Compiler version information.
        workspace_root: Root for relocation-stable package identities.
        members: Names of workspace member packages.
        workspace_wrapper: Wrapper tool path (e.g. clippy-driver); mixed into
            member units only.
        default_lib_metadata: Override mixed into every unit; also forces
            fingerprinting of units that would otherwise go without.
        separate_nightlies: Hash the full version text on nightlies too.
    """

    rustc: RustcInfo
    workspace_root: Path | None = None
    members: frozenset[str] = frozenset()
    workspace_wrapper: str | None = None
    default_lib_metadata: str | None = None
    separate_nightlies: bool = False

    def short_name(self, unit: Unit) -> str:
        """Target triple the unit is compiled for."""
        return unit.platform or self.rustc.host

    def is_member(self, unit: Unit) -> bool:
        return unit.pkg_id.is_path and unit.pkg_id.name in self.members


class _FieldHasher:
    """SHA-256 over labelled, length-prefixed fields.

    Length prefixes keep ``("ab", "c")`` and ``("a", "bc")`` apart, and a
    separate marker keeps an absent value apart from an empty one.
    """

    def __init__(self) -> None:
        self._hasher = hashlib.sha256()

    def update(self, label: str, value: object) -> None:
        if value is None:
            self._hasher.update(f"{label}-\n".encode())
            return
        text = str(value)
        self._hasher.update(f"{label}+{len(text)}:{text}\n".encode())

    def update_all(self, label: str, values: list | tuple) -> None:
        self.update(label, len(values))
        for value in values:
            self.update(label, value)

    def hexdigest(self) -> str:
        return self._hasher.hexdigest()[:FINGERPRINT_LENGTH]


def should_fingerprint(unit: Unit, ctx: FingerprintContext) -> bool:
    """Whether this unit's outputs carry a fingerprint suffix at all.

    No fingerprint for doctests. Tests, benches and checks always get one.
    Otherwise local packages go without one when the output name must stay
    fixed: dynamic libraries (the name is embedded in dependents) and
    executables on wasm32, MSVC and Apple targets (the name is embedded in
    companion files). The default-lib-metadata override forces one.
    """
    if unit.mode.is_doc_test:
        return False
    if unit.mode.is_any_test or unit.mode.is_check:
        return True

    short_name = ctx.short_name(unit)
    target = unit.target
    fixed_name = (
        target.is_dylib
        or target.is_cdylib
        or (target.is_executable and short_name.startswith("wasm32-"))
        or (target.is_executable and "msvc" in short_name)
        or (target.is_executable and "-apple-" in short_name)
    )
    if fixed_name and unit.pkg_id.is_path and ctx.default_lib_metadata is None:
        return False
    return True


def _rustc_version_part(ctx: FingerprintContext) -> str:
    rustc = ctx.rustc
    if not rustc.pre_release or ctx.separate_nightlies:
        # Stable: keep every release apart
        return rustc.verbose_version
    # Nightly-like: one cache per channel and host, so a channel update does
    # not strand yesterday's artifacts
    return f"{rustc.channel} {rustc.host}"


def _platform_tag(unit: Unit) -> str:
    return "host" if unit.platform is None else f"target:{unit.platform}"


def compute_fingerprint(
    unit: Unit,
    dependency_fingerprints: list[str | None],
    lto: Lto,
    ctx: FingerprintContext,
) -> str:
    """Compute the fingerprint of one unit from its dependencies' fingerprints.

    Args:
        unit: The unit to fingerprint.
        dependency_fingerprints: Fingerprint of each dependency (None for
            dependencies that are not fingerprinted), in any order.
        lto: This unit's LTO requirement.
        ctx: Toolchain and workspace inputs.

    Returns:
        16-character hex fingerprint.
    """
    hasher = _FieldHasher()

    hasher.update("version", METADATA_VERSION)
    hasher.update("package", unit.pkg_id.stable_id(ctx.workspace_root))
    hasher.update_all("features", unit.features)

    # Sorted so the order dependency edges are listed in does not matter
    ordered = sorted(dependency_fingerprints, key=lambda fp: (fp is not None, fp or ""))
    hasher.update_all("deps", ordered)

    hasher.update("profile", unit.profile.record())
    hasher.update("mode", unit.mode.value)
    hasher.update("lto", lto)
    hasher.update("platform", _platform_tag(unit))
    hasher.update("target-name", unit.target.name)
    hasher.update("target-kind", unit.target.kind_tag)
    hasher.update("rustc", _rustc_version_part(ctx))

    if ctx.is_member(unit):
        # Keeps wrapper (clippy) artifacts apart from plain check artifacts
        hasher.update("wrapper", ctx.workspace_wrapper)
    hasher.update("override", ctx.default_lib_metadata)

    hasher.update("is-std", unit.is_std)

    return hasher.hexdigest()


def target_short_hash(unit: Unit, ctx: FingerprintContext) -> str:
    """Stable hash of the unit's identity, for naming unfingerprinted units.

    Unlike the fingerprint this ignores dependencies, so it only tells
    apart units of different packages, targets, profiles and platforms.
    """
    hasher = _FieldHasher()
    hasher.update("package", unit.pkg_id.stable_id(ctx.workspace_root))
    hasher.update("target-name", unit.target.name)
    hasher.update("target-kind", unit.target.kind_tag)
    hasher.update("profile", unit.profile.record())
    hasher.update("mode", unit.mode.value)
    hasher.update("platform", _platform_tag(unit))
    hasher.update_all("features", unit.features)
    hasher.update("rustc", _rustc_version_part(ctx))
    hasher.update("is-std", unit.is_std)
    return hasher.hexdigest()


def _walk(
    graph: UnitGraph,
    starts: Iterable[int],
    lto: LtoMap,
    ctx: FingerprintContext,
    memo: dict[tuple, str | None],
) -> None:
    """Fingerprint ``starts`` and their closure into ``memo`` (keyed by unit identity).

    Post-order over an explicit stack, so each unit is hashed once however
    many parents reach it and deep graphs never hit the recursion limit.
    """
    in_progress: set[tuple] = set()
    units = graph.units

    for start in starts:
        stack: list[tuple[int, bool]] = [(start, False)]
        while stack:
            index, children_done = stack.pop()
            unit = units[index]
            key = unit.key

            if not children_done:
                if key in memo:
                    continue
                if key in in_progress:
                    raise unit_graph_error(f"dependency cycle through {unit.describe()}")
                in_progress.add(key)
                stack.append((index, True))
                for dep in unit.dependencies:
                    if units[dep.index].key not in memo:
                        stack.append((dep.index, False))
                continue

            in_progress.discard(key)
            if not should_fingerprint(unit, ctx):
                memo[key] = None
                continue
            dependency_fingerprints = [memo[units[dep.index].key] for dep in unit.dependencies]
            memo[key] = compute_fingerprint(
                unit,
                dependency_fingerprints,
                lto.get(index, Lto.only_object()),
                ctx,
            )


def compute_fingerprints(
    graph: UnitGraph,
    lto: LtoMap,
    ctx: FingerprintContext,
) -> dict[int, str | None]:
    """Fingerprint every unit of a graph.

    Args:
        graph: The unit graph.
        lto: LTO requirement per unit index (see ``lto.generate``). Units
            missing from it are treated as needing only object code.
        ctx: Toolchain and workspace inputs.

    Returns:
        Map of unit index to fingerprint, or None for units that are not
        fingerprinted.

    Raises:
        TargetGcError: UNIT_GRAPH_INVALID if the graph has a cycle.
    """
    memo: dict[tuple, str | None] = {}
    _walk(graph, range(len(graph.units)), lto, ctx, memo)
    return {index: memo[unit.key] for index, unit in enumerate(graph.units)}


def fingerprint_of(
    graph: UnitGraph,
    index: int,
    lto: LtoMap,
    ctx: FingerprintContext,
    memo: dict[tuple, str | None] | None = None,
) -> str | None:
    """Fingerprint one unit, hashing only its dependency closure.

    Pass the same ``memo`` across calls to share work between units of one
    graph.

    Raises:
        TargetGcError: UNIT_GRAPH_INVALID if the closure has a cycle.
    """
    if memo is None:
        memo = {}
    _walk(graph, [index], lto, ctx, memo)
    return memo[graph.units[index].key]
