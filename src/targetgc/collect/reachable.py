"""Live identifier sets: the names each zone of an output dir must keep.

For every unit of every enumerated graph we register:

- its fingerprint directory, ``<package>-<fingerprint>``
- its build script directory, for build script targets
- its files in ``deps/`` plus the ``.d`` dependency listing
- for build units that get uplifted, the stable top-level names

A unit without a fingerprint is named by a stable hash of its identity
instead. Sets from every compile purpose built into one output dir are
unioned before anything is deleted, since they all share that directory.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from targetgc.collect.outputs import FileFlavor, file_stem, rustc_outputs
from targetgc.incremental.hasher import FingerprintContext, compute_fingerprints, target_short_hash
from targetgc.incremental.lto import generate
from targetgc.units.model import CompileMode, CrateType, UnitGraph

logger = logging.getLogger(__name__)

_OUTPUT_MODES = (CompileMode.TEST, CompileMode.BUILD, CompileMode.BENCH, CompileMode.CHECK)


@dataclass(slots=True)
class LiveSet:
    """Names that must survive a collection pass, per zone."""

    fingerprints: set[str] = field(default_factory=set)
    """Children of ``.fingerprint/``."""

    builds: set[str] = field(default_factory=set)
    """Children of ``build/``."""

    deps: set[str] = field(default_factory=set)
    """File names in ``deps/``."""

    uplifts: set[str] = field(default_factory=set)
    """Top-level file names of the profile directory."""

    def update(self, other: LiveSet) -> None:
        """Union ``other`` into this set."""
        self.fingerprints |= other.fingerprints
        self.builds |= other.builds
        self.deps |= other.deps
        self.uplifts |= other.uplifts

    @property
    def dep_stems(self) -> set[str]:
        """``deps`` names without their final extension.

        ``deps/`` is matched by stem so every file a unit produces under one
        stem (``.rlib``, ``.rmeta``, ``.dSYM``, ``.pdb``...) is kept together.
        """
        return {file_stem(name) for name in self.deps}

    def __len__(self) -> int:
        return len(self.fingerprints) + len(self.builds) + len(self.deps) + len(self.uplifts)


def collect_units(
    graph: UnitGraph,
    fingerprints: dict[int, str | None],
    ctx: FingerprintContext,
    live: LiveSet,
    host_live: LiveSet | None = None,
) -> None:
    """Register the on-disk names of every unit in ``graph`` into ``live``.

    Args:
        graph: The unit graph.
        fingerprints: Fingerprint per unit index (None if not fingerprinted).
        ctx: Toolchain and workspace inputs (host triple, fallback hashing).
        live: Set to add names to.
        host_live: Set for host units of a cross-compilation graph. Those
            are built into the host subtree, not next to the target units.
            Defaults to ``live``.
    """
    roots = set(graph.roots)

    for index, unit in enumerate(graph.units):
        dest = host_live if host_live is not None and unit.is_host else live
        meta = fingerprints.get(index)
        target = unit.target

        if unit.mode in _OUTPUT_MODES:
            triple = ctx.short_name(unit)
            for file_type in rustc_outputs(unit.mode, target, triple):
                dest.deps.add(file_type.output_filename(target, meta))

                uplifted = (
                    unit.mode is CompileMode.BUILD
                    and file_type.flavor is not FileFlavor.RMETA
                    and (target.is_bin or file_type.crate_type is CrateType.DYLIB or index in roots)
                )
                if uplifted:
                    uplift_name = file_type.uplift_filename(target)
                    dest.uplifts.add(uplift_name)
                    dest.uplifts.add(f"{file_stem(uplift_name)}.d")

        dest.deps.add(f"{target.crate_name}-{meta}.d" if meta else f"{target.crate_name}.d")

        pkg_dir = f"{unit.pkg_id.name}-{meta or target_short_hash(unit, ctx)}"
        if target.is_custom_build:
            dest.builds.add(pkg_dir)
        dest.fingerprints.add(pkg_dir)


def collect_graph(
    graph: UnitGraph,
    ctx: FingerprintContext,
    live: LiveSet,
    host_live: LiveSet | None = None,
) -> None:
    """Compute LTO requirements and fingerprints for ``graph`` and collect its names."""
    lto = generate(graph)
    fingerprints = compute_fingerprints(graph, lto, ctx)
    collect_units(graph, fingerprints, ctx, live, host_live)
    logger.debug(
        "Collected %d units: %d fingerprint dirs, %d build dirs, %d deps, %d uplifts so far",
        len(graph),
        len(live.fingerprints),
        len(live.builds),
        len(live.deps),
        len(live.uplifts),
    )
