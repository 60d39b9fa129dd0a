"""Tests for unit fingerprints."""

import re
from dataclasses import replace
from pathlib import Path

import pytest

from targetgc.foundation.errors import ErrorCode, TargetGcError
from targetgc.incremental.hasher import (
    FINGERPRINT_LENGTH,
    FingerprintContext,
    compute_fingerprint,
    compute_fingerprints,
    fingerprint_of,
    should_fingerprint,
    target_short_hash,
)
from targetgc.incremental.lto import Lto, generate
from targetgc.units.model import CompileMode, CrateType, PackageId, TargetKind, UnitDep, UnitGraph
from targetgc.units.toolchain import RustcInfo


def _nightly(date: str, host: str = "x86_64-unknown-linux-gnu") -> RustcInfo:
    return RustcInfo.parse(
        f"rustc 1.80.0-nightly (abc {date})\nhost: {host}\nrelease: 1.80.0-nightly\ncommit-date: {date}\n"
    )


class TestComputeFingerprint:
    """Tests for compute_fingerprint."""

    def test_deterministic(self, make_unit, ctx: FingerprintContext) -> None:
        """Same unit and dependencies always produce the same fingerprint."""
        unit = make_unit("core", features=("std",))

        fp1 = compute_fingerprint(unit, ["aaaa"], Lto.only_object(), ctx)
        fp2 = compute_fingerprint(unit, ["aaaa"], Lto.only_object(), ctx)

        assert fp1 == fp2
        assert re.fullmatch(rf"[0-9a-f]{{{FINGERPRINT_LENGTH}}}", fp1)

    def test_dependency_order_does_not_matter(self, make_unit, ctx: FingerprintContext) -> None:
        unit = make_unit("core")

        fp1 = compute_fingerprint(unit, ["aaaa", "bbbb", None], Lto.only_object(), ctx)
        fp2 = compute_fingerprint(unit, [None, "bbbb", "aaaa"], Lto.only_object(), ctx)

        assert fp1 == fp2

    @pytest.mark.parametrize(
        "change",
        [
            {"profile": "release"},
            {"features": ("serde",)},
            {"mode": CompileMode.CHECK},
            {"platform": "aarch64-unknown-linux-gnu"},
            {"deps": ["cccc"]},
            {"lto": Lto.only_bitcode()},
        ],
        ids=["profile", "features", "mode", "platform", "dependency", "lto"],
    )
    def test_sensitive_to(self, change: dict, make_unit, make_profile, ctx: FingerprintContext) -> None:
        """Changing any identity input changes the fingerprint."""
        base_unit = make_unit("core")
        base = compute_fingerprint(base_unit, ["aaaa"], Lto.only_object(), ctx)

        unit = base_unit
        if "profile" in change:
            unit = replace(unit, profile=make_profile(change["profile"]))
        if "features" in change:
            unit = replace(unit, features=change["features"])
        if "mode" in change:
            unit = replace(unit, mode=change["mode"])
        if "platform" in change:
            unit = replace(unit, platform=change["platform"])
        deps = change.get("deps", ["aaaa"])
        lto = change.get("lto", Lto.only_object())

        assert compute_fingerprint(unit, deps, lto, ctx) != base

    def test_stable_releases_kept_apart(self, make_unit, rustc: RustcInfo) -> None:
        unit = make_unit("core")
        newer = RustcInfo.parse(rustc.verbose_version.replace("1.78.0", "1.79.0"))

        fp1 = compute_fingerprint(unit, [], Lto.only_object(), FingerprintContext(rustc))
        fp2 = compute_fingerprint(unit, [], Lto.only_object(), FingerprintContext(newer))

        assert fp1 != fp2

    def test_nightlies_share_by_channel_and_host(self, make_unit) -> None:
        """Two nightlies of the same channel and host share fingerprints."""
        unit = make_unit("core")

        fp1 = compute_fingerprint(unit, [], Lto.only_object(), FingerprintContext(_nightly("2024-05-05")))
        fp2 = compute_fingerprint(unit, [], Lto.only_object(), FingerprintContext(_nightly("2024-05-06")))
        other_host = compute_fingerprint(
            unit, [], Lto.only_object(), FingerprintContext(_nightly("2024-05-05", "aarch64-apple-darwin"))
        )

        assert fp1 == fp2
        assert fp1 != other_host

    def test_separate_nightlies(self, make_unit) -> None:
        unit = make_unit("core")

        fp1 = compute_fingerprint(
            unit, [], Lto.only_object(), FingerprintContext(_nightly("2024-05-05"), separate_nightlies=True)
        )
        fp2 = compute_fingerprint(
            unit, [], Lto.only_object(), FingerprintContext(_nightly("2024-05-06"), separate_nightlies=True)
        )

        assert fp1 != fp2

    def test_wrapper_only_affects_members(self, make_unit, ctx: FingerprintContext) -> None:
        """A workspace wrapper keeps member artifacts apart, not registry ones."""
        wrapped = replace(ctx, workspace_wrapper="/usr/bin/clippy-driver")
        member = make_unit("core", mode=CompileMode.CHECK)
        registry = make_unit("serde", mode=CompileMode.CHECK, registry=True)

        assert compute_fingerprint(member, [], Lto.only_object(), ctx) != compute_fingerprint(
            member, [], Lto.only_object(), wrapped
        )
        assert compute_fingerprint(registry, [], Lto.only_object(), ctx) == compute_fingerprint(
            registry, [], Lto.only_object(), wrapped
        )

    def test_relocation_stable(self, make_unit, rustc: RustcInfo) -> None:
        """Moving the whole workspace keeps fingerprints."""
        unit = make_unit("core")
        moved = replace(unit, pkg_id=PackageId("core", "0.1.0", "path+file:///moved/core"))

        fp1 = compute_fingerprint(unit, [], Lto.only_object(), FingerprintContext(rustc, Path("/work")))
        fp2 = compute_fingerprint(moved, [], Lto.only_object(), FingerprintContext(rustc, Path("/moved")))

        assert fp1 == fp2


class TestShouldFingerprint:
    """Which units carry a fingerprint suffix."""

    def test_doctest_never(self, make_unit, ctx: FingerprintContext) -> None:
        assert not should_fingerprint(make_unit("core", mode=CompileMode.DOCTEST), ctx)

    def test_tests_and_checks_always(self, make_unit, ctx: FingerprintContext) -> None:
        cdylib = (CrateType.CDYLIB,)

        assert should_fingerprint(make_unit("ffi", crate_types=cdylib, mode=CompileMode.TEST), ctx)
        assert should_fingerprint(make_unit("ffi", crate_types=cdylib, mode=CompileMode.CHECK), ctx)

    def test_local_dynamic_library_is_unhashed(self, make_unit, ctx: FingerprintContext) -> None:
        assert not should_fingerprint(make_unit("ffi", crate_types=(CrateType.CDYLIB,)), ctx)
        assert should_fingerprint(make_unit("ffi", crate_types=(CrateType.CDYLIB,), registry=True), ctx)

    def test_platform_fixed_executable_names(self, make_unit, ctx: FingerprintContext) -> None:
        """Executables on Apple, MSVC and wasm32 targets keep fixed names."""
        for platform in ("aarch64-apple-darwin", "x86_64-pc-windows-msvc", "wasm32-unknown-unknown"):
            unit = make_unit("app", kind=TargetKind.BIN, platform=platform)
            assert not should_fingerprint(unit, ctx)
        assert should_fingerprint(make_unit("app", kind=TargetKind.BIN), ctx)

    def test_default_lib_metadata_forces(self, make_unit, ctx: FingerprintContext) -> None:
        forced = replace(ctx, default_lib_metadata="1.0")

        assert should_fingerprint(make_unit("ffi", crate_types=(CrateType.CDYLIB,)), forced)


class TestComputeFingerprints:
    """Tests for fingerprinting a whole graph."""

    def test_every_unit(self, app_graph: UnitGraph, ctx: FingerprintContext) -> None:
        fingerprints = compute_fingerprints(app_graph, generate(app_graph), ctx)

        assert set(fingerprints) == set(range(len(app_graph)))
        assert all(fp is not None for fp in fingerprints.values())
        assert len(set(fingerprints.values())) == len(app_graph)

    def test_dependency_change_propagates(self, app_graph: UnitGraph, ctx: FingerprintContext) -> None:
        """A changed leaf changes every unit above it, and nothing else."""
        before = compute_fingerprints(app_graph, generate(app_graph), ctx)
        units = list(app_graph.units)
        units[2] = replace(units[2], features=("derive",))
        changed = UnitGraph(units=tuple(units), roots=app_graph.roots)

        after = compute_fingerprints(changed, generate(changed), ctx)

        assert after[2] != before[2]
        assert after[1] != before[1]
        assert after[0] != before[0]
        assert after[3] == before[3]
        assert after[4] == before[4]

    def test_unfingerprinted_dependency(self, make_unit, ctx: FingerprintContext) -> None:
        """Units without a fingerprint still count as dependencies."""
        units = (make_unit("app", kind=TargetKind.BIN, deps=[1]), make_unit("ffi", crate_types=(CrateType.CDYLIB,)))
        graph = UnitGraph(units=units, roots=(0,))

        fingerprints = compute_fingerprints(graph, generate(graph), ctx)

        assert fingerprints[1] is None
        assert fingerprints[0] is not None

    def test_cycle_is_rejected(self, make_unit, ctx: FingerprintContext) -> None:
        units = (make_unit("a", deps=[1]), make_unit("b", deps=[0]))
        graph = UnitGraph(units=units, roots=(0,))

        with pytest.raises(TargetGcError) as exc_info:
            compute_fingerprints(graph, {}, ctx)

        assert exc_info.value.code == ErrorCode.UNIT_GRAPH_INVALID

    def test_diamond(self, make_unit, ctx: FingerprintContext) -> None:
        """A shared dependency is hashed once and seen identically by both parents."""
        units = (
            make_unit("app", kind=TargetKind.BIN, deps=[1, 2]),
            make_unit("left", deps=[3]),
            make_unit("right", deps=[3]),
            make_unit("base"),
        )
        graph = UnitGraph(units=units, roots=(0,))
        lto = generate(graph)
        fingerprints = compute_fingerprints(graph, lto, ctx)

        expected_left = compute_fingerprint(units[1], [fingerprints[3]], lto[1], ctx)
        assert fingerprints[1] == expected_left

    def test_deep_chain(self, make_unit, ctx: FingerprintContext) -> None:
        """Long chains do not hit the recursion limit."""
        depth = 5000
        units = tuple(
            make_unit(f"lib{i}", deps=[i + 1] if i + 1 < depth else []) for i in range(depth)
        )
        graph = UnitGraph(units=units, roots=(0,))

        fingerprints = compute_fingerprints(graph, {}, ctx)

        assert len(fingerprints) == depth

    def test_edge_order(self, make_unit, ctx: FingerprintContext) -> None:
        units = (make_unit("app", kind=TargetKind.BIN, deps=[1, 2]), make_unit("a"), make_unit("b"))
        swapped = (
            replace(units[0], dependencies=(UnitDep(2, ""), UnitDep(1, ""))),
            units[1],
            units[2],
        )

        fp1 = compute_fingerprints(UnitGraph(units=units, roots=(0,)), {}, ctx)
        fp2 = compute_fingerprints(UnitGraph(units=swapped, roots=(0,)), {}, ctx)

        assert fp1 == fp2


class TestTargetShortHash:
    """Tests for the fallback hash of unfingerprinted units."""

    def test_stable_and_distinct(self, make_unit, make_profile, ctx: FingerprintContext) -> None:
        unit = make_unit("ffi", crate_types=(CrateType.CDYLIB,))
        release = replace(unit, profile=make_profile("release"))

        assert target_short_hash(unit, ctx) == target_short_hash(unit, ctx)
        assert target_short_hash(unit, ctx) != target_short_hash(release, ctx)
        assert len(target_short_hash(unit, ctx)) == FINGERPRINT_LENGTH


class TestFingerprintOf:
    """Tests for fingerprinting a single unit."""

    def test_matches_whole_graph_on_diamond(self, make_unit, ctx: FingerprintContext) -> None:
        units = (
            make_unit("app", kind=TargetKind.BIN, deps=[1, 2]),
            make_unit("left", deps=[3]),
            make_unit("right", deps=[3]),
            make_unit("base"),
        )
        graph = UnitGraph(units=units, roots=(0,))
        lto = generate(graph)
        everything = compute_fingerprints(graph, lto, ctx)

        for index in range(len(units)):
            assert fingerprint_of(graph, index, lto, ctx) == everything[index]

    def test_only_hashes_the_closure(self, make_unit, ctx: FingerprintContext) -> None:
        units = (make_unit("app", kind=TargetKind.BIN, deps=[1]), make_unit("core"), make_unit("other"))
        graph = UnitGraph(units=units, roots=(0,))
        memo: dict = {}

        fingerprint_of(graph, 1, generate(graph), ctx, memo)

        assert set(memo) == {units[1].key}

    def test_shared_memo(self, make_unit, ctx: FingerprintContext) -> None:
        units = (make_unit("app", kind=TargetKind.BIN, deps=[1]), make_unit("core"))
        graph = UnitGraph(units=units, roots=(0,))
        lto = generate(graph)
        memo: dict = {}

        core = fingerprint_of(graph, 1, lto, ctx, memo)
        app = fingerprint_of(graph, 0, lto, ctx, memo)

        assert memo[units[1].key] == core
        assert app == compute_fingerprints(graph, lto, ctx)[0]

    def test_unfingerprinted_unit(self, make_unit, ctx: FingerprintContext) -> None:
        graph = UnitGraph(units=(make_unit("ffi", crate_types=(CrateType.CDYLIB,)),), roots=(0,))

        assert fingerprint_of(graph, 0, {}, ctx) is None
