"""Pytest fixtures for targetgc tests.

Unit graphs are built synthetically; no test runs cargo or rustc.
"""

import os
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from targetgc.foundation.config import reset_config
from targetgc.incremental.hasher import FingerprintContext
from targetgc.units.model import (
    CompileMode,
    CrateType,
    LtoSetting,
    PackageId,
    Profile,
    Target,
    TargetKind,
    Unit,
    UnitDep,
    UnitGraph,
)
from targetgc.units.toolchain import RustcInfo

HOST = "x86_64-unknown-linux-gnu"

RUSTC_STABLE = """rustc 1.78.0 (9b00956e5 2024-04-29)
binary: rustc
commit-hash: 9b00956e56009bab2aa15d7bff10916599e3d6d6
commit-date: 2024-04-29
host: x86_64-unknown-linux-gnu
release: 1.78.0
LLVM version: 18.1.2
"""

RUSTC_NIGHTLY = """rustc 1.80.0-nightly (72fdf913c 2024-05-05)
binary: rustc
commit-hash: 72fdf913c53dd0e75313ba83e4aa80df3f6e2871
commit-date: 2024-05-05
host: x86_64-unknown-linux-gnu
release: 1.80.0-nightly
LLVM version: 18.1.4
"""

_DEFAULT_CRATE_TYPES = {
    TargetKind.LIB: (CrateType.LIB,),
    TargetKind.BIN: (CrateType.BIN,),
    TargetKind.TEST: (CrateType.BIN,),
    TargetKind.BENCH: (CrateType.BIN,),
    TargetKind.EXAMPLE_BIN: (CrateType.BIN,),
    TargetKind.EXAMPLE_LIB: (CrateType.LIB,),
    TargetKind.CUSTOM_BUILD: (CrateType.BIN,),
}


def build_profile(name: str = "dev", lto: object = False, **settings: object) -> Profile:
    return Profile(name=name, lto=LtoSetting.parse(lto), **settings)


def build_unit(
    package: str,
    *,
    kind: TargetKind = TargetKind.LIB,
    crate_types: tuple[CrateType, ...] | None = None,
    mode: CompileMode = CompileMode.BUILD,
    profile: Profile | None = None,
    platform: str | None = None,
    features: tuple[str, ...] = (),
    deps: Sequence[int] = (),
    target_name: str | None = None,
    version: str = "0.1.0",
    registry: bool = False,
) -> Unit:
    if registry:
        source = "registry+https://github.com/rust-lang/crates.io-index"
    else:
        source = f"path+file:///work/{package}"
    if kind is TargetKind.CUSTOM_BUILD:
        default_name = "build-script-build"
    else:
        default_name = package
    return Unit(
        pkg_id=PackageId(package, version, source),
        target=Target(
            kind=kind,
            crate_types=crate_types if crate_types is not None else _DEFAULT_CRATE_TYPES[kind],
            name=target_name or default_name,
        ),
        profile=profile or build_profile(),
        platform=platform,
        mode=mode,
        features=features,
        dependencies=tuple(UnitDep(index=i, extern_crate_name="") for i in deps),
    )


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep user config files and TARGETGC_* variables out of every test."""
    for key in list(os.environ):
        if key.startswith("TARGETGC_"):
            monkeypatch.delenv(key)
    monkeypatch.delenv("RUSTC_WORKSPACE_WRAPPER", raising=False)
    monkeypatch.delenv("__CARGO_DEFAULT_LIB_METADATA", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    reset_config()


@pytest.fixture
def make_unit() -> Callable[..., Unit]:
    """Builder for synthetic units (see ``build_unit``)."""
    return build_unit


@pytest.fixture
def make_profile() -> Callable[..., Profile]:
    """Builder for profiles with an LTO setting."""
    return build_profile


@pytest.fixture
def rustc() -> RustcInfo:
    return RustcInfo.parse(RUSTC_STABLE)


@pytest.fixture
def nightly_rustc() -> RustcInfo:
    return RustcInfo.parse(RUSTC_NIGHTLY)


@pytest.fixture
def ctx(rustc: RustcInfo) -> FingerprintContext:
    """Fingerprint context for a workspace at /work with members app and core."""
    return FingerprintContext(
        rustc=rustc,
        workspace_root=Path("/work"),
        members=frozenset({"app", "core"}),
    )


@pytest.fixture
def app_graph() -> UnitGraph:
    """A small workspace: bin ``app`` -> lib ``core`` -> registry lib ``serde``.

    ``core`` has a build script whose run depends on its compile.
    """
    units = (
        build_unit("app", kind=TargetKind.BIN, deps=[1]),
        build_unit("core", deps=[2, 4]),
        build_unit("serde", registry=True, version="1.0.200"),
        build_unit("core", kind=TargetKind.CUSTOM_BUILD),
        build_unit("core", kind=TargetKind.CUSTOM_BUILD, mode=CompileMode.RUN_CUSTOM_BUILD, deps=[3]),
    )
    return UnitGraph(units=units, roots=(0,))


@pytest.fixture
def write_file() -> Callable[[Path, int], Path]:
    """Create a file of ``size`` bytes, with parent directories."""

    def _write(path: Path, size: int = 0) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"x" * size)
        return path

    return _write
