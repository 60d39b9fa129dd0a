"""Unit graph data model.

A unit is one concrete compilation task: a target of a package, compiled
with one profile, for one purpose, for one platform, with one feature set.
The build planner hands these over as the JSON document cargo prints with
``--unit-graph`` (format version 1):

    {
      "version": 1,
      "units": [{"pkg_id": ..., "target": {...}, "profile": {...},
                 "platform": null, "mode": "build", "features": [...],
                 "dependencies": [{"index": 1, "extern_crate_name": "dep"}]}],
      "roots": [0]
    }

Units refer to their dependencies by index. The same unit is often
reachable through several parents, so every consumer treats the graph as
a DAG with shared nodes.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import unquote, urlparse

from targetgc.foundation.errors import ErrorCode, TargetGcError, unit_graph_error

UNIT_GRAPH_VERSION = 1


class CompileMode(Enum):
    """What is being done with a target."""

    TEST = "test"
    BUILD = "build"
    CHECK = "check"
    BENCH = "bench"
    DOC = "doc"
    DOCTEST = "doctest"
    RUN_CUSTOM_BUILD = "run-custom-build"

    @property
    def is_doc_test(self) -> bool:
        return self is CompileMode.DOCTEST

    @property
    def is_any_test(self) -> bool:
        """Test, bench and doctest all compile with --test."""
        return self in (CompileMode.TEST, CompileMode.BENCH, CompileMode.DOCTEST)

    @property
    def is_check(self) -> bool:
        return self is CompileMode.CHECK

    @property
    def is_run_custom_build(self) -> bool:
        return self is CompileMode.RUN_CUSTOM_BUILD


class CrateType(Enum):
    """A rustc crate type."""

    BIN = "bin"
    LIB = "lib"
    RLIB = "rlib"
    DYLIB = "dylib"
    CDYLIB = "cdylib"
    STATICLIB = "staticlib"
    PROC_MACRO = "proc-macro"
    OTHER = "other"

    @classmethod
    def _missing_(cls, value: object) -> CrateType:
        return cls.OTHER

    @property
    def can_lto(self) -> bool:
        """Crate types that are final link products and run LTO themselves."""
        return self in (CrateType.BIN, CrateType.STATICLIB, CrateType.CDYLIB)

    @property
    def is_dynamic(self) -> bool:
        return self in (CrateType.DYLIB, CrateType.CDYLIB, CrateType.PROC_MACRO)


class TargetKind(Enum):
    """Kind of target within a package."""

    LIB = "lib"
    BIN = "bin"
    TEST = "test"
    BENCH = "bench"
    EXAMPLE_LIB = "example-lib"
    EXAMPLE_BIN = "example-bin"
    CUSTOM_BUILD = "custom-build"


@dataclass(frozen=True, slots=True)
class PackageId:
    """Opaque package identity: name, version and source.

    Accepts both serialized forms cargo has used:
    ``"foo 0.1.0 (path+file:///work/foo)"`` and
    ``"path+file:///work/foo#foo@0.1.0"``.
    """

    name: str
    version: str
    source: str

    _LEGACY = re.compile(r"^(?P<name>\S+) (?P<version>\S+) \((?P<source>.+)\)$")

    @classmethod
    def parse(cls, raw: str) -> PackageId:
        match = cls._LEGACY.match(raw)
        if match:
            return cls(match["name"], match["version"], match["source"])

        if "#" not in raw:
            raise unit_graph_error(f"unrecognized package id '{raw}'")
        source, fragment = raw.rsplit("#", 1)
        if "@" in fragment:
            name, version = fragment.rsplit("@", 1)
        else:
            # "source#version": the name is the last path segment of the source
            version = fragment
            path = urlparse(source.split("+", 1)[-1]).path.rstrip("/")
            name = PurePosixPath(path).name
        if not name or not version:
            raise unit_graph_error(f"unrecognized package id '{raw}'")
        return cls(name, version, source)

    @property
    def is_path(self) -> bool:
        """Whether the package is a local path dependency or workspace member."""
        return self.source.startswith("path+")

    def stable_id(self, workspace_root: Path | None) -> str:
        """Identity that does not change when the workspace is moved.

        Path sources inside the workspace root are rendered relative to it.
        """
        source = self.source
        if self.is_path and workspace_root is not None:
            local = Path(unquote(urlparse(source[len("path+"):]).path))
            try:
                source = f"path+{local.relative_to(workspace_root).as_posix()}"
            except ValueError:
                pass  # outside the workspace: keep the absolute source
        return f"{self.name} {self.version} ({source})"

    def __str__(self) -> str:
        return f"{self.name} {self.version} ({self.source})"


@dataclass(frozen=True, slots=True)
class Target:
    """A lib, bin, test, bench, example or build script of a package."""

    kind: TargetKind
    crate_types: tuple[CrateType, ...]
    name: str
    src_path: str = ""
    edition: str = "2015"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Target:
        kinds = list(data.get("kind") or [])
        crate_types = tuple(CrateType(ct) for ct in data.get("crate_types") or kinds)
        if "custom-build" in kinds:
            kind = TargetKind.CUSTOM_BUILD
        elif "bin" in kinds:
            kind = TargetKind.BIN
        elif "test" in kinds:
            kind = TargetKind.TEST
        elif "bench" in kinds:
            kind = TargetKind.BENCH
        elif "example" in kinds:
            kind = (
                TargetKind.EXAMPLE_BIN
                if crate_types in ((), (CrateType.BIN,))
                else TargetKind.EXAMPLE_LIB
            )
        else:
            kind = TargetKind.LIB
        return cls(
            kind=kind,
            crate_types=crate_types,
            name=data["name"],
            src_path=data.get("src_path", ""),
            edition=str(data.get("edition", "2015")),
        )

    @property
    def crate_name(self) -> str:
        return self.name.replace("-", "_")

    @property
    def rustc_crate_types(self) -> tuple[CrateType, ...]:
        if self.kind in (TargetKind.LIB, TargetKind.EXAMPLE_LIB):
            return self.crate_types
        return (CrateType.BIN,)

    @property
    def kind_tag(self) -> str:
        """Kind plus crate types, e.g. ``lib:rlib,cdylib``."""
        return f"{self.kind.value}:{','.join(ct.value for ct in self.crate_types)}"

    @property
    def is_lib(self) -> bool:
        return self.kind is TargetKind.LIB

    @property
    def is_bin(self) -> bool:
        return self.kind is TargetKind.BIN

    @property
    def is_executable(self) -> bool:
        return self.kind in (TargetKind.BIN, TargetKind.EXAMPLE_BIN)

    @property
    def is_dylib(self) -> bool:
        return self.is_lib and CrateType.DYLIB in self.crate_types

    @property
    def is_cdylib(self) -> bool:
        return self.is_lib and CrateType.CDYLIB in self.crate_types

    @property
    def is_proc_macro(self) -> bool:
        return self.is_lib and CrateType.PROC_MACRO in self.crate_types

    @property
    def is_custom_build(self) -> bool:
        return self.kind is TargetKind.CUSTOM_BUILD

    @property
    def for_host(self) -> bool:
        """Build scripts and proc-macros are always compiled for the host."""
        return self.is_custom_build or self.is_proc_macro


@dataclass(frozen=True, slots=True)
class LtoSetting:
    """The ``lto`` profile setting as written by the user.

    ``mode`` is "off", "true", "false" or a named mode such as "thin".
    """

    mode: str

    @classmethod
    def parse(cls, value: object) -> LtoSetting:
        if isinstance(value, bool):
            return cls("true" if value else "false")
        if value is None:
            return cls("false")
        return cls(str(value))

    @property
    def is_off(self) -> bool:
        return self.mode == "off"

    @property
    def disabled(self) -> bool:
        """No LTO requested at all, so no bitcode is needed."""
        return self.mode in ("off", "false")

    @property
    def named(self) -> str | None:
        return None if self.mode in ("off", "true", "false") else self.mode


def _canonical(value: object) -> str | None:
    """Flatten nested profile settings (strip, debuginfo) into a stable string."""
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, separators=(",", ":"))
    return str(value)


@dataclass(frozen=True, slots=True)
class Profile:
    """Profile settings used to compile a unit."""

    name: str
    opt_level: str = "0"
    lto: LtoSetting = LtoSetting("false")
    codegen_units: int | None = None
    debuginfo: str | None = None
    split_debuginfo: str | None = None
    debug_assertions: bool = False
    overflow_checks: bool = False
    rpath: bool = False
    incremental: bool = False
    panic: str = "unwind"
    strip: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Profile:
        codegen_units = data.get("codegen_units")
        return cls(
            name=str(data.get("name", "dev")),
            opt_level=str(data.get("opt_level", "0")),
            lto=LtoSetting.parse(data.get("lto")),
            codegen_units=int(codegen_units) if codegen_units is not None else None,
            debuginfo=_canonical(data.get("debuginfo")),
            split_debuginfo=_canonical(data.get("split_debuginfo")),
            debug_assertions=bool(data.get("debug_assertions", False)),
            overflow_checks=bool(data.get("overflow_checks", False)),
            rpath=bool(data.get("rpath", False)),
            incremental=bool(data.get("incremental", False)),
            panic=str(data.get("panic", "unwind")),
            strip=_canonical(data.get("strip")),
        )

    def record(self) -> str:
        """Every setting, in a fixed order, as one string."""
        return "|".join(
            f"{key}={value}"
            for key, value in (
                ("name", self.name),
                ("opt_level", self.opt_level),
                ("lto", self.lto.mode),
                ("codegen_units", self.codegen_units),
                ("debuginfo", self.debuginfo),
                ("split_debuginfo", self.split_debuginfo),
                ("debug_assertions", self.debug_assertions),
                ("overflow_checks", self.overflow_checks),
                ("rpath", self.rpath),
                ("incremental", self.incremental),
                ("panic", self.panic),
                ("strip", self.strip),
            )
        )


@dataclass(frozen=True, slots=True)
class UnitDep:
    """An edge from a unit to one of its dependencies."""

    index: int
    extern_crate_name: str
    public: bool | None = None
    noprelude: bool | None = None


@dataclass(frozen=True, slots=True)
class Unit:
    """One concrete compilation task."""

    pkg_id: PackageId
    target: Target
    profile: Profile
    platform: str | None
    """Target triple, or None for the host."""

    mode: CompileMode
    features: tuple[str, ...] = ()
    is_std: bool = False
    dependencies: tuple[UnitDep, ...] = ()

    @property
    def key(self) -> tuple:
        """Identity of the unit; dependency edges are not part of it."""
        return (
            self.pkg_id,
            self.target,
            self.profile,
            self.mode,
            self.platform,
            self.features,
            self.is_std,
        )

    @property
    def is_host(self) -> bool:
        return self.platform is None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Unit:
        return cls(
            pkg_id=PackageId.parse(data["pkg_id"]),
            target=Target.from_dict(data["target"]),
            profile=Profile.from_dict(data.get("profile") or {}),
            platform=data.get("platform"),
            mode=CompileMode(data["mode"]),
            features=tuple(data.get("features") or ()),
            is_std=bool(data.get("is_std", False)),
            dependencies=tuple(
                UnitDep(
                    index=int(dep["index"]),
                    extern_crate_name=dep.get("extern_crate_name", ""),
                    public=dep.get("public"),
                    noprelude=dep.get("noprelude"),
                )
                for dep in data.get("dependencies") or ()
            ),
        )

    def describe(self) -> str:
        platform = self.platform or "host"
        return f"{self.pkg_id.name}/{self.target.name} [{self.mode.value}, {platform}]"


@dataclass(frozen=True, slots=True)
class UnitGraph:
    """Units plus the indices of the requested root units."""

    units: tuple[Unit, ...] = ()
    roots: tuple[int, ...] = ()
    version: int = UNIT_GRAPH_VERSION

    def __post_init__(self) -> None:
        count = len(self.units)
        for root in self.roots:
            if not 0 <= root < count:
                raise unit_graph_error(f"root index {root} out of range ({count} units)")
        for unit in self.units:
            for dep in unit.dependencies:
                if not 0 <= dep.index < count:
                    raise unit_graph_error(
                        f"{unit.describe()} depends on index {dep.index} ({count} units)"
                    )

    def __len__(self) -> int:
        return len(self.units)

    def deps(self, index: int) -> list[int]:
        """Dependency indices of the unit at ``index``."""
        return [dep.index for dep in self.units[index].dependencies]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UnitGraph:
        version = data.get("version")
        if version != UNIT_GRAPH_VERSION:
            raise TargetGcError(
                code=ErrorCode.UNIT_GRAPH_VERSION,
                context={"version": version, "expected": UNIT_GRAPH_VERSION},
            )
        try:
            units = tuple(Unit.from_dict(u) for u in data.get("units") or ())
            roots = tuple(int(r) for r in data.get("roots") or ())
        except (KeyError, TypeError, ValueError) as e:
            raise unit_graph_error(f"{type(e).__name__}: {e}", cause=e) from e
        return cls(units=units, roots=roots, version=version)

    @classmethod
    def from_json(cls, text: str) -> UnitGraph:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise unit_graph_error(str(e), cause=e) from e
        if not isinstance(data, dict):
            raise unit_graph_error("top-level value is not an object")
        return cls.from_dict(data)
