"""Output file naming.

Which files a unit leaves in ``deps/`` and which stable names get uplifted
to the profile directory depends on the compile mode, the crate types and
the platform's naming conventions (``libfoo.so`` vs ``foo.dll`` vs
``libfoo.dylib``). This mirrors the build tool's own naming closely enough
to recognise its outputs; a divergence means live files go unrecognised
and get collected, so keep these tables in step with the build tool.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from targetgc.units.model import CompileMode, CrateType, Target, TargetKind


class FileFlavor(Enum):
    """Role of an output file."""

    NORMAL = "normal"
    LINKABLE = "linkable"
    RMETA = "rmeta"
    DEBUG_INFO = "debug-info"
    AUXILIARY = "auxiliary"


@dataclass(frozen=True, slots=True)
class FileType:
    """One kind of file a unit produces."""

    flavor: FileFlavor
    crate_type: CrateType | None
    prefix: str
    suffix: str
    should_replace_hyphens: bool = True
    """Uplifted name uses the crate name (hyphens replaced) rather than the target name."""

    def output_filename(self, target: Target, fingerprint: str | None) -> str:
        """Name inside ``deps/``, qualified by the fingerprint when there is one."""
        meta = f"-{fingerprint}" if fingerprint else ""
        return f"{self.prefix}{target.crate_name}{meta}{self.suffix}"

    def uplift_filename(self, target: Target) -> str:
        """Stable, unhashed name in the profile directory."""
        replace = self.should_replace_hyphens or target.kind not in (
            TargetKind.BIN,
            TargetKind.EXAMPLE_BIN,
            TargetKind.TEST,
            TargetKind.BENCH,
        )
        name = target.crate_name if replace else target.name
        return f"{self.prefix}{name}{self.suffix}"


@dataclass(frozen=True, slots=True)
class PlatformNaming:
    """File naming conventions of one target triple."""

    triple: str

    @property
    def is_windows(self) -> bool:
        return "windows" in self.triple

    @property
    def is_msvc(self) -> bool:
        return self.triple.endswith("-msvc")

    @property
    def is_apple(self) -> bool:
        return "-apple-" in self.triple

    @property
    def is_wasm32(self) -> bool:
        return self.triple.startswith("wasm32-")

    @property
    def is_emscripten(self) -> bool:
        return "emscripten" in self.triple

    @property
    def exe_suffix(self) -> str:
        if self.is_windows:
            return ".exe"
        if self.is_emscripten:
            return ".js"
        if self.is_wasm32:
            return ".wasm"
        return ""

    @property
    def dylib(self) -> tuple[str, str]:
        """(prefix, suffix) of dynamic libraries."""
        if self.is_windows:
            return "", ".dll"
        if self.is_apple:
            return "lib", ".dylib"
        if self.is_wasm32:
            return "", ".wasm"
        return "lib", ".so"

    @property
    def staticlib(self) -> tuple[str, str]:
        if self.is_msvc:
            return "", ".lib"
        return "lib", ".a"


def _executable(naming: PlatformNaming) -> list[FileType]:
    files = [
        FileType(
            FileFlavor.NORMAL,
            CrateType.BIN,
            "",
            naming.exe_suffix,
            should_replace_hyphens=False,
        )
    ]
    if naming.is_msvc:
        files.append(FileType(FileFlavor.DEBUG_INFO, CrateType.BIN, "", ".pdb"))
    elif naming.is_apple:
        files.append(
            FileType(FileFlavor.DEBUG_INFO, CrateType.BIN, "", ".dSYM", should_replace_hyphens=False)
        )
    if naming.is_emscripten:
        files.append(FileType(FileFlavor.AUXILIARY, CrateType.BIN, "", ".wasm"))
    return files


def _dynamic(crate_type: CrateType, naming: PlatformNaming) -> list[FileType]:
    prefix, suffix = naming.dylib
    flavor = FileFlavor.LINKABLE if crate_type is CrateType.DYLIB else FileFlavor.NORMAL
    files = [FileType(flavor, crate_type, prefix, suffix)]
    if naming.is_msvc:
        files.append(FileType(FileFlavor.LINKABLE, crate_type, "", ".dll.lib"))
        files.append(FileType(FileFlavor.DEBUG_INFO, crate_type, "", ".pdb"))
    elif naming.is_windows:
        files.append(FileType(FileFlavor.LINKABLE, crate_type, "lib", ".dll.a"))
    elif naming.is_apple:
        files.append(FileType(FileFlavor.DEBUG_INFO, crate_type, prefix, ".dSYM"))
    return files


def rustc_outputs(mode: CompileMode, target: Target, triple: str) -> list[FileType]:
    """File types a unit with this mode and target produces on ``triple``.

    Doc, doctest and build-script-run units produce nothing in ``deps/``.
    """
    naming = PlatformNaming(triple)

    if mode is CompileMode.CHECK:
        return [FileType(FileFlavor.RMETA, None, "lib", ".rmeta")]
    if mode in (CompileMode.TEST, CompileMode.BENCH):
        return _executable(naming)
    if mode is not CompileMode.BUILD:
        return []

    files: list[FileType] = []
    crate_types = target.rustc_crate_types
    for crate_type in crate_types:
        match crate_type:
            case CrateType.BIN:
                files.extend(_executable(naming))
            case CrateType.LIB | CrateType.RLIB:
                files.append(FileType(FileFlavor.LINKABLE, crate_type, "lib", ".rlib"))
            case CrateType.DYLIB | CrateType.CDYLIB | CrateType.PROC_MACRO:
                files.extend(_dynamic(crate_type, naming))
            case CrateType.STATICLIB:
                prefix, suffix = naming.staticlib
                files.append(FileType(FileFlavor.NORMAL, crate_type, prefix, suffix))
            case _:
                pass  # unknown crate types produce nothing we can name

    if any(ct in (CrateType.LIB, CrateType.RLIB, CrateType.DYLIB) for ct in crate_types):
        files.append(FileType(FileFlavor.RMETA, None, "lib", ".rmeta"))
    return files


def file_stem(name: str) -> str:
    """Name without its final extension (``libfoo-ab12.rlib`` -> ``libfoo-ab12``)."""
    idx = name.rfind(".")
    return name[:idx] if idx > 0 else name
