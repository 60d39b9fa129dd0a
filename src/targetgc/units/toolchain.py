"""Toolchain probing: compiler version and workspace layout.

Both are inputs the unit graph does not carry. The compiler version feeds
the fingerprint hash; the workspace layout tells us where the output root
is, which packages are members, and what to make path sources relative to.
"""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from targetgc.foundation.errors import toolchain_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RustcInfo:
    """Parsed output of ``rustc -vV``."""

    verbose_version: str
    """The whole ``rustc -vV`` text."""

    release: str
    """e.g. ``1.44.0-nightly``."""

    host: str
    """Host target triple."""

    @property
    def pre_release(self) -> tuple[str, ...]:
        """Dot-separated pre-release identifiers (empty on stable)."""
        _, sep, pre = self.release.partition("-")
        return tuple(pre.split(".")) if sep and pre else ()

    @property
    def channel(self) -> str:
        """Release channel such as nightly, beta or dev; empty on stable."""
        pre = self.pre_release
        return pre[0] if pre else ""

    @classmethod
    def parse(cls, text: str) -> RustcInfo:
        fields: dict[str, str] = {}
        for line in text.splitlines():
            key, sep, value = line.partition(":")
            if sep:
                fields[key.strip()] = value.strip()
        release = fields.get("release")
        host = fields.get("host")
        if not release or not host:
            raise toolchain_error("rustc", "version output has no release/host line", key="rustc")
        return cls(verbose_version=text.strip(), release=release, host=host)


@dataclass(frozen=True, slots=True)
class CargoWorkspace:
    """Workspace facts from ``cargo metadata --no-deps``."""

    workspace_root: Path
    target_directory: Path
    members: frozenset[str]
    """Member package names."""

    @classmethod
    def from_metadata(cls, data: dict) -> CargoWorkspace:
        packages = {p["id"]: p["name"] for p in data.get("packages", ())}
        members = frozenset(
            packages.get(member_id, member_id) for member_id in data.get("workspace_members", ())
        )
        return cls(
            workspace_root=Path(data["workspace_root"]),
            target_directory=Path(data["target_directory"]),
            members=members,
        )


def _run(cmd: list[str], key: str) -> str:
    logger.debug("Running %s", " ".join(cmd))
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, check=False)
    except OSError as e:
        raise toolchain_error(cmd[0], str(e), key=key, cause=e) from e
    if proc.returncode != 0:
        detail = proc.stderr.strip() or f"exit status {proc.returncode}"
        raise toolchain_error(cmd[0], detail, key=key)
    return proc.stdout


def query_rustc(rustc: str = "rustc") -> RustcInfo:
    """Run ``rustc -vV`` and parse it."""
    return RustcInfo.parse(_run([rustc, "-vV"], key="rustc"))


def query_workspace(
    cargo: str = "cargo",
    manifest_path: Path | None = None,
    extra_args: tuple[str, ...] = (),
) -> CargoWorkspace:
    """Run ``cargo metadata`` for the workspace containing ``manifest_path``."""
    cmd = [cargo, "metadata", "--format-version", "1", "--no-deps", *extra_args]
    if manifest_path is not None:
        cmd += ["--manifest-path", str(manifest_path)]
    out = _run(cmd, key="cargo")
    try:
        return CargoWorkspace.from_metadata(json.loads(out))
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        raise toolchain_error(cargo, f"unexpected metadata output: {e}", key="cargo", cause=e) from e
