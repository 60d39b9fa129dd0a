"""Build planner boundary.

Turning a manifest plus a feature/profile/platform selection into a unit
graph is the build tool's job. Everything downstream only sees the narrow
``BuildPlanner`` protocol, so tests and offline replays can hand in a
synthetic graph instead of running cargo.

Implementations:
- CargoUnitGraphPlanner: runs ``cargo <cmd> --unit-graph``
- StaticPlanner: answers from prepared graphs or JSON files
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from targetgc.foundation.errors import ErrorCode, TargetGcError, planning_error
from targetgc.units.model import UnitGraph

logger = logging.getLogger(__name__)


class ModeRequest(Enum):
    """Compile purposes the enumerator asks the planner for."""

    TEST = "test"
    BUILD = "build"
    CHECK = "check"
    CHECK_TEST = "check-test"
    BENCH = "bench"

    @property
    def is_test_like(self) -> bool:
        """Requests that compile with the test/bench profile."""
        return self in (ModeRequest.TEST, ModeRequest.BENCH, ModeRequest.CHECK_TEST)

    def cargo_args(self) -> list[str]:
        """Subcommand and target selection for this request."""
        match self:
            case ModeRequest.TEST:
                return ["test", "--no-run", "--all-targets"]
            case ModeRequest.BENCH:
                return ["bench", "--no-run", "--all-targets"]
            case ModeRequest.CHECK_TEST:
                return ["check", "--tests", "--benches"]
            case ModeRequest.CHECK:
                return ["check", "--all-targets"]
            case ModeRequest.BUILD:
                return ["build", "--all-targets"]


@dataclass(frozen=True, slots=True)
class PlanRequest:
    """One request to the build planner.

    Feature selection is always "all features", package selection always
    "every workspace member", target selection always "all targets".
    """

    output_root: Path
    """The target directory the planner should assume."""

    platform: str | None
    """Target triple, or None for the host."""

    profile: str
    """Requested profile name ("dev", "release", or a custom profile)."""

    mode: ModeRequest
    manifest_path: Path | None = None

    @property
    def cargo_profile(self) -> str:
        """Profile cargo actually compiles with for this request.

        Test-like requests use the test profile under dev and the bench
        profile under release; both write into the same profile directory.
        """
        if self.mode.is_test_like and self.profile in ("dev", "release"):
            return "bench" if self.profile == "release" else "test"
        return self.profile

    def __str__(self) -> str:
        platform = self.platform or "host"
        return f"{self.mode.value} --profile {self.cargo_profile} ({platform})"


class BuildPlanner(Protocol):
    """Produces the unit graph for one configuration."""

    def plan(self, request: PlanRequest) -> UnitGraph:
        """Return the unit graph, or raise a planning error."""
        ...


class CargoUnitGraphPlanner:
    """Asks cargo for ``--unit-graph`` output.

    ``--unit-graph`` is unstable, so cargo must be a nightly toolchain or
    run with ``RUSTC_BOOTSTRAP=1`` in the environment.
    """

    def __init__(
        self,
        cargo: str = "cargo",
        *,
        frozen: bool = False,
        locked: bool = False,
        offline: bool = False,
        env: dict[str, str] | None = None,
    ) -> None:
        self.cargo = cargo
        self.frozen = frozen
        self.locked = locked
        self.offline = offline
        self.env = env

    def command(self, request: PlanRequest) -> list[str]:
        cmd = [
            self.cargo,
            *request.mode.cargo_args(),
            "--unit-graph",
            "-Z",
            "unstable-options",
            "--workspace",
            "--all-features",
            "--profile",
            request.cargo_profile,
            "--target-dir",
            str(request.output_root),
        ]
        if request.platform is not None:
            cmd += ["--target", request.platform]
        if request.manifest_path is not None:
            cmd += ["--manifest-path", str(request.manifest_path)]
        if self.frozen:
            cmd.append("--frozen")
        if self.locked:
            cmd.append("--locked")
        if self.offline:
            cmd.append("--offline")
        return cmd

    def plan(self, request: PlanRequest) -> UnitGraph:
        cmd = self.command(request)
        logger.debug("Planning %s: %s", request, " ".join(cmd))
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, env=self.env, check=False)
        except OSError as e:
            raise planning_error(request, str(e), cause=e) from e

        if proc.returncode != 0:
            stderr = proc.stderr.strip()
            raise planning_error(
                request,
                stderr.splitlines()[-1] if stderr else f"exit status {proc.returncode}",
                stderr=stderr,
            )

        try:
            graph = UnitGraph.from_json(proc.stdout)
        except TargetGcError as e:
            raise planning_error(request, e.message, cause=e) from e
        logger.debug("Planned %s: %d units, %d roots", request, len(graph), len(graph.roots))
        return graph


class StaticPlanner:
    """Answers plan requests from prepared unit graphs.

    Graphs are keyed by (platform, profile, mode request). A request with no
    prepared graph gets an empty graph, just as a workspace with nothing to
    build for that purpose would.

    Example:
        >>> planner = StaticPlanner()
        >>> planner.add(None, "dev", ModeRequest.BUILD, graph)
        >>> planner.plan(PlanRequest(Path("target"), None, "dev", ModeRequest.BUILD))
    """

    def __init__(
        self,
        graphs: dict[tuple[str | None, str, ModeRequest], UnitGraph] | None = None,
    ) -> None:
        self._graphs = dict(graphs or {})
        self.requests: list[PlanRequest] = []
        """Every request seen, in order."""

    def add(self, platform: str | None, profile: str, mode: ModeRequest, graph: UnitGraph) -> None:
        self._graphs[(platform, profile, mode)] = graph

    @classmethod
    def from_directory(cls, path: Path) -> StaticPlanner:
        """Load ``<platform|host>.<profile>.<mode>.json`` files from ``path``."""
        planner = cls()
        for file in sorted(path.glob("*.json")):
            parts = file.stem.rsplit(".", 2)
            if len(parts) != 3:
                logger.debug("Ignoring %s: not <platform>.<profile>.<mode>.json", file.name)
                continue
            platform, profile, mode = parts
            try:
                request_mode = ModeRequest(mode)
            except ValueError:
                logger.debug("Ignoring %s: unknown mode '%s'", file.name, mode)
                continue
            try:
                text = file.read_text(encoding="utf-8")
            except OSError as e:
                raise TargetGcError(
                    code=ErrorCode.FILE_NOT_FOUND,
                    context={"path": file},
                    cause=e,
                ) from e
            graph = UnitGraph.from_json(text)
            planner.add(None if platform == "host" else platform, profile, request_mode, graph)
        return planner

    def plan(self, request: PlanRequest) -> UnitGraph:
        self.requests.append(request)
        return self._graphs.get((request.platform, request.profile, request.mode), UnitGraph())
