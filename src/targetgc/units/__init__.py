"""Unit graphs and the build planner that produces them."""

from targetgc.units.model import (
    UNIT_GRAPH_VERSION,
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
from targetgc.units.planner import (
    BuildPlanner,
    CargoUnitGraphPlanner,
    ModeRequest,
    PlanRequest,
    StaticPlanner,
)
from targetgc.units.toolchain import CargoWorkspace, RustcInfo, query_rustc, query_workspace

__all__ = [
    "UNIT_GRAPH_VERSION",
    "BuildPlanner",
    "CargoUnitGraphPlanner",
    "CargoWorkspace",
    "CompileMode",
    "CrateType",
    "LtoSetting",
    "ModeRequest",
    "PackageId",
    "PlanRequest",
    "Profile",
    "RustcInfo",
    "StaticPlanner",
    "Target",
    "TargetKind",
    "Unit",
    "UnitDep",
    "UnitGraph",
    "query_rustc",
    "query_workspace",
]
