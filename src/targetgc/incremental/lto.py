"""LTO requirement propagation.

Each unit has to keep some amount of codegen output around: object code,
LLVM bitcode, both, or none beyond what its own LTO run produces. What it
needs depends on who links it, so requirements flow from the root units
down the dependency graph:

- Root units start from their own profile and crate types.
- A unit whose crate types all run LTO themselves (bin, staticlib, cdylib)
  is never embedded in a parent's link, so it ignores the parent and
  derives its requirement from its own profile.
- Anything else combines the parent's requirement with whether its own
  crate types need object code.

A unit reachable through several parents gets the join of what every path
asks of it (see ``Lto.merge``). Propagation uses an explicit worklist, so
deep graphs never hit the recursion limit.

Example:
    >>> requirements = generate(graph)
    >>> requirements[graph.roots[0]]
    Lto(kind=<LtoKind.RUN: 'run'>, name=None)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from targetgc.units.model import CompileMode, CrateType, Unit, UnitGraph

logger = logging.getLogger(__name__)


class LtoKind(Enum):
    """Tag of an LTO requirement."""

    OFF = "off"
    """LTO explicitly disabled; thin-local LTO off too."""

    ONLY_OBJECT = "only-object"
    """Only object code is needed."""

    ONLY_BITCODE = "only-bitcode"
    """Only bitcode is needed; a parent runs LTO over it."""

    OBJECT_AND_BITCODE = "object-and-bitcode"
    """Both, because the unit feeds LTO and non-LTO consumers."""

    RUN = "run"
    """The unit runs LTO itself, optionally in a named mode."""


@dataclass(frozen=True, slots=True)
class Lto:
    """An LTO requirement: a tag plus the mode name for ``RUN``."""

    kind: LtoKind
    name: str | None = None

    @classmethod
    def off(cls) -> Lto:
        return cls(LtoKind.OFF)

    @classmethod
    def only_object(cls) -> Lto:
        return cls(LtoKind.ONLY_OBJECT)

    @classmethod
    def only_bitcode(cls) -> Lto:
        return cls(LtoKind.ONLY_BITCODE)

    @classmethod
    def object_and_bitcode(cls) -> Lto:
        return cls(LtoKind.OBJECT_AND_BITCODE)

    @classmethod
    def run(cls, name: str | None = None) -> Lto:
        return cls(LtoKind.RUN, name)

    def merge(self, other: Lto) -> Lto:
        """Join of two requirements for the same unit.

        Off dominates everything. Run dominates everything except Off;
        two different Run modes resolve to the named one, then to the
        greater name, so the choice does not depend on argument order.
        ObjectAndBitcode dominates the single-output requirements, and
        OnlyObject with OnlyBitcode escalates to ObjectAndBitcode.
        """
        if self == other:
            return self
        if LtoKind.OFF in (self.kind, other.kind):
            return Lto.off()
        if self.kind is LtoKind.RUN and other.kind is LtoKind.RUN:
            return max(self, other, key=lambda lto: (lto.name is not None, lto.name or ""))
        if self.kind is LtoKind.RUN:
            return self
        if other.kind is LtoKind.RUN:
            return other
        # Remaining pairs: any mix of OnlyObject, OnlyBitcode, ObjectAndBitcode
        return Lto.object_and_bitcode()

    def __str__(self) -> str:
        if self.kind is LtoKind.RUN and self.name is not None:
            return f"run({self.name})"
        return self.kind.value


def needs_object(crate_types: tuple[CrateType, ...]) -> bool:
    """Whether any of these crate types need object code."""
    return any(ct.can_lto or ct.is_dynamic for ct in crate_types)


def lto_when_needs_object(crate_types: tuple[CrateType, ...]) -> Lto:
    """Requirement for a unit that needs object code under an LTO parent."""
    if all(ct is CrateType.DYLIB for ct in crate_types):
        # dylibs cannot take part in LTO, so bitcode would be wasted
        return Lto.only_object()
    # rlib mixed with a dylib or cdylib: bitcode for the rlib, objects for the rest
    return Lto.object_and_bitcode()


def root_requirement(unit: Unit) -> Lto:
    """Requirement pushed into a root unit before propagation starts."""
    if unit.profile.lto.disabled or unit.target.for_host:
        return Lto.only_object()
    crate_types = unit.target.rustc_crate_types
    if needs_object(crate_types):
        return lto_when_needs_object(crate_types)
    # May or may not take part in LTO; start minimal and let merges expand it
    return Lto.only_bitcode()


def _crate_types(unit: Unit) -> tuple[CrateType, ...]:
    if unit.mode in (CompileMode.TEST, CompileMode.BENCH, CompileMode.DOCTEST):
        return (CrateType.BIN,)
    return unit.target.rustc_crate_types


def unit_requirement(unit: Unit, parent: Lto) -> Lto:
    """Requirement of ``unit`` when reached with ``parent``'s requirement."""
    if unit.target.for_host:
        # Build scripts and proc-macros never take part in the final link
        return Lto.only_object()

    crate_types = _crate_types(unit)
    if all(ct.can_lto for ct in crate_types):
        # Not embedded in the parent: the unit's own profile decides
        setting = unit.profile.lto
        if setting.named is not None:
            return Lto.run(setting.named)
        if setting.is_off:
            return Lto.off()
        if setting.mode == "true":
            return Lto.run()
        return Lto.only_object()

    object_needed = needs_object(crate_types)
    if parent.kind is LtoKind.RUN and not object_needed:
        return Lto.only_bitcode()
    if parent.kind in (LtoKind.RUN, LtoKind.ONLY_BITCODE) and object_needed:
        return lto_when_needs_object(crate_types)
    if parent.kind is LtoKind.OFF:
        return Lto.only_object()
    return parent


LtoMap = dict[int, Lto]
"""LTO requirement per unit index."""


def generate(graph: UnitGraph) -> LtoMap:
    """Compute the LTO requirement of every unit reachable from the roots.

    A unit's stored requirement is the join of everything pushed into it.
    Whenever a visit changes that stored value, the new merged value is
    pushed on to the unit's dependencies; a visit that leaves it unchanged
    stops there. Stored values only grow in a finite lattice, so this ends,
    and the final value does not depend on traversal order.

    Args:
        graph: Unit graph with its root units.

    Returns:
        Map of unit index to requirement. Units that no root reaches are
        absent.
    """
    merged: dict[tuple, Lto] = {}

    stack: list[tuple[int, Lto]] = [
        (root, root_requirement(graph.units[root])) for root in reversed(graph.roots)
    ]
    while stack:
        index, parent = stack.pop()
        unit = graph.units[index]
        lto = unit_requirement(unit, parent)

        previous = merged.get(unit.key)
        if previous is not None:
            lto = previous.merge(lto)
            if lto == previous:
                continue
        merged[unit.key] = lto

        for dep in reversed(unit.dependencies):
            stack.append((dep.index, lto))

    result = {
        index: merged[unit.key]
        for index, unit in enumerate(graph.units)
        if unit.key in merged
    }
    if len(result) != len(graph.units):
        logger.debug("%d units unreachable from roots", len(graph.units) - len(result))
    return result
