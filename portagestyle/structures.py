"""
Value types shared by the arena, builder, provider and graph.

Atoms and dependency entries arrive already parsed (see loader.py for the
document form). Requirement is a closed union of three variants; the
identifier the engine sees (KT) is always a NameId (int).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Iterator, Mapping, Optional, Tuple, Union

from portagestyle.errors import AmbiguousUseConditional
from portagestyle.versions import Operator, Version


class DepClass(enum.Enum):
    """PMS dependency class."""

    DEPEND = "DEPEND"
    RDEPEND = "RDEPEND"
    BDEPEND = "BDEPEND"
    PDEPEND = "PDEPEND"
    IDEPEND = "IDEPEND"

    def __str__(self) -> str:
        return self.value


class BlockerStrength(enum.Enum):
    WEAK = "!"
    STRONG = "!!"


class BlockerPolicy(enum.Enum):
    """STRICT: weak and strong blockers are hard. ADVISORY: only strong ones are."""

    STRICT = "strict"
    ADVISORY = "advisory"


class InstalledPolicy(enum.Enum):
    FAVORED = "favored"
    LOCKED = "locked"


class SlotOperator(enum.Enum):
    STAR = "*"
    EQUAL = "="


class UseDepKind(enum.Enum):
    ENABLED = "flag"
    DISABLED = "-flag"
    CONDITIONAL = "flag?"
    CONDITIONAL_INVERSE = "!flag?"
    EQUAL = "flag="
    EQUAL_INVERSE = "!flag="


@dataclass(frozen=True)
class PackageName:
    """
    Name axis of the engine. Slots are part of the name so that
    dev-lang/python:3.11 and dev-lang/python:3.12 can both be selected.
    """

    cpn: str
    slot: Optional[str] = None

    def unslotted(self) -> "PackageName":
        return PackageName(self.cpn)

    def __str__(self) -> str:
        return f"{self.cpn}:{self.slot}" if self.slot is not None else self.cpn


# ----------------------------
# Structured atoms and dependency entries
# ----------------------------


@dataclass(frozen=True)
class SlotDep:
    """``:slot``, ``:slot/sub``, ``:slot=``, ``:*`` or ``:=``."""

    slot: Optional[str] = None
    subslot: Optional[str] = None
    operator: Optional[SlotOperator] = None


@dataclass(frozen=True)
class UseDep:
    flag: str
    kind: UseDepKind = UseDepKind.ENABLED


@dataclass(frozen=True)
class Atom:
    cpn: str
    operator: Optional[Operator] = None
    version: Optional[Version] = None
    slot_dep: Optional[SlotDep] = None
    repo: Optional[str] = None
    use_deps: Tuple[UseDep, ...] = ()
    blocker: Optional[BlockerStrength] = None

    @property
    def is_rebuild_trigger(self) -> bool:
        return self.slot_dep is not None and self.slot_dep.operator is SlotOperator.EQUAL


@dataclass(frozen=True)
class AllOf:
    children: Tuple["DepEntry", ...]


@dataclass(frozen=True)
class AnyOf:
    children: Tuple["DepEntry", ...]


@dataclass(frozen=True)
class ExactlyOneOf:
    children: Tuple["DepEntry", ...]


@dataclass(frozen=True)
class AtMostOneOf:
    children: Tuple["DepEntry", ...]


@dataclass(frozen=True)
class UseConditional:
    flag: str
    children: Tuple["DepEntry", ...]
    negate: bool = False


DepEntry = Union[Atom, AllOf, AnyOf, ExactlyOneOf, AtMostOneOf, UseConditional]


@dataclass(frozen=True)
class PackageDeps:
    """Dependency declarations of one package, one field per class."""

    depend: Tuple[DepEntry, ...] = ()
    rdepend: Tuple[DepEntry, ...] = ()
    bdepend: Tuple[DepEntry, ...] = ()
    pdepend: Tuple[DepEntry, ...] = ()
    idepend: Tuple[DepEntry, ...] = ()

    def iter_classes(self) -> Iterator[Tuple[DepClass, Tuple[DepEntry, ...]]]:
        yield DepClass.DEPEND, self.depend
        yield DepClass.RDEPEND, self.rdepend
        yield DepClass.BDEPEND, self.bdepend
        yield DepClass.PDEPEND, self.pdepend
        yield DepClass.IDEPEND, self.idepend


@dataclass(frozen=True)
class PackageMetadata:
    """One concrete, installable version (one PackageId once interned)."""

    cpn: str
    version: Version
    slot: str = "0"
    subslot: Optional[str] = None
    repo: Optional[str] = None
    iuse: Tuple[str, ...] = ()
    use_flags: FrozenSet[str] = frozenset()
    dependencies: PackageDeps = field(default_factory=PackageDeps)
    virtual: bool = False

    @property
    def identity(self) -> Tuple[str, Version, str, Optional[str], Optional[str]]:
        return (self.cpn, self.version, self.slot, self.subslot, self.repo)

    @property
    def effective_subslot(self) -> str:
        # PMS: a missing sub-slot equals the slot
        return self.subslot if self.subslot is not None else self.slot

    def __str__(self) -> str:
        out = f"{self.cpn}-{self.version}:{self.slot}"
        if self.subslot is not None:
            out += f"/{self.subslot}"
        if self.repo:
            out += f"::{self.repo}"
        return out


# ----------------------------
# Interned constraint and solver-facing requirements
# ----------------------------


@dataclass(frozen=True)
class VersionConstraint:
    """
    One match clause, interned as a VersionSetId. ``use_constraints`` holds
    the atom's USE deps already resolved to sorted (flag, enabled) pairs.
    """

    cpn: str
    operator: Operator
    version: Version
    slot: Optional[str] = None
    subslot: Optional[str] = None
    repo: Optional[str] = None
    use_constraints: Tuple[Tuple[str, bool], ...] = ()
    rebuild_trigger: bool = False

    def __str__(self) -> str:
        if self.operator is Operator.EQUAL_GLOB:
            out = f"={self.cpn}-{self.version}*"
        else:
            out = f"{self.operator}{self.cpn}-{self.version}"
        if self.slot is not None:
            out += f":{self.slot}"
            if self.subslot is not None:
                out += f"/{self.subslot}"
        if self.rebuild_trigger:
            out += "=" if self.slot is not None else ":="
        if self.use_constraints:
            out += "[" + ",".join(f if on else f"-{f}" for f, on in self.use_constraints) + "]"
        if self.repo:
            out += f"::{self.repo}"
        return out


@dataclass(frozen=True)
class SimpleRequirement:
    """Some candidate of ``name_id`` must match ``version_set_id``."""

    name_id: int
    version_set_id: int


@dataclass(frozen=True)
class UnionRequirement:
    """
    Any-of: one member must hold. ``name_id`` names the virtual choice
    package the engine pins (see Arena.intern_union).
    """

    name_id: int
    members: Tuple["Requirement", ...]


@dataclass(frozen=True)
class BlockerRequirement:
    """No selected candidate of ``name_id`` may match ``version_set_id``."""

    name_id: int
    version_set_id: int
    strength: BlockerStrength
    parent: Optional[int] = None  # PackageId declaring the blocker; never blocks itself


Requirement = Union[SimpleRequirement, UnionRequirement, BlockerRequirement]


@dataclass(frozen=True)
class DependencyRequirements:
    """Builder output: the five classes kept apart, as in PackageDeps."""

    depend: Tuple[Requirement, ...] = ()
    rdepend: Tuple[Requirement, ...] = ()
    bdepend: Tuple[Requirement, ...] = ()
    pdepend: Tuple[Requirement, ...] = ()
    idepend: Tuple[Requirement, ...] = ()

    def iter_classes(self) -> Iterator[Tuple[DepClass, Tuple[Requirement, ...]]]:
        yield DepClass.DEPEND, self.depend
        yield DepClass.RDEPEND, self.rdepend
        yield DepClass.BDEPEND, self.bdepend
        yield DepClass.PDEPEND, self.pdepend
        yield DepClass.IDEPEND, self.idepend

    def all(self) -> Tuple[Requirement, ...]:
        return self.depend + self.rdepend + self.bdepend + self.pdepend + self.idepend


@dataclass(frozen=True)
class Candidate:
    """
    What the engine pins for a name: a package, or ``package_id=None`` for
    "not installed" (only offered to names that are merely blocked).
    """

    package_id: Optional[int]
    name_id: int

    @property
    def is_absent(self) -> bool:
        return self.package_id is None

    def __hash__(self) -> int:
        return hash((self.package_id, self.name_id))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Candidate):
            return False
        return self.package_id == other.package_id and self.name_id == other.name_id


@dataclass(frozen=True)
class Solution:
    """
    Engine output. ``packages`` holds the selected real packages; ``choices``
    maps virtual names (any-of, groups, flags) to the virtual package pinned
    for them; ``use_decisions`` the value picked for each solver-decided flag.
    """

    packages: FrozenSet[int]
    choices: Mapping[int, int] = field(default_factory=dict)
    use_decisions: Mapping[str, bool] = field(default_factory=dict)

    def __contains__(self, package_id: int) -> bool:
        return package_id in self.packages

    def __len__(self) -> int:
        return len(self.packages)


@dataclass(frozen=True)
class BlockerViolation:
    """``package_id`` blocks ``blocked_id`` and both are selected."""

    package_id: int
    blocked_id: int
    strength: BlockerStrength


@dataclass(frozen=True)
class DepEdge:
    """``from_id`` depends on ``to_id`` through ``dep_class``."""

    from_id: int
    to_id: int
    dep_class: DepClass


# ----------------------------
# USE configuration
# ----------------------------


@dataclass(frozen=True)
class UseConfig:
    """
    enabled / disabled flags are evaluated eagerly; solver_decided flags
    become choice variables the engine pins. Unlisted flags count as
    disabled unless ``strict`` is set, in which case they are an error.
    """

    enabled: FrozenSet[str] = frozenset()
    disabled: FrozenSet[str] = frozenset()
    solver_decided: FrozenSet[str] = frozenset()
    strict: bool = False

    def __post_init__(self):
        for name in ("enabled", "disabled", "solver_decided"):
            object.__setattr__(self, name, frozenset(getattr(self, name)))

    @classmethod
    def from_enabled(cls, flags: Iterable[str]) -> "UseConfig":
        return cls(enabled=frozenset(flags))

    def is_solver_decided(self, flag: str) -> bool:
        return flag in self.solver_decided and flag not in self.enabled and flag not in self.disabled

    def fixed_state(self, flag: str) -> bool:
        """Value of a flag that must be known at build time."""
        if flag in self.enabled:
            return True
        if flag in self.disabled:
            return False
        if self.strict:
            raise AmbiguousUseConditional(flag)
        return False
