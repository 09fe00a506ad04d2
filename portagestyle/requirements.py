"""
Convert structured dependency entries into solver-facing requirements.

  atom              -> SimpleRequirement (a UnionRequirement over slots when
                       the atom has no slot and the name has several)
  !atom / !!atom    -> BlockerRequirement (weak / strong), one per slot
  || ( ... )        -> UnionRequirement; ^^ ( ) likewise, ?? ( ) with an
                       extra empty choice
  use? ( ... )      -> evaluated eagerly for fixed flags; for solver-decided
                       flags, a union of "flag off" and "flag on + body"

Atom USE deps ([flag], [-flag], [flag?], [!flag?], [flag=], [!flag=]) are
resolved against the UseConfig before the constraint is interned.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from portagestyle.arena import FLAG_OFF, FLAG_ON, Arena
from portagestyle.errors import MalformedConstraint
from portagestyle.structures import (
    AllOf,
    AnyOf,
    Atom,
    AtMostOneOf,
    BlockerRequirement,
    DepEntry,
    DependencyRequirements,
    ExactlyOneOf,
    PackageDeps,
    PackageName,
    Requirement,
    SimpleRequirement,
    SlotOperator,
    UnionRequirement,
    UseConditional,
    UseConfig,
    UseDepKind,
    VersionConstraint,
)
from portagestyle.versions import Operator, Version

logger = logging.getLogger(__name__)

ANY_VERSION = Version.parse("0")

# cpn -> slotted NameIds known for it, preferred slot first
SlotNames = Callable[[str], List[int]]


def _no_slots(cpn: str) -> List[int]:
    return []


def check_atom(atom: Atom) -> None:
    """Reject atoms no PMS atom string could have produced."""
    if (atom.operator is None) != (atom.version is None):
        raise MalformedConstraint(f"{atom.cpn}: operator and version must be given together")
    if "/" not in atom.cpn:
        raise MalformedConstraint(f"{atom.cpn!r} is not a category/package name")
    sd = atom.slot_dep
    if sd is not None:
        if sd.subslot is not None and sd.slot is None:
            raise MalformedConstraint(f"{atom.cpn}: sub-slot without a slot")
        if sd.operator is SlotOperator.STAR and (sd.slot is not None or sd.subslot is not None):
            raise MalformedConstraint(f"{atom.cpn}: ':*' cannot name a slot")
        if sd.slot is None and sd.operator is None:
            raise MalformedConstraint(f"{atom.cpn}: empty slot dependency")
        if atom.blocker is not None and sd.operator is not None:
            raise MalformedConstraint(f"{atom.cpn}: slot operators are not allowed on blockers")
    for ud in atom.use_deps:
        if not ud.flag:
            raise MalformedConstraint(f"{atom.cpn}: empty USE dependency")


class RequirementBuilder:
    def __init__(
        self,
        arena: Arena,
        slot_names: Optional[SlotNames] = None,
        use_config: Optional[UseConfig] = None,
    ):
        self.arena = arena
        self.use_config = use_config if use_config is not None else UseConfig()
        self._slot_names = slot_names if slot_names is not None else _no_slots

    # --- public ---

    def build_deps(self, deps: PackageDeps, parent: Optional[int] = None) -> DependencyRequirements:
        """Requirements of one package, kept per dependency class."""
        built = {}
        for dep_class, entries in deps.iter_classes():
            built[dep_class.value.lower()] = tuple(self._convert(entries, parent))
        return DependencyRequirements(**built)

    def build(self, entries: Iterable[DepEntry], parent: Optional[int] = None) -> Tuple[Requirement, ...]:
        return tuple(self._convert(tuple(entries), parent))

    def intern_requirement(self, atom: Atom) -> Requirement:
        """One requirement for a root atom."""
        return self._conjunction(self._convert_atom(atom, None))

    def resolve_use_deps(self, atom: Atom) -> Tuple[Tuple[str, bool], ...]:
        """Atom USE deps as sorted (flag, must_be_enabled) pairs."""
        out = set()
        for ud in atom.use_deps:
            if ud.kind is UseDepKind.ENABLED:
                out.add((ud.flag, True))
            elif ud.kind is UseDepKind.DISABLED:
                out.add((ud.flag, False))
            else:
                if self.use_config.is_solver_decided(ud.flag):
                    # atom USE deps are matched at build time; solver-decided flags count as off
                    on = False
                else:
                    on = self.use_config.fixed_state(ud.flag)
                if ud.kind is UseDepKind.CONDITIONAL:
                    if on:
                        out.add((ud.flag, True))
                elif ud.kind is UseDepKind.CONDITIONAL_INVERSE:
                    if not on:
                        out.add((ud.flag, False))
                elif ud.kind is UseDepKind.EQUAL:
                    out.add((ud.flag, on))
                else:
                    out.add((ud.flag, not on))
        return tuple(sorted(out))

    # --- helpers ---

    def _group(self, members: Sequence[Requirement]) -> SimpleRequirement:
        """Require every member at once, as a single requirement."""
        nid = self.arena.intern_group(members)
        cpn = self.arena.resolve_name(nid).cpn
        vs = self.arena.intern_version_set(
            nid, VersionConstraint(cpn=cpn, operator=Operator.GREATER_OR_EQUAL, version=ANY_VERSION)
        )
        return SimpleRequirement(nid, vs)

    def _conjunction(self, reqs: Sequence[Requirement]) -> Requirement:
        if len(reqs) == 1:
            return reqs[0]
        return self._group(reqs)

    def _any_of(self, alternatives: Sequence[Requirement]) -> Optional[Requirement]:
        alts: List[Requirement] = []
        for a in alternatives:
            if a not in alts:
                alts.append(a)
        if not alts:
            return None
        if len(alts) == 1:
            return alts[0]
        return UnionRequirement(self.arena.intern_union(alts), tuple(alts))

    def flag_requirement(self, flag: str, enabled: bool) -> SimpleRequirement:
        """Pin a solver-decided flag to one state."""
        nid = self.arena.intern_flag(flag)
        cpn = self.arena.resolve_name(nid).cpn
        vs = self.arena.intern_version_set(
            nid,
            VersionConstraint(cpn=cpn, operator=Operator.EQUAL, version=FLAG_ON if enabled else FLAG_OFF),
        )
        return SimpleRequirement(nid, vs)

    # --- conversion ---

    def _convert(self, entries: Sequence[DepEntry], parent: Optional[int]) -> List[Requirement]:
        out: List[Requirement] = []
        for entry in entries:
            if isinstance(entry, Atom):
                out.extend(self._convert_atom(entry, parent))
            elif isinstance(entry, AllOf):
                out.extend(self._convert(entry.children, parent))
            elif isinstance(entry, (AnyOf, ExactlyOneOf, AtMostOneOf)):
                req = self._convert_choice(entry, parent)
                if req is not None:
                    out.append(req)
            elif isinstance(entry, UseConditional):
                out.extend(self._convert_use_conditional(entry, parent))
            else:
                raise MalformedConstraint(f"unknown dependency entry {entry!r}")
        return out

    def _convert_choice(self, entry, parent: Optional[int]) -> Optional[Requirement]:
        alternatives = self._alternatives(entry.children, parent)
        if isinstance(entry, AtMostOneOf) and alternatives:
            # choosing nothing is allowed
            alternatives = [self._group(())] + alternatives
        return self._any_of(alternatives)

    def _alternatives(self, children: Sequence[DepEntry], parent: Optional[int]) -> List[Requirement]:
        """Each child of an any-of group as one requirement."""
        out: List[Requirement] = []
        for child in children:
            if isinstance(child, Atom):
                out.append(self._conjunction(self._convert_atom(child, parent)))
            elif isinstance(child, AllOf):
                reqs = self._convert(child.children, parent)
                out.append(reqs[0] if len(reqs) == 1 else self._group(reqs))
            elif isinstance(child, (AnyOf, ExactlyOneOf, AtMostOneOf)):
                req = self._convert_choice(child, parent)
                # an empty nested any-of is satisfied
                out.append(req if req is not None else self._group(()))
            elif isinstance(child, UseConditional):
                if self.use_config.is_solver_decided(child.flag):
                    state = self.flag_requirement(child.flag, not child.negate)
                    for alt in self._alternatives(child.children, parent):
                        out.append(self._group((state, alt)))
                elif self.use_config.fixed_state(child.flag) != child.negate:
                    # an active conditional contributes its children as alternatives
                    out.extend(self._alternatives(child.children, parent))
            else:
                raise MalformedConstraint(f"unknown dependency entry {child!r}")
        return out

    def _convert_use_conditional(self, entry: UseConditional, parent: Optional[int]) -> List[Requirement]:
        if not self.use_config.is_solver_decided(entry.flag):
            active = self.use_config.fixed_state(entry.flag) != entry.negate
            return self._convert(entry.children, parent) if active else []

        body = self._convert(entry.children, parent)
        if not body:
            return []
        logger.debug("USE %s left to the solver for %d requirement(s)", entry.flag, len(body))
        wanted = not entry.negate
        with_body = self._group([self.flag_requirement(entry.flag, wanted)] + body)
        without_body = self.flag_requirement(entry.flag, not wanted)
        # the flag-off branch goes first
        members = (without_body, with_body) if wanted else (with_body, without_body)
        return [UnionRequirement(self.arena.intern_union(members), members)]

    def _convert_atom(self, atom: Atom, parent: Optional[int]) -> List[Requirement]:
        check_atom(atom)
        if atom.operator is not None:
            op, version = atom.operator, atom.version
        else:
            op, version = Operator.GREATER_OR_EQUAL, ANY_VERSION

        slot = subslot = None
        if atom.slot_dep is not None and atom.slot_dep.slot is not None:
            slot, subslot = atom.slot_dep.slot, atom.slot_dep.subslot

        constraint = VersionConstraint(
            cpn=atom.cpn,
            operator=op,
            version=version,
            slot=slot,
            subslot=subslot,
            repo=atom.repo,
            use_constraints=self.resolve_use_deps(atom),
            rebuild_trigger=atom.is_rebuild_trigger,
        )

        if slot is not None:
            names = [self.arena.intern_name(PackageName(atom.cpn, slot))]
        else:
            # Unknown names still get an id so the engine can report them.
            names = self._slot_names(atom.cpn) or [self.arena.intern_name(atom.cpn)]

        sets = [(nid, self.arena.intern_version_set(nid, constraint)) for nid in names]
        if atom.blocker is not None:
            return [BlockerRequirement(nid, vs, atom.blocker, parent) for nid, vs in sets]

        simples = [SimpleRequirement(nid, vs) for nid, vs in sets]
        if len(simples) == 1:
            return simples
        return [UnionRequirement(self.arena.intern_union(simples), tuple(simples))]
