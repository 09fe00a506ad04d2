"""
Candidate ordering and constraint matching over interned packages.

Real names are ordered newest-first with the favored version first among
equals; virtual names keep their declaration order. Matching applies name,
version, slot, sub-slot, repository and USE checks in that order.
"""

from __future__ import annotations

from functools import cmp_to_key
from typing import Iterable, Iterator, List, Optional

from portagestyle.arena import Arena
from portagestyle.structures import PackageMetadata, VersionConstraint
from portagestyle.versions import Version, vercmp, version_matches


def slot_matches(meta: PackageMetadata, constraint: VersionConstraint) -> bool:
    """Slot, sub-slot, repository and USE part of a match."""
    if constraint.slot is not None and meta.slot != constraint.slot:
        return False
    if constraint.subslot is not None and meta.effective_subslot != constraint.subslot:
        return False
    if constraint.repo is not None and meta.repo != constraint.repo:
        return False
    for flag, must_be_enabled in constraint.use_constraints:
        if (flag in meta.use_flags) != must_be_enabled:
            return False
    return True


def constraint_matches(meta: PackageMetadata, constraint: VersionConstraint) -> bool:
    """True iff the package satisfies the constraint (ignoring slotted names)."""
    if meta.cpn != constraint.cpn:
        return False
    if not version_matches(meta.version, constraint.operator, constraint.version):
        return False
    return slot_matches(meta, constraint)


def iter_candidates_newest_first(
    arena: Arena,
    package_ids: Iterable[int],
    favored: Optional[Version] = None,
) -> Iterator[int]:
    """
    Yield package ids newest-first. Among versions that compare equal the
    favored one goes first, then lower PackageId.
    """

    def cmp(a: int, b: int) -> int:
        va = arena.resolve_package(a).version
        vb = arena.resolve_package(b).version
        r = vercmp(vb, va)
        if r:
            return r
        if favored is not None:
            fa, fb = va == favored, vb == favored
            if fa != fb:
                return -1 if fa else 1
        return (a > b) - (a < b)

    yield from sorted(set(package_ids), key=cmp_to_key(cmp))


def filter_matching(
    arena: Arena,
    package_ids: Iterable[int],
    constraint: VersionConstraint,
    inverse: bool = False,
) -> List[int]:
    """Keep the ids matching ``constraint`` (or those not matching, with ``inverse``)."""
    return [
        pid
        for pid in package_ids
        if constraint_matches(arena.resolve_package(pid), constraint) != inverse
    ]
