"""
Package repository abstraction: the four capabilities the provider needs.

Repositories are keyed by unslotted names; asking for a slotted name
narrows the answer to that slot. Candidate order is stable but unspecified;
sorting is the provider's job.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from portagestyle.arena import Arena
from portagestyle.structures import InstalledPolicy, PackageMetadata, PackageName, VersionConstraint
from portagestyle.versions import Operator, Version

InstalledSet = Dict[int, InstalledPolicy]


class PackageRepository(ABC):
    """Read-only package database backing one provider."""

    arena: Arena

    @abstractmethod
    def candidates(self, name_id: int) -> Sequence[int]:
        """Every PackageId available for a name (slotted names narrow to the slot)."""

    @abstractmethod
    def installed(self) -> InstalledSet:
        """PackageId -> policy for everything currently installed."""

    @abstractmethod
    def all_names(self) -> List[int]:
        """Every unslotted NameId the repository holds packages for."""

    def _installed_for(self, name_id: int, policy: InstalledPolicy) -> List[int]:
        name = self.arena.resolve_name(name_id)
        out = []
        for pid, pol in self.installed().items():
            if pol is not policy:
                continue
            meta = self.arena.resolve_package(pid)
            if meta.cpn == name.cpn and (name.slot is None or meta.slot == name.slot):
                out.append(pid)
        return sorted(out)

    def favored(self, name_id: int) -> Optional[Version]:
        """Soft preference: the version of a favored installed package."""
        pids = self._installed_for(name_id, InstalledPolicy.FAVORED)
        if not pids:
            return None
        return self.arena.resolve_package(pids[0]).version

    def locked(self, name_id: int) -> Optional[VersionConstraint]:
        """Hard constraint: exactly the locked installed version, in its slot."""
        pids = self._installed_for(name_id, InstalledPolicy.LOCKED)
        if not pids:
            return None
        meta = self.arena.resolve_package(pids[0])
        return VersionConstraint(
            cpn=meta.cpn,
            operator=Operator.EQUAL,
            version=meta.version,
            slot=meta.slot,
            repo=meta.repo,
        )


class InMemoryRepository(PackageRepository):
    """Repository backed by dicts; no I/O."""

    def __init__(self, arena: Optional[Arena] = None):
        self.arena = arena if arena is not None else Arena()
        # unslotted name_id -> package ids, in insertion order
        self._packages: Dict[int, List[int]] = {}
        self._installed: InstalledSet = {}

    def _register(self, meta: PackageMetadata) -> int:
        pid = self.arena.intern_package(meta)
        bucket = self._packages.setdefault(self.arena.intern_name(meta.cpn), [])
        if pid not in bucket:
            bucket.append(pid)
        return pid

    def add(self, meta: PackageMetadata) -> int:
        """Add an available package version."""
        return self._register(meta)

    def install(self, meta: PackageMetadata, policy: InstalledPolicy = InstalledPolicy.FAVORED) -> int:
        """
        Mark a package as installed. One missing from the available set is
        still offered as a candidate so requirements can keep it.
        """
        pid = self._register(meta)
        self._installed[pid] = policy
        return pid

    def candidates(self, name_id: int) -> List[int]:
        name = self.arena.resolve_name(name_id)
        base = self.arena.lookup_name(PackageName(name.cpn))
        if base is None:
            return []
        pids = self._packages.get(base, [])
        if name.slot is None:
            return list(pids)
        return [p for p in pids if self.arena.resolve_package(p).slot == name.slot]

    def installed(self) -> InstalledSet:
        return dict(self._installed)

    def all_names(self) -> List[int]:
        return list(self._packages)

    def rebased(self, arena: Optional[Arena] = None) -> "InMemoryRepository":
        """The same packages and installed set, interned into a fresh arena."""
        out = InMemoryRepository(arena if arena is not None else Arena())
        for pids in self._packages.values():
            for pid in pids:
                meta = self.arena.resolve_package(pid)
                policy = self._installed.get(pid)
                if policy is None:
                    out.add(meta)
                else:
                    out.install(meta, policy)
        return out
