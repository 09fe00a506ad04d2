"""
Session arena: every id handed to the engine (NameId, VersionSetId,
PackageId) is a plain int index into the tables kept here.

Besides real packages the arena owns the virtual packages that stand in for
what resolvelib cannot express natively: any-of choices, all-of groups nested
inside them, and solver-decided USE flags. Virtual names live in the
``@solver`` category, which no PMS package name can collide with.

Not thread-safe; one session owns one arena.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple, Union

from portagestyle.structures import PackageMetadata, PackageName, Requirement, VersionConstraint
from portagestyle.versions import Version

VIRTUAL_CATEGORY = "@solver"

# Versions of the two flag virtuals
FLAG_OFF = Version.parse("0")
FLAG_ON = Version.parse("1")


class Arena:
    def __init__(self):
        # NameId
        self._names: List[PackageName] = []
        self._names_rev: Dict[PackageName, int] = {}

        # VersionSetId
        self._version_sets: List[VersionConstraint] = []
        self._version_set_names: List[int] = []
        self._version_sets_rev: Dict[Tuple[int, VersionConstraint], int] = {}

        # PackageId
        self._packages: List[PackageMetadata] = []
        self._package_names: List[int] = []
        self._packages_rev: Dict[tuple, int] = {}

        # Virtual packages: name_id -> package ids in choice order
        self._virtual_candidates: Dict[int, List[int]] = {}
        self._virtual_deps: Dict[int, Tuple[Requirement, ...]] = {}
        self._unions_rev: Dict[Tuple[Requirement, ...], int] = {}
        self._groups_rev: Dict[Tuple[Requirement, ...], int] = {}
        self._flags_rev: Dict[str, int] = {}
        self._flag_names: Dict[int, str] = {}

    # --- NameId ---

    def intern_name(self, name: Union[PackageName, str]) -> int:
        """Intern a package name; a plain string is an unslotted name."""
        if isinstance(name, str):
            name = PackageName(name)
        nid = self._names_rev.get(name)
        if nid is None:
            nid = len(self._names)
            self._names.append(name)
            self._names_rev[name] = nid
        return nid

    def resolve_name(self, name_id: int) -> PackageName:
        return self._names[name_id]

    def lookup_name(self, name: Union[PackageName, str]) -> Optional[int]:
        """NameId of an already interned name, without interning it."""
        if isinstance(name, str):
            name = PackageName(name)
        return self._names_rev.get(name)

    def name_count(self) -> int:
        return len(self._names)

    # --- VersionSetId ---

    def intern_version_set(self, name_id: int, constraint: VersionConstraint) -> int:
        key = (name_id, constraint)
        vid = self._version_sets_rev.get(key)
        if vid is None:
            vid = len(self._version_sets)
            self._version_sets.append(constraint)
            self._version_set_names.append(name_id)
            self._version_sets_rev[key] = vid
        return vid

    def resolve_version_set(self, version_set_id: int) -> VersionConstraint:
        return self._version_sets[version_set_id]

    def version_set_name(self, version_set_id: int) -> int:
        return self._version_set_names[version_set_id]

    def version_set_count(self) -> int:
        return len(self._version_sets)

    # --- PackageId ---

    def intern_package(self, meta: PackageMetadata) -> int:
        """
        Intern a package under its slotted name. A second package with the
        same (cpn, version, slot, sub-slot, repo) returns the first one's id.
        """
        key = (meta.virtual,) + meta.identity
        pid = self._packages_rev.get(key)
        if pid is None:
            pid = len(self._packages)
            self._packages.append(meta)
            self._package_names.append(self.intern_name(PackageName(meta.cpn, meta.slot)))
            self._packages_rev[key] = pid
        return pid

    def resolve_package(self, package_id: int) -> PackageMetadata:
        return self._packages[package_id]

    def package_name(self, package_id: int) -> int:
        """The slotted NameId a package is a candidate for."""
        return self._package_names[package_id]

    def package_count(self) -> int:
        return len(self._packages)

    # --- Virtual packages ---

    def _new_virtual(self, kind: str, choices: Sequence[Tuple[Requirement, ...]]) -> int:
        serial = len(self._virtual_candidates)
        cpn = f"{VIRTUAL_CATEGORY}/{kind}-{serial}"
        name_id = self.intern_name(PackageName(cpn, "0"))
        pids = []
        for i, deps in enumerate(choices):
            pid = self.intern_package(
                PackageMetadata(cpn=cpn, version=Version.parse(str(i)), slot="0", virtual=True)
            )
            self._virtual_deps[pid] = tuple(deps)
            pids.append(pid)
        self._virtual_candidates[name_id] = pids
        return name_id

    def intern_union(self, members: Sequence[Requirement]) -> int:
        """Name of the any-of choice over ``members``: one virtual package per member."""
        key = tuple(members)
        nid = self._unions_rev.get(key)
        if nid is None:
            nid = self._new_virtual("any-of", [(m,) for m in key])
            self._unions_rev[key] = nid
        return nid

    def intern_group(self, members: Sequence[Requirement]) -> int:
        """Name of an all-of group: a single virtual package requiring every member."""
        key = tuple(members)
        nid = self._groups_rev.get(key)
        if nid is None:
            nid = self._new_virtual("all-of", [key])
            self._groups_rev[key] = nid
        return nid

    def intern_flag(self, flag: str) -> int:
        """
        Name of a solver-decided USE flag. Its two virtual packages are
        version 0 (off) and version 1 (on), offered off-first.
        """
        nid = self._flags_rev.get(flag)
        if nid is None:
            cpn = f"{VIRTUAL_CATEGORY}/use-{flag}"
            nid = self.intern_name(PackageName(cpn, "0"))
            pids = [
                self.intern_package(PackageMetadata(cpn=cpn, version=v, slot="0", virtual=True))
                for v in (FLAG_OFF, FLAG_ON)
            ]
            for pid in pids:
                self._virtual_deps[pid] = ()
            self._virtual_candidates[nid] = pids
            self._flags_rev[flag] = nid
            self._flag_names[nid] = flag
        return nid

    def is_virtual(self, name_id: int) -> bool:
        return name_id in self._virtual_candidates

    def virtual_candidates(self, name_id: int) -> List[int]:
        return list(self._virtual_candidates.get(name_id, ()))

    def virtual_dependencies(self, package_id: int) -> Tuple[Requirement, ...]:
        return self._virtual_deps.get(package_id, ())

    def flag_of(self, name_id: int) -> Optional[str]:
        """The USE flag a flag virtual stands for, or None."""
        return self._flag_names.get(name_id)
