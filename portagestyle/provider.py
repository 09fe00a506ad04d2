"""
Provider implementing resolvelib's AbstractProvider over an Arena and a
PackageRepository. Identifier KT = NameId (int, slotted names).

Candidate listing applies locked/favored and newest-first ordering; blockers
are expressed to the engine by offering an "absent" candidate for names that
are only blocked; any-of groups and solver-decided USE flags are virtual
names whose candidates carry the member requirements.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from functools import cmp_to_key
from typing import Any, Dict, Hashable, Iterable, Iterator, List, Mapping, Optional, Sequence

from resolvelib.providers import AbstractProvider
from resolvelib.structs import RequirementInformation

from portagestyle.arena import Arena
from portagestyle.candidates import constraint_matches, filter_matching, iter_candidates_newest_first
from portagestyle.graph import DependencyGraph
from portagestyle.repository import PackageRepository
from portagestyle.requirements import RequirementBuilder
from portagestyle.structures import (
    Atom,
    BlockerPolicy,
    BlockerRequirement,
    BlockerStrength,
    BlockerViolation,
    Candidate,
    DependencyRequirements,
    PackageName,
    Requirement,
    Solution,
    UnionRequirement,
    UseConfig,
)
from portagestyle.versions import Version, vercmp

logger = logging.getLogger(__name__)


class LRUCache:
    """Per-provider cache of built DependencyRequirements, keyed by PackageId."""

    def __init__(self, cap: int):
        self.cap = max(0, int(cap))
        self._od: OrderedDict = OrderedDict()

    def get(self, k: Hashable) -> Optional[Any]:
        if self.cap <= 0:
            return None
        if k in self._od:
            self._od.move_to_end(k)
            return self._od[k]
        return None

    def put(self, k: Hashable, v: Any) -> None:
        if self.cap <= 0:
            return
        if k in self._od:
            self._od.move_to_end(k)
            self._od[k] = v
            return
        self._od[k] = v
        while len(self._od) > self.cap:
            self._od.popitem(last=False)

    def __len__(self) -> int:
        return len(self._od)


class PortageProvider(AbstractProvider[Requirement, Candidate, int]):
    """
    Bridges Portage metadata to resolvelib. Construction is cheap; dependency
    requirements are built per package on first use and kept in an LRU cache.
    """

    def __init__(
        self,
        arena: Arena,
        repository: PackageRepository,
        use_config: Optional[UseConfig] = None,
        blocker_policy: BlockerPolicy = BlockerPolicy.STRICT,
        dep_cache_cap: int = 50_000,
    ):
        self.arena = arena
        self.repository = repository
        self.use_config = use_config if use_config is not None else UseConfig()
        self.blocker_policy = blocker_policy
        self.builder = RequirementBuilder(arena, self._slot_names, self.use_config)
        self._dep_cache = LRUCache(dep_cache_cap)
        self._slot_cache: Dict[str, List[int]] = {}

    # --- requirement construction ---

    def _slot_names(self, cpn: str) -> List[int]:
        """Slotted NameIds of a package, slot with the newest version first."""
        cached = self._slot_cache.get(cpn)
        if cached is not None:
            return list(cached)
        best: Dict[str, Version] = {}
        for pid in self.repository.candidates(self.arena.intern_name(cpn)):
            meta = self.arena.resolve_package(pid)
            if meta.slot not in best or vercmp(meta.version, best[meta.slot]) > 0:
                best[meta.slot] = meta.version

        def cmp(a: str, b: str) -> int:
            return vercmp(best[b], best[a]) or (a > b) - (a < b)

        names = [self.arena.intern_name(PackageName(cpn, s)) for s in sorted(best, key=cmp_to_key(cmp))]
        self._slot_cache[cpn] = names
        return list(names)

    def intern_requirement(self, atom: Atom) -> Requirement:
        """Root requirement for an atom, to hand to Problem/solve()."""
        return self.builder.intern_requirement(atom)

    def requirements_for(self, package_id: int) -> DependencyRequirements:
        """The package's requirements per dependency class (cached)."""
        cached = self._dep_cache.get(package_id)
        if cached is not None:
            return cached
        meta = self.arena.resolve_package(package_id)
        built = self.builder.build_deps(meta.dependencies, parent=package_id)
        self._dep_cache.put(package_id, built)
        return built

    def blockers(self, package_id: int) -> List[BlockerRequirement]:
        """Blockers declared by a package, across all classes."""
        return [r for r in self.requirements_for(package_id).all() if isinstance(r, BlockerRequirement)]

    def is_rebuild_trigger(self, requirement: Requirement) -> bool:
        """True for requirements built from a ``:=`` / ``:SLOT=`` atom."""
        if isinstance(requirement, UnionRequirement):
            return all(self.is_rebuild_trigger(m) for m in requirement.members)
        return self.arena.resolve_version_set(requirement.version_set_id).rebuild_trigger

    def rebuild_triggers(self, package_id: int) -> List[Requirement]:
        return [r for r in self.requirements_for(package_id).all() if self.is_rebuild_trigger(r)]

    # --- candidates ---

    def list_candidates(self, name_id: int) -> List[int]:
        """
        Candidates for a name: locked hard-filters first, then newest-first
        with the favored version ahead of equal versions. Virtual names keep
        their declaration order.
        """
        if self.arena.is_virtual(name_id):
            return self.arena.virtual_candidates(name_id)
        pids = list(self.repository.candidates(name_id))
        locked = self.repository.locked(name_id)
        if locked is not None:
            pids = filter_matching(self.arena, pids, locked)
        out = list(iter_candidates_newest_first(self.arena, pids, self.repository.favored(name_id)))
        logger.debug("%s: %d candidate(s)", self.arena.resolve_name(name_id), len(out))
        return out

    def filter_candidates(self, candidates: Iterable[int], version_set_id: int, inverse: bool = False) -> List[int]:
        """Candidates matching a version set (those not matching, with ``inverse``)."""
        constraint = self.arena.resolve_version_set(version_set_id)
        return filter_matching(self.arena, candidates, constraint, inverse)

    def _matches(self, package_id: int, version_set_id: int) -> bool:
        return constraint_matches(
            self.arena.resolve_package(package_id), self.arena.resolve_version_set(version_set_id)
        )

    def _sent_to_engine(self, requirement: Requirement) -> bool:
        if isinstance(requirement, BlockerRequirement):
            return not (
                self.blocker_policy is BlockerPolicy.ADVISORY and requirement.strength is BlockerStrength.WEAK
            )
        return True

    # --- resolvelib AbstractProvider ---

    def identify(self, requirement_or_candidate: Requirement | Candidate) -> int:
        return requirement_or_candidate.name_id

    def get_preference(
        self,
        identifier: int,
        resolutions: Mapping[int, Candidate],
        candidates: Mapping[int, Iterator[Candidate]],
        information: Mapping[int, Iterator[RequirementInformation[Requirement, Candidate]]],
        backtrack_causes: Sequence[RequirementInformation[Requirement, Candidate]],
    ):
        """Names involved in the last conflict first, then lower identifier."""
        causes = {self.identify(c.requirement) for c in backtrack_causes}
        return (identifier not in causes, identifier)

    def find_matches(
        self,
        identifier: int,
        requirements: Mapping[int, Iterator[Requirement]],
        incompatibilities: Mapping[int, Iterator[Candidate]],
    ) -> List[Candidate]:
        reqs = list(requirements.get(identifier, ()))
        incompat = set(incompatibilities.get(identifier, ()))

        # A name that is only blocked is best left uninstalled.
        if reqs and all(isinstance(r, BlockerRequirement) for r in reqs):
            pool = [Candidate(package_id=None, name_id=identifier)]
        else:
            pool = [Candidate(package_id=pid, name_id=identifier) for pid in self.list_candidates(identifier)]

        return [c for c in pool if c not in incompat and all(self.is_satisfied_by(r, c) for r in reqs)]

    def is_satisfied_by(self, requirement: Requirement, candidate: Candidate) -> bool:
        if candidate.name_id != requirement.name_id:
            return False
        if isinstance(requirement, BlockerRequirement):
            if candidate.is_absent or candidate.package_id == requirement.parent:
                return True
            return not self._matches(candidate.package_id, requirement.version_set_id)
        if candidate.is_absent:
            return False
        if isinstance(requirement, UnionRequirement):
            return True
        return self._matches(candidate.package_id, requirement.version_set_id)

    def get_dependencies(self, candidate: Candidate) -> List[Requirement]:
        if candidate.is_absent:
            return []
        meta = self.arena.resolve_package(candidate.package_id)
        if meta.virtual:
            return list(self.arena.virtual_dependencies(candidate.package_id))
        return [r for r in self.requirements_for(candidate.package_id).all() if self._sent_to_engine(r)]

    # --- post-solve ---

    def solution_from_mapping(self, mapping: Mapping[int, Candidate]) -> Solution:
        """Reduce resolvelib's identifier -> candidate mapping to a Solution."""
        packages = set()
        choices: Dict[int, int] = {}
        use_decisions: Dict[str, bool] = {}
        for name_id, cand in mapping.items():
            if cand.is_absent:
                continue
            if self.arena.is_virtual(name_id):
                choices[name_id] = cand.package_id
                flag = self.arena.flag_of(name_id)
                if flag is not None:
                    use_decisions[flag] = self.arena.resolve_package(cand.package_id).version.numbers == ("1",)
            else:
                packages.add(cand.package_id)
        return Solution(packages=frozenset(packages), choices=choices, use_decisions=use_decisions)

    def _names_package(self, name_id: int, package_id: int) -> bool:
        # unslotted names cover every slot
        if self.arena.package_name(package_id) == name_id:
            return True
        return self.arena.resolve_name(name_id).slot is None

    def _targets(self, requirement: Requirement, owner: int, solution: Solution) -> Iterator[int]:
        """Selected packages a requirement resolves to."""
        if isinstance(requirement, BlockerRequirement):
            return
        if isinstance(requirement, UnionRequirement):
            chosen = solution.choices.get(requirement.name_id)
            members = self.arena.virtual_dependencies(chosen) if chosen is not None else requirement.members
            for m in members:
                yield from self._targets(m, owner, solution)
            return
        if self.arena.is_virtual(requirement.name_id):
            if self.arena.flag_of(requirement.name_id) is not None:
                return
            for vpid in self.arena.virtual_candidates(requirement.name_id):
                for m in self.arena.virtual_dependencies(vpid):
                    yield from self._targets(m, owner, solution)
            return
        for pid in sorted(solution.packages):
            if pid != owner and self._names_package(requirement.name_id, pid):
                if self._matches(pid, requirement.version_set_id):
                    yield pid

    def dependency_graph(self, solution: Solution) -> DependencyGraph:
        """Class-labeled edges between selected packages."""
        graph = DependencyGraph()
        for pid in sorted(solution.packages):
            meta = self.arena.resolve_package(pid)
            graph.add_node(pid, key=(meta.cpn, meta.version, meta.slot), label=str(meta))
        for pid in sorted(solution.packages):
            for dep_class, reqs in self.requirements_for(pid).iter_classes():
                for req in reqs:
                    for target in self._targets(req, pid, solution):
                        graph.add_edge(pid, target, dep_class)
        return graph

    def blocker_violations(self, solution: Solution) -> List[BlockerViolation]:
        """Selected pairs violating a blocker, whatever its strength."""
        out = []
        for pid in sorted(solution.packages):
            for blocker in self.blockers(pid):
                for other in sorted(solution.packages):
                    if other == pid or not self._names_package(blocker.name_id, other):
                        continue
                    if self._matches(other, blocker.version_set_id):
                        out.append(BlockerViolation(pid, other, blocker.strength))
        return out
