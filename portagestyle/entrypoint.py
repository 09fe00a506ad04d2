"""
Entrypoint: build a provider once (arena + repository + USE/blocker policy),
then solve(problem) or ResolutionRunner.resolve(atoms).
Uses resolvelib's Resolver; the Result mapping is reduced to a Solution and
the selected packages are ordered from the class-labeled dependency graph.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from resolvelib.reporters import BaseReporter
from resolvelib.resolvers import ResolutionImpossible, Resolver

from portagestyle.errors import UnsatisfiableProblem
from portagestyle.graph import DependencyGraph, install_order
from portagestyle.provider import PortageProvider
from portagestyle.structures import (
    Atom,
    BlockerPolicy,
    BlockerStrength,
    BlockerViolation,
    Candidate,
    Requirement,
    Solution,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = 10000


@dataclass(frozen=True)
class Problem:
    """Root requirements to satisfy with one provider."""

    provider: PortageProvider
    requirements: Tuple[Requirement, ...]


def make_problem(provider: PortageProvider, atoms: Iterable[Atom]) -> Problem:
    return Problem(provider, tuple(provider.intern_requirement(a) for a in atoms))


class LoggingReporter(BaseReporter):
    """Logs resolvelib progress at DEBUG level."""

    def __init__(self, provider: Optional[PortageProvider] = None):
        self._provider = provider

    def _describe(self, candidate: Candidate) -> str:
        if self._provider is None:
            return repr(candidate)
        arena = self._provider.arena
        if candidate.is_absent:
            return f"(not installed) {arena.resolve_name(candidate.name_id)}"
        return str(arena.resolve_package(candidate.package_id))

    def starting(self) -> None:
        logger.debug("resolution starting")

    def starting_round(self, index: int) -> None:
        logger.debug("round %d", index)

    def adding_requirement(self, requirement, parent) -> None:
        logger.debug("adding %r (from %s)", requirement, "root" if parent is None else self._describe(parent))

    def resolving_conflicts(self, causes) -> None:
        logger.debug("backtracking over %d conflicting requirement(s)", len(causes))

    def rejecting_candidate(self, criterion, candidate) -> None:
        logger.debug("rejecting %s", self._describe(candidate))

    def pinning(self, candidate) -> None:
        logger.debug("pinning %s", self._describe(candidate))

    def ending(self, state) -> None:
        logger.debug("resolution ended with %d pin(s)", len(state.mapping))


def _run(problem: Problem, max_rounds: int, reporter: Optional[BaseReporter]):
    provider = problem.provider
    resolver = Resolver(provider, reporter if reporter is not None else BaseReporter())
    try:
        result = resolver.resolve(requirements=list(problem.requirements), max_rounds=max_rounds)
    except ResolutionImpossible as e:
        raise UnsatisfiableProblem(e.causes) from e

    solution = provider.solution_from_mapping(result.mapping)
    logger.info(
        "resolved %d root requirement(s): %d package(s), %d choice(s)",
        len(problem.requirements),
        len(solution.packages),
        len(solution.choices),
    )
    return solution, result


def solve(
    problem: Problem,
    max_rounds: int = DEFAULT_MAX_ROUNDS,
    reporter: Optional[BaseReporter] = None,
) -> Solution:
    """
    Select a set of packages satisfying every root requirement.

    :raises UnsatisfiableProblem: no selection exists; ``causes`` holds the
        engine's RequirementInformation list.
    :raises resolvelib.ResolutionTooDeep: ``max_rounds`` exhausted.
    """
    solution, _ = _run(problem, max_rounds, reporter)
    _weak_violations(problem.provider, solution)
    return solution


def _weak_violations(provider: PortageProvider, solution: Solution) -> List[BlockerViolation]:
    if provider.blocker_policy is not BlockerPolicy.ADVISORY:
        return []
    out = [v for v in provider.blocker_violations(solution) if v.strength is BlockerStrength.WEAK]
    for v in out:
        logger.warning(
            "%s is selected although %s blocks it",
            provider.arena.resolve_package(v.blocked_id),
            provider.arena.resolve_package(v.package_id),
        )
    return out


def _build_dependency_tree(provider: PortageProvider, result: Any) -> Dict[str, Any]:
    """Nodes and edges by package id, from the engine's name graph."""
    arena = provider.arena
    name_to_pid = {nid: c.package_id for nid, c in result.mapping.items() if not c.is_absent}
    nodes = [{"id": pid, "label": str(arena.resolve_package(pid))} for pid in sorted(name_to_pid.values())]
    edges: List[Tuple[int, int]] = []
    for parent, child in result.graph.iter_edges():
        if parent in name_to_pid and child in name_to_pid:
            edges.append((name_to_pid[parent], name_to_pid[child]))
    return {"nodes": nodes, "edges": edges, "mapping": {k: v for k, v in name_to_pid.items()}}


@dataclass
class ResolutionPlan:
    solution: Solution
    graph: DependencyGraph
    order: List[int]
    tree: Optional[Dict[str, Any]] = None
    blocker_violations: List[BlockerViolation] = field(default_factory=list)

    def labels(self) -> List[str]:
        """Install order as printable package strings."""
        return [self.graph.label(pid) for pid in self.order]


class ResolutionRunner:
    """
    Holds one provider. Call resolve() with root atoms to get the selected
    packages, their dependency graph and an install order.
    """

    def __init__(self, provider: PortageProvider):
        self._provider = provider

    @property
    def provider(self) -> PortageProvider:
        return self._provider

    def resolve(
        self,
        atoms: Sequence[Atom],
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        debug: bool = False,
    ) -> ResolutionPlan:
        """
        Resolve ``atoms`` together.

        :param atoms: Root atoms; blockers are allowed.
        :param max_rounds: Max resolution rounds (resolvelib).
        :param debug: If True, also return the engine's dependency tree.
        :raises UnsatisfiableProblem, InstallOrderCycle, ResolutionTooDeep:
        """
        provider = self._provider
        problem = make_problem(provider, atoms)
        reporter = LoggingReporter(provider) if debug else None
        solution, result = _run(problem, max_rounds, reporter)

        violations = _weak_violations(provider, solution)
        graph = provider.dependency_graph(solution)
        order = install_order(graph)
        tree = _build_dependency_tree(provider, result) if debug else None
        return ResolutionPlan(solution, graph, order, tree, violations)


def resolve_one(
    provider: PortageProvider,
    atoms: Sequence[Atom],
    max_rounds: int = DEFAULT_MAX_ROUNDS,
    debug: bool = False,
) -> ResolutionPlan:
    """
    One-shot resolve using an existing provider.
    """
    runner = ResolutionRunner(provider)
    return runner.resolve(atoms, max_rounds=max_rounds, debug=debug)
