"""
Post-solve dependency graph and install ordering.

Edges point from the depending package to its dependency and carry the
dependency class. install_order() drops PDEPEND edges (post-merge deps may
be installed afterwards) and runs Kahn's algorithm; whatever cycle remains
is reported, never broken arbitrarily.
"""

from __future__ import annotations

import heapq
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from portagestyle.errors import InstallOrderCycle
from portagestyle.structures import DepClass, DepEdge


class DependencyGraph:
    """Selected packages (nodes) and class-labeled dependency edges."""

    def __init__(self):
        self._keys: Dict[int, Any] = {}
        self._labels: Dict[int, str] = {}
        self._edges: List[DepEdge] = []
        self._edge_set: Set[DepEdge] = set()

    def add_node(self, package_id: int, key: Any = None, label: Optional[str] = None) -> None:
        """
        ``key`` orders nodes that become available together; callers pass
        (name, version, slot). Defaults to the id itself.
        """
        self._keys[package_id] = key if key is not None else package_id
        if label is not None:
            self._labels[package_id] = label

    def add_edge(self, from_id: int, to_id: int, dep_class: DepClass) -> bool:
        """Add ``from_id -> to_id``; both ends must already be nodes."""
        if from_id not in self._keys or to_id not in self._keys or from_id == to_id:
            return False
        edge = DepEdge(from_id, to_id, dep_class)
        if edge in self._edge_set:
            return False
        self._edge_set.add(edge)
        self._edges.append(edge)
        return True

    @property
    def nodes(self) -> List[int]:
        return list(self._keys)

    @property
    def edges(self) -> List[DepEdge]:
        return list(self._edges)

    def key(self, package_id: int) -> Any:
        return self._keys[package_id]

    def label(self, package_id: int) -> str:
        return self._labels.get(package_id, str(package_id))

    def __contains__(self, package_id: int) -> bool:
        return package_id in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def to_dict(self) -> Dict[str, Any]:
        """Nodes and edges by package id, for debug dumps."""
        return {
            "nodes": [{"id": n, "label": self.label(n)} for n in self._keys],
            "edges": [[e.from_id, e.to_id, e.dep_class.value] for e in self._edges],
        }


def _reduced_adjacency(graph: DependencyGraph) -> Tuple[Dict[int, Set[int]], Dict[int, Set[int]]]:
    """dependency -> dependents and dependent -> dependencies, PDEPEND dropped."""
    dependents: Dict[int, Set[int]] = defaultdict(set)
    dependencies: Dict[int, Set[int]] = defaultdict(set)
    for edge in graph.edges:
        if edge.dep_class is DepClass.PDEPEND:
            continue
        dependents[edge.to_id].add(edge.from_id)
        dependencies[edge.from_id].add(edge.to_id)
    return dependents, dependencies


def _cycle_members(remaining: Set[int], dependents: Dict[int, Set[int]]) -> Set[int]:
    """
    Peel nodes with no dependents left among ``remaining``; what survives
    lies on a cycle (or between two cycles).
    """
    members = set(remaining)
    changed = True
    while changed:
        changed = False
        for n in list(members):
            if not (dependents.get(n, set()) & members):
                members.discard(n)
                changed = True
    return members


def install_order(graph: DependencyGraph) -> List[int]:
    """
    Dependencies before dependents. Raises InstallOrderCycle naming the
    packages of any cycle that survives PDEPEND relaxation.
    """
    dependents, dependencies = _reduced_adjacency(graph)
    in_degree = {n: len(dependencies.get(n, ())) for n in graph.nodes}

    heap = [(graph.key(n), n) for n, d in in_degree.items() if d == 0]
    heapq.heapify(heap)
    order: List[int] = []
    while heap:
        _, node = heapq.heappop(heap)
        order.append(node)
        for dependent in dependents.get(node, ()):
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(heap, (graph.key(dependent), dependent))

    if len(order) != len(graph):
        remaining = set(graph.nodes) - set(order)
        members = _cycle_members(remaining, dependents)
        raise InstallOrderCycle(members, labels=[graph.label(n) for n in sorted(members)])
    return order


def build_graph(nodes: Iterable[Tuple[int, Any]], edges: Iterable[Tuple[int, int, DepClass]]) -> DependencyGraph:
    """Shorthand: a graph from (id, key) nodes and (from, to, class) edges."""
    graph = DependencyGraph()
    for package_id, key in nodes:
        graph.add_node(package_id, key)
    for from_id, to_id, dep_class in edges:
        graph.add_edge(from_id, to_id, dep_class)
    return graph
