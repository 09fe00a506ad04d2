"""
portagestyle: Portage (PMS) dependency resolution using pip's resolvelib.

Interns package metadata into an arena, turns PMS dependency entries
(atoms, blockers, any-of groups, USE conditionals) into resolvelib
requirements, and orders the selected packages for installation.
"""

from portagestyle.arena import Arena
from portagestyle.entrypoint import (
    Problem,
    ResolutionPlan,
    ResolutionRunner,
    make_problem,
    resolve_one,
    solve,
)
from portagestyle.errors import (
    AmbiguousUseConditional,
    InstallOrderCycle,
    MalformedConstraint,
    PortageResolveError,
    UnsatisfiableProblem,
)
from portagestyle.graph import DependencyGraph, install_order
from portagestyle.loader import load_repository, load_repository_json, repository_from_docs
from portagestyle.provider import PortageProvider
from portagestyle.repository import InMemoryRepository, PackageRepository
from portagestyle.structures import BlockerPolicy, Solution, UseConfig
from portagestyle.versions import Operator, Version, vercmp, version_matches

__all__ = [
    "Arena",
    "Problem",
    "ResolutionPlan",
    "ResolutionRunner",
    "make_problem",
    "resolve_one",
    "solve",
    "AmbiguousUseConditional",
    "InstallOrderCycle",
    "MalformedConstraint",
    "PortageResolveError",
    "UnsatisfiableProblem",
    "DependencyGraph",
    "install_order",
    "load_repository",
    "load_repository_json",
    "repository_from_docs",
    "PortageProvider",
    "InMemoryRepository",
    "PackageRepository",
    "BlockerPolicy",
    "Solution",
    "UseConfig",
    "Operator",
    "Version",
    "vercmp",
    "version_matches",
]
