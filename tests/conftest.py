"""Pytest configuration and fixtures."""

from typing import Iterable, Optional

import pytest

from portagestyle.arena import Arena
from portagestyle.entrypoint import ResolutionRunner
from portagestyle.provider import PortageProvider
from portagestyle.repository import InMemoryRepository
from portagestyle.structures import (
    Atom,
    BlockerPolicy,
    BlockerStrength,
    PackageDeps,
    PackageMetadata,
    SlotDep,
    SlotOperator,
    UseConfig,
    UseDep,
)
from portagestyle.versions import Operator, Version


def make_pkg(
    cpn: str,
    version: str,
    slot: str = "0",
    subslot: Optional[str] = None,
    repo: Optional[str] = None,
    use: Iterable[str] = (),
    **deps,
) -> PackageMetadata:
    """Package metadata; ``deps`` are depend=/rdepend=/... entry tuples."""
    return PackageMetadata(
        cpn=cpn,
        version=Version.parse(version),
        slot=slot,
        subslot=subslot,
        repo=repo,
        use_flags=frozenset(use),
        dependencies=PackageDeps(**{k: tuple(v) for k, v in deps.items()}),
    )


def make_atom(
    cpn: str,
    op: Optional[str] = None,
    version: Optional[str] = None,
    slot: Optional[str] = None,
    subslot: Optional[str] = None,
    slot_op: Optional[str] = None,
    repo: Optional[str] = None,
    use: Iterable[UseDep] = (),
    blocker: Optional[str] = None,
) -> Atom:
    slot_dep = None
    if slot is not None or slot_op is not None:
        slot_dep = SlotDep(slot, subslot, SlotOperator(slot_op) if slot_op else None)
    return Atom(
        cpn=cpn,
        operator=Operator(op) if op else None,
        version=Version.parse(version) if version else None,
        slot_dep=slot_dep,
        repo=repo,
        use_deps=tuple(use),
        blocker=BlockerStrength(blocker) if blocker else None,
    )


@pytest.fixture
def arena() -> Arena:
    return Arena()


@pytest.fixture
def repo(arena) -> InMemoryRepository:
    return InMemoryRepository(arena)


@pytest.fixture
def pkg():
    return make_pkg


@pytest.fixture
def atom():
    return make_atom


@pytest.fixture
def resolve(repo):
    """Resolve root atoms against ``repo``; returns (plan, provider)."""

    def _resolve(atoms, use_config: Optional[UseConfig] = None, blocker_policy=BlockerPolicy.STRICT, **kwargs):
        provider = PortageProvider(repo.arena, repo, use_config=use_config, blocker_policy=blocker_policy)
        plan = ResolutionRunner(provider).resolve(list(atoms), **kwargs)
        return plan, provider

    return _resolve


def selected(plan, provider) -> set:
    """Selected packages as "cpn-version" strings."""
    out = set()
    for pid in plan.solution.packages:
        meta = provider.arena.resolve_package(pid)
        out.add(f"{meta.cpn}-{meta.version}")
    return out


@pytest.fixture
def names():
    return selected
