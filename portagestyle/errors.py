"""
Errors raised by the bridge. All of them reach the immediate caller; nothing
here is retried or recovered internally.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Sequence


class PortageResolveError(Exception):
    """Base class for every error raised by portagestyle."""


class MalformedConstraint(PortageResolveError, ValueError):
    """An atom, version or document that cannot describe a valid constraint."""


class AmbiguousUseConditional(PortageResolveError):
    """A USE conditional names a flag with no fixed value under a strict UseConfig."""

    def __init__(self, flag: str):
        super().__init__(f"USE flag {flag!r} has no fixed value and is not solver-decided")
        self.flag = flag


class UnsatisfiableProblem(PortageResolveError):
    """
    The engine found no selection satisfying every requirement and blocker.
    ``causes`` is whatever resolvelib reported, passed through unmodified.
    """

    def __init__(self, causes: Sequence[Any]):
        super().__init__(f"no solution satisfies the requirements ({len(causes)} conflicting requirement(s))")
        self.causes: List[Any] = list(causes)


class InstallOrderCycle(PortageResolveError):
    """A dependency cycle survived PDEPEND relaxation."""

    def __init__(self, members: Iterable[int], labels: Iterable[str] = ()):
        self.members: List[int] = sorted(members)
        self.labels: List[str] = list(labels)
        shown = ", ".join(self.labels) if self.labels else ", ".join(map(str, self.members))
        super().__init__(f"install order has a cycle through: {shown}")
