"""
PMS version parsing, ordering and operator matching.

Ordering follows PMS 3.3 (numeric components, letter, suffixes, revision);
matching covers the seven atom operators of PMS 8.3.1. The same vercmp()
backs both matching and newest-first candidate sorting.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from typing import Tuple

from portagestyle.errors import MalformedConstraint

_VERSION_RE = re.compile(
    r"^(?P<numbers>\d+(?:\.\d+)*)"
    r"(?P<letter>[a-z])?"
    r"(?P<suffixes>(?:_(?:alpha|beta|pre|rc|p)\d*)*)"
    r"(?:-r(?P<revision>\d+))?$"
)
_SUFFIX_RE = re.compile(r"_(alpha|beta|pre|rc|p)(\d*)")

# "no suffix" ranks between _rc and _p
_SUFFIX_RANK = {"alpha": 0, "beta": 1, "pre": 2, "rc": 3, "p": 5}


class Operator(enum.Enum):
    LESS = "<"
    LESS_OR_EQUAL = "<="
    EQUAL = "="
    GREATER_OR_EQUAL = ">="
    GREATER = ">"
    APPROXIMATE = "~"
    EQUAL_GLOB = "=*"

    def __str__(self) -> str:
        return self.value


def _sign(n: int) -> int:
    return (n > 0) - (n < 0)


@dataclass(frozen=True)
class Version:
    """A parsed PMS version such as ``1.2.3b_rc1_p2-r4``."""

    numbers: Tuple[str, ...]
    letter: str = ""
    suffixes: Tuple[Tuple[str, int], ...] = ()
    revision: int = 0
    text: str = field(default="", compare=False)

    @classmethod
    def parse(cls, text: str) -> "Version":
        m = _VERSION_RE.match(text or "")
        if m is None:
            raise MalformedConstraint(f"invalid version {text!r}")
        suffixes = tuple(
            (kind, int(num) if num else 0)
            for kind, num in _SUFFIX_RE.findall(m.group("suffixes") or "")
        )
        return cls(
            numbers=tuple(m.group("numbers").split(".")),
            letter=m.group("letter") or "",
            suffixes=suffixes,
            revision=int(m.group("revision") or 0),
            text=text,
        )

    @property
    def base(self) -> "Version":
        """The same version with the revision dropped."""
        return Version(self.numbers, self.letter, self.suffixes, 0, self.text.split("-r")[0])

    def __str__(self) -> str:
        if self.text:
            return self.text
        out = ".".join(self.numbers) + self.letter
        out += "".join(f"_{kind}{num or ''}" for kind, num in self.suffixes)
        if self.revision:
            out += f"-r{self.revision}"
        return out

    # Ordering goes through vercmp(); __eq__ stays structural so that
    # interning keeps "1.0" and "1.00" apart.
    def __lt__(self, other: "Version") -> bool:
        return vercmp(self, other) < 0

    def __le__(self, other: "Version") -> bool:
        return vercmp(self, other) <= 0

    def __gt__(self, other: "Version") -> bool:
        return vercmp(self, other) > 0

    def __ge__(self, other: "Version") -> bool:
        return vercmp(self, other) >= 0


def _compare_component(a: str, b: str) -> int:
    """Compare two non-leading numeric components (PMS 3.3, algorithm 3.3)."""
    if a.startswith("0") or b.startswith("0"):
        a, b = a.rstrip("0"), b.rstrip("0")
        return (a > b) - (a < b)
    return _sign(int(a) - int(b))


def _compare_numbers(a: Tuple[str, ...], b: Tuple[str, ...]) -> int:
    r = _sign(int(a[0]) - int(b[0]))
    if r:
        return r
    for x, y in zip(a[1:], b[1:]):
        r = _compare_component(x, y)
        if r:
            return r
    return _sign(len(a) - len(b))


def _compare_suffixes(a: Tuple[Tuple[str, int], ...], b: Tuple[Tuple[str, int], ...]) -> int:
    for (ka, na), (kb, nb) in zip(a, b):
        if ka != kb:
            return _sign(_SUFFIX_RANK[ka] - _SUFFIX_RANK[kb])
        if na != nb:
            return _sign(na - nb)
    if len(a) > len(b):
        return 1 if a[len(b)][0] == "p" else -1
    if len(b) > len(a):
        return -1 if b[len(a)][0] == "p" else 1
    return 0


def vercmp(a: Version, b: Version) -> int:
    """Return -1, 0 or 1 as ``a`` sorts before, equal to, or after ``b``."""
    r = _compare_numbers(a.numbers, b.numbers)
    if r:
        return r
    if a.letter != b.letter:
        return (a.letter > b.letter) - (a.letter < b.letter)
    r = _compare_suffixes(a.suffixes, b.suffixes)
    if r:
        return r
    return _sign(a.revision - b.revision)


def _glob_matches(candidate: Version, constraint: Version) -> bool:
    """
    ``=ver*``: only as many components as the constraint spells out take part.
    ``=1.2*`` matches 1.2, 1.2.0 and 1.2.9 but neither 1.20 nor 1.3.0.
    """
    n = len(constraint.numbers)
    if len(candidate.numbers) < n:
        return False
    if int(candidate.numbers[0]) != int(constraint.numbers[0]):
        return False
    for x, y in zip(candidate.numbers[1:n], constraint.numbers[1:]):
        if _compare_component(x, y):
            return False
    if not (constraint.letter or constraint.suffixes or constraint.revision):
        return True

    # Anything past the numbers must line up exactly with the candidate.
    if len(candidate.numbers) != n or candidate.letter != constraint.letter:
        return False
    k = len(constraint.suffixes)
    if candidate.suffixes[:k] != constraint.suffixes:
        return False
    if constraint.revision:
        return candidate.suffixes == constraint.suffixes and candidate.revision == constraint.revision
    return True


def version_matches(candidate: Version, op: Operator, constraint: Version) -> bool:
    """True iff ``candidate`` satisfies ``op constraint``."""
    if op is Operator.EQUAL_GLOB:
        return _glob_matches(candidate, constraint)
    if op is Operator.APPROXIMATE:
        return vercmp(candidate.base, constraint.base) == 0
    r = vercmp(candidate, constraint)
    if op is Operator.LESS:
        return r < 0
    if op is Operator.LESS_OR_EQUAL:
        return r <= 0
    if op is Operator.EQUAL:
        return r == 0
    if op is Operator.GREATER_OR_EQUAL:
        return r >= 0
    if op is Operator.GREATER:
        return r > 0
    raise MalformedConstraint(f"unknown operator {op!r}")
