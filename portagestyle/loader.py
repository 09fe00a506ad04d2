"""
Load package metadata from MongoDB (or any iterable of documents) into an
InMemoryRepository.

Package documents:
  {"cpn": "dev-lang/python", "version": "3.12.1", "slot": "3.12",
   "subslot": "3.12", "repo": "gentoo", "iuse": [...], "use": [...],
   "depend": [...], "rdepend": [...], "bdepend": [...], "pdepend": [...],
   "idepend": [...]}
Installed documents are the same, plus "policy": "favored" | "locked".

Dependency lists hold atom documents ({"cpn", "op", "version", "slot",
"subslot", "slot_op", "repo", "use": [{"flag", "kind"}], "blocker"}) and
group documents ({"any_of": [...]}, {"all_of": [...]},
{"exactly_one_of": [...]}, {"at_most_one_of": [...]},
{"use_conditional": "flag", "negate": bool, "children": [...]}).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pymongo import MongoClient

from portagestyle.arena import Arena
from portagestyle.errors import MalformedConstraint
from portagestyle.repository import InMemoryRepository
from portagestyle.structures import (
    AllOf,
    AnyOf,
    Atom,
    AtMostOneOf,
    BlockerStrength,
    DepEntry,
    ExactlyOneOf,
    InstalledPolicy,
    PackageDeps,
    PackageMetadata,
    SlotDep,
    SlotOperator,
    UseConditional,
    UseDep,
    UseDepKind,
)
from portagestyle.versions import Operator, Version

logger = logging.getLogger(__name__)

_GROUP_KEYS = {
    "any_of": AnyOf,
    "all_of": AllOf,
    "exactly_one_of": ExactlyOneOf,
    "at_most_one_of": AtMostOneOf,
}

_DEP_FIELDS = ("depend", "rdepend", "bdepend", "pdepend", "idepend")


def _enum(enum_cls, value: Any, what: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise MalformedConstraint(f"unknown {what} {value!r}") from None


def atom_from_doc(doc: Mapping[str, Any]) -> Atom:
    cpn = doc.get("cpn")
    if not cpn:
        raise MalformedConstraint(f"atom document without cpn: {doc!r}")

    op = doc.get("op")
    version = doc.get("version")
    operator = _enum(Operator, op, "operator") if op else None
    parsed = Version.parse(str(version)) if version is not None else None

    slot_dep = None
    slot, subslot, slot_op = doc.get("slot"), doc.get("subslot"), doc.get("slot_op")
    if slot is not None or subslot is not None or slot_op:
        slot_dep = SlotDep(
            slot=str(slot) if slot is not None else None,
            subslot=str(subslot) if subslot is not None else None,
            operator=_enum(SlotOperator, slot_op, "slot operator") if slot_op else None,
        )

    use_deps = tuple(
        UseDep(flag=u["flag"], kind=_enum(UseDepKind, u.get("kind", "flag"), "USE dependency kind"))
        for u in (doc.get("use") or [])
    )
    blocker = doc.get("blocker")
    return Atom(
        cpn=str(cpn),
        operator=operator,
        version=parsed,
        slot_dep=slot_dep,
        repo=doc.get("repo"),
        use_deps=use_deps,
        blocker=_enum(BlockerStrength, blocker, "blocker") if blocker else None,
    )


def dep_entry_from_doc(doc: Mapping[str, Any]) -> DepEntry:
    for key, cls in _GROUP_KEYS.items():
        if key in doc:
            return cls(dep_entries_from_doc(doc[key]))
    if "use_conditional" in doc:
        return UseConditional(
            flag=str(doc["use_conditional"]),
            children=dep_entries_from_doc(doc.get("children")),
            negate=bool(doc.get("negate", False)),
        )
    return atom_from_doc(doc)


def dep_entries_from_doc(docs: Optional[Iterable[Mapping[str, Any]]]) -> Tuple[DepEntry, ...]:
    return tuple(dep_entry_from_doc(d) for d in (docs or ()))


def package_from_doc(doc: Mapping[str, Any]) -> PackageMetadata:
    if not doc.get("cpn") or doc.get("version") is None:
        raise MalformedConstraint(f"package document without cpn/version: {doc.get('_id', doc)!r}")
    deps = PackageDeps(**{f: dep_entries_from_doc(doc.get(f)) for f in _DEP_FIELDS})
    subslot = doc.get("subslot")
    return PackageMetadata(
        cpn=str(doc["cpn"]),
        version=Version.parse(str(doc["version"])),
        slot=str(doc.get("slot") or "0"),
        subslot=str(subslot) if subslot is not None else None,
        repo=doc.get("repo"),
        iuse=tuple(doc.get("iuse") or ()),
        use_flags=frozenset(doc.get("use") or ()),
        dependencies=deps,
    )


def repository_from_docs(
    docs: Iterable[Mapping[str, Any]],
    installed_docs: Iterable[Mapping[str, Any]] = (),
    arena: Optional[Arena] = None,
) -> InMemoryRepository:
    """Build a repository from package documents (and installed ones)."""
    repo = InMemoryRepository(arena)
    n_avail = 0
    for doc in docs:
        repo.add(package_from_doc(doc))
        n_avail += 1
    n_inst = 0
    for doc in installed_docs:
        policy = _enum(InstalledPolicy, doc.get("policy", "favored"), "installed policy")
        repo.install(package_from_doc(doc), policy)
        n_inst += 1
    logger.info("loaded %d available and %d installed package(s)", n_avail, n_inst)
    return repo


def load_repository(
    mongo_uri: str = "mongodb://localhost:27017",
    db: str = "portage",
    collection: str = "packages",
    installed_collection: Optional[str] = "installed",
    arena: Optional[Arena] = None,
) -> InMemoryRepository:
    """
    Load every package document of ``collection`` (and of
    ``installed_collection`` when it exists) into memory.
    """
    client = MongoClient(mongo_uri)
    try:
        database = client[db]
        docs = list(database[collection].find({}, {"_id": 0}))
        installed: List[Dict[str, Any]] = []
        if installed_collection and installed_collection in database.list_collection_names():
            installed = list(database[installed_collection].find({}, {"_id": 0}))
    finally:
        client.close()
    return repository_from_docs(docs, installed, arena)


def load_repository_json(path: str, arena: Optional[Arena] = None) -> InMemoryRepository:
    """
    JSON file form: either a list of package documents, or
    {"packages": [...], "installed": [...]}.
    """
    with open(path) as f:
        data = json.load(f)
    if isinstance(data, list):
        return repository_from_docs(data, (), arena)
    return repository_from_docs(data.get("packages") or [], data.get("installed") or [], arena)
