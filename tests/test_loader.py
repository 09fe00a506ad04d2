import json

import pytest

from portagestyle import loader
from portagestyle.errors import MalformedConstraint
from portagestyle.loader import (
    atom_from_doc,
    dep_entries_from_doc,
    load_repository,
    load_repository_json,
    package_from_doc,
    repository_from_docs,
)
from portagestyle.structures import (
    AnyOf,
    AtMostOneOf,
    BlockerStrength,
    ExactlyOneOf,
    InstalledPolicy,
    SlotOperator,
    UseConditional,
    UseDepKind,
)
from portagestyle.versions import Operator, Version

PYTHON = {
    "cpn": "dev-lang/python",
    "version": "3.12.1",
    "slot": "3.12",
    "subslot": "3.12",
    "repo": "gentoo",
    "iuse": ["ssl", "tk"],
    "use": ["ssl"],
    "rdepend": [
        {"cpn": "dev-libs/openssl", "op": ">=", "version": "3.0", "slot_op": "="},
        {"use_conditional": "tk", "children": [{"cpn": "dev-lang/tk"}]},
    ],
    "pdepend": [{"any_of": [{"cpn": "app-misc/a"}, {"cpn": "app-misc/b"}]}],
}


class FakeCollection:
    def __init__(self, docs):
        self.docs = docs

    def find(self, query=None, projection=None):
        return iter(self.docs)


class FakeDatabase:
    def __init__(self, collections):
        self.collections = collections

    def __getitem__(self, name):
        return FakeCollection(self.collections.get(name, []))

    def list_collection_names(self):
        return list(self.collections)


class FakeClient:
    def __init__(self, databases):
        self.databases = databases
        self.closed = False

    def __getitem__(self, name):
        return FakeDatabase(self.databases[name])

    def close(self):
        self.closed = True


def test_atom_from_doc_reads_every_field():
    a = atom_from_doc(
        {
            "cpn": "dev-libs/icu",
            "op": "~",
            "version": "73.2",
            "slot": "0",
            "subslot": "73",
            "repo": "gentoo",
            "use": [{"flag": "static", "kind": "-flag"}, {"flag": "debug", "kind": "flag?"}],
            "blocker": "!!",
        }
    )
    assert a.operator is Operator.APPROXIMATE
    assert a.version == Version.parse("73.2")
    assert (a.slot_dep.slot, a.slot_dep.subslot, a.slot_dep.operator) == ("0", "73", None)
    assert [u.kind for u in a.use_deps] == [UseDepKind.DISABLED, UseDepKind.CONDITIONAL]
    assert a.blocker is BlockerStrength.STRONG


def test_slot_operator_only():
    a = atom_from_doc({"cpn": "dev-libs/openssl", "slot_op": "="})
    assert a.slot_dep.slot is None
    assert a.slot_dep.operator is SlotOperator.EQUAL
    assert a.is_rebuild_trigger


def test_group_documents():
    entries = dep_entries_from_doc(
        [
            {"at_most_one_of": [{"cpn": "a/b"}, {"cpn": "a/c"}]},
            {"exactly_one_of": [{"cpn": "a/e"}, {"cpn": "a/f"}]},
            {"use_conditional": "gui", "negate": True, "children": [{"any_of": [{"cpn": "a/d"}]}]},
        ]
    )
    assert isinstance(entries[0], AtMostOneOf)
    assert isinstance(entries[1], ExactlyOneOf)
    assert [a.cpn for a in entries[1].children] == ["a/e", "a/f"]
    cond = entries[2]
    assert isinstance(cond, UseConditional)
    assert cond.negate and cond.flag == "gui"
    assert isinstance(cond.children[0], AnyOf)


@pytest.mark.parametrize(
    "doc",
    [{}, {"cpn": "a/b", "op": "=="}, {"cpn": "a/b", "blocker": "!!!"}, {"cpn": "a/b", "version": "x"}],
)
def test_bad_atom_documents(doc):
    with pytest.raises(MalformedConstraint):
        atom_from_doc(doc)


def test_package_from_doc():
    meta = package_from_doc(PYTHON)
    assert str(meta) == "dev-lang/python-3.12.1:3.12/3.12::gentoo"
    assert meta.use_flags == frozenset({"ssl"})
    assert len(meta.dependencies.rdepend) == 2
    assert len(meta.dependencies.pdepend) == 1
    assert meta.dependencies.depend == ()


def test_package_defaults_to_slot_zero():
    meta = package_from_doc({"cpn": "a/b", "version": "1"})
    assert meta.slot == "0"
    assert meta.subslot is None


def test_repository_from_docs_marks_installed():
    repo = repository_from_docs([PYTHON], [{"cpn": "a/b", "version": "1", "policy": "locked"}])
    (policy,) = repo.installed().values()
    assert policy is InstalledPolicy.LOCKED
    assert repo.arena.package_count() == 2


def test_load_repository_from_mongo(monkeypatch):
    client = FakeClient({"portage": {"packages": [PYTHON], "installed": [{"cpn": "a/b", "version": "1"}]}})
    monkeypatch.setattr(loader, "MongoClient", lambda uri: client)
    repo = load_repository("mongodb://example", db="portage")
    assert client.closed
    assert repo.arena.package_count() == 2
    (policy,) = repo.installed().values()
    assert policy is InstalledPolicy.FAVORED


def test_load_repository_without_installed_collection(monkeypatch):
    client = FakeClient({"portage": {"packages": [PYTHON]}})
    monkeypatch.setattr(loader, "MongoClient", lambda uri: client)
    repo = load_repository(db="portage")
    assert repo.installed() == {}


def test_load_repository_json(tmp_path):
    path = tmp_path / "repo.json"
    path.write_text(json.dumps({"packages": [PYTHON], "installed": []}))
    assert load_repository_json(str(path)).arena.package_count() == 1

    path.write_text(json.dumps([PYTHON, {"cpn": "a/b", "version": "2"}]))
    assert load_repository_json(str(path)).arena.package_count() == 2
