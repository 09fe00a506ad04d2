import pytest

from portagestyle.repository import PackageRepository
from portagestyle.structures import InstalledPolicy, PackageName
from portagestyle.versions import Operator, Version


def test_candidates_narrow_to_slot(repo, pkg):
    a = repo.add(pkg("dev-lang/python", "3.11.8", slot="3.11"))
    b = repo.add(pkg("dev-lang/python", "3.12.1", slot="3.12"))
    arena = repo.arena
    assert repo.candidates(arena.intern_name("dev-lang/python")) == [a, b]
    assert repo.candidates(arena.intern_name(PackageName("dev-lang/python", "3.12"))) == [b]
    assert repo.candidates(arena.intern_name("dev-lang/perl")) == []
    assert repo.all_names() == [arena.intern_name("dev-lang/python")]


def test_adding_twice_keeps_one_entry(repo, pkg):
    a = repo.add(pkg("a/b", "1.0"))
    assert repo.add(pkg("a/b", "1.0")) == a
    assert repo.candidates(repo.arena.intern_name("a/b")) == [a]


def test_favored_and_locked(repo, pkg):
    repo.add(pkg("a/b", "2.0"))
    fav = repo.install(pkg("a/b", "1.0"))
    locked = repo.install(pkg("c/d", "1.2.0", repo="gentoo"), InstalledPolicy.LOCKED)
    arena = repo.arena
    assert repo.installed() == {fav: InstalledPolicy.FAVORED, locked: InstalledPolicy.LOCKED}

    assert repo.favored(arena.intern_name("a/b")) == Version.parse("1.0")
    assert repo.locked(arena.intern_name("a/b")) is None

    constraint = repo.locked(arena.intern_name("c/d"))
    assert constraint.operator is Operator.EQUAL
    assert constraint.version == Version.parse("1.2.0")
    assert constraint.slot == "0"
    assert constraint.repo == "gentoo"
    assert repo.favored(arena.intern_name("c/d")) is None


def test_installed_only_package_is_still_a_candidate(repo, pkg):
    pid = repo.install(pkg("x/gone", "0.9"))
    assert repo.candidates(repo.arena.intern_name("x/gone")) == [pid]


def test_installed_lookup_respects_slot(repo, pkg):
    repo.install(pkg("dev-lang/python", "3.11.8", slot="3.11"))
    arena = repo.arena
    assert repo.favored(arena.intern_name(PackageName("dev-lang/python", "3.12"))) is None
    assert repo.favored(arena.intern_name(PackageName("dev-lang/python", "3.11"))) == Version.parse("3.11.8")


def test_rebased_copies_packages_into_a_new_arena(repo, pkg):
    repo.add(pkg("a/b", "2.0"))
    repo.install(pkg("a/b", "1.0"))
    repo.install(pkg("c/d", "1.2.0", slot="1"), InstalledPolicy.LOCKED)
    copy = repo.rebased()
    assert copy.arena is not repo.arena

    def listing(r):
        pids = [pid for nid in r.all_names() for pid in r.candidates(nid)]
        return {str(r.arena.resolve_package(pid)): r.installed().get(pid) for pid in pids}

    assert listing(copy) == listing(repo)
    assert copy.locked(copy.arena.intern_name("c/d")).slot == "1"


def test_repository_must_list_its_names():
    class PartialRepository(PackageRepository):
        def candidates(self, name_id):
            return []

        def installed(self):
            return {}

    with pytest.raises(TypeError):
        PartialRepository()
