"""包仓库查询测试（内存仓库、YAML 源、组合视图）"""

from __future__ import annotations

from pathlib import Path

import pytest

from pkgsolver.core.models import PackageDependency
from pkgsolver.core.repository.base import select_dependency
from pkgsolver.core.repository.composite import (
    AggregateRepository,
    ExcludingRepository,
    FallbackRepository,
)
from pkgsolver.core.repository.feed import FeedRepository
from pkgsolver.core.repository.memory import InMemoryRepository
from pkgsolver.core.resolver.constraints import DefaultConstraintProvider
from pkgsolver.core.version import VersionRange


def dep(text: str) -> PackageDependency:
    return PackageDependency.parse(text)


class TestInMemoryRepository:
    def test_find_by_id_case_insensitive(self, pkg) -> None:
        repo = InMemoryRepository([pkg("Foo", "1.0"), pkg("Foo", "2.0"), pkg("Bar")])
        assert {str(p.version) for p in repo.find_packages_by_id("foo")} == {"1.0", "2.0"}

    def test_find_package_exact_and_latest(self, pkg) -> None:
        repo = InMemoryRepository([
            pkg("Foo", "1.0"), pkg("Foo", "2.0"), pkg("Foo", "3.0-beta"),
            pkg("Foo", "2.5", listed=False),
        ])
        assert repo.find_package("Foo", "1.0.0").version == pkg("Foo", "1.0").version
        assert str(repo.find_package("Foo").version) == "3.0-beta"
        assert str(repo.find_package("Foo", allow_prerelease=False, allow_unlisted=False).version) == "2.0"
        assert str(repo.find_package("Foo", version_spec=VersionRange.parse("[1.0, 2.0]")).version) == "2.0"
        assert repo.find_package("Foo", "9.0") is None

    def test_exists_and_contains(self, pkg) -> None:
        repo = InMemoryRepository([pkg("Foo", "1.0")])
        assert repo.exists("FOO")
        assert repo.contains(pkg("foo", "1.0"))
        assert not repo.contains(pkg("foo", "1.1"))

    def test_add_remove(self, pkg) -> None:
        repo = InMemoryRepository()
        repo.add_package(pkg("A"))
        repo.add_package(pkg("A"))
        assert len(repo.get_packages()) == 1
        repo.remove_package(pkg("A"))
        assert repo.get_packages() == []


class TestResolveDependency:
    @pytest.fixture
    def repo(self, pkg):
        return InMemoryRepository([
            pkg("B", "1.0"), pkg("B", "1.1"), pkg("B", "1.2"),
            pkg("B", "1.5"), pkg("B", "2.0"), pkg("B", "2.1-beta"),
        ])

    def test_lowest_satisfying(self, repo) -> None:
        assert str(repo.resolve_dependency(dep("B 1.1")).version) == "1.1"

    def test_null_spec_takes_lowest(self, repo) -> None:
        assert str(repo.resolve_dependency(dep("B")).version) == "1.0"

    @pytest.mark.parametrize("strategy,expected", [
        ("lowest", "1.0"),
        ("highest_patch", "1.0"),
        ("highest_minor", "1.5"),
        ("highest", "2.0"),
    ])
    def test_strategies(self, repo, strategy, expected) -> None:
        found = repo.resolve_dependency(dep("B 1.0"), dependency_version=strategy)
        assert str(found.version) == expected

    def test_prerelease_only_when_allowed(self, repo) -> None:
        assert str(repo.resolve_dependency(dep("B 2.1-alpha")).version) == "2.1-beta"
        assert repo.resolve_dependency(dep("B (2.0,)")) is None
        found = repo.resolve_dependency(dep("B (2.0,)"), allow_prerelease=True)
        assert str(found.version) == "2.1-beta"

    def test_constraint_filters_candidates(self, repo) -> None:
        constraints = DefaultConstraintProvider()
        constraints.add_constraint("b", "[1.2, 2.0)")
        found = repo.resolve_dependency(dep("B 1.0"), constraint_provider=constraints)
        assert str(found.version) == "1.2"

    def test_prefers_listed(self, pkg) -> None:
        repo = InMemoryRepository([pkg("C", "1.0", listed=False), pkg("C", "1.1")])
        assert str(repo.resolve_dependency(dep("C 1.0")).version) == "1.1"
        assert str(repo.resolve_dependency(dep("C 1.0"), prefer_listed=False).version) == "1.0"
        # 只有未列出的版本满足时也能选中
        assert str(repo.resolve_dependency(dep("C [1.0]")).version) == "1.0"

    def test_select_dependency_empty(self) -> None:
        assert select_dependency([], None) is None


class TestFeedRepository:
    def test_load(self, tmp_path: Path) -> None:
        feed = tmp_path / "feed.yml"
        feed.write_text(
            "packages:\n"
            "  - id: Foo\n"
            "    version: '1.0'\n"
            "    dependencies: ['Bar [1.0, 2.0)']\n"
            "    files: [lib/net40/Foo.dll]\n"
            "  - id: Bar\n"
            "    version: '1.0'\n"
            "  - version: '1.0'\n",
            encoding="utf-8",
        )
        repo = FeedRepository(feed)
        assert sorted(p.id for p in repo.get_packages()) == ["Bar", "Foo"]
        assert repo.source == str(feed)
        foo = repo.find_package("Foo", "1.0")
        assert [str(d) for d in foo.get_dependencies()] == ["Bar (>= 1.0 && < 2.0)"]

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert FeedRepository(tmp_path / "none.yml").get_packages() == []

    def test_read_only(self, tmp_path: Path, pkg) -> None:
        repo = FeedRepository(tmp_path / "none.yml")
        with pytest.raises(NotImplementedError):
            repo.add_package(pkg("A"))


class _BrokenRepository(InMemoryRepository):
    def find_packages_by_id(self, package_id):
        raise OSError("feed unavailable")

    def find_package(self, package_id, version=None, **kwargs):
        raise OSError("feed unavailable")


class TestCompositeRepositories:
    def test_aggregate_first_wins(self, pkg) -> None:
        first = InMemoryRepository([pkg("A", "1.0", title="first")])
        second = InMemoryRepository([pkg("A", "1.0", title="second"), pkg("A", "2.0")])
        repo = AggregateRepository([first, second])
        assert repo.find_package("A", "1.0").title == "first"
        assert len(repo.find_packages_by_id("a")) == 2
        assert str(repo.find_package("A").version) == "2.0"

    def test_aggregate_ignore_failing(self, pkg) -> None:
        good = InMemoryRepository([pkg("A")])
        repo = AggregateRepository([_BrokenRepository(), good], ignore_failing=True)
        assert repo.find_package("A", "1.0") is not None
        assert len(repo.find_packages_by_id("A")) == 1

    def test_aggregate_propagates_failure(self, pkg) -> None:
        repo = AggregateRepository([_BrokenRepository(), InMemoryRepository([pkg("A")])])
        with pytest.raises(OSError):
            repo.find_packages_by_id("A")

    def test_fallback(self, pkg) -> None:
        primary = InMemoryRepository([pkg("A", "1.0")])
        fallback = InMemoryRepository([pkg("A", "2.0"), pkg("B", "1.0")])
        repo = FallbackRepository(primary, fallback)
        assert str(repo.resolve_dependency(dep("A 1.0")).version) == "1.0"
        assert repo.resolve_dependency(dep("B")) is not None
        assert repo.find_package("A", "2.0") is not None
        assert [p.id for p in repo.get_packages()] == ["A"]

    def test_excluding(self, pkg) -> None:
        inner = InMemoryRepository([pkg("A", "1.0"), pkg("A", "2.0")])
        repo = ExcludingRepository(inner, [pkg("A", "1.0")])
        assert [str(p.version) for p in repo.find_packages_by_id("A")] == ["2.0"]
        assert not repo.contains(pkg("A", "1.0"))

    def test_read_only_base(self, pkg) -> None:
        repo = ExcludingRepository(InMemoryRepository(), [])
        with pytest.raises(NotImplementedError):
            repo.add_package(pkg("A"))
