"""卸载规划测试"""

from __future__ import annotations

import logging

import pytest

from pkgsolver.core.exceptions import PackageInUseError
from pkgsolver.core.repository.memory import InMemoryRepository
from pkgsolver.core.resolver.uninstall import UninstallResolver


def plan(local, package, **kwargs) -> list[str]:
    return [str(op) for op in UninstallResolver(local, **kwargs).resolve(package)]


class TestUninstallResolver:
    def test_single_package(self, pkg) -> None:
        assert plan(InMemoryRepository([pkg("A")]), pkg("A")) == ["Uninstall A 1.0"]

    def test_in_use(self, pkg) -> None:
        local = InMemoryRepository([pkg("A"), pkg("B", deps=["A"])])
        with pytest.raises(PackageInUseError) as exc:
            plan(local, pkg("A"))
        assert str(exc.value) == "Unable to uninstall 'A 1.0' because 'B 1.0' depends on it."
        assert exc.value.dependents == [pkg("B")]

    def test_force_remove(self, pkg, caplog: pytest.LogCaptureFixture) -> None:
        local = InMemoryRepository([pkg("A"), pkg("B", deps=["A"])])
        with caplog.at_level(logging.WARNING):
            assert plan(local, pkg("A"), force_remove=True) == ["Uninstall A 1.0"]
        assert "B 1.0" in caplog.text

    def test_conflicts_ignored_without_throw(self, pkg) -> None:
        local = InMemoryRepository([pkg("A"), pkg("B", deps=["A"])])
        assert plan(local, pkg("A"), throw_on_conflicts=False) == ["Uninstall A 1.0"]

    def test_dependencies_kept_by_default(self, pkg) -> None:
        local = InMemoryRepository([pkg("A", deps=["B"]), pkg("B")])
        assert plan(local, pkg("A", deps=["B"])) == ["Uninstall A 1.0"]

    def test_remove_dependencies_root_first(self, pkg) -> None:
        a = pkg("A", deps=["B"])
        local = InMemoryRepository([a, pkg("B", deps=["C"]), pkg("C")])
        assert plan(local, a, remove_dependencies=True) == [
            "Uninstall A 1.0", "Uninstall B 1.0", "Uninstall C 1.0",
        ]

    def test_shared_dependency_kept(self, pkg, caplog: pytest.LogCaptureFixture) -> None:
        a = pkg("A", deps=["C"])
        local = InMemoryRepository([a, pkg("C"), pkg("D", deps=["C"])])
        with caplog.at_level(logging.WARNING):
            assert plan(local, a, remove_dependencies=True) == ["Uninstall A 1.0"]
        assert "D 1.0" in caplog.text

    def test_diamond(self, pkg) -> None:
        a = pkg("A", deps=["B", "C"])
        local = InMemoryRepository([a, pkg("B", deps=["D"]), pkg("C", deps=["D"]), pkg("D")])
        assert plan(local, a, remove_dependencies=True) == [
            "Uninstall A 1.0", "Uninstall C 1.0", "Uninstall B 1.0", "Uninstall D 1.0",
        ]

    def test_keep(self, pkg) -> None:
        a = pkg("A", deps=["B"])
        local = InMemoryRepository([a, pkg("B")])
        assert plan(local, a, remove_dependencies=True, keep=[pkg("B")]) == ["Uninstall A 1.0"]

    def test_missing_dependency_skipped(self, pkg) -> None:
        a = pkg("A", deps=["Gone"])
        assert plan(InMemoryRepository([a]), a, remove_dependencies=True) == ["Uninstall A 1.0"]

    def test_resolver_reusable(self, pkg) -> None:
        local = InMemoryRepository([pkg("A"), pkg("B")])
        resolver = UninstallResolver(local)
        assert len(resolver.resolve(pkg("A"))) == 1
        assert [str(op) for op in resolver.resolve(pkg("B"))] == ["Uninstall B 1.0"]
