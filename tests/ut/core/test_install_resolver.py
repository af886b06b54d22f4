"""安装 / 更新规划测试"""

from __future__ import annotations

import pytest

from pkgsolver.core.exceptions import (
    ConflictError,
    ConstraintViolationError,
    DependencyResolutionError,
    MinClientVersionError,
)
from pkgsolver.core.repository.memory import InMemoryRepository
from pkgsolver.core.resolver.constraints import DefaultConstraintProvider
from pkgsolver.core.resolver.install import InstallResolver


def plan(local, source, package, **kwargs) -> list[str]:
    return [str(op) for op in InstallResolver(local, source, **kwargs).resolve(package)]


class TestInstall:
    def test_installs_missing_dependencies_first(self, pkg) -> None:
        source = InMemoryRepository([pkg("A", deps=["B 1.0"]), pkg("B", "1.0"), pkg("B", "2.0")])
        assert plan(InMemoryRepository(), source, pkg("A", deps=["B 1.0"])) == [
            "Install B 1.0", "Install A 1.0",
        ]

    def test_local_dependency_satisfies(self, pkg) -> None:
        local = InMemoryRepository([pkg("B", "1.5")])
        source = InMemoryRepository([pkg("B", "1.0")])
        assert plan(local, source, pkg("A", deps=["B 1.0"])) == ["Install A 1.0"]

    def test_local_prerelease_satisfies(self, pkg) -> None:
        local = InMemoryRepository([pkg("B", "2.0-beta")])
        assert plan(local, InMemoryRepository(), pkg("A", deps=["B 1.0"])) == ["Install A 1.0"]

    def test_null_spec_takes_lowest(self, pkg) -> None:
        source = InMemoryRepository([pkg("B", "2.0"), pkg("B", "1.0")])
        assert plan(InMemoryRepository(), source, pkg("A", deps=["B"]))[0] == "Install B 1.0"

    def test_highest_strategy(self, pkg) -> None:
        source = InMemoryRepository([pkg("B", "2.0"), pkg("B", "1.0")])
        ops = plan(InMemoryRepository(), source, pkg("A", deps=["B"]), dependency_version="highest")
        assert ops[0] == "Install B 2.0"

    def test_already_installed(self, pkg) -> None:
        local = InMemoryRepository([pkg("A", deps=["B"]), pkg("B")])
        assert plan(local, InMemoryRepository(), pkg("A", deps=["B"])) == []

    def test_ignore_dependencies(self, pkg) -> None:
        assert plan(
            InMemoryRepository(), InMemoryRepository(), pkg("A", deps=["Missing"]),
            ignore_dependencies=True,
        ) == ["Install A 1.0"]

    def test_prerelease_dependency(self, pkg) -> None:
        source = InMemoryRepository([pkg("B", "2.0-beta")])
        with pytest.raises(DependencyResolutionError):
            plan(InMemoryRepository(), source, pkg("A", deps=["B 1.0"]))
        ops = plan(InMemoryRepository(), source, pkg("A", deps=["B 1.0"]), allow_prerelease=True)
        assert ops == ["Install B 2.0-beta", "Install A 1.0"]

    def test_unresolved_dependency(self, pkg) -> None:
        with pytest.raises(DependencyResolutionError) as exc:
            plan(InMemoryRepository(), InMemoryRepository(), pkg("A", deps=["Missing 1.0"]))
        assert str(exc.value) == "Unable to resolve dependency 'Missing (>= 1.0)'."
        assert exc.value.code == "DEPENDENCY_UNRESOLVED"

    def test_constraint_violation(self, pkg) -> None:
        constraints = DefaultConstraintProvider("packages.yml")
        constraints.add_constraint("B", "[1.0, 2.0)")
        source = InMemoryRepository([pkg("B", "1.0"), pkg("B", "2.0")])
        with pytest.raises(ConstraintViolationError) as exc:
            plan(InMemoryRepository(), source, pkg("A", deps=["B 2.0"]), constraint_provider=constraints)
        assert str(exc.value) == (
            "Unable to resolve dependency 'B (>= 2.0)'."
            "'B' has an additional constraint (>= 1.0 && < 2.0) defined in packages.yml."
        )

    def test_constraint_selects_allowed_version(self, pkg) -> None:
        constraints = DefaultConstraintProvider()
        constraints.add_constraint("B", "[1.5, 2.0)")
        source = InMemoryRepository([pkg("B", "1.0"), pkg("B", "1.5"), pkg("B", "2.0")])
        ops = plan(InMemoryRepository(), source, pkg("A", deps=["B 1.0"]), constraint_provider=constraints)
        assert ops[0] == "Install B 1.5"

    def test_min_client_version(self, pkg) -> None:
        source = InMemoryRepository([pkg("B", min_client_version="99.0")])
        with pytest.raises(MinClientVersionError):
            plan(InMemoryRepository(), source, pkg("A", deps=["B"]))

    def test_dependency_cycle(self, pkg) -> None:
        source = InMemoryRepository([pkg("A", deps=["B"]), pkg("B", deps=["A"])])
        assert plan(InMemoryRepository(), source, pkg("A", deps=["B"])) == [
            "Install B 1.0", "Install A 1.0",
        ]


class TestUpdate:
    def test_replaces_old_version(self, pkg) -> None:
        local = InMemoryRepository([pkg("A", "1.0")])
        assert plan(local, InMemoryRepository(), pkg("A", "2.0")) == [
            "Uninstall A 1.0", "Install A 2.0",
        ]

    def test_side_by_side_without_local_conflicts(self, pkg) -> None:
        local = InMemoryRepository([pkg("A", "1.0")])
        ops = plan(local, InMemoryRepository(), pkg("A", "2.0"), check_local_conflicts=False)
        assert ops == ["Install A 2.0"]

    def test_orphaned_dependency_removed(self, pkg) -> None:
        local = InMemoryRepository([pkg("A", "1.0", deps=["C [1.0]"]), pkg("C", "1.0")])
        assert plan(local, InMemoryRepository(), pkg("A", "2.0")) == [
            "Uninstall A 1.0", "Uninstall C 1.0", "Install A 2.0",
        ]

    def test_dependency_still_needed_is_kept(self, pkg) -> None:
        local = InMemoryRepository([pkg("A", "1.0", deps=["C [1.0]"]), pkg("C", "1.0")])
        assert plan(local, InMemoryRepository(), pkg("A", "2.0", deps=["C [1.0]"])) == [
            "Uninstall A 1.0", "Install A 2.0",
        ]

    def test_conflict_with_installed_dependent(self, pkg) -> None:
        local = InMemoryRepository([pkg("A", "1.0"), pkg("B", "1.0", deps=["A [1.0, 2.0)"])])
        with pytest.raises(ConflictError) as exc:
            plan(local, InMemoryRepository(), pkg("A", "2.0"))
        assert str(exc.value) == (
            "Updating 'A 1.0' to 'A 2.0' failed. "
            "Unable to find a version of 'A' that is compatible with 'B 1.0'."
        )
        assert exc.value.dependents == [pkg("B", "1.0")]

    def test_conflict_with_several_dependents(self, pkg) -> None:
        local = InMemoryRepository([
            pkg("A", "1.0"),
            pkg("B", "1.0", deps=["A [1.0]"]),
            pkg("C", "1.0", deps=["A [1.0]"]),
        ])
        with pytest.raises(ConflictError, match="Unable to find versions of 'A' that are compatible with"):
            plan(local, InMemoryRepository(), pkg("A", "2.0"))

    def test_compatible_dependent_keeps_working(self, pkg) -> None:
        local = InMemoryRepository([pkg("A", "1.0"), pkg("B", "1.0", deps=["A 1.0"])])
        assert plan(local, InMemoryRepository(), pkg("A", "2.0")) == [
            "Uninstall A 1.0", "Install A 2.0",
        ]

    def test_transitive_upgrade(self, pkg) -> None:
        """新装 D 需要 A 2.0，已装的 A 1.0 被替换"""
        local = InMemoryRepository([pkg("A", "1.0")])
        source = InMemoryRepository([pkg("B", "1.0", deps=["A [2.0]"]), pkg("A", "2.0")])
        assert plan(local, source, pkg("D", "1.0", deps=["B 1.0"])) == [
            "Uninstall A 1.0", "Install A 2.0", "Install B 1.0", "Install D 1.0",
        ]

    def test_upgrade_within_one_walk(self, pkg) -> None:
        source = InMemoryRepository([
            pkg("B", "1.0"), pkg("B", "2.0"), pkg("C", "1.0", deps=["B 2.0"]),
        ])
        assert plan(InMemoryRepository(), source, pkg("A", deps=["B 1.0", "C"])) == [
            "Install B 2.0", "Install C 1.0", "Install A 1.0",
        ]

    def test_conflict_within_one_walk(self, pkg) -> None:
        source = InMemoryRepository([
            pkg("B", "1.0"), pkg("B", "2.0"), pkg("C", "1.0", deps=["B [2.0]"]),
        ])
        with pytest.raises(ConflictError, match="compatible with 'A 1.0'"):
            plan(InMemoryRepository(), source, pkg("A", deps=["B [1.0]", "C"]))


class TestSatellites:
    @pytest.fixture
    def packages(self, pkg):
        return {
            "core1": pkg("Localized", "1.0", files=["lib/net40/Localized.dll"]),
            "core2": pkg("Localized", "2.0", files=["lib/net40/Localized.dll"]),
            "fr1": pkg("Localized.fr-FR", "1.0", deps=["Localized [1.0]"], language="fr-FR"),
            "fr2": pkg("Localized.fr-FR", "2.0", deps=["Localized [2.0]"], language="fr-FR"),
        }

    def test_core_update_moves_satellite(self, packages) -> None:
        local = InMemoryRepository([packages["core1"], packages["fr1"]])
        source = InMemoryRepository(packages.values())
        assert plan(local, source, packages["core2"]) == [
            "Uninstall Localized.fr-FR 1.0", "Uninstall Localized 1.0",
            "Install Localized 2.0", "Install Localized.fr-FR 2.0",
        ]

    def test_satellite_update_moves_core(self, packages) -> None:
        local = InMemoryRepository([packages["core1"], packages["fr1"]])
        source = InMemoryRepository(packages.values())
        assert plan(local, source, packages["fr2"]) == [
            "Uninstall Localized.fr-FR 1.0", "Uninstall Localized 1.0",
            "Install Localized 2.0", "Install Localized.fr-FR 2.0",
        ]

    def test_satellite_without_replacement_conflicts(self, packages) -> None:
        local = InMemoryRepository([packages["core1"], packages["fr1"]])
        source = InMemoryRepository([packages["core2"]])
        with pytest.raises(ConflictError, match="Localized.fr-FR 1.0"):
            plan(local, source, packages["core2"])
