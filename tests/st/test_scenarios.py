"""端到端场景：YAML 包源 + solution.yml + 磁盘共享仓库"""

from __future__ import annotations

from collections import Counter
from pathlib import Path

import pytest
import yaml

import pkgsolver.core.config as cfgmod
from pkgsolver.core.exceptions import ConflictError
from pkgsolver.services.container import ServiceContainer
from pkgsolver.services.events import REFERENCE_ADDED, REFERENCE_REMOVED
from pkgsolver.services.solution.manager import SolutionPackageManager


def _entry(package_id: str, version: str, deps=(), files=None, **extra) -> dict:
    data = {"id": package_id, "version": version, **extra}
    if deps:
        data["dependencies"] = list(deps)
    data["files"] = files if files is not None else [f"lib/net40/{package_id}.dll"]
    return data


@pytest.fixture
def solution(tmp_path: Path):
    """写出包源和解决方案文件，返回编排器"""
    def factory(feed: list[dict], projects: dict[str, str], **config_kwargs) -> SolutionPackageManager:
        (tmp_path / "feed.yml").write_text(yaml.safe_dump({"packages": feed}), encoding="utf-8")
        (tmp_path / "solution.yml").write_text(yaml.safe_dump({"projects": [
            {"name": name, "path": name, "target_platform": platform}
            for name, platform in projects.items()
        ]}), encoding="utf-8")
        cfg = cfgmod.Config(
            solution_file=str(tmp_path / "solution.yml"),
            packages_dir=str(tmp_path / "packages"),
            sources=[str(tmp_path / "feed.yml")],
            **config_kwargs,
        )
        return ServiceContainer(config=cfg).solution_manager
    return factory


def _versions(manager: SolutionPackageManager, package_id: str) -> list[str]:
    return sorted(str(p.version) for p in manager.shared.find_packages_by_id(package_id))


def _project_versions(manager: SolutionPackageManager, project: str) -> dict[str, str]:
    local = manager.get_project_manager(project).local
    return {p.id: str(p.version) for p in local.get_packages()}


UPGRADE_FEED = [
    _entry("A", "1.0"),
    _entry("A", "2.0"),
    _entry("B", "1.0", deps=["A 2.0"]),
    _entry("C", "1.0", deps=["A [1.0, 2.0)"]),
    _entry("D", "1.0", deps=["B [1.0]"]),
]


class TestTransitiveUpgrade:
    def test_upgrade_through_new_dependency(self, solution) -> None:
        manager = solution(UPGRADE_FEED, {"Web": "net45", "Api": "net45"})
        manager.install_package_in_projects("A", "1.0")

        report = manager.install_package("D", project="Web")

        assert [str(op) for op in report.operations] == [
            "Uninstall A 1.0", "Install A 2.0", "Install B 1.0", "Install D 1.0",
        ]
        assert _project_versions(manager, "Web") == {"A": "2.0", "B": "1.0", "D": "1.0"}
        assert _project_versions(manager, "Api") == {"A": "1.0"}
        # Api 仍引用旧版本
        assert _versions(manager, "A") == ["1.0", "2.0"]

        manager.update_package("A", project="Api")
        assert _versions(manager, "A") == ["2.0"]

    def test_conflict_leaves_disk_untouched(self, tmp_path, solution, snapshot) -> None:
        manager = solution(UPGRADE_FEED, {"Web": "net45"})
        manager.install_package("C", project="Web")
        before = snapshot(tmp_path)

        with pytest.raises(ConflictError) as exc_info:
            manager.install_package("D", project="Web")

        assert str(exc_info.value) == (
            "Updating 'A 1.0' to 'A 2.0' failed. Unable to find a version of 'A' "
            "that is compatible with 'C 1.0'."
        )
        assert snapshot(tmp_path) == before


def _chain_feed(**extra) -> list[dict]:
    """D 依赖 B、C，B 和 C 依赖 A；每个 D 版本锁定一组依赖版本"""
    return [
        _entry("A", "2.0", **extra),
        _entry("A", "3.0", **extra),
        _entry("B", "1.0", deps=["A [2.0]"], **extra),
        _entry("B", "2.0", deps=["A [3.0]"], **extra),
        _entry("C", "1.0", deps=["A [2.0]"], **extra),
        _entry("C", "2.0", deps=["A [3.0]"], **extra),
        _entry("D", "1.0", deps=["B [1.0]", "C [1.0]"], **extra),
        _entry("D", "2.0", deps=["B [2.0]", "C [2.0]"], **extra),
    ]


CHAIN_OPERATIONS = {
    "Uninstall D 1.0", "Uninstall B 1.0", "Uninstall C 1.0", "Uninstall A 2.0",
    "Install A 3.0", "Install B 2.0", "Install C 2.0", "Install D 2.0",
}


class TestUpdateWithDependencies:
    def test_project_update_replaces_whole_graph(self, solution) -> None:
        """更新 D 时旧版本依赖全部换成新版本，共享仓库中不留旧版本"""
        manager = solution(_chain_feed(), {"Web": "net45"})
        manager.install_package("D", "1.0", project="Web")
        assert _project_versions(manager, "Web") == {"A": "2.0", "B": "1.0", "C": "1.0", "D": "1.0"}

        report = manager.update_package("D", project="Web")

        operations = [str(op) for op in report.operations]
        assert set(operations) == CHAIN_OPERATIONS
        assert operations[0] == "Uninstall D 1.0"
        assert operations[-1] == "Install D 2.0"
        assert _project_versions(manager, "Web") == {"A": "3.0", "B": "2.0", "C": "2.0", "D": "2.0"}
        for package_id, version in (("A", "3.0"), ("B", "2.0"), ("C", "2.0"), ("D", "2.0")):
            assert _versions(manager, package_id) == [version]

    def test_solution_update_replaces_whole_graph(self, solution) -> None:
        """解决方案级包更新同样替换整个依赖图"""
        manager = solution(_chain_feed(files=["tools/init.ps1"]), {"Web": "net45"})
        manager.install_package("D", "1.0")

        report = manager.update_package("D")

        assert set(str(op) for op in report.operations) == CHAIN_OPERATIONS
        for package_id, version in (("A", "3.0"), ("B", "2.0"), ("C", "2.0"), ("D", "2.0")):
            assert _versions(manager, package_id) == [version]
        assert manager.shared.is_solution_referenced("D", manager.shared.find_package("D").version)
        assert _project_versions(manager, "Web") == {}


class TestSafeUpdate:
    FEED = [_entry("Foo", v) for v in ("1.2", "1.2.5", "1.3", "2.0-beta", "2.0")]

    @pytest.mark.parametrize("policy, expected", [
        ("minor", "1.2.5"),
        ("major", "1.3"),
    ])
    def test_never_crosses_major(self, solution, policy, expected) -> None:
        manager = solution(self.FEED, {"Web": "net45"}, safe_update_policy=policy)
        manager.install_package("Foo", "1.2", project="Web")

        manager.update_package("Foo", project="Web", safe=True)
        # 再次安全更新停在同一版本
        manager.update_package("Foo", project="Web", safe=True)

        assert _project_versions(manager, "Web") == {"Foo": expected}


class TestSharedAcrossProjects:
    FEED = [
        _entry("Castle.Core", "1.2.0"),
        _entry("Castle.Core", "2.5.1"),
        _entry("Moq", "4.0", deps=["Castle.Core 2.5.1"]),
    ]

    def test_old_version_kept_while_referenced(self, solution) -> None:
        manager = solution(self.FEED, {"Web": "net40", "Tests": "net40"})
        manager.install_package_in_projects("Castle.Core", "1.2.0")

        manager.install_package("Moq", project="Tests")

        assert _project_versions(manager, "Tests") == {"Castle.Core": "2.5.1", "Moq": "4.0"}
        assert _project_versions(manager, "Web") == {"Castle.Core": "1.2.0"}
        assert _versions(manager, "Castle.Core") == ["1.2.0", "2.5.1"]

        manager.uninstall_package("Castle.Core", project="Web")
        assert _versions(manager, "Castle.Core") == ["2.5.1"]


class TestSatellitePackages:
    FEED = [
        _entry("Localized", "1.0"),
        _entry("Localized", "2.0"),
        _entry(
            "Localized.fr-FR", "1.0", deps=["Localized [1.0]"], language="fr-FR",
            files=["lib/net40/fr-FR/Localized.resources.dll"],
        ),
        _entry(
            "Localized.fr-FR", "2.0", deps=["Localized [2.0]"], language="fr-FR",
            files=["lib/net40/fr-FR/Localized.resources.dll"],
        ),
    ]

    def test_update_core_moves_satellite(self, solution) -> None:
        manager = solution(self.FEED, {"Web": "net40"})
        manager.install_package("Localized.fr-FR", "1.0", project="Web")

        report = manager.update_package("Localized", project="Web")

        assert [str(op) for op in report.operations] == [
            "Uninstall Localized.fr-FR 1.0",
            "Uninstall Localized 1.0",
            "Install Localized 2.0",
            "Install Localized.fr-FR 2.0",
        ]
        root = manager.shared.root
        assert manager.get_project_manager("Web").project_system.get_references() == [
            (root / "Localized.2.0" / "lib/net40/Localized.dll").as_posix(),
            (root / "Localized.fr-FR.2.0" / "lib/net40/fr-FR/Localized.resources.dll").as_posix(),
        ]
        assert _versions(manager, "Localized") == ["2.0"]
        assert _versions(manager, "Localized.fr-FR") == ["2.0"]

    def test_update_satellite_moves_core(self, solution) -> None:
        """先更新卫星包时核心包连带升级，引用指向新版本"""
        manager = solution(self.FEED, {"Web": "net40"})
        manager.install_package("Localized.fr-FR", "1.0", project="Web")

        report = manager.update_package("Localized.fr-FR", project="Web")

        assert [str(op) for op in report.operations] == [
            "Uninstall Localized.fr-FR 1.0",
            "Uninstall Localized 1.0",
            "Install Localized 2.0",
            "Install Localized.fr-FR 2.0",
        ]
        root = manager.shared.root
        assert manager.get_project_manager("Web").project_system.get_references() == [
            (root / "Localized.2.0" / "lib/net40/Localized.dll").as_posix(),
            (root / "Localized.fr-FR.2.0" / "lib/net40/fr-FR/Localized.resources.dll").as_posix(),
        ]
        assert _project_versions(manager, "Web") == {"Localized": "2.0", "Localized.fr-FR": "2.0"}
        assert _versions(manager, "Localized") == ["2.0"]


class TestReinstallAll:
    FEED = [_entry("App", "1.0", deps=["Lib"]), _entry("Lib", "1.0")]

    def test_each_package_once_per_project(self, solution) -> None:
        manager = solution(self.FEED, {"Web": "net45", "Api": "net45"})
        manager.install_package_in_projects("App")
        seen = []
        manager.events.subscribe(REFERENCE_REMOVED, lambda e: seen.append(("-", e.project, e.package.id)))
        manager.events.subscribe(REFERENCE_ADDED, lambda e: seen.append(("+", e.project, e.package.id)))

        report = manager.reinstall_packages()

        assert not report.failures
        assert seen == [
            ("-", "Web", "App"), ("-", "Api", "App"), ("+", "Web", "App"), ("+", "Api", "App"),
            ("-", "Web", "Lib"), ("-", "Api", "Lib"), ("+", "Web", "Lib"), ("+", "Api", "Lib"),
        ]
        assert set(Counter(seen).values()) == {1}
        assert _versions(manager, "App") == ["1.0"]
        assert _versions(manager, "Lib") == ["1.0"]
