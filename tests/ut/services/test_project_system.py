"""磁盘工程测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from pkgsolver.core.platform import TargetPlatform
from pkgsolver.services.project_system import PhysicalProjectSystem
from pkgsolver.utils.yaml_io import load_yaml


@pytest.fixture
def project(tmp_path: Path) -> PhysicalProjectSystem:
    return PhysicalProjectSystem(tmp_path / "Web", "Web", TargetPlatform.parse("net45"))


class TestFiles:
    def test_add_and_delete(self, project) -> None:
        project.add_file("scripts/app/main.js", "console.log(1)")
        assert project.file_exists("scripts/app/main.js")
        assert (project.root / "scripts" / "app" / "main.js").read_text(encoding="utf-8") == "console.log(1)"

        project.delete_file("scripts/app/main.js")
        assert not project.file_exists("scripts/app/main.js")
        assert not (project.root / "scripts").exists()  # 空目录一并清理
        assert project.root.is_dir()

    def test_existing_file_not_overwritten(self, project) -> None:
        project.add_file("readme.txt", "user edit")
        project.add_file("readme.txt", "package copy")
        assert (project.root / "readme.txt").read_text(encoding="utf-8") == "user edit"

    def test_delete_keeps_non_empty_directory(self, project) -> None:
        project.add_file("scripts/a.js", "a")
        project.add_file("scripts/b.js", "b")
        project.delete_file("scripts/a.js")
        project.delete_file("scripts/missing.js")
        assert project.file_exists("scripts/b.js")


class TestReferences:
    def test_add_remove(self, project) -> None:
        project.add_reference("../packages/Foo.1.0/lib/net40/Foo.dll")
        assert project.reference_exists("foo.dll")
        assert load_yaml(project.state_path) == {
            "references": ["../packages/Foo.1.0/lib/net40/Foo.dll"], "imports": [],
        }

        project.remove_reference("Foo.dll")
        assert not project.reference_exists("Foo.dll")
        assert not project.state_path.exists()

    def test_same_name_replaced(self, project) -> None:
        project.add_reference("packages/Foo.1.0/lib/Foo.dll")
        project.add_reference("packages/Foo.2.0/lib/Foo.dll")
        assert project.get_references() == ["packages/Foo.2.0/lib/Foo.dll"]

    def test_remove_unknown_is_noop(self, project) -> None:
        project.remove_reference("Nothing.dll")
        assert not project.state_path.exists()

    def test_framework_references(self, project) -> None:
        """框架程序集按名称记录，不区分大小写去重"""
        project.add_framework_reference("System.Web")
        project.add_framework_reference("system.web")

        assert project.get_framework_references() == ["System.Web"]
        assert project.reference_exists("SYSTEM.WEB")
        assert load_yaml(project.state_path) == {
            "references": [], "imports": [], "framework_references": ["System.Web"],
        }

    def test_reference_exists_by_assembly_name(self, project) -> None:
        """按程序集名（不带扩展名）查找引用"""
        project.add_reference("C:/gac/System.Web.dll")
        assert project.reference_exists("System.Web")
        assert not project.reference_exists("System")


class TestImports:
    def test_add_remove(self, project) -> None:
        project.add_import("packages/Foo.1.0/build/Foo.targets", "bottom")
        project.add_import("packages/Foo.1.0/build/Foo.targets", "bottom")
        project.add_import("packages/Foo.1.0/build/Foo.props", "top")
        assert project.get_imports() == [
            {"path": "packages/Foo.1.0/build/Foo.targets", "location": "bottom"},
            {"path": "packages/Foo.1.0/build/Foo.props", "location": "top"},
        ]

        project.remove_import("packages/Foo.1.0/build/Foo.targets")
        project.remove_import("packages/Foo.1.0/build/Foo.props")
        assert project.get_imports() == []
        assert not project.state_path.exists()
