"""延迟删除测试"""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from pkgsolver.core.repository.paths import PackagePathResolver
from pkgsolver.services.delete_on_restart import DELETION_MARKER_SUFFIX, DeleteOnRestartManager


@pytest.fixture
def manager(tmp_path: Path) -> DeleteOnRestartManager:
    return DeleteOnRestartManager(PackagePathResolver(tmp_path / "packages"))


class TestDeleteOnRestart:
    def test_mark_existing_directory(self, manager, pkg) -> None:
        directory = manager.root / "Foo.1.0"
        (directory / "lib").mkdir(parents=True)
        assert manager.mark_package_directory_for_deletion(pkg("Foo")) is True
        assert (manager.root / f"Foo.1.0{DELETION_MARKER_SUFFIX}").is_file()
        assert manager.get_marked_directories() == [directory]

    def test_mark_missing_directory(self, manager, pkg) -> None:
        assert manager.mark_package_directory_for_deletion(pkg("Foo")) is False
        assert manager.get_marked_directories() == []

    def test_delete_marked(self, manager, pkg) -> None:
        for name in ("Foo", "Bar"):
            (manager.root / f"{name}.1.0" / "lib").mkdir(parents=True)
            manager.mark_package_directory_for_deletion(pkg(name))

        deleted = manager.delete_marked_package_directories()
        assert [d.name for d in deleted] == ["Bar.1.0", "Foo.1.0"]
        assert list(manager.root.iterdir()) == []

    def test_marker_without_directory(self, manager) -> None:
        manager.root.mkdir(parents=True)
        (manager.root / f"Gone.1.0{DELETION_MARKER_SUFFIX}").touch()
        assert [d.name for d in manager.delete_marked_package_directories()] == ["Gone.1.0"]
        assert list(manager.root.iterdir()) == []

    def test_failed_delete_keeps_marker(self, manager, pkg, monkeypatch: pytest.MonkeyPatch) -> None:
        (manager.root / "Foo.1.0").mkdir(parents=True)
        manager.mark_package_directory_for_deletion(pkg("Foo"))

        def locked(path, *args, **kwargs):
            raise PermissionError("in use")

        monkeypatch.setattr(shutil, "rmtree", locked)
        assert manager.delete_marked_package_directories() == []
        assert manager.get_marked_directories() == [manager.root / "Foo.1.0"]

    def test_unmark(self, manager, pkg) -> None:
        """重新安装后撤销标记，目录不再被清理"""
        (manager.root / "Foo.1.0" / "lib").mkdir(parents=True)
        manager.mark_package_directory_for_deletion(pkg("Foo"))

        assert manager.unmark_package_directory(pkg("Foo")) is True
        assert manager.unmark_package_directory(pkg("Foo")) is False
        assert manager.delete_marked_package_directories() == []
        assert (manager.root / "Foo.1.0" / "lib").is_dir()
