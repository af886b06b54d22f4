"""测试公共夹具

pkg(...) 构造包元数据:
    pkg("D", "1.0", deps=["B [1.0]", "A 2.0"], files=["lib/net40/D.dll"])
依赖写法同包源目录: "Id" / "Id 1.0"（>= 1.0）/ "Id [1.0, 2.0)"。
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

import pytest

import pkgsolver.core.config as cfgmod
from pkgsolver.core.models import (
    DependencySet,
    PackageDependency,
    PackageFile,
    PackageMetadata,
)
from pkgsolver.core.platform import TargetPlatform
from pkgsolver.core.repository.memory import InMemoryRepository
from pkgsolver.core.repository.shared import SharedPackageRepository
from pkgsolver.services.container import reset_container
from pkgsolver.services.projects import ProjectDescriptor, SolutionProjects
from pkgsolver.services.solution.manager import SolutionPackageManager


def make_package(
    package_id: str,
    version: str = "1.0",
    deps: Iterable[str] = (),
    files: Iterable[str | PackageFile] = (),
    **kwargs,
) -> PackageMetadata:
    dependencies = tuple(PackageDependency.parse(d) for d in deps)
    return PackageMetadata(
        id=package_id,
        version=version,
        dependency_sets=(DependencySet(None, dependencies),) if dependencies else (),
        files=tuple(
            f if isinstance(f, PackageFile) else PackageFile(f, f"{package_id} {version}: {f}")
            for f in files
        ),
        **kwargs,
    )


@pytest.fixture
def pkg():
    return make_package


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch):
    """每个测试使用默认配置和新的全局容器"""
    monkeypatch.setattr(cfgmod, "_current", cfgmod.Config())
    reset_container()
    yield
    reset_container()


@pytest.fixture
def make_solution(tmp_path: Path):
    """构造磁盘上的解决方案: 共享目录 tmp/packages，每个工程一个子目录

    用法:
        manager = make_solution([pkg("A")], projects={"Web": "net45"})
    """
    def factory(
        packages: Iterable[PackageMetadata],
        projects: dict[str, str | None] | None = None,
        *,
        listener=None,
        cancel_event=None,
        **config_kwargs,
    ) -> SolutionPackageManager:
        if projects is None:
            projects = {"Web": "net45"}
        solution = SolutionProjects(tmp_path, [
            ProjectDescriptor(name, tmp_path / name, TargetPlatform.parse(platform))
            for name, platform in projects.items()
        ])
        config = cfgmod.Config(packages_dir=str(tmp_path / "packages"), **config_kwargs)
        return SolutionPackageManager(
            solution,
            InMemoryRepository(packages, source="feed"),
            SharedPackageRepository(tmp_path / "packages"),
            config=config,
            listener=listener,
            cancel_event=cancel_event,
        )

    return factory


def snapshot_tree(root: Path) -> dict[str, bytes]:
    """目录下所有文件的相对路径 -> 内容"""
    if not root.exists():
        return {}
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*")) if p.is_file()
    }


@pytest.fixture
def snapshot():
    return snapshot_tree
