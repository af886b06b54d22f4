"""按依赖顺序排列已安装包（依赖在前）

批量更新 / 批量重装按逆序处理，先处理依赖方再处理被依赖包。
"""

from __future__ import annotations

from pkgsolver.core.models import PackageDependency, PackageMetadata
from pkgsolver.core.platform import TargetPlatform
from pkgsolver.core.repository.base import PackageRepository
from pkgsolver.core.resolver.walker import GraphWalker, WalkStrategy


class _PostOrder(WalkStrategy):
    def __init__(self, repository: PackageRepository) -> None:
        self.repository = repository
        self.order: list[PackageMetadata] = []

    def resolve_dependency(self, dependency: PackageDependency) -> PackageMetadata | None:
        return self.repository.resolve_dependency(
            dependency, allow_prerelease=True, prefer_listed=False,
        )

    def on_after_walk(self, package: PackageMetadata) -> None:
        self.order.append(package)

    def on_resolve_error(self, dependency: PackageDependency, dependent: PackageMetadata) -> None:
        pass


def get_packages_by_dependency_order(
    repository: PackageRepository, target_platform: TargetPlatform | None = None,
) -> list[PackageMetadata]:
    strategy = _PostOrder(repository)
    walker = GraphWalker(strategy, target_platform)
    packages = sorted(repository.get_packages(), key=lambda p: (p.id.lower(), p.version))
    for package in packages:
        walker.walk(package)
    return strategy.order
