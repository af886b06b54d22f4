"""反向依赖查询

遍历本地仓库中的全部包，记录 "依赖方 -> 被依赖包" 的边，
得到每个已安装包的直接依赖方；get_all_dependents 沿边传递闭包。
只读，不产生任何操作。结果在首次查询时计算并缓存。
"""

from __future__ import annotations

import logging

from pkgsolver.core.models import PackageDependency, PackageIdentity, PackageMetadata
from pkgsolver.core.platform import TargetPlatform
from pkgsolver.core.repository.base import PackageRepository
from pkgsolver.core.resolver.walker import GraphWalker, WalkStrategy

logger = logging.getLogger(__name__)


class DependentsWalker(WalkStrategy):
    """已安装包的反向依赖索引"""

    def __init__(
        self, repository: PackageRepository, target_platform: TargetPlatform | None = None,
    ) -> None:
        self.repository = repository
        self.target_platform = target_platform
        self._lookup: dict[PackageIdentity, list[PackageMetadata]] | None = None

    # ---- 遍历策略 ----

    def resolve_dependency(self, dependency: PackageDependency) -> PackageMetadata | None:
        return self.repository.resolve_dependency(
            dependency, allow_prerelease=True, prefer_listed=False,
        )

    def on_after_resolve(self, dependent: PackageMetadata, resolved: PackageMetadata) -> bool:
        dependents = self._lookup.setdefault(resolved.identity, [])  # type: ignore[union-attr]
        if dependent not in dependents:
            dependents.append(dependent)
        return True

    def on_resolve_error(self, dependency: PackageDependency, dependent: PackageMetadata) -> None:
        logger.debug("%s 的依赖 %s 未安装", dependent.full_name, dependency)

    # ---- 查询 ----

    def _ensure_lookup(self) -> dict[PackageIdentity, list[PackageMetadata]]:
        if self._lookup is None:
            self._lookup = {}
            walker = GraphWalker(self, self.target_platform)
            for package in self.repository.get_packages():
                walker.walk(package)
        return self._lookup

    def get_dependents(self, package: PackageMetadata) -> list[PackageMetadata]:
        """直接依赖该包的已安装包"""
        return list(self._ensure_lookup().get(package.identity, []))

    def get_all_dependents(self, package: PackageMetadata) -> set[PackageMetadata]:
        """直接或间接依赖该包的已安装包"""
        lookup = self._ensure_lookup()
        result: set[PackageMetadata] = set()
        pending = list(lookup.get(package.identity, []))
        while pending:
            current = pending.pop()
            if current in result or current == package:
                continue
            result.add(current)
            pending.extend(lookup.get(current.identity, []))
        return result
