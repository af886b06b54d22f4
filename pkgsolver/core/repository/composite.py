"""组合仓库视图

- AggregateRepository: 同时查询多个仓库，同一标识先出现者优先
- FallbackRepository: 先查主仓库，未命中再查备用仓库
- ExcludingRepository: 隐藏一组标识，用于在"卸载之后"的状态上规划重装
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pkgsolver.core.exceptions import PkgSolverError
from pkgsolver.core.models import PackageDependency, PackageIdentity, PackageMetadata
from pkgsolver.core.repository.base import PackageRepository
from pkgsolver.core.version import SemanticVersion

logger = logging.getLogger(__name__)


def _unique(packages: Iterable[PackageMetadata]) -> list[PackageMetadata]:
    seen: set[PackageIdentity] = set()
    result: list[PackageMetadata] = []
    for package in packages:
        if package.identity not in seen:
            seen.add(package.identity)
            result.append(package)
    return result


class AggregateRepository(PackageRepository):
    """多仓库聚合视图

    参数:
        repositories: 按优先级排列的仓库
        ignore_failing: 为 True 时单个仓库读取失败只记录告警
    """

    def __init__(
        self, repositories: Iterable[PackageRepository], ignore_failing: bool = False,
    ) -> None:
        self.repositories = list(repositories)
        self.ignore_failing = ignore_failing
        self.source = ";".join(r.source for r in self.repositories if r.source)

    def _query(self, func, default):
        results = []
        for repo in self.repositories:
            try:
                results.append(func(repo))
            except (OSError, PkgSolverError) as e:
                if not self.ignore_failing:
                    raise
                logger.warning("包源查询失败，已跳过: %s (%s)", repo.source, e)
                results.append(default)
        return results

    def get_packages(self) -> list[PackageMetadata]:
        groups = self._query(lambda r: list(r.get_packages()), [])
        return _unique(p for group in groups for p in group)

    def find_packages_by_id(self, package_id: str) -> list[PackageMetadata]:
        groups = self._query(lambda r: r.find_packages_by_id(package_id), [])
        return _unique(p for group in groups for p in group)

    def find_package(self, package_id, version=None, **kwargs) -> PackageMetadata | None:
        if version is None:
            return super().find_package(package_id, **kwargs)
        target = SemanticVersion.parse(version)
        for repo in self.repositories:
            try:
                found = repo.find_package(package_id, target)
            except (OSError, PkgSolverError) as e:
                if not self.ignore_failing:
                    raise
                logger.warning("包源查询失败，已跳过: %s (%s)", repo.source, e)
                continue
            if found is not None:
                return found
        return None


class FallbackRepository(PackageRepository):
    """主仓库 + 备用仓库：主仓库未命中时才查询备用仓库"""

    def __init__(self, primary: PackageRepository, fallback: PackageRepository) -> None:
        self.primary = primary
        self.fallback = fallback
        self.source = primary.source

    def get_packages(self) -> Iterable[PackageMetadata]:
        return self.primary.get_packages()

    def find_packages_by_id(self, package_id: str) -> list[PackageMetadata]:
        return self.primary.find_packages_by_id(package_id) or self.fallback.find_packages_by_id(package_id)

    def find_package(self, package_id, version=None, **kwargs) -> PackageMetadata | None:
        found = self.primary.find_package(package_id, version, **kwargs)
        if found is None:
            found = self.fallback.find_package(package_id, version, **kwargs)
        return found

    def resolve_dependency(self, dependency: PackageDependency, **kwargs) -> PackageMetadata | None:
        resolved = self.primary.resolve_dependency(dependency, **kwargs)
        if resolved is None:
            logger.debug("主仓库未能解析 %s，尝试备用仓库 %s", dependency, self.fallback.source)
            resolved = self.fallback.resolve_dependency(dependency, **kwargs)
        return resolved


class ExcludingRepository(PackageRepository):
    """隐藏指定标识的只读视图"""

    def __init__(
        self, inner: PackageRepository, excluded: Iterable[PackageMetadata | PackageIdentity],
    ) -> None:
        self.inner = inner
        self.source = inner.source
        self.excluded = {
            p.identity if isinstance(p, PackageMetadata) else p for p in excluded
        }

    def get_packages(self) -> list[PackageMetadata]:
        return [p for p in self.inner.get_packages() if p.identity not in self.excluded]

    def find_packages_by_id(self, package_id: str) -> list[PackageMetadata]:
        return [
            p for p in self.inner.find_packages_by_id(package_id)
            if p.identity not in self.excluded
        ]
