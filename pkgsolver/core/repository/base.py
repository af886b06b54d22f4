"""包仓库基类

所有仓库（源目录、共享本地仓库、工程引用仓库、聚合/回退视图）共享同一组查询：
exists / find_package / find_packages_by_id / get_packages / resolve_dependency。
子类只需实现 get_packages，必要时覆盖 find_packages_by_id 以加速。
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pkgsolver.core.models import PackageDependency, PackageMetadata
from pkgsolver.core.protocols import ConstraintProvider
from pkgsolver.core.version import SemanticVersion, VersionRange

logger = logging.getLogger(__name__)


class PackageRepository:
    """可查询的包目录"""

    source: str = ""

    def get_packages(self) -> Iterable[PackageMetadata]:
        raise NotImplementedError

    def find_packages_by_id(self, package_id: str) -> list[PackageMetadata]:
        key = package_id.lower()
        return [p for p in self.get_packages() if p.id.lower() == key]

    def find_package(
        self,
        package_id: str,
        version: SemanticVersion | str | None = None,
        *,
        version_spec: VersionRange | None = None,
        constraint_provider: ConstraintProvider | None = None,
        allow_prerelease: bool = True,
        allow_unlisted: bool = True,
    ) -> PackageMetadata | None:
        """查找包

        指定 version 时精确匹配（忽略其他过滤条件）；
        否则在满足区间 / 约束 / 预发布 / 未列出过滤条件的候选中取最高版本。
        """
        if version is not None:
            target = SemanticVersion.parse(version)
            for package in self.find_packages_by_id(package_id):
                if package.version == target:
                    return package
            return None

        candidates = [
            p for p in self.find_packages_by_id(package_id)
            if (version_spec is None or version_spec.satisfies(p.version))
            and (allow_prerelease or p.is_release_version)
            and (allow_unlisted or p.listed)
        ]
        candidates = filter_by_constraint(
            candidates, package_id, constraint_provider, allow_prerelease,
        )
        return max(candidates, key=lambda p: p.version, default=None)

    def exists(
        self, package_id: str, version: SemanticVersion | str | None = None,
    ) -> bool:
        return self.find_package(package_id, version) is not None

    def contains(self, package: PackageMetadata) -> bool:
        return self.exists(package.id, package.version)

    def resolve_dependency(
        self,
        dependency: PackageDependency,
        *,
        constraint_provider: ConstraintProvider | None = None,
        allow_prerelease: bool = False,
        prefer_listed: bool = True,
        dependency_version: str = "lowest",
    ) -> PackageMetadata | None:
        """为依赖声明选出一个具体包

        先按工程约束和预发布开关过滤；prefer_listed 时优先在已列出的包中选择。
        """
        spec = dependency.version_spec
        if spec is not None and any(
            v is not None and v.is_prerelease
            for v in (spec.min_version, spec.max_version)
        ):
            allow_prerelease = True

        candidates = filter_by_constraint(
            self.find_packages_by_id(dependency.id), dependency.id,
            constraint_provider, allow_prerelease,
        )
        if prefer_listed:
            selected = select_dependency(
                [p for p in candidates if p.listed], spec, dependency_version,
            )
            if selected is not None:
                return selected
        return select_dependency(candidates, spec, dependency_version)

    def add_package(self, package: PackageMetadata) -> None:
        raise NotImplementedError(f"{type(self).__name__} 是只读仓库")

    def remove_package(self, package: PackageMetadata) -> None:
        raise NotImplementedError(f"{type(self).__name__} 是只读仓库")


def filter_by_constraint(
    packages: list[PackageMetadata],
    package_id: str,
    constraint_provider: ConstraintProvider | None,
    allow_prerelease: bool,
) -> list[PackageMetadata]:
    """按工程约束和预发布开关过滤候选"""
    if constraint_provider is not None:
        constraint = constraint_provider.get_constraint(package_id)
        if constraint is not None:
            packages = [p for p in packages if constraint.satisfies(p.version)]
    if not allow_prerelease:
        packages = [p for p in packages if p.is_release_version]
    return packages


def select_dependency(
    packages: list[PackageMetadata],
    spec: VersionRange | None,
    dependency_version: str = "lowest",
) -> PackageMetadata | None:
    """按依赖版本策略从候选中选出一个

    - lowest: 满足区间的最低版本（默认，避免传递依赖被无谓升级）
    - highest_patch: 最低 major.minor 组内的最高版本
    - highest_minor: 最低 major 组内的最高版本
    - highest: 最高版本
    """
    if spec is not None:
        packages = [p for p in packages if spec.satisfies(p.version)]
    ordered = sorted(packages, key=lambda p: p.version)
    if not ordered:
        return None

    if dependency_version == "highest":
        return ordered[-1]
    if dependency_version == "highest_patch":
        first = ordered[0].version
        group = [p for p in ordered if (p.version.major, p.version.minor) == (first.major, first.minor)]
        return group[-1]
    if dependency_version == "highest_minor":
        first = ordered[0].version
        group = [p for p in ordered if p.version.major == first.major]
        return group[-1]
    return ordered[0]
