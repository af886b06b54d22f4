"""重装规划

强制卸载（可连同依赖）后重新安装同一 id，默认固定在原版本。
安装部分在"卸载之后"的本地视图上规划，因此两段操作各自归约、不会相互抵消。

- 源中已不存在该包：返回 skipped 计划并告警，不让整个批次失败
- 已安装的是预发布版本：自动允许预发布
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pkgsolver.core.models import PackageMetadata, PackageOperation
from pkgsolver.core.platform import TargetPlatform
from pkgsolver.core.protocols import ConstraintProvider
from pkgsolver.core.repository.base import PackageRepository
from pkgsolver.core.repository.composite import ExcludingRepository
from pkgsolver.core.resolver.dependents import DependentsWalker
from pkgsolver.core.resolver.install import InstallResolver
from pkgsolver.core.resolver.uninstall import UninstallResolver

logger = logging.getLogger(__name__)


@dataclass
class ReinstallPlan:
    """重装计划：先执行 uninstall_operations，再执行 install_operations"""

    package: PackageMetadata
    uninstall_operations: list[PackageOperation] = field(default_factory=list)
    install_operations: list[PackageOperation] = field(default_factory=list)
    skipped: bool = False

    @property
    def operations(self) -> list[PackageOperation]:
        return [*self.uninstall_operations, *self.install_operations]


class ReinstallResolver:
    """重装操作规划器"""

    def __init__(
        self,
        local: PackageRepository,
        source: PackageRepository,
        *,
        constraint_provider: ConstraintProvider | None = None,
        target_platform: TargetPlatform | None = None,
        update_dependencies: bool = True,
        allow_prerelease: bool = False,
        dependency_version: str = "lowest",
    ) -> None:
        self.local = local
        self.source = source
        self.constraint_provider = constraint_provider
        self.target_platform = target_platform
        self.update_dependencies = update_dependencies
        self.allow_prerelease = allow_prerelease
        self.dependency_version = dependency_version

    def resolve(
        self, package: PackageMetadata, *, allow_version_change: bool = False,
    ) -> ReinstallPlan:
        allow_prerelease = self.allow_prerelease or package.version.is_prerelease

        if allow_version_change:
            target = self.source.find_package(
                package.id,
                constraint_provider=self.constraint_provider,
                allow_prerelease=allow_prerelease,
                allow_unlisted=False,
            )
        else:
            target = self.source.find_package(package.id, package.version)
        if target is None:
            logger.warning("源中已找不到 '%s'，跳过重装", package.full_name)
            return ReinstallPlan(package, skipped=True)

        uninstall_ops = UninstallResolver(
            self.local,
            DependentsWalker(self.local, self.target_platform),
            self.target_platform,
            remove_dependencies=self.update_dependencies,
            force_remove=True,
        ).resolve(package)

        remaining = ExcludingRepository(self.local, [op.package for op in uninstall_ops])
        install_ops = InstallResolver(
            remaining,
            self.source,
            constraint_provider=self.constraint_provider,
            target_platform=self.target_platform,
            ignore_dependencies=not self.update_dependencies,
            allow_prerelease=allow_prerelease,
            dependency_version=self.dependency_version,
        ).resolve(target)

        return ReinstallPlan(package, uninstall_ops, install_ops)
