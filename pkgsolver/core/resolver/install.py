"""安装 / 更新规划

给定目标包，生成目标包及其缺失或需升级依赖的安装操作，以及被取代旧版本的卸载操作。

规则:
- 依赖先在本地仓库解析（接受预发布），本地满足则不产生操作；
  否则从源仓库按依赖版本策略（默认最低满足版本）解析
- 本地已有同 id 的其他版本时视为升级：检查旧版本的依赖方是否接受新版本，
  有不接受者抛出 ConflictError；全部接受则卸载旧版本（连同变成孤儿的依赖）
- 旧版本的卫星包会随核心包一起升级到匹配版本
- 已被标记卸载、但又被新依赖图访问到的本地包会被保留
- 依赖无解时，若工程对该包有 allowed_versions 约束则抛出 ConstraintViolationError
"""

from __future__ import annotations

import logging

from pkgsolver.core.exceptions import (
    ConflictError,
    ConstraintViolationError,
    DependencyResolutionError,
)
from pkgsolver.core.models import (
    PackageAction,
    PackageDependency,
    PackageIdentity,
    PackageMetadata,
    PackageOperation,
)
from pkgsolver.core.platform import TargetPlatform
from pkgsolver.core.protocols import ConstraintProvider, DependentsResolver
from pkgsolver.core.repository.base import PackageRepository
from pkgsolver.core.repository.memory import InMemoryRepository
from pkgsolver.core.resolver.constraints import NullConstraintProvider
from pkgsolver.core.resolver.dependents import DependentsWalker
from pkgsolver.core.resolver.reducer import reduce_operations
from pkgsolver.core.resolver.uninstall import UninstallResolver
from pkgsolver.core.resolver.walker import CLIENT_VERSION, GraphWalker, WalkStrategy
from pkgsolver.core.version import SemanticVersion

logger = logging.getLogger(__name__)


class _WalkDependents:
    """本次遍历中记录的依赖边（用于同一次遍历内的版本冲突）"""

    def __init__(self) -> None:
        self.edges: dict[PackageIdentity, list[PackageMetadata]] = {}

    def add(self, dependent: PackageMetadata, resolved: PackageMetadata) -> None:
        dependents = self.edges.setdefault(resolved.identity, [])
        if dependent not in dependents:
            dependents.append(dependent)

    def get_dependents(self, package: PackageMetadata) -> list[PackageMetadata]:
        return list(self.edges.get(package.identity, []))


class InstallResolver(WalkStrategy):
    """安装 / 更新操作规划器

    参数:
        local: 本地仓库（工程引用仓库或共享仓库）
        source: 源仓库
        dependents_resolver: 本地仓库的反向依赖查询，默认每次规划新建 DependentsWalker
        constraint_provider: 工程版本约束
        target_platform: 目标平台
        ignore_dependencies: 只处理目标包本身
        allow_prerelease: 从源仓库解析依赖时是否接受预发布版本
        dependency_version: 依赖版本选择策略
        check_local_conflicts: 是否把本地已有的同 id 其他版本视为待升级版本
            （工程级始终开启；解决方案级新装时关闭以允许多版本并存）
    """

    def __init__(
        self,
        local: PackageRepository,
        source: PackageRepository,
        *,
        dependents_resolver: DependentsResolver | None = None,
        constraint_provider: ConstraintProvider | None = None,
        target_platform: TargetPlatform | None = None,
        ignore_dependencies: bool = False,
        allow_prerelease: bool = False,
        dependency_version: str = "lowest",
        check_local_conflicts: bool = True,
        client_version: SemanticVersion | None = CLIENT_VERSION,
    ) -> None:
        self.local = local
        self.source = source
        self.constraint_provider = constraint_provider or NullConstraintProvider()
        self.target_platform = target_platform
        self.ignore_dependencies = ignore_dependencies
        self.allow_prerelease = allow_prerelease
        self.dependency_version = dependency_version
        self.check_local_conflicts = check_local_conflicts

        self._fixed_dependents = dependents_resolver
        self._dependents: DependentsResolver | None = None
        self._walker = GraphWalker(self, target_platform, client_version)
        self._walk_dependents = _WalkDependents()
        self._operations: list[PackageOperation] = []
        self._packages_to_keep: set[PackageMetadata] = set()
        self._pending_satellites: dict[PackageIdentity, list[PackageMetadata]] = {}

    def resolve(self, package: PackageMetadata) -> list[PackageOperation]:
        self._walker.reset()
        self._walk_dependents = _WalkDependents()
        self._operations = []
        self._packages_to_keep = set()
        self._pending_satellites = {}
        self._dependents = self._fixed_dependents or DependentsWalker(self.local, self.target_platform)

        self._walker.walk(package)
        return reduce_operations(self._operations)

    # ------------------------------------------------------------------
    # 遍历策略
    # ------------------------------------------------------------------

    def resolve_dependency(self, dependency: PackageDependency) -> PackageMetadata | None:
        logger.info("正在解析依赖 '%s'", dependency)
        # 本地优先；本地已安装的预发布版本也可以满足依赖
        package = self.local.resolve_dependency(
            dependency,
            constraint_provider=self.constraint_provider,
            allow_prerelease=True,
            prefer_listed=False,
            dependency_version=self.dependency_version,
        )
        if package is not None:
            return package
        return self.source.resolve_dependency(
            dependency,
            constraint_provider=self.constraint_provider,
            allow_prerelease=self.allow_prerelease,
            prefer_listed=True,
            dependency_version=self.dependency_version,
        )

    def on_before_walk(self, package: PackageMetadata) -> None:
        conflict = self._get_conflict(package)
        if conflict is None:
            return
        existing, dependents_resolver, repository = conflict

        incompatible: list[PackageMetadata] = []
        satellites: list[PackageMetadata] = []
        for dependent in self._get_dependents(existing, dependents_resolver):
            dependency = dependent.find_dependency(package.id, self.target_platform)
            if dependency is None or dependency.version_spec is None:
                continue
            if dependency.version_spec.satisfies(package.version):
                continue
            if dependent.is_satellite and dependent.core_package_id.lower() == package.id.lower():
                satellites.append(dependent)
            else:
                incompatible.append(dependent)

        replacements: list[PackageMetadata] = []
        for satellite in satellites:
            replacement = self._find_satellite_replacement(satellite, package)
            if replacement is None:
                incompatible.append(satellite)
            else:
                replacements.append(replacement)

        if incompatible:
            raise self._conflict_error(existing, package, incompatible)

        for satellite in satellites:
            self._uninstall(satellite, dependents_resolver, repository)
        self._uninstall(existing, dependents_resolver, repository)
        if replacements:
            self._pending_satellites.setdefault(package.identity, []).extend(replacements)

    def on_after_resolve(self, dependent: PackageMetadata, resolved: PackageMetadata) -> bool:
        self._walk_dependents.add(dependent, resolved)
        return True

    def on_after_walk(self, package: PackageMetadata) -> None:
        if not self.local.contains(package):
            self._add(PackageOperation(package, PackageAction.INSTALL))
        else:
            # 之前标记的卸载与这里的"保留"相互抵消
            self._remove(PackageOperation(package, PackageAction.UNINSTALL))
            self._packages_to_keep.add(package)

        for satellite in self._pending_satellites.pop(package.identity, []):
            self._walker.walk(satellite)

    def on_resolve_error(self, dependency: PackageDependency, dependent: PackageMetadata) -> None:
        constraint = self.constraint_provider.get_constraint(dependency.id)
        if constraint is not None:
            raise ConstraintViolationError(
                f"Unable to resolve dependency '{dependency}'."
                f"'{dependency.id}' has an additional constraint {constraint.pretty()} "
                f"defined in {self.constraint_provider.name}.",
                dependency, constraint,
            )
        raise DependencyResolutionError(
            f"Unable to resolve dependency '{dependency}'.", dependency,
        )

    # ------------------------------------------------------------------
    # 冲突处理
    # ------------------------------------------------------------------

    def _get_conflict(self, package: PackageMetadata):
        """返回 (冲突包, 其依赖方查询, 其所在仓库)，无冲突返回 None"""
        marked = self._walker.find_marked(package.id)
        if marked is not None and marked != package:
            return marked, self._walk_dependents, InMemoryRepository(self._walker.marked_packages())

        if self.check_local_conflicts:
            existing = [p for p in self.local.find_packages_by_id(package.id) if p != package]
            if existing and not self.local.contains(package):
                return max(existing, key=lambda p: p.version), self._dependents, self.local
        return None

    def _get_dependents(
        self, package: PackageMetadata, resolver: DependentsResolver,
    ) -> list[PackageMetadata]:
        # 已标记卸载的依赖方不参与兼容性检查
        uninstalling = {
            op.package for op in self._operations if op.action is PackageAction.UNINSTALL
        }
        return [p for p in resolver.get_dependents(package) if p not in uninstalling]

    def _find_satellite_replacement(
        self, satellite: PackageMetadata, core: PackageMetadata,
    ) -> PackageMetadata | None:
        """源仓库中与新核心包版本匹配的卫星包"""
        candidates = []
        for candidate in self.source.find_packages_by_id(satellite.id):
            dependency = candidate.find_dependency(core.id, self.target_platform)
            if dependency is None or dependency.version_spec is None:
                continue
            if dependency.version_spec.satisfies(core.version):
                candidates.append(candidate)
        if not candidates:
            return None
        for candidate in candidates:
            if candidate.version == core.version:
                return candidate
        return min(candidates, key=lambda p: p.version)

    def _uninstall(
        self,
        package: PackageMetadata,
        dependents_resolver: DependentsResolver,
        repository: PackageRepository,
    ) -> None:
        self._packages_to_keep.discard(package)
        # 不在本次依赖图中且已标记卸载的包无需重复处理
        uninstall = PackageOperation(package, PackageAction.UNINSTALL)
        if not self._walker.contains(package) and uninstall in self._operations:
            return

        resolver = UninstallResolver(
            repository,
            dependents_resolver,
            self.target_platform,
            remove_dependencies=not self.ignore_dependencies,
            force_remove=False,
            throw_on_conflicts=False,
            quiet=True,
        )
        for operation in resolver.resolve(package):
            if operation.action is PackageAction.INSTALL or operation.package not in self._packages_to_keep:
                self._add(operation)

    def _conflict_error(
        self,
        existing: PackageMetadata,
        package: PackageMetadata,
        dependents: list[PackageMetadata],
    ) -> ConflictError:
        prefix = f"Updating '{existing.full_name}' to '{package.full_name}' failed. "
        if len(dependents) == 1:
            message = (
                f"{prefix}Unable to find a version of '{package.id}' that is "
                f"compatible with '{dependents[0].full_name}'."
            )
        else:
            names = ", ".join(f"'{d.full_name}'" for d in dependents)
            message = (
                f"{prefix}Unable to find versions of '{package.id}' that are "
                f"compatible with {names}."
            )
        return ConflictError(message, package, dependents)

    # ------------------------------------------------------------------
    # 操作列表
    # ------------------------------------------------------------------

    def _add(self, operation: PackageOperation) -> None:
        self._operations.append(operation)

    def _remove(self, operation: PackageOperation) -> None:
        if operation in self._operations:
            self._operations.remove(operation)
