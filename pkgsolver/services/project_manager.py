"""工程级包管理

ProjectManager 维护单个工程的包引用:
- 规划: 安装 / 更新 / 卸载 / 重装都在工程引用仓库上规划，源为"共享仓库 + 包源"
- 执行: 引用添加时把与工程平台兼容的 content 文件、程序集引用、构建导入落到工程；
  移除时只删除其他已引用包不再使用的文件和引用

包内容进入共享仓库由订阅 REFERENCE_ADDING 的编排层负责，这里只处理工程侧。
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from pathlib import PurePosixPath

from pkgsolver.core.exceptions import (
    ConstraintViolationError,
    IncompatiblePackageError,
    OperationCancelledError,
    UnknownPackageError,
    VersionDowngradeError,
)
from pkgsolver.core.models import (
    PackageAction,
    PackageFile,
    PackageMetadata,
    PackageOperation,
)
from pkgsolver.core.platform import TargetPlatform, get_compatible_items
from pkgsolver.core.protocols import ConstraintProvider, ProjectSystem
from pkgsolver.core.repository.base import PackageRepository
from pkgsolver.core.repository.project_refs import PackageReferenceRepository
from pkgsolver.core.repository.shared import SharedPackageRepository
from pkgsolver.core.resolver.dependents import DependentsWalker
from pkgsolver.core.resolver.install import InstallResolver
from pkgsolver.core.resolver.reinstall import ReinstallPlan, ReinstallResolver
from pkgsolver.core.resolver.uninstall import UninstallResolver
from pkgsolver.core.version import SemanticVersion, VersionRange, get_safe_range
from pkgsolver.services.events import (
    REFERENCE_ADDED,
    REFERENCE_ADDING,
    REFERENCE_REMOVED,
    REFERENCE_REMOVING,
    PackageEvents,
    PackageOperationEvent,
)

logger = logging.getLogger(__name__)

ASSEMBLY_EXTENSIONS = (".dll", ".exe", ".winmd")
IMPORT_LOCATIONS = {".props": "top", ".targets": "bottom"}


class ProjectManager:
    """单个工程的包引用管理

    参数:
        source: 工程的包源（通常是共享仓库 + 包源的聚合）
        shared: 解决方案共享仓库，用于读取已展开的包文件
        project_system: 工程文件系统
        local: 工程引用仓库
        constraint_provider: 版本约束，默认使用工程引用清单中的 allowed_versions
        safe_update_policy: 安全更新区间策略
        dependency_version: 依赖版本选择策略
        cancel_event: 置位后在下一个操作边界抛出 OperationCancelledError
    """

    def __init__(
        self,
        source: PackageRepository,
        shared: SharedPackageRepository,
        project_system: ProjectSystem,
        local: PackageReferenceRepository,
        *,
        constraint_provider: ConstraintProvider | None = None,
        safe_update_policy: str = "minor",
        dependency_version: str = "lowest",
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.source = source
        self.shared = shared
        self.project_system = project_system
        self.local = local
        self.constraint_provider = constraint_provider or local
        self.safe_update_policy = safe_update_policy
        self.dependency_version = dependency_version
        self.cancel_event = cancel_event
        self.events = PackageEvents()

    @property
    def name(self) -> str:
        return self.project_system.name

    @property
    def target_platform(self) -> TargetPlatform | None:
        return self.project_system.target_platform

    def get_package_target_platform(self, package_id: str) -> TargetPlatform | None:
        """安装时记录的平台优先，否则取工程当前平台"""
        return self.local.get_package_target_platform(package_id) or self.target_platform

    # ------------------------------------------------------------------
    # 规划
    # ------------------------------------------------------------------

    def plan_add(
        self,
        package: PackageMetadata,
        *,
        ignore_dependencies: bool = False,
        allow_prerelease: bool = False,
    ) -> list[PackageOperation]:
        return InstallResolver(
            self.local,
            self.source,
            dependents_resolver=DependentsWalker(self.local, self.target_platform),
            constraint_provider=self.constraint_provider,
            target_platform=self.target_platform,
            ignore_dependencies=ignore_dependencies,
            allow_prerelease=allow_prerelease,
            dependency_version=self.dependency_version,
        ).resolve(package)

    def plan_remove(
        self,
        package: PackageMetadata,
        *,
        force_remove: bool = False,
        remove_dependencies: bool = False,
    ) -> list[PackageOperation]:
        platform = self.get_package_target_platform(package.id)
        return UninstallResolver(
            self.local,
            DependentsWalker(self.local, platform),
            platform,
            remove_dependencies=remove_dependencies,
            force_remove=force_remove,
        ).resolve(package)

    def plan_update(
        self,
        package_id: str,
        version: SemanticVersion | str | None = None,
        *,
        version_spec: VersionRange | None = None,
        safe: bool = False,
        update_dependencies: bool = True,
        allow_prerelease: bool = False,
    ) -> list[PackageOperation]:
        """规划更新；没有可用更新时返回空列表

        异常:
            UnknownPackageError: 工程未引用该包，或指定的版本不存在
            ConstraintViolationError: 显式版本不满足工程约束
            VersionDowngradeError: 未显式指定版本却会从预发布降到正式版
        """
        old = self.local.find_package(package_id)
        if old is None:
            raise UnknownPackageError(
                f"Unable to find package '{package_id}' in project '{self.name}'."
            )
        if safe:
            version_spec = get_safe_range(old.version, self.safe_update_policy)

        new = self._find_update(old, version, version_spec, allow_prerelease)
        if new is None or new == old:
            self._log_no_updates(old)
            return []

        if new.version < old.version and version is None:
            if old.version.is_prerelease and not allow_prerelease:
                raise VersionDowngradeError(
                    f"Unable to update '{old.full_name}' to '{new.full_name}' because "
                    f"it would downgrade a pre-release version. Specify the version "
                    f"explicitly or allow pre-release versions."
                )
            self._log_no_updates(old)
            return []

        logger.info("工程 '%s': 计划将 '%s' 更新到 %s", self.name, old.full_name, new.version)
        return self.plan_add(
            new,
            ignore_dependencies=not update_dependencies,
            allow_prerelease=allow_prerelease or new.version.is_prerelease,
        )

    def _find_update(
        self,
        old: PackageMetadata,
        version: SemanticVersion | str | None,
        version_spec: VersionRange | None,
        allow_prerelease: bool,
    ) -> PackageMetadata | None:
        if version is None:
            return self.source.find_package(
                old.id,
                version_spec=version_spec,
                constraint_provider=self.constraint_provider,
                allow_prerelease=allow_prerelease,
                allow_unlisted=False,
            )

        target = SemanticVersion.parse(version)
        constraint = self.constraint_provider.get_constraint(old.id)
        if constraint is not None and not constraint.satisfies(target):
            raise ConstraintViolationError(
                f"Unable to update '{old.id}' to '{target}'."
                f"'{old.id}' has an additional constraint {constraint.pretty()} "
                f"defined in {self.constraint_provider.name}.",
                None, constraint,
            )
        package = self.source.find_package(old.id, target)
        if package is None:
            raise UnknownPackageError(f"Unable to find version '{target}' of package '{old.id}'.")
        return package

    def _log_no_updates(self, package: PackageMetadata) -> None:
        constraint = self.constraint_provider.get_constraint(package.id)
        if constraint is not None:
            logger.info(
                "'%s' 受 %s 中的约束 %s 限制",
                package.id, self.constraint_provider.name, constraint.pretty(),
            )
        logger.info("工程 '%s' 中的 '%s' 没有可用更新", self.name, package.id)

    def plan_reinstall(
        self,
        package: PackageMetadata,
        *,
        update_dependencies: bool = True,
        allow_prerelease: bool = False,
        source: PackageRepository | None = None,
    ) -> ReinstallPlan:
        return ReinstallResolver(
            self.local,
            source or self.source,
            constraint_provider=self.constraint_provider,
            target_platform=self.target_platform,
            update_dependencies=update_dependencies,
            allow_prerelease=allow_prerelease,
            dependency_version=self.dependency_version,
        ).resolve(package)

    # ------------------------------------------------------------------
    # 动作（规划 + 执行）
    # ------------------------------------------------------------------

    def find_source_package(
        self,
        package_id: str,
        version: SemanticVersion | str | None = None,
        *,
        allow_prerelease: bool = False,
        allow_unlisted: bool = False,
    ) -> PackageMetadata:
        package = self.source.find_package(
            package_id, version,
            allow_prerelease=allow_prerelease, allow_unlisted=allow_unlisted,
        )
        if package is None:
            suffix = f" {version}" if version is not None else ""
            raise UnknownPackageError(f"Unable to find package '{package_id}{suffix}'.")
        return package

    def add_package_reference(
        self,
        package: PackageMetadata | str,
        version: SemanticVersion | str | None = None,
        *,
        ignore_dependencies: bool = False,
        allow_prerelease: bool = False,
    ) -> list[PackageOperation]:
        if isinstance(package, str):
            package = self.find_source_package(package, version, allow_prerelease=allow_prerelease)
        operations = self.plan_add(
            package, ignore_dependencies=ignore_dependencies, allow_prerelease=allow_prerelease,
        )
        if not operations and self.local.contains(package):
            logger.info("工程 '%s' 已引用 '%s'", self.name, package.full_name)
            return []
        self.execute_operations(operations)
        return operations

    def remove_package_reference(
        self,
        package_id: str,
        *,
        force_remove: bool = False,
        remove_dependencies: bool = False,
    ) -> list[PackageOperation]:
        package = self.local.find_package(package_id)
        if package is None:
            raise UnknownPackageError(
                f"Unable to find package '{package_id}' in project '{self.name}'."
            )
        operations = self.plan_remove(
            package, force_remove=force_remove, remove_dependencies=remove_dependencies,
        )
        self.execute_operations(operations)
        return operations

    def update_package_reference(
        self,
        package_id: str,
        version: SemanticVersion | str | None = None,
        **kwargs,
    ) -> list[PackageOperation]:
        operations = self.plan_update(package_id, version, **kwargs)
        self.execute_operations(operations)
        return operations

    # ------------------------------------------------------------------
    # 执行
    # ------------------------------------------------------------------

    def execute_operations(self, operations: Iterable[PackageOperation]) -> None:
        for operation in operations:
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise OperationCancelledError("The operation was cancelled.")
            self.execute_operation(operation)

    def execute_operation(self, operation: PackageOperation, *, notify: bool = True) -> None:
        """执行单个操作（不检查取消）

        回滚时以 notify=False 调用：不发出引用事件，只恢复工程状态。
        """
        if operation.action is PackageAction.INSTALL:
            if self.local.contains(operation.package):
                logger.info("工程 '%s' 已引用 '%s'", self.name, operation.package.full_name)
                return
            self._add_reference(operation.package, notify)
        elif self.local.contains(operation.package):
            self._remove_reference(operation.package, notify)

    def _event(self, package: PackageMetadata) -> PackageOperationEvent:
        return PackageOperationEvent(
            package, self.shared.path_resolver.get_install_path(package), self.name,
        )

    def _emit(self, name: str, event: PackageOperationEvent, notify: bool) -> PackageOperationEvent:
        return self.events.emit(name, event) if notify else event

    def _compatible_files(
        self, package: PackageMetadata, kind: str, platform: TargetPlatform | None,
    ) -> list[PackageFile]:
        return get_compatible_items([f for f in package.files if f.kind == kind], platform)

    def _assembly_references(
        self, package: PackageMetadata, platform: TargetPlatform | None,
    ) -> list[PackageFile]:
        """成为工程引用的 lib 文件：兼容的程序集，再按包声明的显式引用列表过滤"""
        assemblies = [
            f for f in self._compatible_files(package, "lib", platform)
            if f.path.lower().endswith(ASSEMBLY_EXTENSIONS)
        ]
        reference_filter = package.get_reference_filter(platform)
        if reference_filter is not None:
            assemblies = [f for f in assemblies if reference_filter.includes(PurePosixPath(f.path).name)]
        return assemblies

    def _read(self, package: PackageMetadata, item: PackageFile) -> str:
        content = self.shared.read_file(package, item.path)
        return item.content if content is None else content

    def _add_reference(self, package: PackageMetadata, notify: bool = True) -> None:
        event = self._emit(REFERENCE_ADDING, self._event(package), notify)
        if event.cancel:
            logger.info("工程 '%s': 添加 '%s' 已被取消", self.name, package.full_name)
            return

        platform = self.target_platform
        content = self._compatible_files(package, "content", platform)
        libs = self._compatible_files(package, "lib", platform)
        builds = self._compatible_files(package, "build", platform)
        frameworks = get_compatible_items(package.framework_assemblies, platform)
        if package.has_project_content and not (content or libs or builds or frameworks):
            raise IncompatiblePackageError(
                f"Could not install package '{package.full_name}'. You are trying to "
                f"install this package into a project that targets '{platform}', but "
                f"the package does not contain any assembly references or content "
                f"files that are compatible with that framework."
            )

        # 显式引用列表在兼容性检查之后才过滤，全部被滤掉不算不兼容
        for item in content:
            self.project_system.add_file(item.effective_path, self._read(package, item))
        for item in self._assembly_references(package, platform):
            self.project_system.add_reference((event.install_path / item.path).as_posix())
        for assembly in frameworks:
            if not self.project_system.reference_exists(assembly.name):
                self.project_system.add_framework_reference(assembly.name)
        for item in builds:
            location = IMPORT_LOCATIONS.get(PurePosixPath(item.path).suffix.lower())
            if location is not None:
                self.project_system.add_import((event.install_path / item.path).as_posix(), location)

        self.local.add_package(package, platform)
        logger.info("已将 '%s' 添加到工程 '%s'", package.full_name, self.name)
        self._emit(REFERENCE_ADDED, event, notify)

    def _remove_reference(self, package: PackageMetadata, notify: bool = True) -> None:
        event = self._emit(REFERENCE_REMOVING, self._event(package), notify)
        if event.cancel:
            logger.info("工程 '%s': 移除 '%s' 已被取消", self.name, package.full_name)
            return

        platform = self.get_package_target_platform(package.id)
        others = [p for p in self.local.get_packages() if p.id.lower() != package.id.lower()]

        # 其他包仍在使用的文件和引用保留；各自按安装时记录的平台取兼容项
        used_files: set[str] = set()
        used_references: set[str] = set()
        for other in others:
            other_platform = self.get_package_target_platform(other.id)
            used_files.update(
                f.effective_path.lower() for f in self._compatible_files(other, "content", other_platform)
            )
            used_references.update(
                PurePosixPath(f.path).name.lower()
                for f in self._assembly_references(other, other_platform)
            )

        for item in self._compatible_files(package, "content", platform):
            if item.effective_path.lower() not in used_files:
                self.project_system.delete_file(item.effective_path)
        for item in self._assembly_references(package, platform):
            name = PurePosixPath(item.path).name
            if name.lower() not in used_references:
                self.project_system.remove_reference(name)
        for item in self._compatible_files(package, "build", platform):
            self.project_system.remove_import((event.install_path / item.path).as_posix())

        self.local.remove_package(package)
        logger.info("已从工程 '%s' 移除 '%s'", self.name, package.full_name)
        self._emit(REFERENCE_REMOVED, event, notify)
