"""解决方案级包管理

PackageManager 负责共享仓库中包内容的安装与删除:
- 安装: 展开包文件并写入元数据；已存在时跳过
- 卸载: 仍被任一工程引用时跳过；目录删不干净时登记延迟删除
- 无工程内容的包在解决方案级安装时记入 packages/packages.yml

工程级动作通过 INSTALLING / INSTALLED 等事件与这里衔接（见 solution.transaction）。
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable

from pkgsolver.core.exceptions import OperationCancelledError
from pkgsolver.core.models import PackageAction, PackageMetadata, PackageOperation
from pkgsolver.core.platform import TargetPlatform
from pkgsolver.core.repository.base import PackageRepository
from pkgsolver.core.repository.shared import SharedPackageRepository
from pkgsolver.core.resolver.dependents import DependentsWalker
from pkgsolver.core.resolver.install import InstallResolver
from pkgsolver.core.resolver.uninstall import UninstallResolver
from pkgsolver.services.delete_on_restart import DeleteOnRestartManager
from pkgsolver.services.events import (
    INSTALLED,
    INSTALLING,
    UNINSTALLED,
    UNINSTALLING,
    PackageEvents,
    PackageOperationEvent,
)

logger = logging.getLogger(__name__)


class PackageManager:
    """共享仓库的包安装 / 卸载执行器

    参数:
        source: 源仓库
        local: 解决方案共享仓库
        delete_on_restart: 延迟删除管理器，默认按共享仓库目录创建
        dependency_version: 依赖版本选择策略
        cancel_event: 置位后在下一个操作边界抛出 OperationCancelledError
    """

    def __init__(
        self,
        source: PackageRepository,
        local: SharedPackageRepository,
        *,
        delete_on_restart: DeleteOnRestartManager | None = None,
        dependency_version: str = "lowest",
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.source = source
        self.local = local
        self.delete_on_restart = delete_on_restart or DeleteOnRestartManager(local.path_resolver)
        self.dependency_version = dependency_version
        self.cancel_event = cancel_event
        self.events = PackageEvents()

    @property
    def path_resolver(self):
        return self.local.path_resolver

    # ------------------------------------------------------------------
    # 规划
    # ------------------------------------------------------------------

    def plan_install(
        self,
        package: PackageMetadata,
        *,
        target_platform: TargetPlatform | None = None,
        ignore_dependencies: bool = False,
        allow_prerelease: bool = False,
    ) -> list[PackageOperation]:
        # 共享仓库允许同一 id 多版本并存，新装不视为升级
        return InstallResolver(
            self.local,
            self.source,
            dependents_resolver=DependentsWalker(self.local, target_platform),
            target_platform=target_platform,
            ignore_dependencies=ignore_dependencies,
            allow_prerelease=allow_prerelease,
            dependency_version=self.dependency_version,
            check_local_conflicts=False,
        ).resolve(package)

    def plan_update(
        self,
        package: PackageMetadata,
        *,
        update_dependencies: bool = True,
        allow_prerelease: bool = False,
    ) -> list[PackageOperation]:
        return InstallResolver(
            self.local,
            self.source,
            dependents_resolver=DependentsWalker(self.local),
            ignore_dependencies=not update_dependencies,
            allow_prerelease=allow_prerelease,
            dependency_version=self.dependency_version,
        ).resolve(package)

    def plan_uninstall(
        self,
        package: PackageMetadata,
        *,
        force_remove: bool = False,
        remove_dependencies: bool = False,
    ) -> list[PackageOperation]:
        return UninstallResolver(
            self.local,
            DependentsWalker(self.local),
            remove_dependencies=remove_dependencies,
            force_remove=force_remove,
        ).resolve(package)

    # ------------------------------------------------------------------
    # 动作
    # ------------------------------------------------------------------

    def install_package(
        self,
        package: PackageMetadata,
        *,
        ignore_dependencies: bool = False,
        allow_prerelease: bool = False,
    ) -> list[PackageOperation]:
        operations = self.plan_install(
            package, ignore_dependencies=ignore_dependencies, allow_prerelease=allow_prerelease,
        )
        self.execute(operations)
        self.record_solution_level(package)
        return operations

    def update_package(
        self,
        package: PackageMetadata,
        *,
        update_dependencies: bool = True,
        allow_prerelease: bool = False,
    ) -> list[PackageOperation]:
        operations = self.plan_update(
            package, update_dependencies=update_dependencies, allow_prerelease=allow_prerelease,
        )
        self.execute(operations)
        self.record_solution_level(package)
        return operations

    def uninstall_package(
        self,
        package: PackageMetadata,
        *,
        force_remove: bool = False,
        remove_dependencies: bool = False,
    ) -> list[PackageOperation]:
        operations = self.plan_uninstall(
            package, force_remove=force_remove, remove_dependencies=remove_dependencies,
        )
        self.execute(operations)
        return operations

    def record_solution_level(self, package: PackageMetadata) -> None:
        """无工程内容且未被工程引用的包记为解决方案级包"""
        if self.local.contains(package) and self.local.is_solution_level(package):
            self.local.add_package_reference_entry(package.id, package.version)

    # ------------------------------------------------------------------
    # 执行
    # ------------------------------------------------------------------

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise OperationCancelledError("The operation was cancelled.")

    def execute(self, operations: Iterable[PackageOperation]) -> None:
        for operation in operations:
            self.check_cancelled()
            if operation.action is PackageAction.INSTALL:
                self.execute_install(operation.package)
            else:
                self.execute_uninstall(operation.package)

    def _event(self, package: PackageMetadata) -> PackageOperationEvent:
        return PackageOperationEvent(package, self.path_resolver.get_install_path(package))

    def execute_install(self, package: PackageMetadata) -> None:
        if self.local.contains(package):
            logger.info("'%s' 已存在于共享仓库", package.full_name)
            return

        event = self.events.emit(INSTALLING, self._event(package))
        if event.cancel:
            logger.info("安装 '%s' 已被取消", package.full_name)
            return

        # 之前卸载时留下的延迟删除标记作废，否则下次加载会删掉新装的包
        self.delete_on_restart.unmark_package_directory(package)
        self.local.add_package(package)
        logger.info("已安装 '%s'", package.full_name)
        self.events.emit(INSTALLED, event)

    def refresh_package(self, package: PackageMetadata) -> None:
        """用包源中的内容重写共享仓库中的副本；不存在时按普通安装处理

        重装时使用：副本在动作提交前保留在共享仓库中以便回滚，
        文件内容则以包源为准，修复损坏的安装。
        """
        if not self.local.contains(package):
            self.execute_install(package)
            return
        source_package = self.source.find_package(package.id, package.version)
        if source_package is None:
            logger.warning("包源中已找不到 '%s'，保留共享仓库中的副本", package.full_name)
            return
        self.delete_on_restart.unmark_package_directory(source_package)
        self.local.add_package(source_package)
        logger.info("已从包源刷新 '%s'", package.full_name)

    def execute_uninstall(self, package: PackageMetadata) -> None:
        if not self.local.contains(package):
            return
        if self.local.is_referenced(package.id, package.version):
            logger.debug("'%s' 仍被工程引用，保留在共享仓库", package.full_name)
            return

        event = self.events.emit(UNINSTALLING, self._event(package))
        if event.cancel:
            logger.info("卸载 '%s' 已被取消", package.full_name)
            return

        if not self.local.remove_package(package):
            self.delete_on_restart.mark_package_directory_for_deletion(package)
        logger.info("已从共享仓库移除 '%s'", package.full_name)
        self.events.emit(UNINSTALLED, event)
