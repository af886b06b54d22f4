"""动作回滚

两层作用域，工程层嵌套在解决方案层内:

run_solution_action
    记录动作期间新装入共享仓库的包；动作抛出异常时按逆序卸载它们
ProjectTransaction / run_project_action
    订阅工程的引用事件：引用添加前把包装入共享仓库，记录已添加 / 已移除的引用；
    任一阶段抛出异常时移除已添加的引用、恢复已移除的引用（包括此前阶段的）；
    提交时把不再被任何工程引用的已移除包从共享仓库删除

一个 ProjectTransaction 可以跨多个阶段执行（重装先从所有工程卸载再逐个装回），
已移除的包在提交前一直留在共享仓库中，回滚总能恢复引用。

回滚是尽力而为：期间日志被静默、不发出引用事件，单个回滚步骤失败不影响其余步骤，
最后总是重新抛出原始异常。
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import TypeVar

from pkgsolver.core.exceptions import PkgSolverError
from pkgsolver.core.models import PackageAction, PackageMetadata, PackageOperation
from pkgsolver.core.resolver.reducer import reduce_operations
from pkgsolver.services.events import (
    INSTALLED,
    REFERENCE_ADDED,
    REFERENCE_ADDING,
    REFERENCE_REMOVED,
    PackageOperationEvent,
)
from pkgsolver.services.package_manager import PackageManager
from pkgsolver.services.project_manager import ProjectManager
from pkgsolver.utils.logger import muted

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _uninstall_from_shared(
    package_manager: PackageManager, packages: Iterable[PackageMetadata],
) -> None:
    """逆序卸载；仍被工程引用的包由 execute_uninstall 跳过"""
    operations = reduce_operations(
        PackageOperation(p, PackageAction.UNINSTALL) for p in reversed(list(packages))
    )
    for operation in operations:
        package_manager.execute_uninstall(operation.package)


def run_solution_action(package_manager: PackageManager, action: Callable[[], T]) -> T:
    installed: list[PackageMetadata] = []

    def on_installed(event: PackageOperationEvent) -> None:
        installed.append(event.package)

    package_manager.events.subscribe(INSTALLED, on_installed)
    try:
        return action()
    except Exception:
        package_manager.events.unsubscribe(INSTALLED, on_installed)
        if installed:
            logger.warning("动作失败，回滚 %d 个已装入共享仓库的包", len(installed))
            with muted():
                for package in reversed(installed):
                    try:
                        package_manager.execute_uninstall(package)
                    except (OSError, PkgSolverError) as e:
                        logger.debug("回滚卸载 '%s' 失败: %s", package.full_name, e)
        raise
    finally:
        package_manager.events.unsubscribe(INSTALLED, on_installed)


class ProjectTransaction:
    """单个工程的回滚作用域

    参数:
        package_manager: 共享仓库执行器
        project_manager: 工程
        refreshed: 重装时传入（可在多个工程间共享）；本事务中先移除后又添加的包
            会从包源刷新共享仓库中的副本，每个包只刷新一次
    """

    def __init__(
        self,
        package_manager: PackageManager,
        project_manager: ProjectManager,
        *,
        refreshed: set[PackageMetadata] | None = None,
    ) -> None:
        self.package_manager = package_manager
        self.project_manager = project_manager
        self.refreshed = refreshed
        self.added: list[PackageMetadata] = []
        self.removed: list[PackageMetadata] = []

    def _on_adding(self, event: PackageOperationEvent) -> None:
        package = event.package
        if self.refreshed is not None and package in self.removed and package not in self.refreshed:
            self.package_manager.refresh_package(package)
            self.refreshed.add(package)
        else:
            self.package_manager.execute_install(package)

    def _on_added(self, event: PackageOperationEvent) -> None:
        self.added.append(event.package)

    def _on_removed(self, event: PackageOperationEvent) -> None:
        self.removed.append(event.package)

    def _handlers(self):
        return (
            (REFERENCE_ADDING, self._on_adding),
            (REFERENCE_ADDED, self._on_added),
            (REFERENCE_REMOVED, self._on_removed),
        )

    def run(self, action: Callable[[], T]) -> T:
        """执行一个阶段；失败时回滚整个事务并重新抛出"""
        events = self.project_manager.events
        for name, handler in self._handlers():
            events.subscribe(name, handler)
        try:
            return action()
        except Exception:
            for name, handler in self._handlers():
                events.unsubscribe(name, handler)
            logger.warning("工程 '%s' 动作失败，正在回滚", self.project_manager.name)
            with muted():
                self.rollback()
            raise
        finally:
            for name, handler in self._handlers():
                events.unsubscribe(name, handler)

    def rollback(self) -> None:
        project_manager = self.project_manager
        for package in reversed(self.added):
            try:
                project_manager.execute_operation(
                    PackageOperation(package, PackageAction.UNINSTALL), notify=False,
                )
            except (OSError, PkgSolverError) as e:
                logger.debug("回滚移除引用 '%s' 失败: %s", package.full_name, e)

        # 已移除的包在提交前不会从共享仓库删除，可以直接恢复引用
        for package in reversed(self.removed):
            try:
                project_manager.execute_operation(
                    PackageOperation(package, PackageAction.INSTALL), notify=False,
                )
            except (OSError, PkgSolverError) as e:
                logger.debug("回滚恢复引用 '%s' 失败: %s", package.full_name, e)

        for package in reversed(self.added):
            try:
                self.package_manager.execute_uninstall(package)
            except (OSError, PkgSolverError) as e:
                logger.debug("回滚卸载 '%s' 失败: %s", package.full_name, e)
        self.added.clear()
        self.removed.clear()

    def commit(self) -> None:
        _uninstall_from_shared(self.package_manager, self.removed)
        self.added.clear()
        self.removed.clear()


def run_project_action(
    package_manager: PackageManager,
    project_manager: ProjectManager,
    action: Callable[[], T],
    *,
    refreshed: set[PackageMetadata] | None = None,
) -> T:
    transaction = ProjectTransaction(package_manager, project_manager, refreshed=refreshed)
    result = transaction.run(action)
    transaction.commit()
    return result
