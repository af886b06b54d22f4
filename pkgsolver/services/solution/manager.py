"""解决方案级包管理编排

SolutionPackageManager 是 CLI 和其他调用方的统一入口:
- 按作用域分派: 单个工程 / 所有引用该包的工程 / 解决方案级（共享仓库）
- 每个动作先规划（PLANNING）；规划为空且已安装时直接成功，不进入执行阶段
- 执行阶段（EXECUTING）包在 run_solution_action / run_project_action 中，
  失败回滚（ROLLED_BACK）后重新抛出，成功则 COMMITTED
- 批量动作逐个工程隔离失败，全部失败时抛出 OperationFailedError
- 重装分两个阶段（先从所有工程卸载，再逐个装回），每个工程的事务跨越两个阶段，
  被移除的包在提交前留在共享仓库中

用法:
    manager = SolutionPackageManager(solution, source, shared, config=cfg)
    report = manager.install_package("Foo", project="Web")
    result = manager.plan_update("Foo", project="Web")   # 只规划
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from pkgsolver.core.config import Config
from pkgsolver.core.exceptions import (
    AmbiguousMatchError,
    OperationFailedError,
    PackageInUseError,
    PkgSolverError,
    ProjectNotSpecifiedError,
    UnknownPackageError,
)
from pkgsolver.core.models import PackageMetadata, PackageOperation
from pkgsolver.core.protocols import PackageOperationListener
from pkgsolver.core.repository.base import PackageRepository
from pkgsolver.core.repository.composite import AggregateRepository
from pkgsolver.core.repository.project_refs import PackageReferenceRepository
from pkgsolver.core.repository.shared import SharedPackageRepository
from pkgsolver.core.resolver.reinstall import ReinstallPlan
from pkgsolver.core.resolver.result import PlanResult, try_plan
from pkgsolver.core.resolver.sorter import get_packages_by_dependency_order
from pkgsolver.core.version import SemanticVersion, get_safe_range
from pkgsolver.services.delete_on_restart import DeleteOnRestartManager
from pkgsolver.services.events import (
    PROJECT_EVENTS,
    REPOSITORY_EVENTS,
    NullOperationListener,
    PackageEvents,
)
from pkgsolver.services.package_manager import PackageManager
from pkgsolver.services.project_manager import ProjectManager
from pkgsolver.services.project_system import PhysicalProjectSystem
from pkgsolver.services.projects import SolutionProjects
from pkgsolver.services.solution.models import ActionFailure, ActionReport, ActionState
from pkgsolver.services.solution.transaction import (
    ProjectTransaction,
    run_project_action,
    run_solution_action,
)

logger = logging.getLogger(__name__)

SOLUTION_STEP = "solution"


class SolutionPackageManager:
    """解决方案包管理编排器

    参数:
        solution: 解决方案工程索引
        source: 包源（已包含备用源）
        shared: 解决方案共享仓库
        config: 配置，默认使用全局配置
        listener: 批量动作的逐工程监听器
        cancel_event: 取消信号，在每个操作边界检查
    """

    def __init__(
        self,
        solution: SolutionProjects,
        source: PackageRepository,
        shared: SharedPackageRepository,
        *,
        config: Config | None = None,
        listener: PackageOperationListener | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        if config is None:
            from pkgsolver.core.config import get_config
            config = get_config()
        self.solution = solution
        self.source = source
        self.shared = shared
        self.config = config
        self.listener = listener or NullOperationListener()
        self.cancel_event = cancel_event
        self.events = PackageEvents()
        self.last_report: ActionReport | None = None

        self.delete_on_restart = DeleteOnRestartManager(shared.path_resolver)
        self.package_manager = PackageManager(
            source, shared,
            delete_on_restart=self.delete_on_restart,
            dependency_version=config.dependency_version,
            cancel_event=cancel_event,
        )
        self.package_manager.events.forward(REPOSITORY_EVENTS, self.events)
        # 工程的包源：共享仓库中已有的包优先
        self.project_source = AggregateRepository([shared, source], ignore_failing=True)
        self._project_managers: dict[str, ProjectManager] = {}

        self.delete_on_restart.delete_marked_package_directories()

    # ------------------------------------------------------------------
    # 工程
    # ------------------------------------------------------------------

    def get_project_manager(self, project: str) -> ProjectManager:
        descriptor = self.solution.get(project)
        key = descriptor.name.lower()
        if key not in self._project_managers:
            local = PackageReferenceRepository(
                descriptor.path / self.config.reference_file, self.shared,
            )
            local.register_if_necessary()
            manager = ProjectManager(
                self.project_source,
                self.shared,
                PhysicalProjectSystem(descriptor.path, descriptor.name, descriptor.target_platform),
                local,
                safe_update_policy=self.config.safe_update_policy,
                dependency_version=self.config.dependency_version,
                cancel_event=self.cancel_event,
            )
            manager.events.forward(PROJECT_EVENTS, self.events)
            self._project_managers[key] = manager
        return self._project_managers[key]

    def get_project_managers(self) -> list[ProjectManager]:
        return [self.get_project_manager(name) for name in self.solution.names()]

    def get_referencing_projects(
        self, package_id: str, version: SemanticVersion | str | None = None,
    ) -> list[ProjectManager]:
        return [pm for pm in self.get_project_managers() if pm.local.exists(package_id, version)]

    # ------------------------------------------------------------------
    # 包查找
    # ------------------------------------------------------------------

    def resolve_package(
        self,
        package_id: str,
        version: SemanticVersion | str | None = None,
        *,
        allow_prerelease: bool = False,
    ) -> PackageMetadata:
        """安装目标: 共享仓库中已有的副本优先"""
        if version is not None:
            package = self.project_source.find_package(package_id, version)
        else:
            package = self.source.find_package(
                package_id,
                allow_prerelease=allow_prerelease,
                allow_unlisted=self.config.allow_unlisted,
            )
            if package is None:
                package = self.shared.find_package(package_id, allow_prerelease=allow_prerelease)
            elif self.shared.contains(package):
                package = self.shared.find_package(package.id, package.version) or package
        if package is None:
            suffix = f" {version}" if version is not None else ""
            raise UnknownPackageError(f"Unable to find package '{package_id}{suffix}'.")
        return package

    def is_project_level(self, package: PackageMetadata) -> bool:
        return package.has_project_content or self.shared.is_referenced(package.id, package.version)

    def find_shared_package(
        self, package_id: str, version: SemanticVersion | str | None = None,
    ) -> PackageMetadata:
        packages = self.shared.find_packages_by_id(package_id)
        if version is not None:
            target = SemanticVersion.parse(version)
            packages = [p for p in packages if p.version == target]
        if not packages:
            suffix = f" {version}" if version is not None else ""
            raise UnknownPackageError(f"Unable to find package '{package_id}{suffix}'.")
        if len(packages) > 1:
            versions = ", ".join(str(p.version) for p in sorted(packages, key=lambda p: p.version))
            raise AmbiguousMatchError(
                f"Multiple versions of '{package_id}' are installed ({versions}). "
                f"Specify the version or the project."
            )
        return packages[0]

    def find_local_package(
        self,
        package_id: str,
        version: SemanticVersion | str | None = None,
        *,
        project_manager: ProjectManager | None = None,
    ) -> tuple[PackageMetadata, bool]:
        """查找已安装的包，返回 (包, 是否为工程级)

        异常:
            UnknownPackageError: 未安装，或工程级包不在指定工程中
            AmbiguousMatchError: 共享仓库中有多个版本且未指定版本
            ProjectNotSpecifiedError: 工程级包未指定工程
        """
        if project_manager is not None:
            package = project_manager.local.find_package(package_id, version)
            if package is not None:
                return package, True

        package = self.find_shared_package(package_id, version)
        if not self.is_project_level(package):
            return package, False
        if project_manager is not None:
            raise UnknownPackageError(
                f"Unable to find package '{package_id}' in project '{project_manager.name}'."
            )
        if not self.shared.is_referenced(package.id, package.version):
            raise UnknownPackageError(f"Package '{package.full_name}' is not installed in any project.")
        raise ProjectNotSpecifiedError(
            f"'{package.full_name}' is installed in projects. Specify the project."
        )

    # ------------------------------------------------------------------
    # 执行辅助
    # ------------------------------------------------------------------

    def _new_report(self, action: str, package_id: str = "", project: str | None = None) -> ActionReport:
        report = ActionReport(action=action, package_id=package_id, project=project or "")
        self.last_report = report
        return report

    def _skip(self, report: ActionReport, step: str, reason: str = "nothing to do") -> ActionReport:
        report.steps.append({"step": step, "status": "skipped", "reason": reason})
        report.state = ActionState.COMMITTED
        return report

    def _run(self, report: ActionReport, step: str, action: Callable[[], object]) -> None:
        """执行阶段：成功提交，异常时标记回滚并原样抛出"""
        report.state = ActionState.EXECUTING
        try:
            action()
        except Exception:
            report.state = ActionState.ROLLED_BACK
            report.steps.append({"step": step, "status": "rolled_back"})
            raise
        report.state = ActionState.COMMITTED
        report.steps.append({"step": step, "status": "done"})

    def _apply(self, project_manager: ProjectManager, operations: list[PackageOperation]) -> None:
        run_solution_action(
            self.package_manager,
            lambda: run_project_action(
                self.package_manager, project_manager,
                lambda: project_manager.execute_operations(operations),
            ),
        )

    def _apply_solution(self, action: Callable[[], object]) -> None:
        run_solution_action(self.package_manager, action)

    def _commit_project(
        self, report: ActionReport, project_manager: ProjectManager,
        operations: list[PackageOperation],
    ) -> ActionReport:
        report.operations.extend(operations)
        if not operations:
            return self._skip(report, project_manager.name)
        self._run(report, project_manager.name, lambda: self._apply(project_manager, operations))
        return report

    def _each_project(
        self,
        report: ActionReport,
        projects: list[str],
        func: Callable[[ProjectManager], None],
        phase: str = "",
    ) -> list[str]:
        """逐个工程执行并隔离失败，返回成功的工程名"""
        succeeded = []
        for name in projects:
            self.listener.on_before(name)
            try:
                project_manager = self.get_project_manager(name)
                step = f"{phase} {project_manager.name}" if phase else project_manager.name
                self._run(report, step, lambda pm=project_manager: func(pm))
            except Exception as e:
                logger.error("工程 '%s' 操作失败: %s", name, e)
                report.failures.append(ActionFailure(name, e))
                self.listener.on_error(name, e)
            else:
                succeeded.append(name)
            finally:
                self.listener.on_after(name)
        return succeeded

    def _finish_batch(self, report: ActionReport, projects: list[str], succeeded: list[str]) -> ActionReport:
        if projects and not succeeded:
            report.state = ActionState.ROLLED_BACK
            raise OperationFailedError(
                "The operation failed in all projects: "
                + "; ".join(str(f) for f in report.failures),
                [(f.target, f.error) for f in report.failures],
            )
        report.state = ActionState.COMMITTED
        return report

    def _run_batch(
        self,
        report: ActionReport,
        projects: list[str],
        func: Callable[[ProjectManager], None],
    ) -> ActionReport:
        """逐个工程执行，单个工程失败不影响其余工程"""
        return self._finish_batch(report, projects, self._each_project(report, projects, func))


    # ------------------------------------------------------------------
    # 安装
    # ------------------------------------------------------------------

    def install_package(
        self,
        package_id: str,
        version: SemanticVersion | str | None = None,
        *,
        project: str | None = None,
        ignore_dependencies: bool = False,
        allow_prerelease: bool = False,
    ) -> ActionReport:
        """安装到指定工程；未指定工程时安装到解决方案级（共享仓库）"""
        report = self._new_report("install", package_id, project)
        package = self.resolve_package(package_id, version, allow_prerelease=allow_prerelease)

        if project is None:
            operations = self.package_manager.plan_install(
                package, ignore_dependencies=ignore_dependencies, allow_prerelease=allow_prerelease,
            )
            report.operations.extend(operations)
            if not operations and self.shared.contains(package):
                logger.info("'%s' 已安装在解决方案中", package.full_name)
                self.package_manager.record_solution_level(package)
                return self._skip(report, SOLUTION_STEP, "already installed")

            def install() -> None:
                self.package_manager.execute(operations)
                self.package_manager.record_solution_level(package)

            self._run(report, SOLUTION_STEP, lambda: self._apply_solution(install))
            return report

        project_manager = self.get_project_manager(project)
        operations = project_manager.plan_add(
            package, ignore_dependencies=ignore_dependencies, allow_prerelease=allow_prerelease,
        )
        if not operations and project_manager.local.contains(package):
            logger.info("工程 '%s' 已引用 '%s'", project_manager.name, package.full_name)
            return self._skip(report, project_manager.name, "already referenced")
        return self._commit_project(report, project_manager, operations)

    def install_package_in_projects(
        self,
        package_id: str,
        version: SemanticVersion | str | None = None,
        *,
        projects: list[str] | None = None,
        ignore_dependencies: bool = False,
        allow_prerelease: bool = False,
    ) -> ActionReport:
        """安装到多个工程（默认所有工程）"""
        report = self._new_report("install", package_id)
        package = self.resolve_package(package_id, version, allow_prerelease=allow_prerelease)

        def install(project_manager: ProjectManager) -> None:
            operations = project_manager.plan_add(
                package, ignore_dependencies=ignore_dependencies, allow_prerelease=allow_prerelease,
            )
            if not operations and project_manager.local.contains(package):
                logger.info("工程 '%s' 已引用 '%s'", project_manager.name, package.full_name)
                return
            report.operations.extend(operations)
            self._apply(project_manager, operations)

        return self._run_batch(report, projects or self.solution.names(), install)

    # ------------------------------------------------------------------
    # 卸载
    # ------------------------------------------------------------------

    def uninstall_package(
        self,
        package_id: str,
        version: SemanticVersion | str | None = None,
        *,
        project: str | None = None,
        force_remove: bool = False,
        remove_dependencies: bool = False,
    ) -> ActionReport:
        """从工程卸载；未指定工程时从解决方案卸载

        解决方案级卸载一个仍被工程引用的包需要 force_remove，
        此时会从每个引用它的工程中移除。
        """
        report = self._new_report("uninstall", package_id, project)

        if project is not None:
            project_manager = self.get_project_manager(project)
            package, project_level = self.find_local_package(
                package_id, version, project_manager=project_manager,
            )
            if project_level:
                operations = project_manager.plan_remove(
                    package, force_remove=force_remove, remove_dependencies=remove_dependencies,
                )
                return self._commit_project(report, project_manager, operations)
        else:
            referencing = self.get_referencing_projects(package_id, version)
            if referencing:
                names = [pm.name for pm in referencing]
                if not force_remove:
                    raise PackageInUseError(
                        f"Unable to uninstall '{package_id}' because it is referenced by "
                        f"project(s) {', '.join(names)}.",
                        package_id, names,
                    )

                def remove(project_manager: ProjectManager) -> None:
                    target = project_manager.local.find_package(package_id, version)
                    operations = project_manager.plan_remove(
                        target, force_remove=True, remove_dependencies=remove_dependencies,
                    )
                    report.operations.extend(operations)
                    self._apply(project_manager, operations)

                return self._run_batch(report, names, remove)
            package = self.find_shared_package(package_id, version)

        operations = self.package_manager.plan_uninstall(
            package, force_remove=force_remove, remove_dependencies=remove_dependencies,
        )
        report.operations.extend(operations)
        self._run(
            report, SOLUTION_STEP,
            lambda: self._apply_solution(lambda: self.package_manager.execute(operations)),
        )
        return report

    # ------------------------------------------------------------------
    # 更新
    # ------------------------------------------------------------------

    def update_package(
        self,
        package_id: str,
        version: SemanticVersion | str | None = None,
        *,
        project: str | None = None,
        update_dependencies: bool = True,
        allow_prerelease: bool = False,
        safe: bool = False,
    ) -> ActionReport:
        """更新指定工程；未指定工程时更新所有引用它的工程，没有引用则更新解决方案级包"""
        report = self._new_report("update", package_id, project)
        options = {
            "update_dependencies": update_dependencies,
            "allow_prerelease": allow_prerelease,
            "safe": safe,
        }

        if project is not None:
            project_manager = self.get_project_manager(project)
            if project_manager.local.exists(package_id):
                operations = project_manager.plan_update(package_id, version, **options)
                return self._commit_project(report, project_manager, operations)
            package, _ = self.find_local_package(package_id, project_manager=project_manager)
            return self._update_solution_package(report, package, version, **options)

        referencing = self.get_referencing_projects(package_id)
        if referencing:
            def update(project_manager: ProjectManager) -> None:
                operations = project_manager.plan_update(package_id, version, **options)
                report.operations.extend(operations)
                if operations:
                    self._apply(project_manager, operations)

            return self._run_batch(report, [pm.name for pm in referencing], update)

        package = self.find_shared_package(package_id)
        return self._update_solution_package(report, package, version, **options)

    def _find_solution_update(
        self,
        package: PackageMetadata,
        version: SemanticVersion | str | None,
        *,
        allow_prerelease: bool,
        safe: bool,
    ) -> PackageMetadata | None:
        if version is not None:
            target = self.source.find_package(package.id, version)
            if target is None:
                raise UnknownPackageError(f"Unable to find version '{version}' of package '{package.id}'.")
            return target
        spec = get_safe_range(package.version, self.config.safe_update_policy) if safe else None
        target = self.source.find_package(
            package.id, version_spec=spec, allow_prerelease=allow_prerelease, allow_unlisted=False,
        )
        if target is None or target.version <= package.version:
            return None
        return target

    def _update_solution_package(
        self,
        report: ActionReport,
        package: PackageMetadata,
        version: SemanticVersion | str | None,
        *,
        update_dependencies: bool,
        allow_prerelease: bool,
        safe: bool,
    ) -> ActionReport:
        target = self._find_solution_update(
            package, version, allow_prerelease=allow_prerelease, safe=safe,
        )
        if target is None or target == package:
            logger.info("'%s' 没有可用更新", package.id)
            return self._skip(report, SOLUTION_STEP, "no updates")

        operations = self.package_manager.plan_update(
            target, update_dependencies=update_dependencies, allow_prerelease=allow_prerelease,
        )
        report.operations.extend(operations)

        def update() -> None:
            self.package_manager.execute(operations)
            self.package_manager.record_solution_level(target)

        self._run(report, SOLUTION_STEP, lambda: self._apply_solution(update))
        return report

    def update_packages(
        self,
        *,
        project: str | None = None,
        update_dependencies: bool = True,
        allow_prerelease: bool = False,
        safe: bool = False,
    ) -> ActionReport:
        """按依赖逆序更新工程（或整个解决方案）中的所有包"""
        report = ActionReport(action="update", project=project or "")
        if project is not None:
            project_manager = self.get_project_manager(project)
            repository: PackageRepository = project_manager.local
            platform = project_manager.target_platform
        else:
            repository, platform = self.shared, None

        handled: set[str] = set()
        for package in reversed(get_packages_by_dependency_order(repository, platform)):
            key = package.id.lower()
            # 前面的更新可能已经连带处理了这个包
            if key in handled or not repository.exists(package.id):
                continue
            handled.add(key)
            try:
                result = self.update_package(
                    package.id,
                    project=project,
                    update_dependencies=update_dependencies,
                    allow_prerelease=allow_prerelease,
                    safe=safe,
                )
            except PkgSolverError as e:
                logger.error("更新 '%s' 失败: %s", package.id, e)
                report.failures.append(ActionFailure(package.id, e))
                continue
            report.operations.extend(result.operations)
            report.failures.extend(result.failures)
            report.steps.extend({**step, "package": package.id} for step in result.steps)

        report.state = ActionState.COMMITTED
        self.last_report = report
        return report

    # ------------------------------------------------------------------
    # 重装
    # ------------------------------------------------------------------

    def reinstall_package(
        self,
        package_id: str,
        *,
        project: str | None = None,
        update_dependencies: bool = True,
        allow_prerelease: bool = False,
    ) -> ActionReport:
        """重装：先从所有受影响工程卸载，再逐个装回（版本不变）"""
        report = self._new_report("reinstall", package_id, project)
        options = {"update_dependencies": update_dependencies, "allow_prerelease": allow_prerelease}

        if project is not None:
            project_manager = self.get_project_manager(project)
            package = project_manager.local.find_package(package_id)
            if package is not None:
                return self._reinstall_in_projects(
                    report, [(project_manager, package)], isolated=False, **options,
                )
            package, _ = self.find_local_package(package_id, project_manager=project_manager)
            return self._reinstall_solution_package(report, package, **options)

        targets = []
        for project_manager in self.get_project_managers():
            package = project_manager.local.find_package(package_id)
            if package is not None:
                targets.append((project_manager, package))
        if targets:
            return self._reinstall_in_projects(report, targets, **options)
        return self._reinstall_solution_package(report, self.find_shared_package(package_id), **options)

    def _reinstall_in_projects(
        self,
        report: ActionReport,
        targets: list[tuple[ProjectManager, PackageMetadata]],
        *,
        update_dependencies: bool,
        allow_prerelease: bool,
        isolated: bool = True,
    ) -> ActionReport:
        """先从所有工程卸载再逐个装回

        每个工程一个事务跨越两个阶段，全部装回后才提交，
        此前被移除的包一直留在共享仓库中，失败的工程可以恢复原来的引用。
        isolated 时逐个工程隔离失败，否则（单个工程）失败直接抛出。
        """
        plans: dict[str, tuple[ProjectManager, ReinstallPlan]] = {}
        for project_manager, package in targets:
            plan = project_manager.plan_reinstall(
                package,
                update_dependencies=update_dependencies,
                allow_prerelease=allow_prerelease,
                source=self.source,
            )
            if plan.skipped:
                report.steps.append({
                    "step": project_manager.name, "status": "skipped", "reason": "not in source",
                })
                continue
            report.operations.extend(plan.operations)
            plans[project_manager.name] = (project_manager, plan)

        if not plans:
            report.state = ActionState.COMMITTED
            return report

        # 每个包只从包源刷新一次，所有工程共用
        refreshed: set[PackageMetadata] = set()
        transactions = {
            name: ProjectTransaction(self.package_manager, project_manager, refreshed=refreshed)
            for name, (project_manager, _) in plans.items()
        }

        def uninstall(project_manager: ProjectManager) -> None:
            operations = plans[project_manager.name][1].uninstall_operations
            self._apply_solution(lambda: transactions[project_manager.name].run(
                lambda: project_manager.execute_operations(operations),
            ))

        def install(project_manager: ProjectManager) -> None:
            operations = plans[project_manager.name][1].install_operations
            self._apply_solution(lambda: transactions[project_manager.name].run(
                lambda: project_manager.execute_operations(operations),
            ))

        if not isolated:
            project_manager, _ = next(iter(plans.values()))

            def reinstall() -> None:
                uninstall(project_manager)
                install(project_manager)
                transactions[project_manager.name].commit()

            self._run(report, project_manager.name, reinstall)
            return report

        names = list(plans)
        removed = self._each_project(report, names, uninstall, "uninstall")
        installed = self._each_project(report, removed, install, "install")
        for name in installed:
            transactions[name].commit()
        return self._finish_batch(report, names, installed)

    def _reinstall_solution_package(
        self,
        report: ActionReport,
        package: PackageMetadata,
        *,
        update_dependencies: bool,
        allow_prerelease: bool,
    ) -> ActionReport:
        target = self.source.find_package(package.id, package.version)
        if target is None:
            logger.warning("源中已找不到 '%s'，跳过重装", package.full_name)
            return self._skip(report, SOLUTION_STEP, "not in source")

        uninstall_operations = self.package_manager.plan_uninstall(
            package, force_remove=True, remove_dependencies=update_dependencies,
        )
        report.operations.extend(uninstall_operations)

        def reinstall() -> None:
            self.package_manager.execute(uninstall_operations)
            install_operations = self.package_manager.plan_install(
                target,
                ignore_dependencies=not update_dependencies,
                allow_prerelease=allow_prerelease or target.version.is_prerelease,
            )
            report.operations.extend(install_operations)
            self.package_manager.execute(install_operations)
            self.package_manager.record_solution_level(target)

        self._run(report, SOLUTION_STEP, lambda: self._apply_solution(reinstall))
        return report

    def reinstall_packages(
        self, *, project: str | None = None, allow_prerelease: bool = False,
    ) -> ActionReport:
        """重装工程（或整个解决方案）中的所有包

        每个包都会被重装，因此不再连带处理依赖，保证每个工程中
        每个包的卸载 / 安装各只发生一次。
        """
        report = ActionReport(action="reinstall", project=project or "")
        options = {"update_dependencies": False, "allow_prerelease": allow_prerelease}

        if project is not None:
            project_manager = self.get_project_manager(project)
            order = get_packages_by_dependency_order(project_manager.local, project_manager.target_platform)
            batches = [[(project_manager, p)] for p in reversed(order)]
            solution_packages: list[PackageMetadata] = []
        else:
            batches, solution_packages = self._group_by_package()

        for targets in batches:
            package = targets[0][1]
            try:
                result = self._reinstall_in_projects(
                    ActionReport(action="reinstall", package_id=package.id), targets,
                    isolated=project is None, **options,
                )
            except PkgSolverError as e:
                logger.error("重装 '%s' 失败: %s", package.id, e)
                report.failures.append(ActionFailure(package.id, e))
                continue
            report.failures.extend(result.failures)
            report.operations.extend(result.operations)
            report.steps.extend({**step, "package": package.id} for step in result.steps)

        for package in solution_packages:
            try:
                result = self._reinstall_solution_package(
                    ActionReport(action="reinstall", package_id=package.id), package, **options,
                )
            except PkgSolverError as e:
                logger.error("重装 '%s' 失败: %s", package.full_name, e)
                report.failures.append(ActionFailure(package.full_name, e))
                continue
            report.operations.extend(result.operations)
            report.steps.extend({**step, "package": package.id} for step in result.steps)

        report.state = ActionState.COMMITTED
        self.last_report = report
        return report

    def _group_by_package(self):
        """按共享仓库的依赖逆序，把每个包 id 的引用工程分为一组；未被引用的为解决方案级包"""
        batches: list[list[tuple[ProjectManager, PackageMetadata]]] = []
        solution_packages: list[PackageMetadata] = []
        handled: set[str] = set()
        project_managers = self.get_project_managers()
        for package in reversed(get_packages_by_dependency_order(self.shared)):
            key = package.id.lower()
            if key in handled:
                continue
            targets = []
            for project_manager in project_managers:
                referenced = project_manager.local.find_package(package.id)
                if referenced is not None:
                    targets.append((project_manager, referenced))
            if targets:
                handled.add(key)
                batches.append(targets)
            elif not self.shared.is_referenced(package.id, package.version):
                solution_packages.append(package)
        return batches, solution_packages

    # ------------------------------------------------------------------
    # 预览（只规划，不执行）
    # ------------------------------------------------------------------

    def plan_install(
        self,
        package_id: str,
        version: SemanticVersion | str | None = None,
        *,
        project: str | None = None,
        ignore_dependencies: bool = False,
        allow_prerelease: bool = False,
    ) -> PlanResult:
        package = self.resolve_package(package_id, version, allow_prerelease=allow_prerelease)
        options = {"ignore_dependencies": ignore_dependencies, "allow_prerelease": allow_prerelease}
        if project is None:
            return try_plan(self.package_manager.plan_install, package, **options)
        return try_plan(self.get_project_manager(project).plan_add, package, **options)

    def plan_uninstall(
        self,
        package_id: str,
        version: SemanticVersion | str | None = None,
        *,
        project: str | None = None,
        force_remove: bool = False,
        remove_dependencies: bool = False,
    ) -> PlanResult:
        options = {"force_remove": force_remove, "remove_dependencies": remove_dependencies}
        if project is None:
            return try_plan(lambda: self.package_manager.plan_uninstall(
                self.find_shared_package(package_id, version), **options,
            ))
        project_manager = self.get_project_manager(project)
        package = project_manager.local.find_package(package_id, version)
        if package is None:
            raise UnknownPackageError(
                f"Unable to find package '{package_id}' in project '{project_manager.name}'."
            )
        return try_plan(project_manager.plan_remove, package, **options)

    def plan_update(
        self,
        package_id: str,
        version: SemanticVersion | str | None = None,
        *,
        project: str | None = None,
        update_dependencies: bool = True,
        allow_prerelease: bool = False,
        safe: bool = False,
    ) -> PlanResult:
        if project is not None:
            return try_plan(
                self.get_project_manager(project).plan_update, package_id, version,
                update_dependencies=update_dependencies, allow_prerelease=allow_prerelease, safe=safe,
            )

        def plan() -> list[PackageOperation]:
            package = self.find_shared_package(package_id)
            target = self._find_solution_update(
                package, version, allow_prerelease=allow_prerelease, safe=safe,
            )
            if target is None:
                return []
            return self.package_manager.plan_update(
                target, update_dependencies=update_dependencies, allow_prerelease=allow_prerelease,
            )

        return try_plan(plan)
