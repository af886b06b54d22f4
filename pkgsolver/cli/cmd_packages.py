"""CLI: 包安装 / 卸载 / 更新 / 重装 / 预览命令"""

from __future__ import annotations

import click

from pkgsolver.cli import _svc, handle_errors
from pkgsolver.core.resolver.sorter import get_packages_by_dependency_order


def register(group: click.Group) -> None:
    group.add_command(install)
    group.add_command(uninstall)
    group.add_command(update)
    group.add_command(reinstall)
    group.add_command(plan)
    group.add_command(list_packages)


def _echo_report(report) -> None:
    for op in report.operations:
        click.echo(f"  {op}")
    for step in report.steps:
        reason = f" ({step['reason']})" if step.get("reason") else ""
        package = f"{step['package']} " if step.get("package") else ""
        click.echo(f"  [{step['status']}] {package}{step['step']}{reason}")
    for failure in report.failures:
        click.echo(f"  失败: {failure}", err=True)
    click.echo(f"状态: {report.state.value}")


@click.command()
@click.argument("package_id")
@click.option("--version", "version", default=None, help="指定版本（默认最新）")
@click.option("--project", default=None, help="目标工程（不指定则安装到解决方案级）")
@click.option("--all-projects", is_flag=True, help="安装到所有工程")
@click.option("--ignore-dependencies", is_flag=True, help="不安装依赖")
@click.option("--pre", "allow_prerelease", is_flag=True, help="允许预发布版本")
@handle_errors
def install(
    package_id: str, version: str | None, project: str | None, all_projects: bool,
    ignore_dependencies: bool, allow_prerelease: bool,
) -> None:
    """安装包"""
    manager = _svc().solution_manager
    options = {"ignore_dependencies": ignore_dependencies, "allow_prerelease": allow_prerelease}
    if all_projects:
        report = manager.install_package_in_projects(package_id, version, **options)
    else:
        report = manager.install_package(package_id, version, project=project, **options)
    _echo_report(report)


@click.command()
@click.argument("package_id")
@click.option("--version", "version", default=None, help="指定版本")
@click.option("--project", default=None, help="目标工程（不指定则从解决方案卸载）")
@click.option("--force", "force_remove", is_flag=True, help="即使仍被依赖也强制卸载")
@click.option("--remove-dependencies", is_flag=True, help="同时卸载不再使用的依赖")
@handle_errors
def uninstall(
    package_id: str, version: str | None, project: str | None,
    force_remove: bool, remove_dependencies: bool,
) -> None:
    """卸载包"""
    report = _svc().solution_manager.uninstall_package(
        package_id, version, project=project,
        force_remove=force_remove, remove_dependencies=remove_dependencies,
    )
    _echo_report(report)


@click.command()
@click.argument("package_id", required=False)
@click.option("--version", "version", default=None, help="目标版本（默认最新）")
@click.option("--project", default=None, help="目标工程（不指定则更新所有引用它的工程）")
@click.option("--safe", is_flag=True, help="只接受安全区间内的更新")
@click.option("--ignore-dependencies", is_flag=True, help="不更新依赖")
@click.option("--pre", "allow_prerelease", is_flag=True, help="允许预发布版本")
@handle_errors
def update(
    package_id: str | None, version: str | None, project: str | None, safe: bool,
    ignore_dependencies: bool, allow_prerelease: bool,
) -> None:
    """更新包（不指定包则更新全部）"""
    manager = _svc().solution_manager
    options = {
        "update_dependencies": not ignore_dependencies,
        "allow_prerelease": allow_prerelease,
        "safe": safe,
    }
    if package_id is None:
        if version is not None:
            raise click.UsageError("--version 只能与具体的包一起使用")
        report = manager.update_packages(project=project, **options)
    else:
        report = manager.update_package(package_id, version, project=project, **options)
    _echo_report(report)


@click.command()
@click.argument("package_id", required=False)
@click.option("--project", default=None, help="目标工程（不指定则处理所有引用它的工程）")
@click.option("--ignore-dependencies", is_flag=True, help="只重装包本身")
@click.option("--pre", "allow_prerelease", is_flag=True, help="允许预发布版本")
@handle_errors
def reinstall(
    package_id: str | None, project: str | None,
    ignore_dependencies: bool, allow_prerelease: bool,
) -> None:
    """按原版本重装包（不指定包则重装全部）"""
    manager = _svc().solution_manager
    if package_id is None:
        report = manager.reinstall_packages(project=project, allow_prerelease=allow_prerelease)
    else:
        report = manager.reinstall_package(
            package_id, project=project,
            update_dependencies=not ignore_dependencies, allow_prerelease=allow_prerelease,
        )
    _echo_report(report)


@click.command()
@click.argument("action", type=click.Choice(["install", "uninstall", "update"]))
@click.argument("package_id")
@click.option("--version", "version", default=None, help="指定版本")
@click.option("--project", default=None, help="目标工程")
@click.option("--pre", "allow_prerelease", is_flag=True, help="允许预发布版本")
@handle_errors
def plan(
    action: str, package_id: str, version: str | None,
    project: str | None, allow_prerelease: bool,
) -> None:
    """只规划不执行，输出操作列表"""
    manager = _svc().solution_manager
    if action == "install":
        result = manager.plan_install(
            package_id, version, project=project, allow_prerelease=allow_prerelease,
        )
    elif action == "uninstall":
        result = manager.plan_uninstall(package_id, version, project=project)
    else:
        result = manager.plan_update(
            package_id, version, project=project, allow_prerelease=allow_prerelease,
        )

    if not result.ok:
        raise click.ClickException(f"[{result.error.code}] {result.error}")
    if not result.operations:
        click.echo("无需任何操作。")
        return
    for op in result.operations:
        click.echo(f"  {op}")


@click.command(name="list")
@click.option("--project", default=None, help="只列出该工程引用的包")
@handle_errors
def list_packages(project: str | None) -> None:
    """按依赖顺序列出已安装的包"""
    c = _svc()
    if project is not None:
        pm = c.solution_manager.get_project_manager(project)
        packages = get_packages_by_dependency_order(pm.local, pm.target_platform)
    else:
        packages = get_packages_by_dependency_order(c.shared)
    if not packages:
        click.echo("没有已安装的包。")
        return
    for p in packages:
        click.echo(f"  {p.id:30s} {p.version}")
