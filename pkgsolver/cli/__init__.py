"""pkgsolver 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

import functools
import os
from collections.abc import Callable
from typing import Any

import click

from pkgsolver import __version__
from pkgsolver.core.config import init_config
from pkgsolver.core.exceptions import PkgSolverError
from pkgsolver.services.container import get_container, reset_container
from pkgsolver.utils.logger import setup_logging


def _svc() -> Any:
    """获取全局服务容器的快捷方式"""
    return get_container()


def handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """业务异常转为 ClickException（退出码 1，输出错误信息）"""
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except PkgSolverError as e:
            raise click.ClickException(f"[{e.code}] {e}") from e
    return wrapper


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", default="pkgsolver.yml", help="配置文件路径")
def main(config_path: str) -> None:
    """pkgsolver - 解决方案包依赖解析与安装规划"""
    setup_logging(
        level=os.getenv("PKGSOLVER_LOG_LEVEL", "INFO"),
        json_output=os.getenv("PKGSOLVER_LOG_JSON", "") == "1",
    )
    init_config(config_path)
    reset_container()


# 注册各领域子命令
from pkgsolver.cli.cmd_packages import register as _reg_packages  # noqa: E402

_reg_packages(main)
