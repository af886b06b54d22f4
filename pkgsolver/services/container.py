"""服务容器：统一依赖注入

包源、共享仓库、解决方案工程索引和编排器都通过容器获取，
同一容器内的实例共享状态。CLI 通过 get_container() 获取服务。

依赖关系图（→ 表示依赖）:
  solution_manager → solution, source, shared
  其余均为独立实例

用法:
    container = ServiceContainer()
    manager = container.solution_manager    # 懒加载

    cfg = Config.from_file("my.yml")
    container = ServiceContainer(config=cfg)
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pkgsolver.core.config import Config
    from pkgsolver.core.repository.base import PackageRepository
    from pkgsolver.core.repository.shared import SharedPackageRepository
    from pkgsolver.services.projects import SolutionProjects
    from pkgsolver.services.solution.manager import SolutionPackageManager

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器"""

    def __init__(
        self, config: Config | None = None, cancel_event: threading.Event | None = None,
    ) -> None:
        self._instances: dict[str, object] = {}
        if config is None:
            from pkgsolver.core.config import get_config
            config = get_config()
        self._config = config
        self.cancel_event = cancel_event

    @property
    def config(self) -> Config:
        return self._config

    # ---- 仓库 ----

    @property
    def source(self) -> PackageRepository:
        """配置的包源；配置了备用源时主源未命中再查备用源"""
        if "source" not in self._instances:
            from pkgsolver.core.repository.composite import AggregateRepository, FallbackRepository
            from pkgsolver.core.repository.feed import FeedRepository
            source: PackageRepository = AggregateRepository(
                [FeedRepository(p) for p in self._config.sources], ignore_failing=True,
            )
            if self._config.fallback_sources:
                source = FallbackRepository(source, AggregateRepository(
                    [FeedRepository(p) for p in self._config.fallback_sources], ignore_failing=True,
                ))
            self._instances["source"] = source
        return self._instances["source"]  # type: ignore[return-value]

    @property
    def shared(self) -> SharedPackageRepository:
        if "shared" not in self._instances:
            from pkgsolver.core.repository.shared import SharedPackageRepository
            self._instances["shared"] = SharedPackageRepository(self._config.packages_dir)
        return self._instances["shared"]  # type: ignore[return-value]

    # ---- 解决方案 ----

    @property
    def solution(self) -> SolutionProjects:
        if "solution" not in self._instances:
            from pkgsolver.services.projects import SolutionProjects
            self._instances["solution"] = SolutionProjects.from_file(self._config.solution_file)
        return self._instances["solution"]  # type: ignore[return-value]

    @property
    def solution_manager(self) -> SolutionPackageManager:
        if "solution_manager" not in self._instances:
            from pkgsolver.services.solution.manager import SolutionPackageManager
            self._instances["solution_manager"] = SolutionPackageManager(
                self.solution,
                self.source,
                self.shared,
                config=self._config,
                cancel_event=self.cancel_event,
            )
        return self._instances["solution_manager"]  # type: ignore[return-value]


# ---- 全局单例 ----

_global: ServiceContainer | None = None
_global_lock = threading.Lock()


def get_container() -> ServiceContainer:
    """获取全局 ServiceContainer 单例（线程安全）"""
    global _global  # noqa: PLW0603
    if _global is not None:
        return _global
    with _global_lock:
        if _global is None:
            _global = ServiceContainer()
        return _global


def reset_container() -> None:
    """重置全局容器（仅用于测试）"""
    global _global  # noqa: PLW0603
    with _global_lock:
        _global = None
