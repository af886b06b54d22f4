"""依赖图遍历

GraphWalker 负责深度优先遍历、已访问 / 递归栈标记与环检测；
具体行为（如何解析依赖、遍历前后记录什么操作）由 WalkStrategy 提供。
安装、卸载、反向依赖、拓扑排序都复用同一个遍历器，只替换策略。

遍历顺序:
    on_before_walk(pkg)
    for dep in 与目标平台匹配的依赖组:
        resolved = resolve_dependency(dep)      # None -> on_resolve_error
        on_after_resolve(pkg, resolved)         # 返回 False 则不再深入
        环 / 已访问 -> 跳过
        递归遍历 resolved
    on_after_walk(pkg)                          # 后序：依赖先于自身
"""

from __future__ import annotations

import logging

from pkgsolver import __version__
from pkgsolver.core.exceptions import DependencyResolutionError, MinClientVersionError
from pkgsolver.core.models import PackageDependency, PackageIdentity, PackageMetadata
from pkgsolver.core.platform import TargetPlatform
from pkgsolver.core.version import SemanticVersion

logger = logging.getLogger(__name__)

CLIENT_VERSION = SemanticVersion.parse(__version__)


class WalkStrategy:
    """遍历策略：默认实现均为空操作，子类按需覆盖"""

    ignore_dependencies: bool = False

    def resolve_dependency(self, dependency: PackageDependency) -> PackageMetadata | None:
        raise NotImplementedError

    def on_before_walk(self, package: PackageMetadata) -> None:
        pass

    def on_after_resolve(self, dependent: PackageMetadata, resolved: PackageMetadata) -> bool:
        return True

    def on_after_walk(self, package: PackageMetadata) -> None:
        pass

    def on_resolve_error(
        self, dependency: PackageDependency, dependent: PackageMetadata,
    ) -> None:
        raise DependencyResolutionError(
            f"Unable to resolve dependency '{dependency}'.", dependency,
        )


class GraphWalker:
    """深度优先依赖图遍历器

    参数:
        strategy: 遍历策略
        target_platform: 选择依赖组使用的目标平台
        client_version: 当前客户端版本，为 None 时不检查包的最低客户端版本
    """

    def __init__(
        self,
        strategy: WalkStrategy,
        target_platform: TargetPlatform | None = None,
        client_version: SemanticVersion | None = None,
    ) -> None:
        self.strategy = strategy
        self.target_platform = target_platform
        self.client_version = client_version
        self._visited: dict[PackageIdentity, PackageMetadata] = {}
        self._processing: list[PackageMetadata] = []

    def reset(self) -> None:
        self._visited.clear()
        self._processing.clear()

    # ---- 标记查询 ----

    def contains(self, package: PackageMetadata) -> bool:
        """包是否已被本次遍历访问或正在处理"""
        return package.identity in self._visited or any(
            p.identity == package.identity for p in self._processing
        )

    def find_marked(self, package_id: str) -> PackageMetadata | None:
        """本次遍历中出现过的同 id 包（任意版本）"""
        key = package_id.lower()
        for package in [*self._processing, *self._visited.values()]:
            if package.id.lower() == key:
                return package
        return None

    def marked_packages(self) -> list[PackageMetadata]:
        return [*self._visited.values(), *self._processing]

    def _is_cycle(self, package: PackageMetadata) -> bool:
        # 同 id 出现在递归栈上（不论版本）即视为环
        key = package.id.lower()
        return any(p.id.lower() == key for p in self._processing)

    # ---- 遍历 ----

    def walk(self, package: PackageMetadata) -> None:
        if package.identity in self._visited:
            return
        self._walk(package)

    def _walk(self, package: PackageMetadata) -> None:
        self._check_client_version(package)
        self.strategy.on_before_walk(package)

        self._processing.append(package)
        try:
            if not self.strategy.ignore_dependencies:
                for dependency in package.get_dependencies(self.target_platform):
                    self._walk_dependency(package, dependency)
        finally:
            self._processing.pop()

        self._visited[package.identity] = package
        self.strategy.on_after_walk(package)

    def _walk_dependency(self, package: PackageMetadata, dependency: PackageDependency) -> None:
        resolved = self.strategy.resolve_dependency(dependency)
        if resolved is None:
            self.strategy.on_resolve_error(dependency, package)
            return
        if not self.strategy.on_after_resolve(package, resolved):
            return
        if self._is_cycle(resolved):
            logger.debug("检测到依赖环，视为已满足: %s -> %s", package.full_name, resolved.full_name)
            return
        if resolved.identity in self._visited:
            return
        self._walk(resolved)

    def _check_client_version(self, package: PackageMetadata) -> None:
        required = package.min_client_version
        if self.client_version is None or required is None:
            return
        if required > self.client_version:
            raise MinClientVersionError(
                f"The '{package.full_name}' package requires client version "
                f"'{required}' or above, but the current version is '{self.client_version}'."
            )
