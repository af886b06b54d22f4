"""卸载规划

为目标包及其变成孤儿的依赖生成卸载操作（根在前、叶在后）。

依赖只有同时满足以下条件才会被卸载:
    (a) remove_dependencies 开启
    (b) 除本次一并卸载的包之外，没有其他已安装包依赖它
    (c) 不在 keep 集合中（调用方显式保留）

目标包本身仍被其他包依赖时：force_remove 则强制卸载并告警，
否则 throw_on_conflicts 时抛出 PackageInUseError。
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pkgsolver.core.exceptions import PackageInUseError
from pkgsolver.core.models import (
    PackageAction,
    PackageDependency,
    PackageMetadata,
    PackageOperation,
)
from pkgsolver.core.platform import TargetPlatform
from pkgsolver.core.protocols import DependentsResolver
from pkgsolver.core.repository.base import PackageRepository
from pkgsolver.core.resolver.dependents import DependentsWalker
from pkgsolver.core.resolver.reducer import reduce_operations
from pkgsolver.core.resolver.walker import GraphWalker, WalkStrategy

logger = logging.getLogger(__name__)


def _names(packages: Iterable[PackageMetadata]) -> str:
    return ", ".join(p.full_name for p in packages)


class UninstallResolver(WalkStrategy):
    """卸载操作规划器"""

    def __init__(
        self,
        repository: PackageRepository,
        dependents_resolver: DependentsResolver | None = None,
        target_platform: TargetPlatform | None = None,
        *,
        remove_dependencies: bool = False,
        force_remove: bool = False,
        throw_on_conflicts: bool = True,
        keep: Iterable[PackageMetadata] = (),
        quiet: bool = False,
    ) -> None:
        self.repository = repository
        self.dependents_resolver = dependents_resolver or DependentsWalker(repository, target_platform)
        self.target_platform = target_platform
        self.ignore_dependencies = not remove_dependencies
        self.force_remove = force_remove
        self.throw_on_conflicts = throw_on_conflicts
        self.keep = set(keep)
        self.quiet = quiet

        self._walker = GraphWalker(self, target_platform)
        self._operations: list[PackageOperation] = []
        self._forced: dict[PackageMetadata, list[PackageMetadata]] = {}
        self._skipped: dict[PackageMetadata, list[PackageMetadata]] = {}

    def resolve(self, package: PackageMetadata) -> list[PackageOperation]:
        self._walker.reset()
        self._operations.clear()
        self._forced.clear()
        self._skipped.clear()

        self._walker.walk(package)

        if not self.quiet:
            for removed, dependents in self._forced.items():
                logger.warning("卸载 '%s' 将破坏依赖它的包: %s", removed.full_name, _names(dependents))
            for kept, dependents in self._skipped.items():
                if not self._is_connected(kept):
                    logger.warning("'%s' 仍被 %s 依赖，保留不卸载", kept.full_name, _names(dependents))

        # 后序入栈，逆序输出即根在前
        return reduce_operations(reversed(self._operations))

    # ---- 遍历策略 ----

    def resolve_dependency(self, dependency: PackageDependency) -> PackageMetadata | None:
        return self.repository.resolve_dependency(
            dependency, allow_prerelease=True, prefer_listed=False,
        )

    def on_before_walk(self, package: PackageMetadata) -> None:
        dependents = self._get_dependents(package)
        if not dependents:
            return
        if self.force_remove:
            self._forced[package] = dependents
        elif self.throw_on_conflicts:
            raise PackageInUseError(
                f"Unable to uninstall '{package.full_name}' because "
                f"'{_names(dependents)}' depends on it.",
                package, dependents,
            )

    def on_after_resolve(self, dependent: PackageMetadata, resolved: PackageMetadata) -> bool:
        if resolved in self.keep:
            return False
        if not self.force_remove:
            dependents = self._get_dependents(resolved)
            if dependents:
                # 依赖仍被其他包使用，整棵子树都保留
                self._skipped[resolved] = dependents
                return False
        return True

    def on_after_walk(self, package: PackageMetadata) -> None:
        self._operations.append(PackageOperation(package, PackageAction.UNINSTALL))

    def on_resolve_error(self, dependency: PackageDependency, dependent: PackageMetadata) -> None:
        if not self.quiet:
            logger.warning("找不到 %s 的依赖 '%s'，跳过", dependent.full_name, dependency)

    # ---- 依赖方判断 ----

    def _get_dependents(self, package: PackageMetadata) -> list[PackageMetadata]:
        """不随本次卸载一起移除的依赖方"""
        return [
            p for p in self.dependents_resolver.get_dependents(package)
            if not self._is_connected(p)
        ]

    def _is_connected(self, package: PackageMetadata, _seen: set | None = None) -> bool:
        """包是否已在本次卸载范围内，或其全部依赖方都在范围内"""
        if self._walker.contains(package):
            return True
        seen = _seen if _seen is not None else set()
        if package in seen:
            return False
        seen.add(package)
        dependents = self.dependents_resolver.get_dependents(package)
        return bool(dependents) and all(self._is_connected(d, seen) for d in dependents)
