"""依赖解析子包

- walker: 通用深度优先遍历器 + 遍历策略
- dependents: 反向依赖索引
- install / uninstall / reinstall: 三类操作规划器
- reducer: 操作归约
- constraints: 版本约束提供者
- sorter: 依赖顺序排序
- result: 带标签的规划结果
"""

from pkgsolver.core.resolver.constraints import DefaultConstraintProvider, NullConstraintProvider
from pkgsolver.core.resolver.dependents import DependentsWalker
from pkgsolver.core.resolver.install import InstallResolver
from pkgsolver.core.resolver.reducer import reduce_operations
from pkgsolver.core.resolver.reinstall import ReinstallPlan, ReinstallResolver
from pkgsolver.core.resolver.result import PlanResult, try_plan
from pkgsolver.core.resolver.sorter import get_packages_by_dependency_order
from pkgsolver.core.resolver.uninstall import UninstallResolver
from pkgsolver.core.resolver.walker import GraphWalker, WalkStrategy

__all__ = [
    "DefaultConstraintProvider",
    "DependentsWalker",
    "GraphWalker",
    "InstallResolver",
    "NullConstraintProvider",
    "PlanResult",
    "ReinstallPlan",
    "ReinstallResolver",
    "UninstallResolver",
    "WalkStrategy",
    "get_packages_by_dependency_order",
    "reduce_operations",
    "try_plan",
]
