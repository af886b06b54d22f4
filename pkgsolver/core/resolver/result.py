"""规划结果

把规划阶段的预期错误（冲突、约束、无解 ...）收敛为带标签的结果，
调用方按 ok 分支，不必依赖异常类型；编程错误仍按异常抛出。
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from pkgsolver.core.exceptions import PlanningError
from pkgsolver.core.models import PackageOperation


@dataclass
class PlanResult:
    """操作列表或规划错误，二者取其一"""

    operations: list[PackageOperation] = field(default_factory=list)
    error: PlanningError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> list[PackageOperation]:
        if self.error is not None:
            raise self.error
        return self.operations


def try_plan(func: Callable[..., list[PackageOperation]], *args, **kwargs) -> PlanResult:
    """执行规划函数，PlanningError 转为失败结果"""
    try:
        return PlanResult(operations=list(func(*args, **kwargs)))
    except PlanningError as e:
        return PlanResult(error=e)
