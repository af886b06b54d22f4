"""解决方案编排子包

- models: 动作状态与报告
- transaction: 工程级 / 解决方案级回滚作用域
- manager: SolutionPackageManager 编排入口
"""

from pkgsolver.services.solution.manager import SolutionPackageManager
from pkgsolver.services.solution.models import ActionFailure, ActionReport, ActionState

__all__ = ["ActionFailure", "ActionReport", "ActionState", "SolutionPackageManager"]
