"""解决方案动作数据模型

- ActionState: 动作状态 PLANNING -> EXECUTING -> COMMITTED | ROLLED_BACK
- ActionFailure: 批量动作中单个工程 / 包的失败
- ActionReport: 动作报告
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pkgsolver.core.models import PackageOperation


class ActionState(str, Enum):
    PLANNING = "planning"
    EXECUTING = "executing"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass
class ActionFailure:
    target: str
    error: Exception

    def __str__(self) -> str:
        return f"{self.target}: {self.error}"


@dataclass
class ActionReport:
    """动作执行报告"""

    action: str
    package_id: str = ""
    project: str = ""
    state: ActionState = ActionState.PLANNING
    operations: list[PackageOperation] = field(default_factory=list)
    steps: list[dict[str, Any]] = field(default_factory=list)
    failures: list[ActionFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.state is ActionState.COMMITTED and not self.failures

    @property
    def skipped(self) -> bool:
        return bool(self.steps) and all(s.get("status") == "skipped" for s in self.steps)
