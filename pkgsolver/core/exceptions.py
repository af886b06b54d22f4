"""统一异常体系

所有业务异常继承 PkgSolverError，每类异常带一个稳定的 code，
CLI 层据此输出友好提示，调用方也可以按 code 分支而不依赖异常类型。

规划阶段（依赖解析）产生的异常统一继承 PlanningError，
可被 resolver.result.try_plan 收敛为 PlanResult。
"""

from __future__ import annotations

from typing import Any


class PkgSolverError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(PkgSolverError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(PkgSolverError):
    """版本号、版本区间或包清单数据格式错误"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


# =========================================================================
# 规划阶段异常
# =========================================================================

class PlanningError(PkgSolverError):
    """依赖图规划失败（确定性错误，不重试）"""

    code = "PLANNING_ERROR"


class DependencyResolutionError(PlanningError):
    """某个依赖找不到兼容版本"""

    code = "DEPENDENCY_UNRESOLVED"

    def __init__(self, message: str, dependency: Any = None) -> None:
        super().__init__(message)
        self.dependency = dependency


class ConstraintViolationError(DependencyResolutionError):
    """候选版本落在工程 allowed_versions 约束之外"""

    code = "CONSTRAINT_VIOLATION"

    def __init__(
        self, message: str, dependency: Any = None, constraint: Any = None,
    ) -> None:
        super().__init__(message, dependency)
        self.constraint = constraint


class ConflictError(PlanningError):
    """升级会破坏其他已安装包的依赖约束"""

    code = "CONFLICT"

    def __init__(
        self, message: str, package: Any = None,
        dependents: list[Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.package = package
        self.dependents = dependents or []


class VersionDowngradeError(PlanningError):
    """未显式指定版本时不允许从预发布版本降级"""

    code = "VERSION_DOWNGRADE"


class PackageInUseError(PlanningError):
    """包仍被其他包或工程引用，不能卸载"""

    code = "PACKAGE_IN_USE"

    def __init__(
        self, message: str, package: Any = None,
        dependents: list[Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.package = package
        self.dependents = dependents or []


class AmbiguousMatchError(PlanningError):
    """同一包 ID 安装了多个版本且未指定工程范围"""

    code = "AMBIGUOUS_MATCH"


class MinClientVersionError(PlanningError):
    """包声明的最低客户端版本高于当前引擎版本"""

    code = "MIN_CLIENT_VERSION"


# =========================================================================
# 编排 / 执行阶段异常
# =========================================================================

class UnknownPackageError(PkgSolverError):
    """包在源或本地仓库中不存在"""

    code = "UNKNOWN_PACKAGE"


class ProjectNotFoundError(PkgSolverError):
    """解决方案中不存在指定工程"""

    code = "PROJECT_NOT_FOUND"


class ProjectNotSpecifiedError(PkgSolverError):
    """工程级操作没有指定工程"""

    code = "PROJECT_NOT_SPECIFIED"


class IncompatiblePackageError(PkgSolverError):
    """包内没有任何与工程目标平台兼容的文件"""

    code = "INCOMPATIBLE_PACKAGE"


class OperationCancelledError(PkgSolverError):
    """调用方在操作边界取消了动作"""

    code = "CANCELLED"


class OperationFailedError(PkgSolverError):
    """批量动作在所有工程上都失败"""

    code = "OPERATION_FAILED"

    def __init__(
        self, message: str, failures: list[tuple[str, Exception]] | None = None,
    ) -> None:
        super().__init__(message)
        self.failures = failures or []
