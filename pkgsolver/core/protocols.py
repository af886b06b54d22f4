"""领域协议定义

集中定义解析引擎与外部协作方之间的接口契约（Protocol），
实现依赖倒置：解析器和编排层依赖抽象而非具体实现。

使用 typing.Protocol 而非 ABC，使得现有类无需修改继承关系即可满足协议。
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from pkgsolver.core.models import PackageMetadata
    from pkgsolver.core.platform import TargetPlatform
    from pkgsolver.core.version import VersionRange


# =========================================================================
# 约束协议
# =========================================================================

class ConstraintProvider(Protocol):
    """工程级版本约束提供者

    来源于引用清单中的 allowed_versions 属性，更新规划时参与候选版本筛选。
    """

    @property
    def name(self) -> str:
        """约束来源名称（出现在错误信息中）"""
        ...

    def get_constraint(self, package_id: str) -> VersionRange | None:
        """返回包的允许版本区间，无约束返回 None"""
        ...


# =========================================================================
# 依赖方查询协议
# =========================================================================

class DependentsResolver(Protocol):
    """反向依赖查询"""

    def get_dependents(self, package: PackageMetadata) -> list[PackageMetadata]:
        """直接依赖该包的已安装包"""
        ...


# =========================================================================
# 工程系统协议
# =========================================================================

class ProjectSystem(Protocol):
    """工程系统协作方

    把包文件落地到工程：复制内容文件、添加程序集引用、导入构建脚本。
    解析引擎只在执行阶段调用这些方法，不关心工程内部结构。
    """

    @property
    def name(self) -> str:
        """工程名称"""
        ...

    @property
    def target_platform(self) -> TargetPlatform | None:
        """工程目标平台"""
        ...

    def add_file(self, path: str, content: str) -> None:
        """向工程添加文件（已存在时保留原文件）"""
        ...

    def delete_file(self, path: str) -> None:
        """删除工程文件"""
        ...

    def file_exists(self, path: str) -> bool:
        ...

    def add_reference(self, path: str) -> None:
        """添加程序集引用（path 指向共享仓库中的安装路径）"""
        ...

    def remove_reference(self, name: str) -> None:
        """按文件名移除程序集引用"""
        ...

    def reference_exists(self, name: str) -> bool:
        ...

    def add_framework_reference(self, name: str) -> None:
        """添加框架（GAC）程序集引用"""
        ...

    def add_import(self, path: str, location: str) -> None:
        """导入构建脚本，location 为 "top" 或 "bottom" """
        ...

    def remove_import(self, path: str) -> None:
        """移除构建脚本导入"""
        ...


# =========================================================================
# 批量操作监听协议
# =========================================================================

class PackageOperationListener(Protocol):
    """跨工程批量动作的逐工程回调"""

    def on_before(self, project: str) -> None:
        ...

    def on_error(self, project: str, error: Exception) -> None:
        ...

    def on_after(self, project: str) -> None:
        ...
