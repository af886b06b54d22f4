"""版本约束提供者

工程引用仓库本身就是约束提供者（allowed_versions）；
这里提供空实现和基于字典的实现，供解决方案级操作和测试使用。
"""

from __future__ import annotations

from pkgsolver.core.version import VersionRange


class NullConstraintProvider:
    """无任何约束"""

    name = ""

    def get_constraint(self, package_id: str) -> VersionRange | None:
        return None


class DefaultConstraintProvider:
    """按包 id 登记的约束（id 不区分大小写）"""

    def __init__(self, name: str = "constraints") -> None:
        self.name = name
        self._constraints: dict[str, VersionRange] = {}

    def add_constraint(self, package_id: str, version_spec: VersionRange | str) -> None:
        self._constraints[package_id.lower()] = VersionRange.parse(version_spec)

    def get_constraint(self, package_id: str) -> VersionRange | None:
        return self._constraints.get(package_id.lower())
