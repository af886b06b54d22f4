"""操作归约

纯函数 reduce_operations(ops) -> ops'，无副作用且幂等：
1. 同一标识的安装与卸载成对抵消（+A 1.0 / -A 1.0 -> 无操作）
2. 去除重复操作
3. 卫星包顺序：卫星包卸载先于核心包卸载，核心包安装先于卫星包安装

不相关的包保持输入中首次出现的相对顺序。
"""

from __future__ import annotations

from collections.abc import Iterable

from pkgsolver.core.models import PackageAction, PackageOperation


def reduce_operations(operations: Iterable[PackageOperation]) -> list[PackageOperation]:
    ops = list(operations)

    # 每个操作与其后第一个未配对的相反操作抵消
    cancelled = [False] * len(ops)
    for i, op in enumerate(ops):
        if cancelled[i]:
            continue
        opposite = op.opposite
        for j in range(i + 1, len(ops)):
            if not cancelled[j] and ops[j] == opposite:
                cancelled[i] = cancelled[j] = True
                break

    result: list[PackageOperation] = []
    seen: set[PackageOperation] = set()
    for i, op in enumerate(ops):
        if cancelled[i] or op in seen:
            continue
        seen.add(op)
        result.append(op)

    return _order_satellites(result)


def _first_index(ops: list[PackageOperation], action: PackageAction, package_id: str) -> int | None:
    key = package_id.lower()
    for i, op in enumerate(ops):
        if op.action is action and op.package.id.lower() == key:
            return i
    return None


def _last_index(ops: list[PackageOperation], action: PackageAction, package_id: str) -> int | None:
    key = package_id.lower()
    found = None
    for i, op in enumerate(ops):
        if op.action is action and op.package.id.lower() == key:
            found = i
    return found


def _order_satellites(ops: list[PackageOperation]) -> list[PackageOperation]:
    result = list(ops)

    uninstalls = [
        op for op in result
        if op.action is PackageAction.UNINSTALL and op.package.is_satellite
    ]
    for op in uninstalls:
        index = result.index(op)
        core_index = _first_index(result, PackageAction.UNINSTALL, op.package.core_package_id)
        if core_index is not None and core_index < index:
            result.pop(index)
            result.insert(core_index, op)

    # 逆序处理，保持多个卫星包之间的相对顺序
    installs = [
        op for op in result
        if op.action is PackageAction.INSTALL and op.package.is_satellite
    ]
    for op in reversed(installs):
        index = result.index(op)
        core_index = _last_index(result, PackageAction.INSTALL, op.package.core_package_id)
        if core_index is not None and core_index > index:
            result.pop(index)
            result.insert(core_index, op)

    return result
