"""目标平台模型

工程和包内文件/依赖组都可以标注目标平台（net40、net45、netstandard2.0、sl5 ...）。
兼容规则：标识相同且包所需版本不高于工程版本；未标注平台的条目与所有工程兼容。
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TypeVar

from pkgsolver.core.exceptions import ValidationError

T = TypeVar("T")

_SHORT_RE = re.compile(r"^(?P<name>[A-Za-z]+)(?P<version>[\d.]*)$")
_LONG_RE = re.compile(
    r"^(?P<name>[^,]+),\s*Version=v?(?P<version>[\d.]+)$", re.IGNORECASE,
)

# 长名称 -> 短标识
_ALIASES = {
    ".netframework": "net",
    "netframework": "net",
    ".netstandard": "netstandard",
    ".netcore": "netcore",
    "silverlight": "sl",
    "windows": "win",
}


@dataclass(frozen=True)
class TargetPlatform:
    """目标平台标识 + 版本"""

    identifier: str
    version: tuple[int, ...] = (0, 0, 0, 0)
    moniker: str = field(default="", compare=False)

    @classmethod
    def parse(cls, text: str | TargetPlatform | None) -> TargetPlatform | None:
        """解析平台名称，空字符串返回 None（表示与平台无关）"""
        if text is None or isinstance(text, TargetPlatform):
            return text
        value = str(text).strip()
        if not value:
            return None

        m = _LONG_RE.match(value) or _SHORT_RE.match(value)
        if m is None:
            raise ValidationError(f"'{text}' is not a valid target platform.")
        name = m.group("name").lower()
        name = _ALIASES.get(name, name)
        raw = m.group("version")
        if "." in raw:
            numbers = [int(p) for p in raw.split(".") if p]
        else:
            # 紧凑写法：net45 -> 4.5，net451 -> 4.5.1
            numbers = [int(ch) for ch in raw]
        padded = tuple((numbers + [0, 0, 0, 0])[:4])
        return cls(identifier=name, version=padded, moniker=value)

    def __str__(self) -> str:
        if self.moniker:
            return self.moniker
        digits = [str(n) for n in self.version]
        while len(digits) > 1 and digits[-1] == "0":
            digits.pop()
        return self.identifier + "".join(digits)


def is_compatible(
    project: TargetPlatform | None, item: TargetPlatform | None,
) -> bool:
    """条目平台能否用于工程平台"""
    if item is None or project is None:
        return True
    return item.identifier == project.identifier and item.version <= project.version


def get_compatible_items(
    items: Iterable[T],
    platform: TargetPlatform | None,
    key: Callable[[T], TargetPlatform | None] = lambda item: item.target_platform,  # type: ignore[attr-defined]
) -> list[T]:
    """按平台分组后选出最匹配的一组

    - 工程平台已知：取兼容组中版本最高的一组，没有兼容组时取平台无关组
    - 工程平台未知：取平台无关组，没有则返回全部条目
    """
    groups: dict[TargetPlatform | None, list[T]] = {}
    for item in items:
        groups.setdefault(key(item), []).append(item)

    if platform is None:
        if None in groups:
            return groups[None]
        return [item for group in groups.values() for item in group]

    candidates = [
        p for p in groups
        if p is not None and is_compatible(platform, p)
    ]
    if candidates:
        best = max(candidates, key=lambda p: p.version)
        return groups[best]
    return groups.get(None, [])
