"""版本与约束模型

- SemanticVersion: 1~4 段数字 + 可选预发布标记（"-beta"）的版本号
- VersionRange: 版本区间，支持 [1.0]、1.0、(1.0,)、[1.0,2.0) 等写法
- get_safe_range: "安全更新" 使用的区间（默认不跨越下一个 minor）

排序规则：先比较数字段，数字相同时带预发布标记的版本小于正式版本，
预发布标记之间按不区分大小写的字典序比较。
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass

from pkgsolver.core.exceptions import ValidationError

_VERSION_RE = re.compile(
    r"^(?P<numbers>\d+(?:\s*\.\s*\d+){0,3})"
    r"(?:-(?P<special>[A-Za-z][0-9A-Za-z-]*))?$"
)

SAFE_UPDATE_POLICIES = ("minor", "major")


@functools.total_ordering
class SemanticVersion:
    """语义化版本号（不可变）

    保留解析时的数字段个数，"1.0" 与 "1.0.0" 相等但各自按原样输出。
    """

    __slots__ = ("_numbers", "_special", "_components")

    def __init__(
        self, major: int = 0, minor: int = 0, patch: int = 0,
        revision: int = 0, special: str = "", *, components: int = 0,
    ) -> None:
        if min(major, minor, patch, revision) < 0:
            raise ValidationError(
                f"Version components must be non-negative: "
                f"{major}.{minor}.{patch}.{revision}"
            )
        self._numbers = (major, minor, patch, revision)
        self._special = special
        if not components:
            components = 4 if revision else (3 if patch else 2)
        self._components = max(2, min(4, components))

    # ------------------------------------------------------------------
    # 解析
    # ------------------------------------------------------------------

    @classmethod
    def parse(cls, text: str | SemanticVersion) -> SemanticVersion:
        """解析版本字符串，格式非法时抛出 ValidationError"""
        if isinstance(text, SemanticVersion):
            return text
        version = cls.try_parse(text)
        if version is None:
            raise ValidationError(f"'{text}' is not a valid version string.")
        return version

    @classmethod
    def try_parse(cls, text: object) -> SemanticVersion | None:
        if text is None:
            return None
        m = _VERSION_RE.match(str(text).strip())
        if m is None:
            return None
        parts = [int(p) for p in m.group("numbers").split(".")]
        count = len(parts)
        parts += [0] * (4 - count)
        return cls(*parts, special=m.group("special") or "", components=count)

    # ------------------------------------------------------------------
    # 属性
    # ------------------------------------------------------------------

    @property
    def major(self) -> int:
        return self._numbers[0]

    @property
    def minor(self) -> int:
        return self._numbers[1]

    @property
    def patch(self) -> int:
        return self._numbers[2]

    @property
    def revision(self) -> int:
        return self._numbers[3]

    @property
    def special(self) -> str:
        return self._special

    @property
    def numbers(self) -> tuple[int, int, int, int]:
        return self._numbers

    @property
    def is_prerelease(self) -> bool:
        return bool(self._special)

    def get_comparable_version_strings(self) -> list[str]:
        """列出所有等价写法：1.0 / 1.0.0 / 1.0.0.0

        用于在本地仓库中定位以任意段数命名的包目录。
        """
        suffix = f"-{self._special}" if self._special else ""
        # 末尾为 0 的段可以省略
        shortest = 4
        while shortest > 2 and self._numbers[shortest - 1] == 0:
            shortest -= 1
        return [
            ".".join(str(n) for n in self._numbers[:count]) + suffix
            for count in range(shortest, 5)
        ]

    # ------------------------------------------------------------------
    # 比较
    # ------------------------------------------------------------------

    def _key(self) -> tuple:
        # 正式版 (1, "") 排在预发布版 (0, special) 之后
        if self._special:
            return self._numbers, 0, self._special.lower()
        return self._numbers, 1, ""

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: SemanticVersion) -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        text = ".".join(str(n) for n in self._numbers[:self._components])
        if self._special:
            text += f"-{self._special}"
        return text

    def __repr__(self) -> str:
        return f"SemanticVersion('{self}')"


@dataclass(frozen=True)
class VersionRange:
    """版本区间（min/max 为 None 表示该侧不设界）"""

    min_version: SemanticVersion | None = None
    is_min_inclusive: bool = False
    max_version: SemanticVersion | None = None
    is_max_inclusive: bool = False

    def __post_init__(self) -> None:
        lo, hi = self.min_version, self.max_version
        if lo is None or hi is None:
            return
        if lo > hi:
            raise ValidationError(
                f"Invalid version range '{self}': "
                "minimum version is greater than maximum version."
            )
        if lo == hi and not (self.is_min_inclusive and self.is_max_inclusive):
            raise ValidationError(
                f"Invalid version range '{self}': the range is empty."
            )

    @classmethod
    def exact(cls, version: SemanticVersion | str) -> VersionRange:
        v = SemanticVersion.parse(version)
        return cls(v, True, v, True)

    @classmethod
    def at_least(cls, version: SemanticVersion | str) -> VersionRange:
        return cls(SemanticVersion.parse(version), True)

    @classmethod
    def parse(cls, text: str | VersionRange) -> VersionRange:
        """解析区间字符串

        参数:
            text: "1.0" 表示 >= 1.0；"[1.0]" 表示精确版本；
                  "(1.0,2.0]"、"[1.0,)"、"(,2.0)" 等为区间写法

        异常:
            ValidationError: 语法错误或区间为空
        """
        if isinstance(text, VersionRange):
            return text
        value = str(text).strip()

        plain = SemanticVersion.try_parse(value)
        if plain is not None:
            return cls(plain, True)

        if len(value) < 3 or value[0] not in "[(" or value[-1] not in "])":
            raise ValidationError(f"'{text}' is not a valid version range.")

        parts = value[1:-1].split(",")
        if len(parts) > 2 or all(not p.strip() for p in parts):
            raise ValidationError(f"'{text}' is not a valid version range.")

        min_text = parts[0].strip()
        max_text = parts[1].strip() if len(parts) == 2 else min_text

        bounds: list[SemanticVersion | None] = []
        for part in (min_text, max_text):
            if not part:
                bounds.append(None)
                continue
            version = SemanticVersion.try_parse(part)
            if version is None:
                raise ValidationError(
                    f"'{text}' is not a valid version range.",
                    details=[f"invalid version '{part}'"],
                )
            bounds.append(version)

        return cls(
            min_version=bounds[0],
            is_min_inclusive=value[0] == "[",
            max_version=bounds[1],
            is_max_inclusive=value[-1] == "]",
        )

    def satisfies(self, version: SemanticVersion) -> bool:
        lo, hi = self.min_version, self.max_version
        if lo is not None:
            if version < lo or (version == lo and not self.is_min_inclusive):
                return False
        if hi is not None:
            if version > hi or (version == hi and not self.is_max_inclusive):
                return False
        return True

    @property
    def is_exact(self) -> bool:
        return (
            self.min_version is not None
            and self.min_version == self.max_version
            and self.is_min_inclusive and self.is_max_inclusive
        )

    def pretty(self) -> str:
        """可读形式：(>= 1.0)、(= 1.0)、(>= 1.0 && < 2.0)"""
        lo, hi = self.min_version, self.max_version
        if self.is_exact:
            return f"(= {lo})"
        pieces = []
        if lo is not None:
            pieces.append(f"{'>=' if self.is_min_inclusive else '>'} {lo}")
        if hi is not None:
            pieces.append(f"{'<=' if self.is_max_inclusive else '<'} {hi}")
        if not pieces:
            return ""
        return "(" + " && ".join(pieces) + ")"

    def __str__(self) -> str:
        lo, hi = self.min_version, self.max_version
        if self.is_exact:
            return f"[{lo}]"
        if lo is not None and hi is None and self.is_min_inclusive:
            return str(lo)
        return (
            ("[" if self.is_min_inclusive else "(")
            + (str(lo) if lo is not None else "")
            + ", "
            + (str(hi) if hi is not None else "")
            + ("]" if self.is_max_inclusive else ")")
        )


def get_safe_range(version: SemanticVersion, policy: str = "minor") -> VersionRange:
    """安全更新区间

    policy="minor": [version, major.(minor+1))，只接受补丁级更新
    policy="major": [version, (major+1).0)，接受同一主版本内的更新
    """
    if policy == "minor":
        upper = SemanticVersion(version.major, version.minor + 1)
    elif policy == "major":
        upper = SemanticVersion(version.major + 1, 0)
    else:
        raise ValidationError(
            f"Unknown safe update policy '{policy}'",
            details=[f"expected one of {', '.join(SAFE_UPDATE_POLICIES)}"],
        )
    return VersionRange(version, True, upper, False)
