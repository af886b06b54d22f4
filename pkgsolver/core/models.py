"""包数据模型

所有核心数据类集中定义，仓库、解析器、编排层统一从此处导入：
- PackageIdentity: 包标识 (id 不区分大小写 + 精确版本)
- PackageDependency / DependencySet: 按目标平台分组的依赖声明
- PackageFile: 包内文件，按路径推断类别 (lib/content/build) 与目标平台
- PackageReferenceSet / FrameworkAssembly: 显式程序集引用列表与框架程序集引用
- PackageMetadata: 包元数据
- PackageOperation: 安装 / 卸载操作（解析器产出，归约器和执行器消费）
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pkgsolver.core.exceptions import ValidationError
from pkgsolver.core.platform import TargetPlatform, get_compatible_items
from pkgsolver.core.version import SemanticVersion, VersionRange

# 需要在工程内落地的文件类别
PROJECT_CONTENT_KINDS = ("lib", "content", "build")

# 目录名只有带数字时才视为平台目录（net40 / sl5），避免把 content/scripts 误判
_PLATFORM_FOLDER_RE = re.compile(r"^[A-Za-z.]+[\d.]+$")


# =========================================================================
# 标识与依赖
# =========================================================================


@dataclass(frozen=True, eq=False)
class PackageIdentity:
    """包标识：id 不区分大小写，版本精确匹配"""

    id: str
    version: SemanticVersion

    def _key(self) -> tuple[str, SemanticVersion]:
        return self.id.lower(), self.version

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackageIdentity):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        return f"{self.id} {self.version}"


@dataclass(frozen=True)
class PackageDependency:
    """依赖声明；version_spec 为 None 表示任意版本（解析时取最低）"""

    id: str
    version_spec: VersionRange | None = None

    @classmethod
    def parse(cls, data: Any) -> PackageDependency:
        """从 {"id": ..., "version": ...} 或 "Id [1.0,2.0)" 构造"""
        if isinstance(data, dict):
            dep_id = str(data.get("id", "")).strip()
            spec = data.get("version")
        else:
            dep_id, _, spec = str(data).strip().partition(" ")
        if not dep_id:
            raise ValidationError(f"Dependency without id: {data!r}")
        spec_text = str(spec).strip() if spec is not None else ""
        return cls(dep_id, VersionRange.parse(spec_text) if spec_text else None)

    def to_dict(self) -> dict[str, str]:
        data = {"id": self.id}
        if self.version_spec is not None:
            data["version"] = str(self.version_spec)
        return data

    def __str__(self) -> str:
        if self.version_spec is None:
            return self.id
        return f"{self.id} {self.version_spec.pretty()}"


@dataclass(frozen=True)
class DependencySet:
    """同一目标平台下的一组依赖（id 唯一）"""

    target_platform: TargetPlatform | None = None
    dependencies: tuple[PackageDependency, ...] = ()

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for dep in self.dependencies:
            key = dep.id.lower()
            if key in seen:
                raise ValidationError(
                    f"Duplicate dependency '{dep.id}' in dependency set "
                    f"'{self.target_platform or 'any'}'."
                )
            seen.add(key)


# =========================================================================
# 包文件
# =========================================================================


@dataclass(frozen=True)
class PackageFile:
    """包内文件，路径使用 / 分隔，如 lib/net40/Foo.dll"""

    path: str
    content: str = field(default="", compare=False)

    def _segments(self) -> list[str]:
        return self.path.replace("\\", "/").strip("/").split("/")

    @property
    def kind(self) -> str:
        segments = self._segments()
        return segments[0].lower() if len(segments) > 1 else ""

    @property
    def target_platform(self) -> TargetPlatform | None:
        segments = self._segments()
        if len(segments) > 2 and _PLATFORM_FOLDER_RE.match(segments[1]):
            return TargetPlatform.parse(segments[1])
        return None

    @property
    def effective_path(self) -> str:
        """去掉类别目录和平台目录后的相对路径"""
        segments = self._segments()
        if len(segments) <= 1:
            return self.path
        rest = segments[1:]
        if len(rest) > 1 and _PLATFORM_FOLDER_RE.match(rest[0]):
            rest = rest[1:]
        return "/".join(rest)


# =========================================================================
# 程序集引用
# =========================================================================


@dataclass(frozen=True)
class PackageReferenceSet:
    """显式列出的程序集引用：同一目标平台下只有这些 lib 文件成为工程引用"""

    target_platform: TargetPlatform | None = None
    references: tuple[str, ...] = ()

    def includes(self, file_name: str) -> bool:
        return file_name.lower() in {r.lower() for r in self.references}


@dataclass(frozen=True)
class FrameworkAssembly:
    """框架（GAC）程序集引用，如 System.Web；不随包文件分发"""

    name: str
    target_platform: TargetPlatform | None = None

    @classmethod
    def parse(cls, data: Any) -> FrameworkAssembly:
        if isinstance(data, dict):
            name = str(data.get("name", "")).strip()
            platform = TargetPlatform.parse(data.get("target_platform"))
        else:
            name, platform = str(data).strip(), None
        if not name:
            raise ValidationError(f"Framework assembly without name: {data!r}")
        return cls(name, platform)

    def to_dict(self) -> dict[str, str] | str:
        if self.target_platform is None:
            return self.name
        return {"name": self.name, "target_platform": str(self.target_platform)}


# =========================================================================
# 包元数据
# =========================================================================


@dataclass(frozen=True, eq=False)
class PackageMetadata:
    """包元数据；相等性只看 PackageIdentity"""

    id: str
    version: SemanticVersion
    dependency_sets: tuple[DependencySet, ...] = ()
    files: tuple[PackageFile, ...] = ()
    listed: bool = True
    min_client_version: SemanticVersion | None = None
    language: str = ""
    title: str = ""
    reference_sets: tuple[PackageReferenceSet, ...] = ()
    framework_assemblies: tuple[FrameworkAssembly, ...] = ()

    def __post_init__(self) -> None:
        if not self.id or not str(self.id).strip():
            raise ValidationError("Package id must not be empty.")
        object.__setattr__(self, "version", SemanticVersion.parse(self.version))
        if self.min_client_version is not None:
            object.__setattr__(
                self, "min_client_version",
                SemanticVersion.parse(self.min_client_version),
            )

    @property
    def identity(self) -> PackageIdentity:
        return PackageIdentity(self.id, self.version)

    @property
    def full_name(self) -> str:
        return f"{self.id} {self.version}"

    @property
    def is_release_version(self) -> bool:
        return not self.version.is_prerelease

    @property
    def has_project_content(self) -> bool:
        return bool(self.framework_assemblies) or any(f.kind in PROJECT_CONTENT_KINDS for f in self.files)

    def get_dependencies(
        self, platform: TargetPlatform | None = None,
    ) -> list[PackageDependency]:
        """与目标平台最匹配的依赖组（无匹配时退回平台无关组）"""
        chosen = get_compatible_items(self.dependency_sets, platform)
        deps: list[PackageDependency] = []
        seen: set[str] = set()
        for dep_set in chosen:
            for dep in dep_set.dependencies:
                if dep.id.lower() not in seen:
                    seen.add(dep.id.lower())
                    deps.append(dep)
        return deps

    def get_reference_filter(
        self, platform: TargetPlatform | None = None,
    ) -> PackageReferenceSet | None:
        """与目标平台匹配的显式引用列表；None 表示所有兼容的程序集都成为引用"""
        chosen = get_compatible_items(self.reference_sets, platform)
        return chosen[0] if chosen else None

    def find_dependency(
        self, package_id: str, platform: TargetPlatform | None = None,
    ) -> PackageDependency | None:
        for dep in self.get_dependencies(platform):
            if dep.id.lower() == package_id.lower():
                return dep
        return None

    # ---- 卫星包（本地化资源包） ----

    @property
    def core_package_id(self) -> str:
        if not self.language:
            return ""
        suffix = f".{self.language}"
        if not self.id.lower().endswith(suffix.lower()):
            return ""
        return self.id[:-len(suffix)]

    @property
    def is_satellite(self) -> bool:
        """语言非空、id 以 .{language} 结尾、且精确依赖同版本核心包"""
        core_id = self.core_package_id
        if not core_id:
            return False
        dep = self.find_dependency(core_id)
        return dep is not None and dep.version_spec is not None and dep.version_spec.is_exact

    # ---- 相等性 ----

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackageMetadata):
            return NotImplemented
        return self.identity == other.identity

    def __hash__(self) -> int:
        return hash(self.identity)

    def __str__(self) -> str:
        return self.full_name

    def __repr__(self) -> str:
        return f"PackageMetadata('{self.full_name}')"

    # ---- 序列化 ----

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PackageMetadata:
        """从清单字典构造

        异常:
            ValidationError: 缺少 id/version 或版本、区间格式错误
        """
        if not isinstance(data, dict):
            raise ValidationError(f"Package manifest must be a mapping: {data!r}")
        missing = [k for k in ("id", "version") if not data.get(k)]
        if missing:
            raise ValidationError(
                "Invalid package manifest", details=[f"missing '{k}'" for k in missing],
            )

        if data.get("dependency_sets"):
            dep_sets = tuple(
                DependencySet(
                    TargetPlatform.parse(s.get("target_platform")),
                    tuple(PackageDependency.parse(d) for d in s.get("dependencies") or []),
                )
                for s in data["dependency_sets"]
            )
        elif data.get("dependencies"):
            dep_sets = (DependencySet(None, tuple(
                PackageDependency.parse(d) for d in data["dependencies"]
            )),)
        else:
            dep_sets = ()

        files = tuple(
            PackageFile(f) if isinstance(f, str)
            else PackageFile(str(f["path"]), str(f.get("content", "")))
            for f in data.get("files") or []
        )
        if data.get("reference_sets"):
            reference_sets = tuple(
                PackageReferenceSet(
                    TargetPlatform.parse(s.get("target_platform")),
                    tuple(str(r) for r in s.get("references") or []),
                )
                for s in data["reference_sets"]
            )
        elif data.get("references"):
            reference_sets = (PackageReferenceSet(None, tuple(str(r) for r in data["references"])),)
        else:
            reference_sets = ()
        min_client = data.get("min_client_version")
        return cls(
            id=str(data["id"]).strip(),
            version=SemanticVersion.parse(str(data["version"])),
            dependency_sets=dep_sets,
            files=files,
            listed=bool(data.get("listed", True)),
            min_client_version=SemanticVersion.parse(str(min_client)) if min_client else None,
            language=str(data.get("language", "") or ""),
            title=str(data.get("title", "") or ""),
            reference_sets=reference_sets,
            framework_assemblies=tuple(
                FrameworkAssembly.parse(a) for a in data.get("framework_assemblies") or []
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "version": str(self.version)}
        if self.title:
            data["title"] = self.title
        if self.language:
            data["language"] = self.language
        if not self.listed:
            data["listed"] = False
        if self.min_client_version is not None:
            data["min_client_version"] = str(self.min_client_version)
        if self.dependency_sets:
            data["dependency_sets"] = [
                {
                    "target_platform": str(s.target_platform) if s.target_platform else "",
                    "dependencies": [d.to_dict() for d in s.dependencies],
                }
                for s in self.dependency_sets
            ]
        if self.files:
            data["files"] = [f.path for f in self.files]
        if self.reference_sets:
            data["reference_sets"] = [
                {
                    "target_platform": str(s.target_platform) if s.target_platform else "",
                    "references": list(s.references),
                }
                for s in self.reference_sets
            ]
        if self.framework_assemblies:
            data["framework_assemblies"] = [a.to_dict() for a in self.framework_assemblies]
        return data


# =========================================================================
# 操作
# =========================================================================


class PackageAction(str, Enum):
    INSTALL = "install"
    UNINSTALL = "uninstall"


@dataclass(frozen=True)
class PackageOperation:
    """单个安装 / 卸载操作"""

    package: PackageMetadata
    action: PackageAction

    @property
    def opposite(self) -> PackageOperation:
        other = (
            PackageAction.UNINSTALL if self.action is PackageAction.INSTALL
            else PackageAction.INSTALL
        )
        return PackageOperation(self.package, other)

    def __str__(self) -> str:
        return f"{self.action.value.capitalize()} {self.package.full_name}"
