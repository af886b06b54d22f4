"""工程引用清单

每个工程一个清单文件，记录工程声明使用的包版本:

    packages:
      - id: Foo
        version: "1.0"
        target_platform: net40
        allowed_versions: "[1.0, 2.0)"

清单中最后一条记录被删除时删除文件本身。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pkgsolver.core.exceptions import ValidationError
from pkgsolver.core.platform import TargetPlatform
from pkgsolver.core.version import SemanticVersion, VersionRange
from pkgsolver.utils.yaml_io import load_yaml, save_yaml

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PackageReference:
    """清单中的一条引用"""

    id: str
    version: SemanticVersion
    target_platform: TargetPlatform | None = None
    allowed_versions: VersionRange | None = None

    def matches(self, package_id: str, version: SemanticVersion | None = None) -> bool:
        if self.id.lower() != package_id.lower():
            return False
        return version is None or self.version == version

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "version": str(self.version)}
        if self.target_platform is not None:
            data["target_platform"] = str(self.target_platform)
        if self.allowed_versions is not None:
            data["allowed_versions"] = str(self.allowed_versions)
        return data


class PackageReferenceFile:
    """引用清单文件的读写"""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    @property
    def name(self) -> str:
        return self.path.name

    def exists(self) -> bool:
        return self.path.exists()

    def get_entries(self) -> list[PackageReference]:
        """读取全部引用；格式错误的记录跳过并告警"""
        data = load_yaml(self.path, tolerant=True)
        entries: list[PackageReference] = []
        for raw in data.get("packages") or []:
            try:
                entries.append(self._parse_entry(raw))
            except ValidationError as e:
                logger.warning("引用清单 %s 中存在无效记录 %r: %s", self.path, raw, e)
        return entries

    @staticmethod
    def _parse_entry(raw: Any) -> PackageReference:
        if not isinstance(raw, dict) or not raw.get("id") or not raw.get("version"):
            raise ValidationError("reference entry requires 'id' and 'version'")
        allowed = raw.get("allowed_versions")
        return PackageReference(
            id=str(raw["id"]).strip(),
            version=SemanticVersion.parse(str(raw["version"])),
            target_platform=TargetPlatform.parse(raw.get("target_platform") or None),
            allowed_versions=VersionRange.parse(str(allowed)) if allowed else None,
        )

    def _save(self, entries: list[PackageReference]) -> None:
        ordered = sorted(entries, key=lambda e: (e.id.lower(), e.version))
        save_yaml(self.path, {"packages": [e.to_dict() for e in ordered]})

    def entry_exists(self, package_id: str, version: SemanticVersion) -> bool:
        return any(e.matches(package_id, version) for e in self.get_entries())

    def add_entry(
        self,
        package_id: str,
        version: SemanticVersion,
        target_platform: TargetPlatform | None = None,
        allowed_versions: VersionRange | None = None,
    ) -> None:
        entries = self.get_entries()
        if any(e.matches(package_id, version) for e in entries):
            return
        entries.append(PackageReference(package_id, version, target_platform, allowed_versions))
        self._save(entries)

    def delete_entry(self, package_id: str, version: SemanticVersion) -> bool:
        """删除一条引用

        返回:
            bool: 清单因此变空并被删除时返回 True
        """
        entries = self.get_entries()
        remaining = [e for e in entries if not e.matches(package_id, version)]
        if len(remaining) == len(entries):
            return False
        if not remaining:
            self.path.unlink(missing_ok=True)
            return True
        self._save(remaining)
        return False

    def find_entry(self, package_id: str) -> PackageReference | None:
        for entry in self.get_entries():
            if entry.matches(package_id):
                return entry
        return None

    def get_package_target_platform(self, package_id: str) -> TargetPlatform | None:
        entry = self.find_entry(package_id)
        return entry.target_platform if entry else None
