"""工程引用仓库

工程声明使用的包集合：引用清单只记录 (id, version, 平台, 允许版本)，
包元数据和内容都从共享仓库读取。

同时作为工程的约束提供者：allowed_versions 即该包的允许版本区间。
"""

from __future__ import annotations

import logging
from pathlib import Path

from pkgsolver.core.models import PackageMetadata
from pkgsolver.core.platform import TargetPlatform
from pkgsolver.core.repository.base import PackageRepository
from pkgsolver.core.repository.reference_file import PackageReferenceFile
from pkgsolver.core.repository.shared import SharedPackageRepository
from pkgsolver.core.version import SemanticVersion, VersionRange

logger = logging.getLogger(__name__)


class PackageReferenceRepository(PackageRepository):
    """单个工程的包引用集合"""

    def __init__(self, reference_file: str | Path, shared: SharedPackageRepository) -> None:
        self.reference_file = PackageReferenceFile(reference_file)
        self.shared = shared
        self.source = str(self.reference_file.path)
        # 同一会话内更新同一包时保留 allowed_versions
        self._carried_constraints: dict[str, VersionRange] = {}

    def get_packages(self) -> list[PackageMetadata]:
        packages = []
        for entry in self.reference_file.get_entries():
            package = self.shared.find_package(entry.id, entry.version)
            if package is None:
                logger.debug("引用 %s %s 在共享仓库中不存在", entry.id, entry.version)
                continue
            packages.append(package)
        return packages

    def find_packages_by_id(self, package_id: str) -> list[PackageMetadata]:
        packages = []
        for entry in self.reference_file.get_entries():
            if entry.matches(package_id):
                package = self.shared.find_package(entry.id, entry.version)
                if package is not None:
                    packages.append(package)
        return packages

    def exists(self, package_id: str, version: SemanticVersion | str | None = None) -> bool:
        if version is None:
            return self.reference_file.find_entry(package_id) is not None
        return self.reference_file.entry_exists(package_id, SemanticVersion.parse(version))

    def add_package(
        self, package: PackageMetadata, target_platform: TargetPlatform | None = None,
    ) -> None:
        allowed = self._carried_constraints.pop(package.id.lower(), None)
        self.reference_file.add_entry(package.id, package.version, target_platform, allowed)
        # 每次添加都确保已在共享仓库注册，已注册时为空操作
        self.shared.register_repository(self.reference_file.path)

    def remove_package(self, package: PackageMetadata) -> None:
        entry = self.reference_file.find_entry(package.id)
        if entry is not None and entry.version == package.version and entry.allowed_versions:
            self._carried_constraints[package.id.lower()] = entry.allowed_versions
        if self.reference_file.delete_entry(package.id, package.version):
            self.shared.unregister_repository(self.reference_file.path)

    def register_if_necessary(self) -> None:
        if self.reference_file.get_entries():
            self.shared.register_repository(self.reference_file.path)

    def get_package_target_platform(self, package_id: str) -> TargetPlatform | None:
        return self.reference_file.get_package_target_platform(package_id)

    # ---- 约束提供者 ----

    @property
    def name(self) -> str:
        return self.reference_file.name

    def get_constraint(self, package_id: str) -> VersionRange | None:
        entry = self.reference_file.find_entry(package_id)
        if entry is not None and entry.allowed_versions is not None:
            return entry.allowed_versions
        return self._carried_constraints.get(package_id.lower())
