"""内存仓库：测试夹具和 YAML 源目录的底层存储"""

from __future__ import annotations

from collections.abc import Iterable

from pkgsolver.core.models import PackageMetadata
from pkgsolver.core.repository.base import PackageRepository


class InMemoryRepository(PackageRepository):
    """按 id 索引的内存包集合（同一标识只保留一份）"""

    def __init__(
        self, packages: Iterable[PackageMetadata] = (), source: str = "memory",
    ) -> None:
        self.source = source
        self._packages: dict[str, list[PackageMetadata]] = {}
        for package in packages:
            self.add_package(package)

    def get_packages(self) -> list[PackageMetadata]:
        return [p for group in self._packages.values() for p in group]

    def find_packages_by_id(self, package_id: str) -> list[PackageMetadata]:
        return list(self._packages.get(package_id.lower(), []))

    def add_package(self, package: PackageMetadata) -> None:
        group = self._packages.setdefault(package.id.lower(), [])
        if package not in group:
            group.append(package)

    def remove_package(self, package: PackageMetadata) -> None:
        group = self._packages.get(package.id.lower(), [])
        if package in group:
            group.remove(package)
        if not group:
            self._packages.pop(package.id.lower(), None)
