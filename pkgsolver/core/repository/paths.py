"""共享包目录布局：<root>/<id>.<version>/<id>.<version>.yml"""

from __future__ import annotations

from pathlib import Path

from pkgsolver.core.models import PackageMetadata

MANIFEST_SUFFIX = ".yml"


class PackagePathResolver:
    """计算包在共享目录中的安装路径"""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def get_package_directory(self, package_id: str, version: object) -> str:
        return f"{package_id}.{version}"

    def get_install_path(self, package: PackageMetadata) -> Path:
        return self.root / self.get_package_directory(package.id, package.version)

    def get_manifest_path(self, package: PackageMetadata) -> Path:
        directory = self.get_package_directory(package.id, package.version)
        return self.root / directory / f"{directory}{MANIFEST_SUFFIX}"
