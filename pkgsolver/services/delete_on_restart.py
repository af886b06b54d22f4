"""延迟删除

卸载时包目录因文件被占用等原因未能删除干净，就在目录旁放一个
<id>.<version>.deleteme 标记；下次加载解决方案时再尝试删除。
同一版本在此之前被重新安装时撤销标记。
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from pkgsolver.core.models import PackageMetadata
from pkgsolver.core.repository.paths import PackagePathResolver

logger = logging.getLogger(__name__)

DELETION_MARKER_SUFFIX = ".deleteme"


class DeleteOnRestartManager:
    """延迟删除标记的登记与清理"""

    def __init__(self, path_resolver: PackagePathResolver) -> None:
        self.path_resolver = path_resolver

    @property
    def root(self) -> Path:
        return self.path_resolver.root

    def _marker(self, directory: Path) -> Path:
        return directory.with_name(directory.name + DELETION_MARKER_SUFFIX)

    def get_marked_directories(self) -> list[Path]:
        if not self.root.is_dir():
            return []
        return sorted(
            marker.with_name(marker.name[: -len(DELETION_MARKER_SUFFIX)])
            for marker in self.root.glob(f"*{DELETION_MARKER_SUFFIX}")
        )

    def mark_package_directory_for_deletion(self, package: PackageMetadata) -> bool:
        """包目录仍存在时登记标记，返回是否登记"""
        directory = self.path_resolver.get_install_path(package)
        if not directory.exists():
            return False
        self._marker(directory).touch()
        logger.warning("'%s' 的目录未能完全删除，已登记在下次加载时清理: %s", package.full_name, directory)
        return True

    def unmark_package_directory(self, package: PackageMetadata) -> bool:
        """撤销登记（包被重新安装到同一目录），返回是否存在标记"""
        marker = self._marker(self.path_resolver.get_install_path(package))
        if not marker.exists():
            return False
        marker.unlink()
        logger.info("'%s' 已重新安装，撤销延迟删除标记", package.full_name)
        return True

    def delete_marked_package_directories(self) -> list[Path]:
        """删除所有已登记的目录，返回成功删除的目录；仍无法删除的保留标记"""
        deleted = []
        for directory in self.get_marked_directories():
            try:
                if directory.exists():
                    shutil.rmtree(directory)
            except OSError as e:
                logger.warning("延迟删除失败，保留标记: %s (%s)", directory, e)
                continue
            self._marker(directory).unlink(missing_ok=True)
            deleted.append(directory)
            logger.info("已清理延迟删除的目录: %s", directory)
        return deleted
