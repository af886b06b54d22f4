"""共享本地仓库

解决方案级的包池：所有工程共用同一份已安装包内容。

磁盘布局:
    packages/
      repositories.yml           已注册的工程引用清单路径（引用计数依据）
      packages.yml               解决方案级包（无工程内容且未被任何工程引用）
      Foo.1.0/Foo.1.0.yml        包元数据
      Foo.1.0/lib/net40/Foo.dll  包文件

repositories.yml 每次修改都完整重写（读取-合并-写入），按路径排序去重；
文件缺失或损坏时视为空。同一进程内对同一存储文件的读改写由进程级锁串行化。
"""

from __future__ import annotations

import logging
import os
import shutil
import threading
from pathlib import Path

from pkgsolver.core.exceptions import ValidationError
from pkgsolver.core.models import PackageMetadata
from pkgsolver.core.repository.base import PackageRepository
from pkgsolver.core.repository.paths import MANIFEST_SUFFIX, PackagePathResolver
from pkgsolver.core.repository.reference_file import PackageReferenceFile
from pkgsolver.core.version import SemanticVersion
from pkgsolver.utils.yaml_io import atomic_write, load_yaml, save_yaml

logger = logging.getLogger(__name__)

STORE_FILE = "repositories.yml"
SOLUTION_REFERENCE_FILE = "packages.yml"

# 存储文件路径 -> 锁
_store_locks: dict[str, threading.RLock] = {}
_store_locks_guard = threading.Lock()


def _store_lock(path: Path) -> threading.RLock:
    key = os.path.normcase(str(path.resolve()))
    with _store_locks_guard:
        if key not in _store_locks:
            _store_locks[key] = threading.RLock()
        return _store_locks[key]


class SharedPackageRepository(PackageRepository):
    """解决方案共享包仓库（拥有包内容的生命周期）"""

    def __init__(
        self, root: str | Path, path_resolver: PackagePathResolver | None = None,
    ) -> None:
        self.root = Path(root)
        self.path_resolver = path_resolver or PackagePathResolver(self.root)
        self.source = str(self.root)
        self.store_path = self.root / STORE_FILE
        self.solution_references = PackageReferenceFile(self.root / SOLUTION_REFERENCE_FILE)
        self._lock = _store_lock(self.store_path)

    # ------------------------------------------------------------------
    # 包内容
    # ------------------------------------------------------------------

    def _load_manifest(self, manifest: Path) -> PackageMetadata | None:
        try:
            return PackageMetadata.from_dict(load_yaml(manifest, tolerant=True))
        except ValidationError as e:
            logger.warning("忽略无效的包元数据 %s: %s", manifest, e)
            return None

    def _iter_manifests(self, prefix: str = ""):
        if not self.root.is_dir():
            return
        for directory in sorted(self.root.iterdir()):
            if not directory.is_dir():
                continue
            if prefix and not directory.name.lower().startswith(prefix):
                continue
            manifest = directory / f"{directory.name}{MANIFEST_SUFFIX}"
            if manifest.is_file():
                yield manifest

    def get_packages(self) -> list[PackageMetadata]:
        packages = []
        for manifest in self._iter_manifests():
            package = self._load_manifest(manifest)
            if package is not None:
                packages.append(package)
        return packages

    def find_packages_by_id(self, package_id: str) -> list[PackageMetadata]:
        key = package_id.lower()
        packages = []
        for manifest in self._iter_manifests(prefix=f"{key}."):
            package = self._load_manifest(manifest)
            if package is not None and package.id.lower() == key:
                packages.append(package)
        return packages

    def find_package(self, package_id, version=None, **kwargs) -> PackageMetadata | None:
        if version is not None:
            target = SemanticVersion.parse(version)
            # 目录名可能使用任意段数的版本写法
            for text in target.get_comparable_version_strings():
                directory = self.path_resolver.get_package_directory(package_id, text)
                manifest = self.root / directory / f"{directory}{MANIFEST_SUFFIX}"
                if manifest.is_file():
                    package = self._load_manifest(manifest)
                    if package is not None and package.version == target:
                        return package
        return super().find_package(package_id, version, **kwargs)

    def add_package(self, package: PackageMetadata) -> None:
        """写入包元数据与文件"""
        install_path = self.path_resolver.get_install_path(package)
        with self._lock:
            for item in package.files:
                atomic_write(install_path / item.path, item.content)
            save_yaml(self.path_resolver.get_manifest_path(package), package.to_dict())
        logger.debug("已写入共享仓库: %s -> %s", package.full_name, install_path)

    def remove_package(self, package: PackageMetadata) -> bool:
        """删除包目录

        先删除元数据文件，使包立即不再被视为已安装；
        目录中剩余文件删除失败（如被占用）时只记录告警，由调用方登记延迟删除。

        返回:
            bool: 目录是否被完整删除
        """
        install_path = self.path_resolver.get_install_path(package)
        removed = True
        with self._lock:
            self.path_resolver.get_manifest_path(package).unlink(missing_ok=True)
            if install_path.exists():
                try:
                    shutil.rmtree(install_path)
                except OSError as e:
                    removed = False
                    logger.warning("无法完整删除 %s，将在下次加载时清理: %s", install_path, e)
            self.solution_references.delete_entry(package.id, package.version)
            if self.root.is_dir() and not any(self.root.iterdir()):
                self.root.rmdir()
        return removed

    def read_file(self, package: PackageMetadata, path: str) -> str | None:
        target = self.path_resolver.get_install_path(package) / path
        if not target.is_file():
            return None
        return target.read_text(encoding="utf-8")

    # ------------------------------------------------------------------
    # 引用计数
    # ------------------------------------------------------------------

    def _to_entry(self, path: str | Path) -> str:
        p = Path(path).resolve()
        try:
            return p.relative_to(self.root.resolve()).as_posix()
        except ValueError:
            return os.path.relpath(p, self.root.resolve()).replace(os.sep, "/")

    def _load_store(self) -> list[str]:
        data = load_yaml(self.store_path, tolerant=True)
        entries = data.get("repositories") or []
        return [str(e) for e in entries if isinstance(e, str) and e.strip()]

    def _save_store(self, entries: list[str]) -> None:
        unique: dict[str, str] = {}
        for entry in entries:
            unique.setdefault(os.path.normcase(entry), entry)
        if not unique:
            self.store_path.unlink(missing_ok=True)
            return
        ordered = sorted(unique.values(), key=str.lower)
        save_yaml(self.store_path, {"repositories": ordered})

    def get_repository_paths(self) -> list[Path]:
        """已注册的工程引用清单路径

        跳过重复项和文件已不存在的记录，有跳过时回写存储文件。
        """
        with self._lock:
            entries = self._load_store()
            valid: list[str] = []
            seen: set[str] = set()
            for entry in entries:
                key = os.path.normcase(entry)
                if key in seen or not (self.root / entry).is_file():
                    continue
                seen.add(key)
                valid.append(entry)
            if len(valid) != len(entries):
                logger.debug("清理 %s 中的失效记录: %d -> %d", STORE_FILE, len(entries), len(valid))
                self._save_store(valid)
        return [(self.root / entry).resolve() for entry in valid]

    def register_repository(self, path: str | Path) -> None:
        entry = self._to_entry(path)
        with self._lock:
            entries = self._load_store()
            if any(os.path.normcase(e) == os.path.normcase(entry) for e in entries):
                return
            entries.append(entry)
            self._save_store(entries)
        logger.debug("已注册引用清单: %s", entry)

    def unregister_repository(self, path: str | Path) -> None:
        entry = os.path.normcase(self._to_entry(path))
        with self._lock:
            entries = self._load_store()
            remaining = [e for e in entries if os.path.normcase(e) != entry]
            if len(remaining) != len(entries):
                self._save_store(remaining)

    def is_referenced(self, package_id: str, version: SemanticVersion) -> bool:
        """是否有任一工程声明引用该包版本"""
        return any(
            PackageReferenceFile(path).entry_exists(package_id, version)
            for path in self.get_repository_paths()
        )

    # ------------------------------------------------------------------
    # 解决方案级包
    # ------------------------------------------------------------------

    def is_solution_level(self, package: PackageMetadata) -> bool:
        return not package.has_project_content and not self.is_referenced(package.id, package.version)

    def is_solution_referenced(self, package_id: str, version: SemanticVersion) -> bool:
        return self.solution_references.entry_exists(package_id, version)

    def add_package_reference_entry(self, package_id: str, version: SemanticVersion) -> None:
        with self._lock:
            self.solution_references.add_entry(package_id, version)
