"""YAML 源目录

源目录文件格式:
    packages:
      - id: Foo
        version: "1.0"
        dependencies:
          - {id: Bar, version: "[1.0, 2.0)"}
        files: [lib/net40/Foo.dll, content/readme.txt]
      - id: Foo.fr-FR
        version: "1.0"
        language: fr-FR
        dependencies: ["Foo [1.0]"]

单条记录格式错误时跳过并告警，不影响其他包。
"""

from __future__ import annotations

import logging
from pathlib import Path

from pkgsolver.core.exceptions import ValidationError
from pkgsolver.core.models import PackageMetadata
from pkgsolver.core.repository.memory import InMemoryRepository
from pkgsolver.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)


class FeedRepository(InMemoryRepository):
    """从 YAML 目录文件加载的只读包源"""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        super().__init__(source=str(self.path))
        self.reload()

    def reload(self) -> None:
        self._packages.clear()
        data = load_yaml(self.path)
        entries = data.get("packages") or []
        loaded = 0
        for entry in entries:
            try:
                package = PackageMetadata.from_dict(entry)
            except ValidationError as e:
                logger.warning("跳过无效的包记录 (%s): %s %s", self.path, e, e.details)
                continue
            super().add_package(package)
            loaded += 1
        logger.debug("包源已加载: %s (%d 个包)", self.path, loaded)

    def add_package(self, package: PackageMetadata) -> None:
        raise NotImplementedError("FeedRepository 是只读仓库")

    def remove_package(self, package: PackageMetadata) -> None:
        raise NotImplementedError("FeedRepository 是只读仓库")
