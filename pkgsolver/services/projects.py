"""解决方案工程索引

solution.yml 声明解决方案中的工程:

    projects:
      - name: Web
        path: src/Web            # 相对 solution.yml 所在目录
        target_platform: net45

加载后按名称和路径建立索引，编排层只通过这里查找工程描述。
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

from pkgsolver.core.exceptions import ConfigError, ProjectNotFoundError
from pkgsolver.core.platform import TargetPlatform
from pkgsolver.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectDescriptor:
    name: str
    path: Path
    target_platform: TargetPlatform | None = None


class SolutionProjects:
    """工程描述集合（保持声明顺序）"""

    def __init__(self, root: str | Path, projects: Iterable[ProjectDescriptor] = ()) -> None:
        self.root = Path(root)
        self._by_name: dict[str, ProjectDescriptor] = {}
        self._by_path: dict[Path, ProjectDescriptor] = {}
        for project in projects:
            self.add(project)

    @classmethod
    def from_file(cls, path: str | Path) -> SolutionProjects:
        """从 solution.yml 加载；文件不存在时返回空解决方案"""
        path = Path(path)
        root = path.parent
        data = load_yaml(path)
        projects = []
        for raw in data.get("projects") or []:
            if not isinstance(raw, dict) or not raw.get("name"):
                raise ConfigError(f"{path}: 工程条目缺少 name: {raw!r}")
            name = str(raw["name"])
            projects.append(ProjectDescriptor(
                name=name,
                path=(root / str(raw.get("path") or name)).resolve(),
                target_platform=TargetPlatform.parse(raw.get("target_platform")),
            ))
        solution = cls(root, projects)
        logger.debug("已加载解决方案 %s: %d 个工程", path, len(solution))
        return solution

    def add(self, project: ProjectDescriptor) -> None:
        key = project.name.lower()
        if key in self._by_name:
            raise ConfigError(f"工程名称重复: {project.name}")
        self._by_name[key] = project
        self._by_path[Path(project.path).resolve()] = project

    def find(self, name_or_path: str | Path) -> ProjectDescriptor | None:
        project = self._by_name.get(str(name_or_path).lower())
        if project is not None:
            return project
        return self._by_path.get((self.root / name_or_path).resolve())

    def get(self, name_or_path: str | Path) -> ProjectDescriptor:
        project = self.find(name_or_path)
        if project is None:
            raise ProjectNotFoundError(f"Project '{name_or_path}' is not found in the solution.")
        return project

    def names(self) -> list[str]:
        return [p.name for p in self]

    def __iter__(self) -> Iterator[ProjectDescriptor]:
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)
