"""磁盘上的工程

工程目录下落地内容文件；程序集引用、框架引用和构建导入记录在工程状态文件
<name>.project.yml 中:

    references:
      - packages/Foo.1.0/lib/net40/Foo.dll
    framework_references:
      - System.Web
    imports:
      - path: packages/Foo.1.0/build/Foo.targets
        location: bottom
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from typing import Any

from pkgsolver.core.platform import TargetPlatform
from pkgsolver.utils.yaml_io import atomic_write, load_yaml, save_yaml

logger = logging.getLogger(__name__)

PROJECT_STATE_SUFFIX = ".project.yml"


class PhysicalProjectSystem:
    """以目录表示的工程"""

    def __init__(
        self, root: str | Path, name: str, target_platform: TargetPlatform | None = None,
    ) -> None:
        self.root = Path(root)
        self.name = name
        self.target_platform = target_platform
        self.state_path = self.root / f"{name}{PROJECT_STATE_SUFFIX}"

    # ---- 状态文件 ----

    def _load(self) -> dict[str, Any]:
        data = load_yaml(self.state_path, tolerant=True)
        return {
            "references": [str(r) for r in data.get("references") or []],
            "imports": [i for i in data.get("imports") or [] if isinstance(i, dict)],
            "framework_references": [str(r) for r in data.get("framework_references") or []],
        }

    def _save(self, state: dict[str, Any]) -> None:
        if not any(state.values()):
            self.state_path.unlink(missing_ok=True)
            return
        data = {"references": state["references"], "imports": state["imports"]}
        if state["framework_references"]:
            data["framework_references"] = state["framework_references"]
        save_yaml(self.state_path, data)

    # ---- 文件 ----

    def file_exists(self, path: str) -> bool:
        return (self.root / path).is_file()

    def add_file(self, path: str, content: str) -> None:
        target = self.root / path
        if target.exists():
            # 不覆盖用户已有的文件
            logger.warning("工程 '%s' 中已存在 '%s'，跳过", self.name, path)
            return
        target.parent.mkdir(parents=True, exist_ok=True)
        atomic_write(target, content)
        logger.debug("已添加文件 '%s' 到工程 '%s'", path, self.name)

    def delete_file(self, path: str) -> None:
        target = self.root / path
        if not target.is_file():
            return
        target.unlink()
        logger.debug("已从工程 '%s' 删除文件 '%s'", self.name, path)
        # 清理空目录，直到工程根目录
        parent = target.parent
        root = self.root.resolve()
        while parent.resolve() != root and parent.is_dir() and not any(parent.iterdir()):
            parent.rmdir()
            parent = parent.parent

    # ---- 引用 ----

    def get_references(self) -> list[str]:
        return self._load()["references"]

    def reference_exists(self, name: str) -> bool:
        key = name.lower()
        if any(r.lower() == key for r in self.get_framework_references()):
            return True
        # 程序集名可以带或不带扩展名
        return any(
            key in (PurePosixPath(r).name.lower(), PurePosixPath(r).stem.lower())
            for r in self.get_references()
        )

    def add_reference(self, path: str) -> None:
        state = self._load()
        name = PurePosixPath(path).name.lower()
        # 同名引用只保留最新的一条
        state["references"] = [
            r for r in state["references"] if PurePosixPath(r).name.lower() != name
        ]
        state["references"].append(path)
        self._save(state)
        logger.debug("工程 '%s' 添加引用 %s", self.name, path)

    def remove_reference(self, name: str) -> None:
        state = self._load()
        key = name.lower()
        remaining = [r for r in state["references"] if PurePosixPath(r).name.lower() != key]
        if len(remaining) == len(state["references"]):
            return
        state["references"] = remaining
        self._save(state)
        logger.debug("工程 '%s' 移除引用 %s", self.name, name)

    def get_framework_references(self) -> list[str]:
        return self._load()["framework_references"]

    def add_framework_reference(self, name: str) -> None:
        state = self._load()
        if any(r.lower() == name.lower() for r in state["framework_references"]):
            return
        state["framework_references"].append(name)
        self._save(state)
        logger.debug("工程 '%s' 添加框架引用 %s", self.name, name)

    # ---- 构建导入 ----

    def get_imports(self) -> list[dict[str, str]]:
        return self._load()["imports"]

    def add_import(self, path: str, location: str) -> None:
        state = self._load()
        if any(i.get("path") == path for i in state["imports"]):
            return
        state["imports"].append({"path": path, "location": location})
        self._save(state)

    def remove_import(self, path: str) -> None:
        state = self._load()
        remaining = [i for i in state["imports"] if i.get("path") != path]
        if len(remaining) != len(state["imports"]):
            state["imports"] = remaining
            self._save(state)
