"""包操作事件

观察者列表由编排层显式持有，每次操作传入一个 PackageOperationEvent；
处理器可把 event.cancel 置为 True 以取消尚未开始的安装 / 移除。
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from pkgsolver.core.models import PackageMetadata

logger = logging.getLogger(__name__)

# 工程级
REFERENCE_ADDING = "reference_adding"
REFERENCE_ADDED = "reference_added"
REFERENCE_REMOVING = "reference_removing"
REFERENCE_REMOVED = "reference_removed"
PROJECT_EVENTS = (REFERENCE_ADDING, REFERENCE_ADDED, REFERENCE_REMOVING, REFERENCE_REMOVED)

# 共享仓库级
INSTALLING = "installing"
INSTALLED = "installed"
UNINSTALLING = "uninstalling"
UNINSTALLED = "uninstalled"
REPOSITORY_EVENTS = (INSTALLING, INSTALLED, UNINSTALLING, UNINSTALLED)


@dataclass
class PackageOperationEvent:
    """单次操作的事件对象"""

    package: PackageMetadata
    install_path: Path | None = None
    project: str = ""
    cancel: bool = False


Handler = Callable[[PackageOperationEvent], None]


class PackageEvents:
    """按事件名分组的处理器列表"""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> None:
        self._handlers.setdefault(name, []).append(handler)

    def unsubscribe(self, name: str, handler: Handler) -> None:
        handlers = self._handlers.get(name, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, name: str, event: PackageOperationEvent) -> PackageOperationEvent:
        for handler in list(self._handlers.get(name, [])):
            handler(event)
        return event

    def forward(self, names: tuple[str, ...], target: PackageEvents) -> None:
        """把本对象上的事件转发给另一个观察者列表"""
        for name in names:
            self.subscribe(name, lambda event, _name=name: target.emit(_name, event))

    @contextmanager
    def subscribed(self, name: str, handler: Handler) -> Iterator[None]:
        self.subscribe(name, handler)
        try:
            yield
        finally:
            self.unsubscribe(name, handler)


class NullOperationListener:
    """批量动作监听器的空实现"""

    def on_before(self, project: str) -> None:
        pass

    def on_error(self, project: str, error: Exception) -> None:
        pass

    def on_after(self, project: str) -> None:
        pass
