"""集中配置管理

提供统一的配置入口：解决方案文件、共享包目录、引用清单文件名、
包源列表、安全更新策略、依赖版本选择策略等。
支持从 YAML 文件加载 + 编程式覆盖。
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field

from pkgsolver.core.exceptions import ConfigError
from pkgsolver.core.version import SAFE_UPDATE_POLICIES
from pkgsolver.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DEPENDENCY_VERSIONS = ("lowest", "highest_patch", "highest_minor", "highest")


@dataclass
class Config:
    """全局配置"""

    # 目录与文件
    solution_file: str = "solution.yml"
    packages_dir: str = "packages"
    reference_file: str = "packages.yml"

    # 包源（YAML 目录文件），按顺序聚合；fallback 在主源未命中时查询
    sources: list[str] = field(default_factory=lambda: ["feeds/default.yml"])
    fallback_sources: list[str] = field(default_factory=list)

    # 解析策略
    safe_update_policy: str = "minor"
    dependency_version: str = "lowest"
    allow_unlisted: bool = False

    log_level: str = "INFO"

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.safe_update_policy not in SAFE_UPDATE_POLICIES:
            raise ConfigError(
                f"safe_update_policy 取值无效: {self.safe_update_policy} "
                f"(可选: {', '.join(SAFE_UPDATE_POLICIES)})"
            )
        if self.dependency_version not in DEPENDENCY_VERSIONS:
            raise ConfigError(
                f"dependency_version 取值无效: {self.dependency_version} "
                f"(可选: {', '.join(DEPENDENCY_VERSIONS)})"
            )
        if isinstance(self.sources, str):
            self.sources = [self.sources]
        if isinstance(self.fallback_sources, str):
            self.fallback_sources = [self.fallback_sources]

    @classmethod
    def from_file(cls, path: str = "pkgsolver.yml") -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        data = load_yaml(path)
        if not data:
            return cls()
        known = {f.name for f in cls.__dataclass_fields__.values()}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        return cfg

    def to_dict(self) -> dict:
        return asdict(self)


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = "pkgsolver.yml") -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current
