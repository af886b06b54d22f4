"""YAML 文件统一读写工具

集中管理 YAML 存储文件（源目录、本地仓库清单、引用清单、配置）的读写。
统一 encoding="utf-8"、空值保护、目录自动创建、原子写入。

引用计数存储文件要求"损坏即视为空"，由 load_yaml(..., tolerant=True) 提供。
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# YAML 文件最大大小限制 (10MB)
MAX_YAML_SIZE = 10 * 1024 * 1024


def atomic_write(path: Path, content: str) -> None:
    """原子写入文件：先写同目录临时文件再 os.replace

    异常:
        OSError: 文件写入或移动失败
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp, str(path))
    except Exception:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


def load_yaml(path: str | Path, *, tolerant: bool = False) -> dict[str, Any]:
    """读取 YAML 映射文件

    参数:
        path: 文件路径
        tolerant: 为 True 时把语法错误当作空文件处理（记录告警），
                  用于允许损坏后自愈的存储文件

    返回:
        dict: 文件不存在、为空、或顶层不是映射时返回空字典

    异常:
        yaml.YAMLError: 语法错误（tolerant=False 时）
        ValueError: 文件超过 MAX_YAML_SIZE
    """
    p = Path(path)
    if not p.exists():
        return {}

    file_size = p.stat().st_size
    if file_size > MAX_YAML_SIZE:
        raise ValueError(
            f"YAML 文件过大: {p} ({file_size} 字节), 超过限制 {MAX_YAML_SIZE} 字节"
        )

    try:
        with open(p, encoding="utf-8") as f:
            result = yaml.safe_load(f)
    except yaml.YAMLError as e:
        if tolerant:
            logger.warning("YAML 文件已损坏，按空内容处理: %s (%s)", p, e)
            return {}
        logger.error("解析 YAML 文件失败: %s, 错误: %s", p, e)
        raise

    if result is None:
        return {}
    if not isinstance(result, dict):
        logger.warning(
            "%s 内容不是映射类型 (实际类型: %s)，按空内容处理",
            p, type(result).__name__,
        )
        return {}
    return result


def save_yaml(path: str | Path, data: Any) -> None:
    """原子写入 YAML 文件（保持键顺序，允许 Unicode）"""
    p = Path(path)
    try:
        content = yaml.safe_dump(
            data, default_flow_style=False,
            allow_unicode=True, sort_keys=False,
        )
    except yaml.YAMLError as e:
        logger.error("序列化 YAML 数据失败: %s, 错误: %s", p, e)
        raise
    atomic_write(p, content)
