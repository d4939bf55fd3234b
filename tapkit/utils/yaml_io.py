"""YAML 读写与原子写入

公式文件、配置文件、安装回执都经由这里读写：
统一 utf-8、空文件保护、父目录自动创建、临时文件 + rename 原子替换。
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# 公式/配置文件都很小，超过 1MB 基本可以认定是误指向
MAX_YAML_SIZE = 1024 * 1024


def atomic_write(path: Path, content: str | bytes) -> None:
    """原子写入：同目录临时文件写完后 os.replace 到目标路径

    失败时清理临时文件并重新抛出原异常，目标文件要么是旧内容要么是新内容。
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=".", suffix=".tmp")
    try:
        if isinstance(content, bytes):
            with os.fdopen(fd, "wb") as f:
                f.write(content)
        else:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
        os.replace(tmp, str(path))
    except Exception:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


def load_yaml(path: str | Path) -> dict[str, Any]:
    """读取 YAML 映射文件

    文件不存在、为空或顶层不是映射时返回空字典。

    异常:
        ValueError: 文件超过 MAX_YAML_SIZE
        yaml.YAMLError: YAML 语法错误
        OSError: 读取失败
    """
    p = Path(path)
    if not p.exists():
        return {}

    size = p.stat().st_size
    if size > MAX_YAML_SIZE:
        raise ValueError(f"YAML 文件过大: {p} ({size} 字节)，上限 {MAX_YAML_SIZE}")

    try:
        with open(p, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error("解析 YAML 失败: %s: %s", p, e)
        raise

    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("%s 顶层不是映射 (%s)，按空处理", p, type(data).__name__)
        return {}
    return data


def save_yaml(path: str | Path, data: Any) -> None:
    """原子写入 YAML 文件，保持键顺序"""
    content = yaml.safe_dump(
        data, default_flow_style=False,
        allow_unicode=True, sort_keys=False,
    )
    try:
        atomic_write(Path(path), content)
    except OSError as e:
        logger.error("写入 YAML 失败: %s: %s", path, e)
        raise
