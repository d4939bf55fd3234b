"""集中配置管理

优先级（高 → 低）: CLI 选项 > 环境变量 > YAML 配置文件 > 字段默认值。
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path

import yaml

from tapkit.core.exceptions import ConfigError
from tapkit.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "configs/default.yml"

# 环境变量 -> 字段名
_ENV_OVERRIDES = {
    "TAPKIT_PREFIX": "prefix",
    "TAPKIT_CACHE_DIR": "cache_dir",
    "TAPKIT_FORMULA_DIR": "formula_dir",
}


@dataclass
class Config:
    """安装器全局配置"""

    # 目录
    formula_dir: str = "Formula"
    prefix: str = "~/.local"
    cache_dir: str = "~/.cache/tapkit"

    # 下载
    download_timeout: int = 60
    download_retries: int = 2

    # 冒烟测试
    test_timeout: int = 30

    # 放不进字段的配置项
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str = DEFAULT_CONFIG_PATH) -> Config:
        """从 YAML 文件加载配置，文件不存在则使用默认值，再叠加环境变量"""
        try:
            data = load_yaml(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"读取配置失败: {path}: {e}") from e

        known = {f.name for f in fields(cls)} - {"extra"}
        matched = {k: v for k, v in data.items() if k in known}
        cfg = cls(**matched)
        cfg.extra = {k: v for k, v in data.items() if k not in known}
        cfg.apply_env()
        cfg.validate()
        return cfg

    def apply_env(self) -> None:
        for env_name, attr in _ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value:
                setattr(self, attr, value)

    def validate(self) -> None:
        for name in ("download_timeout", "download_retries", "test_timeout"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{name} 必须为整数: {value!r}")
        for name in ("formula_dir", "prefix", "cache_dir"):
            if not isinstance(getattr(self, name), str):
                raise ConfigError(f"{name} 必须为字符串: {getattr(self, name)!r}")
        if self.download_retries < 0:
            raise ConfigError(f"download_retries 不能为负数: {self.download_retries}")
        if self.download_timeout <= 0 or self.test_timeout <= 0:
            raise ConfigError("download_timeout / test_timeout 必须为正数")

    @property
    def prefix_path(self) -> Path:
        """绝对路径；相对前缀按当前工作目录展开"""
        return Path(os.path.abspath(Path(self.prefix).expanduser()))

    @property
    def cache_path(self) -> Path:
        return Path(self.cache_dir).expanduser()

    @property
    def formula_path(self) -> Path:
        return Path(self.formula_dir).expanduser()

    def to_dict(self) -> dict:
        return asdict(self)


# 全局单例；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = DEFAULT_CONFIG_PATH) -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.debug("配置已加载: %s", path)
    return _current
