"""tapkit 命令行接口

子命令按领域拆分到 cmd_*.py，各自注册到 main group。
业务异常在这里统一转换为提示信息和退出码。
"""

from __future__ import annotations

import functools
import os
from collections.abc import Callable
from typing import Any, TypeVar

import click

from tapkit import __version__
from tapkit.core.config import DEFAULT_CONFIG_PATH, init_config
from tapkit.core.exceptions import TapkitError, ValidationError
from tapkit.services.container import ServiceContainer, get_container, set_container
from tapkit.utils.logger import setup_logging

F = TypeVar("F", bound=Callable[..., Any])


def _svc() -> ServiceContainer:
    """获取全局服务容器的快捷方式"""
    return get_container()


def _exit_on_error(func: F) -> F:
    """把 TapkitError 转成 stderr 提示和对应退出码"""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except TapkitError as e:
            click.echo(f"错误 [{e.code}]: {e}", err=True)
            if isinstance(e, ValidationError):
                for detail in e.details:
                    click.echo(f"  - {detail}", err=True)
            raise SystemExit(e.exit_code) from e

    return wrapper  # type: ignore[return-value]


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", default=DEFAULT_CONFIG_PATH, help="配置文件路径")
@click.option("--prefix", default=None, help="安装前缀（覆盖配置）")
@click.option("--formula-dir", default=None, help="公式目录或清单文件（覆盖配置）")
@click.option("--cache-dir", default=None, help="下载缓存目录（覆盖配置）")
@_exit_on_error
def main(
    config: str, prefix: str | None,
    formula_dir: str | None, cache_dir: str | None,
) -> None:
    """tapkit - 按公式安装 shell 脚本工具"""
    setup_logging(
        level=os.getenv("TAPKIT_LOG_LEVEL", "INFO"),
        json_output=os.getenv("TAPKIT_LOG_JSON", "") == "1",
    )
    cfg = init_config(config)
    if prefix:
        cfg.prefix = prefix
    if formula_dir:
        cfg.formula_dir = formula_dir
    if cache_dir:
        cfg.cache_dir = cache_dir
    set_container(ServiceContainer(config=cfg))


# 注册各领域子命令
from tapkit.cli.cmd_formula import register as _reg_formula  # noqa: E402
from tapkit.cli.cmd_install import register as _reg_install  # noqa: E402

_reg_install(main)
_reg_formula(main)
