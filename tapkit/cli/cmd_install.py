"""CLI — 安装 / 卸载 / 预下载"""

from __future__ import annotations

import logging
import signal
from collections.abc import Iterator
from contextlib import contextmanager

import click

from tapkit.cli import _exit_on_error, _svc
from tapkit.core.cancel import CancellationToken
from tapkit.core.formula.models import InstallResult

logger = logging.getLogger(__name__)


def register(group: click.Group) -> None:
    group.add_command(install)
    group.add_command(uninstall)
    group.add_command(fetch)


@contextmanager
def _cancel_on_signal(token: CancellationToken) -> Iterator[None]:
    """安装期间 SIGINT/SIGTERM 只置取消标志，当前文件拷贝完成后再中止"""
    previous = {}
    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            previous[sig] = signal.signal(sig, lambda signum, frame: token.cancel())
    except ValueError:
        # 非主线程无法注册信号处理器
        logger.debug("非主线程，跳过信号处理器注册")
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def _echo_result(result: InstallResult, caveats: str) -> None:
    click.echo(f"==> {result.name} {result.version} -> {result.prefix} [{result.status}]")
    for f in result.installed_files:
        click.echo(f"  {f}")
    for f in result.removed_files:
        click.echo(f"  (已清理) {f}")
    if result.warnings:
        click.echo("告警:")
        for w in result.warnings:
            click.echo(f"  - {w}")
    if caveats:
        click.echo("==> Caveats")
        click.echo(caveats.rstrip())


@click.command()
@click.argument("name")
@_exit_on_error
def install(name: str) -> None:
    """下载、校验并安装公式"""
    svc = _svc().installs
    token = CancellationToken()
    with _cancel_on_signal(token):
        result = svc.install(name, token=token)
    _echo_result(result, svc.registry.get(name).caveats)
    if result.exit_code:
        raise SystemExit(result.exit_code)


@click.command()
@click.argument("name")
@_exit_on_error
def uninstall(name: str) -> None:
    """按安装回执删除已安装文件"""
    removed = _svc().installs.uninstall(name)
    click.echo(f"已卸载 {name}（删除 {len(removed)} 个文件）")
    for f in removed:
        click.echo(f"  {f}")


@click.command()
@click.argument("name")
@_exit_on_error
def fetch(name: str) -> None:
    """只下载并校验归档（写入缓存），不安装"""
    path, size = _svc().installs.fetch_only(name)
    where = f" -> {path}" if path else ""
    click.echo(f"已校验: {name} ({size} 字节){where}")
