"""CLI — 公式查询"""

from __future__ import annotations

import click

from tapkit.cli import _exit_on_error, _svc


def register(group: click.Group) -> None:
    group.add_command(list_formulae)
    group.add_command(info)


@click.command(name="list")
@_exit_on_error
def list_formulae() -> None:
    """列出全部公式及本地安装状态"""
    rows = _svc().installs.list_formulae()
    if not rows:
        click.echo("没有可用的公式。")
        return
    for r in rows:
        marker = f" (已安装 {r['installed']})" if r["installed"] else ""
        click.echo(f"  {r['name']:16s} {r['version']:10s} {r['description']}{marker}")


@click.command()
@click.argument("name")
@_exit_on_error
def info(name: str) -> None:
    """显示公式详情"""
    d = _svc().installs.info(name)
    click.echo(f"{d['name']}: {d['version']}")
    if d["description"]:
        click.echo(d["description"])
    if d["homepage"]:
        click.echo(d["homepage"])
    click.echo(f"License: {d['license'] or '-'}")
    click.echo(f"来源: {d['url']}")
    click.echo(f"sha256: {d['sha256']}")
    if d["head"]:
        click.echo(f"HEAD: {d['head']}")
    click.echo(f"依赖: {', '.join(d['dependencies']) or '无'}")
    click.echo("安装动作:")
    for line in d["install"]:
        click.echo(f"  {line}")
    if d["test"]:
        click.echo(f"冒烟测试: {d['test']}")
    status = f"已安装 {d['installed_version']}" if d["installed_version"] else "未安装"
    click.echo(f"状态: {status}")
    if d["caveats"]:
        click.echo("==> Caveats")
        click.echo(d["caveats"].rstrip())
