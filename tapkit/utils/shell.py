"""冒烟测试命令执行

Installer 通过 CommandExecutor 协议运行公式的 test 命令，
测试时替换 _default_executor 即可，不需要 patch subprocess。
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        """stdout 与 stderr 合并（不少脚本把 --help 打到 stderr）"""
        return self.stdout + self.stderr


class CommandExecutor(Protocol):
    def execute(self, cmd: str, *, cwd: str = ".", timeout: int | None = None) -> CommandResult:
        ...


class LocalExecutor:
    """按 shell 词法拆分命令行后直接 exec，不经过 /bin/sh

    命令不存在抛 FileNotFoundError，超时抛 subprocess.TimeoutExpired，
    由 Installer.verify_install 统一降级为告警。
    """

    def execute(self, cmd: str, *, cwd: str = ".", timeout: int | None = None) -> CommandResult:
        args = shlex.split(cmd)
        logger.debug("执行冒烟测试: %s (cwd=%s)", args, cwd)
        r = subprocess.run(
            args, capture_output=True, text=True, cwd=cwd, check=False, timeout=timeout,
        )
        return CommandResult(returncode=r.returncode, stdout=r.stdout, stderr=r.stderr)


_default_executor: CommandExecutor = LocalExecutor()


def get_executor() -> CommandExecutor:
    return _default_executor
