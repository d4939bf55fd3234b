"""文件安装器

职责:
- 按公式的 install 动作把解包目录中的文件拷贝到安装前缀
- 单文件原子落盘：同目录临时文件写完、设好权限后 os.replace
- 安装回执：记录本包安装的全部文件，用于重装时清理孤儿文件和卸载
- 冒烟测试与依赖探测（均为告警级，不抛异常）

目录约定（前缀相对）:
    bin/                          可执行文件，自动加可执行位
    lib/<name>/                   包私有支持脚本
    etc/bash_completion.d/        bash 补全
    share/zsh/site-functions/     zsh 补全
    var/tapkit/receipts/          安装回执
"""

from __future__ import annotations

import contextlib
import logging
import os
import shlex
import shutil
import stat
import subprocess
import tempfile
from pathlib import Path

from tapkit.core.cancel import CancellationToken
from tapkit.core.exceptions import (
    FormulaNotInstalledError,
    MissingDependencyError,
    MissingSourceFileError,
    WriteError,
)
from tapkit.core.formula.models import InstallAction, InstallResult, PackageDescriptor
from tapkit.utils.shell import CommandExecutor, get_executor
from tapkit.utils.yaml_io import load_yaml, save_yaml

logger = logging.getLogger(__name__)

RECEIPT_DIR = Path("var") / "tapkit" / "receipts"

_EXEC_BITS = stat.S_IRWXU | stat.S_IRGRP | stat.S_IXGRP | stat.S_IROTH | stat.S_IXOTH
_READ_BITS = stat.S_IRUSR | stat.S_IWUSR | stat.S_IRGRP | stat.S_IROTH


class Installer:
    """把已解包的源码树安装到前缀目录"""

    def __init__(
        self,
        prefix: Path,
        *,
        executor: CommandExecutor | None = None,
        test_timeout: int = 30,
    ) -> None:
        # 回执记录绝对路径，冒烟测试的 cwd 也是前缀，二者都要求前缀为绝对路径
        self.prefix = Path(os.path.abspath(Path(prefix).expanduser()))
        self.executor = executor or get_executor()
        self.test_timeout = test_timeout

    @property
    def bin_dir(self) -> Path:
        return self.prefix / "bin"

    # ------------------------------------------------------------------
    # 安装
    # ------------------------------------------------------------------

    def plan(self, tree: Path, desc: PackageDescriptor) -> list[tuple[Path, Path]]:
        """解析全部动作为 (源文件, 目标路径)，任何一条源文件缺失都在写盘前失败"""
        steps: dict[Path, Path] = {}
        for action in desc.install_actions:
            src = tree / action.source
            if not src.is_file():
                raise MissingSourceFileError(
                    f"{desc.name}: 归档中缺少 {action.source}", source=action.source,
                )
            target = action.target(self.prefix)
            # 同一目标被多次声明时以最后一条为准
            steps.pop(target, None)
            steps[target] = src
        return [(src, target) for target, src in steps.items()]

    def install(
        self,
        tree: Path,
        desc: PackageDescriptor,
        token: CancellationToken | None = None,
    ) -> InstallResult:
        """执行全部安装动作并写入回执

        Raises:
            MissingSourceFileError: 声明的源文件不在归档中（此时未写任何文件）
            WriteError: 目标目录或文件无法写入
            InstallCancelledError: 两次拷贝之间收到取消请求
        """
        steps = self.plan(tree, desc)
        previous = self._receipt_files(desc.name)
        installed: list[str] = []

        try:
            for src, target in steps:
                if token is not None:
                    token.raise_if_cancelled(f"拷贝 {target.name}")
                self._copy_atomic(src, target)
                installed.append(str(target))
                logger.info("  已安装: %s", target)
        except BaseException:
            # 中途失败时回执记录新旧文件并集，保证卸载能找到所有落盘文件
            if installed:
                merged = installed + [f for f in previous if f not in installed]
                self._try_write_receipt(desc, merged)
            raise

        orphans = [f for f in previous if f not in installed]
        # 先落回执再删孤儿：删除失败时新文件已有记录，未删掉的孤儿也仍在回执里
        if orphans:
            self._write_receipt(desc, installed + orphans)
        removed = self._remove_files(orphans)
        self._write_receipt(desc, installed)

        return InstallResult(
            name=desc.name,
            version=desc.resolved_version,
            prefix=str(self.prefix),
            installed_files=installed,
            removed_files=removed,
        )

    def _copy_atomic(self, src: Path, target: Path) -> None:
        """拷贝单个文件：临时文件 -> chmod -> rename，目标处不会出现截断文件"""
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(
                dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp",
            )
        except OSError as e:
            raise WriteError(f"无法创建目标目录 {target.parent}: {e}") from e

        try:
            with os.fdopen(fd, "wb") as out, open(src, "rb") as inp:
                shutil.copyfileobj(inp, out)
                out.flush()
                os.fsync(out.fileno())
            mode = stat.S_IMODE(src.stat().st_mode)
            if InstallAction.is_executable_location(target):
                mode |= _EXEC_BITS
            else:
                mode |= _READ_BITS
            os.chmod(tmp, mode)
            os.replace(tmp, str(target))
        except OSError as e:
            with contextlib.suppress(OSError):
                os.unlink(tmp)
            raise WriteError(f"写入失败 {target}: {e}") from e
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp)
            raise

    def _remove_files(self, files: list[str]) -> list[str]:
        removed: list[str] = []
        for f in files:
            path = Path(f)
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                raise WriteError(f"无法删除 {path}: {e}") from e
            removed.append(f)
            logger.info("  已删除: %s", path)
            self._prune_empty_dirs(path.parent)
        return removed

    def _prune_empty_dirs(self, directory: Path) -> None:
        """向上删除空目录，止于前缀下的第一层（bin/、lib/ 等保留）"""
        prefix = self.prefix.resolve()
        current = directory
        while True:
            try:
                resolved = current.resolve()
            except OSError:
                return
            if resolved == prefix or resolved.parent == prefix or prefix not in resolved.parents:
                return
            try:
                current.rmdir()
            except OSError:
                return
            current = current.parent

    # ------------------------------------------------------------------
    # 回执
    # ------------------------------------------------------------------

    def receipt_path(self, name: str) -> Path:
        return self.prefix / RECEIPT_DIR / f"{name}.yml"

    def read_receipt(self, name: str) -> dict | None:
        path = self.receipt_path(name)
        if not path.is_file():
            return None
        return load_yaml(path)

    def is_installed(self, name: str) -> bool:
        return self.receipt_path(name).is_file()

    def _receipt_files(self, name: str) -> list[str]:
        receipt = self.read_receipt(name) or {}
        return [str(f) for f in receipt.get("files") or []]

    def _write_receipt(self, desc: PackageDescriptor, files: list[str]) -> None:
        data = {
            "name": desc.name,
            "version": desc.resolved_version,
            "source_url": desc.source_url,
            "sha256": desc.checksum,
            "files": files,
        }
        try:
            save_yaml(self.receipt_path(desc.name), data)
        except OSError as e:
            raise WriteError(f"无法写入安装回执: {e}") from e

    def _try_write_receipt(self, desc: PackageDescriptor, files: list[str]) -> None:
        try:
            self._write_receipt(desc, files)
        except WriteError as e:
            logger.error("%s", e)

    # ------------------------------------------------------------------
    # 卸载
    # ------------------------------------------------------------------

    def uninstall(self, name: str) -> list[str]:
        """删除回执中列出的全部文件及回执本身

        Raises:
            FormulaNotInstalledError: 没有安装回执
        """
        if not self.is_installed(name):
            raise FormulaNotInstalledError(f"{name} 未安装 (前缀: {self.prefix})")
        removed = self._remove_files(self._receipt_files(name))
        self.receipt_path(name).unlink()
        logger.info("已卸载 %s，删除 %d 个文件", name, len(removed))
        return removed

    # ------------------------------------------------------------------
    # 安装后检查
    # ------------------------------------------------------------------

    def render_test_command(self, desc: PackageDescriptor) -> str:
        """替换路径占位符；路径经 shlex.quote，前缀含空格时仍是单个参数"""
        return (
            desc.test_command
            .replace("{bin}", shlex.quote(str(self.bin_dir)))
            .replace("{lib}", shlex.quote(str(self.prefix / "lib")))
            .replace("{prefix}", shlex.quote(str(self.prefix)))
        )

    def verify_install(self, desc: PackageDescriptor) -> bool:
        """冒烟测试：运行 test 命令，输出包含包名即通过

        不匹配、命令不存在、超时都只返回 False 并记录告警。
        """
        if not desc.test_command:
            logger.info("%s 未定义冒烟测试，跳过", desc.name)
            return True

        cmd = self.render_test_command(desc)
        try:
            result = self.executor.execute(
                cmd, cwd=str(self.prefix), timeout=self.test_timeout,
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            logger.warning("冒烟测试无法执行 %s: %s", cmd, e)
            return False

        if desc.name in result.output:
            logger.info("冒烟测试通过: %s", cmd)
            return True
        logger.warning(
            "冒烟测试输出不含 '%s' (rc=%d): %s", desc.name, result.returncode, cmd,
        )
        return False

    def check_dependencies(self, desc: PackageDescriptor) -> list[MissingDependencyError]:
        """在 PATH（及前缀 bin/）中查找依赖，返回缺失项告警，不抛出"""
        search_path = os.pathsep.join(
            p for p in (str(self.bin_dir), os.environ.get("PATH", "")) if p
        )
        missing: list[MissingDependencyError] = []
        for dep in sorted(desc.dependencies):
            if shutil.which(dep, path=search_path) is None:
                logger.warning("%s 依赖 %s 未在 PATH 中找到", desc.name, dep)
                missing.append(MissingDependencyError(
                    f"依赖 {dep} 未安装（{desc.name} 运行时需要）", dependency=dep,
                ))
        return missing
