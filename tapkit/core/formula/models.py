"""公式数据模型

- PackageDescriptor: 单个包的不可变描述（由公式文件构造一次）
- InstallAction: 一条 "归档内路径 -> 目标路径" 拷贝声明
- InstallResult: 一次安装的结果
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

# 目标目录名属于这些时，安装后的文件加可执行位
EXECUTABLE_DIRS = frozenset(("bin", "sbin"))

_VERSION_RE = re.compile(
    r"(?:^|[-_])v?(\d+(?:\.\d+)*)(?:\.tar\.gz|\.tgz|\.tar\.bz2|\.tar\.xz|\.tar)$"
)


def version_from_url(url: str) -> str:
    """从归档地址推断版本号

    .../refs/tags/v1.2.0.tar.gz -> 1.2.0
    .../gcx-1.2.0.tgz           -> 1.2.0
    """
    name = PurePosixPath(urlparse(url).path).name
    m = _VERSION_RE.search(name)
    return m.group(1) if m else ""


@dataclass(frozen=True)
class InstallAction:
    """一条安装动作

    source 为归档内相对路径；destination 为前缀相对路径或绝对路径，
    以 "/" 结尾表示目录，此时沿用源文件名。
    """

    source: str
    destination: str

    def target(self, prefix: Path) -> Path:
        dest = self.destination
        if dest.endswith("/"):
            dest = dest + PurePosixPath(self.source).name
        path = Path(dest)
        return path if path.is_absolute() else prefix / path

    @staticmethod
    def is_executable_location(target: Path) -> bool:
        return target.parent.name in EXECUTABLE_DIRS


@dataclass(frozen=True)
class HeadSource:
    """开发分支检出地址（仅展示）"""

    url: str
    branch: str = "main"


@dataclass(frozen=True)
class PackageDescriptor:
    """单个可安装包的静态描述"""

    name: str
    source_url: str
    checksum: str
    install_actions: tuple[InstallAction, ...]
    description: str = ""
    homepage: str = ""
    license: str = ""
    dependencies: frozenset[str] = frozenset()
    test_command: str = ""
    version: str = ""
    head: HeadSource | None = None
    caveats: str = ""

    @property
    def resolved_version(self) -> str:
        return self.version or version_from_url(self.source_url) or "unknown"


STATUS_INSTALLED = "installed"
STATUS_WITH_WARNINGS = "installed_with_warnings"
STATUS_VERIFY_FAILED = "verification_failed"


@dataclass
class InstallResult:
    """一次安装的结果"""

    name: str
    version: str
    prefix: str
    installed_files: list[str] = field(default_factory=list)
    removed_files: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    verified: bool | None = None

    @property
    def status(self) -> str:
        if self.verified is False:
            return STATUS_VERIFY_FAILED
        if self.warnings:
            return STATUS_WITH_WARNINGS
        return STATUS_INSTALLED

    @property
    def exit_code(self) -> int:
        return 1 if self.status == STATUS_VERIFY_FAILED else 0

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "prefix": self.prefix,
            "status": self.status,
            "installed_files": list(self.installed_files),
            "removed_files": list(self.removed_files),
            "warnings": list(self.warnings),
        }
