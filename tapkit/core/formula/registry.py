"""公式注册表

职责:
- 从 Formula/ 目录（每个包一个 YAML）或单个清单文件（formulae: 列表）加载公式
- 校验必填字段、路径安全、URL 协议，同一公式的问题合并为一个 ValidationError
- 按名称查询

公式文件格式:

    name: gcx
    desc: GCloud Context Switcher
    homepage: https://github.com/cirrus-tools/gcx
    url: https://github.com/cirrus-tools/gcx/archive/refs/tags/v1.2.0.tar.gz
    sha256: <64 位十六进制>
    license: MIT
    head: {url: https://github.com/cirrus-tools/gcx.git, branch: main}
    depends_on: [yq, gum]
    install:
      - {source: bin/gcx.sh, to: bin/gcx}
      - lib/gcx-setup.sh: lib/gcx/
    test: "{bin}/gcx --help"
    caveats: |
      ...
"""

from __future__ import annotations

import logging
import re
from pathlib import Path, PurePosixPath
from typing import Any

import yaml

from tapkit.core.exceptions import ConfigError, FormulaNotFoundError, ValidationError
from tapkit.core.formula.models import HeadSource, InstallAction, PackageDescriptor
from tapkit.utils.net import validate_url_scheme
from tapkit.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9._+-]*$")
_SHA256_RE = re.compile(r"^[0-9a-fA-F]{64}$")
_FORMULA_SUFFIXES = (".yml", ".yaml")


def _has_parent_ref(path: str) -> bool:
    return ".." in PurePosixPath(path).parts


def _parse_action(raw: Any, index: int, problems: list[str]) -> InstallAction | None:
    """解析一条 install 项，支持 {source, to} 和 {源: 目标} 两种写法"""
    if isinstance(raw, dict) and "source" in raw:
        source, dest = raw.get("source"), raw.get("to", raw.get("dest"))
    elif isinstance(raw, dict) and len(raw) == 1:
        source, dest = next(iter(raw.items()))
    else:
        problems.append(f"install[{index}] 格式无效: {raw!r}")
        return None

    if not isinstance(source, str) or not source:
        problems.append(f"install[{index}] 缺少 source")
        return None
    if not isinstance(dest, str) or not dest:
        problems.append(f"install[{index}] 缺少目标路径: {source}")
        return None
    if PurePosixPath(source).is_absolute() or _has_parent_ref(source):
        problems.append(f"install[{index}] source 必须是归档内相对路径: {source}")
        return None
    if _has_parent_ref(dest):
        problems.append(f"install[{index}] 目标路径不允许包含 '..': {dest}")
        return None
    return InstallAction(source=source, destination=dest)


def parse_descriptor(data: dict[str, Any], origin: str = "") -> PackageDescriptor:
    """把一个公式映射转换为 PackageDescriptor

    Raises:
        ValidationError: 任一字段无效，details 列出全部问题
    """
    problems: list[str] = []

    name = data.get("name")
    if not isinstance(name, str) or not _NAME_RE.match(name):
        problems.append(f"name 无效: {name!r}")

    url = data.get("url")
    if not isinstance(url, str) or not url:
        problems.append("缺少 url")
    else:
        try:
            validate_url_scheme(url, context=f"formula {name}")
        except ValidationError as e:
            problems.append(str(e))

    checksum = data.get("sha256")
    if not isinstance(checksum, str) or not checksum:
        problems.append("缺少 sha256")

    raw_actions = data.get("install") or []
    if not isinstance(raw_actions, list) or not raw_actions:
        problems.append("install 必须是非空列表")
        raw_actions = []
    actions = [_parse_action(raw, i, problems) for i, raw in enumerate(raw_actions)]

    deps = data.get("depends_on") or []
    if isinstance(deps, str):
        deps = [deps]
    if not isinstance(deps, list) or not all(isinstance(d, str) for d in deps):
        problems.append(f"depends_on 必须是字符串列表: {deps!r}")
        deps = []

    head = data.get("head")
    head_source = None
    if isinstance(head, str):
        head_source = HeadSource(url=head)
    elif isinstance(head, dict) and head.get("url"):
        head_source = HeadSource(url=head["url"], branch=head.get("branch", "main"))
    elif head is not None:
        problems.append(f"head 格式无效: {head!r}")

    if problems:
        label = origin or str(name)
        raise ValidationError(f"公式无效: {label}", details=problems)

    if not _SHA256_RE.match(checksum):
        logger.warning(
            "公式 %s 的 sha256 不是有效摘要 (%s)，安装时校验必然失败", name, checksum,
        )

    return PackageDescriptor(
        name=name,
        source_url=url,
        checksum=checksum,
        install_actions=tuple(a for a in actions if a is not None),
        description=data.get("desc") or "",
        homepage=data.get("homepage") or "",
        license=data.get("license") or "",
        dependencies=frozenset(deps),
        test_command=data.get("test") or "",
        version=str(data.get("version") or ""),
        head=head_source,
        caveats=data.get("caveats") or "",
    )


class FormulaRegistry:
    """公式注册表 - 从目录或清单文件加载全部公式"""

    def __init__(self, source: Path) -> None:
        self.source = source
        self._formulae: dict[str, PackageDescriptor] | None = None

    @property
    def formulae(self) -> dict[str, PackageDescriptor]:
        if self._formulae is None:
            self._formulae = self.load()
        return self._formulae

    def load(self) -> dict[str, PackageDescriptor]:
        """加载全部公式

        Raises:
            ConfigError: 来源不存在、YAML 语法错误或包名重复
            ValidationError: 某个公式内容无效
        """
        if not self.source.exists():
            raise ConfigError(f"公式目录不存在: {self.source}")

        formulae: dict[str, PackageDescriptor] = {}
        for origin, data in self._iter_raw():
            desc = parse_descriptor(data, origin=origin)
            if desc.name in formulae:
                raise ConfigError(f"公式名称重复: {desc.name} ({origin})")
            if origin.endswith(_FORMULA_SUFFIXES) and Path(origin).stem != desc.name:
                logger.warning("公式文件名与 name 不一致: %s -> %s", origin, desc.name)
            formulae[desc.name] = desc

        logger.debug("已加载 %d 个公式: %s", len(formulae), self.source)
        return formulae

    def _iter_raw(self) -> list[tuple[str, dict[str, Any]]]:
        try:
            if self.source.is_dir():
                files = sorted(
                    p for p in self.source.iterdir()
                    if p.is_file() and p.suffix in _FORMULA_SUFFIXES
                )
                return [(str(p), load_yaml(p)) for p in files]

            entries = load_yaml(self.source).get("formulae") or []
        except (yaml.YAMLError, OSError, ValueError) as e:
            raise ConfigError(f"读取公式失败: {e}") from e

        if not isinstance(entries, list):
            raise ConfigError(f"formulae 必须是列表: {self.source}")
        return [
            (f"{self.source}#{i}", entry if isinstance(entry, dict) else {})
            for i, entry in enumerate(entries)
        ]

    def get(self, name: str) -> PackageDescriptor:
        desc = self.formulae.get(name)
        if desc is None:
            raise FormulaNotFoundError(
                f"公式 '{name}' 不存在。可用: {sorted(self.formulae)}"
            )
        return desc

    def names(self) -> list[str]:
        return sorted(self.formulae)

    def list_formulae(self) -> list[dict[str, str]]:
        """格式化公式列表用于展示"""
        return [
            {
                "name": d.name,
                "version": d.resolved_version,
                "license": d.license,
                "description": d.description,
            }
            for d in (self.formulae[n] for n in self.names())
        ]
