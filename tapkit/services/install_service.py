"""安装服务 - 串联 下载 → 校验 → 解包 → 拷贝 → 依赖探测 → 冒烟测试

致命错误（下载、校验、解包、写盘、取消）直接向上抛出，后续步骤不再执行；
依赖缺失与冒烟测试失败作为告警记入 InstallResult。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from tapkit.core.cancel import CancellationToken
from tapkit.core.formula.extractor import extract
from tapkit.core.formula.fetcher import ArchiveFetcher
from tapkit.core.formula.installer import Installer
from tapkit.core.formula.models import InstallResult
from tapkit.core.formula.registry import FormulaRegistry

logger = logging.getLogger(__name__)


class InstallService:
    """公式安装服务"""

    def __init__(
        self,
        registry: FormulaRegistry,
        fetcher: ArchiveFetcher,
        installer: Installer,
    ) -> None:
        self.registry = registry
        self.fetcher = fetcher
        self.installer = installer

    def install(self, name: str, token: CancellationToken | None = None) -> InstallResult:
        desc = self.registry.get(name)
        token = token or CancellationToken()
        logger.info("安装 %s %s -> %s", desc.name, desc.resolved_version, self.installer.prefix)

        token.raise_if_cancelled("下载")
        archive = self.fetcher.fetch(desc)

        token.raise_if_cancelled("解包")
        with extract(archive) as tree:
            token.raise_if_cancelled("拷贝")
            result = self.installer.install(tree, desc, token)

        for missing in self.installer.check_dependencies(desc):
            result.warnings.append(str(missing))

        result.verified = self.installer.verify_install(desc)
        if not result.verified:
            result.warnings.append(
                f"冒烟测试未通过: {self.installer.render_test_command(desc)}"
            )

        logger.info("%s 安装结束: %s", desc.name, result.status)
        return result

    def fetch_only(self, name: str) -> tuple[Path | None, int]:
        """只下载并校验，返回 (缓存路径, 字节数)"""
        desc = self.registry.get(name)
        data = self.fetcher.fetch(desc)
        return self.fetcher.cache_path(desc), len(data)

    def uninstall(self, name: str) -> list[str]:
        return self.installer.uninstall(name)

    def list_formulae(self) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for row in self.registry.list_formulae():
            receipt = self.installer.read_receipt(row["name"])
            rows.append({**row, "installed": receipt.get("version", "") if receipt else ""})
        return rows

    def info(self, name: str) -> dict[str, Any]:
        desc = self.registry.get(name)
        receipt = self.installer.read_receipt(name) or {}
        return {
            "name": desc.name,
            "version": desc.resolved_version,
            "description": desc.description,
            "homepage": desc.homepage,
            "license": desc.license,
            "url": desc.source_url,
            "sha256": desc.checksum,
            "head": f"{desc.head.url} (branch: {desc.head.branch})" if desc.head else "",
            "dependencies": sorted(desc.dependencies),
            "install": [
                f"{a.source} -> {a.target(self.installer.prefix)}"
                for a in desc.install_actions
            ],
            "test": desc.test_command,
            "caveats": desc.caveats,
            "installed_version": receipt.get("version", ""),
        }
