"""服务容器 — 从 Config 懒加载构造注册表、拉取器、安装器和安装服务

同一容器内的实例共享（例如 install 与 list 共用一份已加载的公式）。

用法:
    container = ServiceContainer(config=Config.from_file("configs/default.yml"))
    result = container.installs.install("gcx")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tapkit.core.config import Config
    from tapkit.core.formula.fetcher import ArchiveFetcher
    from tapkit.core.formula.installer import Installer
    from tapkit.core.formula.registry import FormulaRegistry
    from tapkit.services.install_service import InstallService
    from tapkit.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器"""

    def __init__(
        self,
        config: Config | None = None,
        executor: CommandExecutor | None = None,
    ) -> None:
        self._instances: dict[str, object] = {}
        if config is None:
            from tapkit.core.config import get_config
            config = get_config()
        self._config = config
        self._executor = executor

    @property
    def config(self) -> Config:
        return self._config

    @property
    def registry(self) -> FormulaRegistry:
        if "registry" not in self._instances:
            from tapkit.core.formula.registry import FormulaRegistry
            self._instances["registry"] = FormulaRegistry(self._config.formula_path)
        return self._instances["registry"]  # type: ignore[return-value]

    @property
    def fetcher(self) -> ArchiveFetcher:
        if "fetcher" not in self._instances:
            from tapkit.core.formula.fetcher import ArchiveFetcher
            self._instances["fetcher"] = ArchiveFetcher(
                cache_dir=self._config.cache_path,
                timeout=self._config.download_timeout,
                retries=self._config.download_retries,
            )
        return self._instances["fetcher"]  # type: ignore[return-value]

    @property
    def installer(self) -> Installer:
        if "installer" not in self._instances:
            from tapkit.core.formula.installer import Installer
            self._instances["installer"] = Installer(
                self._config.prefix_path,
                executor=self._executor,
                test_timeout=self._config.test_timeout,
            )
        return self._instances["installer"]  # type: ignore[return-value]

    @property
    def installs(self) -> InstallService:
        if "installs" not in self._instances:
            from tapkit.services.install_service import InstallService
            self._instances["installs"] = InstallService(
                registry=self.registry,
                fetcher=self.fetcher,
                installer=self.installer,
            )
        return self._instances["installs"]  # type: ignore[return-value]


_container: ServiceContainer | None = None


def get_container() -> ServiceContainer:
    """获取全局容器（首次调用时按当前配置构造）"""
    global _container  # noqa: PLW0603
    if _container is None:
        _container = ServiceContainer()
    return _container


def set_container(container: ServiceContainer | None) -> None:
    """替换全局容器（CLI 按选项重建、测试注入）"""
    global _container  # noqa: PLW0603
    _container = container
