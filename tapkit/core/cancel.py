"""安装取消令牌

CLI 的信号处理器调用 cancel()；安装流水线在阶段之间调用
raise_if_cancelled()。正在进行的单个文件拷贝不会被打断。
"""

from __future__ import annotations

import logging
import threading

from tapkit.core.exceptions import InstallCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """线程安全的一次性取消标志"""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        if not self._event.is_set():
            logger.warning("收到取消请求，当前步骤完成后中止")
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str) -> None:
        if self._event.is_set():
            raise InstallCancelledError(f"安装已在 {stage} 之前取消")
