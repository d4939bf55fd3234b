"""归档拉取器

职责:
- 下载公式的源归档（http/https）
- SHA-256 校验（必做，先于任何解包；重试时每次都重新校验）
- 下载缓存：校验通过的字节原子写入 cache_dir，复用前再次校验
"""

from __future__ import annotations

import hashlib
import http.client
import logging
import time
import urllib.error
import urllib.request
from pathlib import Path

from tapkit.core.exceptions import IntegrityError, NetworkError
from tapkit.core.formula.models import PackageDescriptor
from tapkit.utils.net import archive_suffix, validate_url_scheme
from tapkit.utils.yaml_io import atomic_write

logger = logging.getLogger(__name__)

_USER_AGENT = "tapkit"


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def verify_checksum(data: bytes, expected: str, *, label: str = "") -> str:
    """校验字节摘要，返回实际摘要

    Raises:
        IntegrityError: 摘要与 expected 不一致
    """
    actual = sha256_hex(data)
    if actual != expected.strip().lower():
        raise IntegrityError(
            f"校验和不匹配 {label}: 期望 {expected}, 实际 {actual}",
            expected=expected, actual=actual,
        )
    return actual


class ArchiveFetcher:
    """归档拉取器 - 缓存优先，未命中时远程下载"""

    def __init__(
        self,
        cache_dir: Path | None = None,
        *,
        timeout: int = 60,
        retries: int = 2,
        retry_delay: float = 1.0,
    ) -> None:
        self.cache_dir = cache_dir
        self.timeout = timeout
        self.retries = retries
        self.retry_delay = retry_delay

    def cache_path(self, desc: PackageDescriptor) -> Path | None:
        if self.cache_dir is None:
            return None
        suffix = archive_suffix(desc.source_url)
        return self.cache_dir / f"{desc.name}--{desc.resolved_version}{suffix}"

    def fetch(self, desc: PackageDescriptor) -> bytes:
        """返回已校验的归档字节

        Raises:
            NetworkError: 传输失败（重试耗尽）
            IntegrityError: 摘要不匹配，不重试
        """
        cached = self._read_cache(desc)
        if cached is not None:
            return cached

        validate_url_scheme(desc.source_url, context=f"formula {desc.name}")
        data = self._download_with_retry(desc)
        verify_checksum(data, desc.checksum, label=desc.name)
        logger.info("校验和通过: %s (%d 字节)", desc.name, len(data))

        self._write_cache(desc, data)
        return data

    def _read_cache(self, desc: PackageDescriptor) -> bytes | None:
        path = self.cache_path(desc)
        if path is None or not path.is_file():
            return None
        data = path.read_bytes()
        try:
            verify_checksum(data, desc.checksum, label=str(path))
        except IntegrityError:
            logger.warning("缓存文件校验失败，删除后重新下载: %s", path)
            path.unlink(missing_ok=True)
            return None
        logger.info("缓存命中: %s", path)
        return data

    def _write_cache(self, desc: PackageDescriptor, data: bytes) -> None:
        path = self.cache_path(desc)
        if path is None:
            return
        try:
            atomic_write(path, data)
        except OSError as e:
            # 缓存写不进去不影响本次安装
            logger.warning("写入下载缓存失败 %s: %s", path, e)

    def _download_with_retry(self, desc: PackageDescriptor) -> bytes:
        attempt = 1
        while True:
            try:
                return self._download(desc.source_url)
            except NetworkError as e:
                if attempt > self.retries:
                    raise
                logger.warning(
                    "下载失败 (第 %d 次)，%.1fs 后重试: %s", attempt, self.retry_delay, e,
                )
                attempt += 1
                time.sleep(self.retry_delay)

    def _download(self, url: str) -> bytes:
        logger.info("下载: %s", url)
        req = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:  # nosec B310
                return resp.read()
        except (urllib.error.URLError, http.client.HTTPException, OSError) as e:
            raise NetworkError(f"下载失败: {url} - {e}") from e
