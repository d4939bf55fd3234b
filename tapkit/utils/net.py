"""网络工具 — 下载地址校验"""

from __future__ import annotations

from urllib.parse import urlparse

from tapkit.core.exceptions import ValidationError

_ALLOWED_SCHEMES = frozenset(("http", "https"))


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """只允许 http/https 下载地址，拒绝 file:// 等协议

    Raises:
        ValidationError: scheme 不在白名单内
    """
    scheme = urlparse(url).scheme
    if scheme not in _ALLOWED_SCHEMES:
        label = f" ({context})" if context else ""
        raise ValidationError(
            f"不允许的 URL 协议 '{scheme}'{label}，仅支持 http/https: {url}"
        )


def archive_suffix(url: str) -> str:
    """从下载地址推断归档后缀，用于缓存文件命名"""
    path = urlparse(url).path
    for suffix in (".tar.gz", ".tar.bz2", ".tar.xz", ".tgz", ".tar"):
        if path.endswith(suffix):
            return suffix
    return ".tar.gz"
