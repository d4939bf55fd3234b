"""归档解包

extract() 是上下文管理器：每次调用新建独立临时目录，退出时
（正常、异常、取消）一律删除，不同安装之间不共享任何目录。
"""

from __future__ import annotations

import io
import logging
import tarfile
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from tapkit.core.exceptions import ArchiveError

logger = logging.getLogger(__name__)


def _tree_root(staging: Path) -> Path:
    """归档只有一个顶层目录时（如 gcx-1.2.0/）进入该目录"""
    entries = [p for p in staging.iterdir() if not p.name.startswith(".")]
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return staging


@contextmanager
def extract(archive: bytes) -> Iterator[Path]:
    """把归档字节解包到临时目录，yield 源码根目录

    Raises:
        ArchiveError: 不是可识别的 tar 归档或内容损坏
    """
    with tempfile.TemporaryDirectory(prefix="tapkit-") as tmp:
        staging = Path(tmp)
        try:
            with tarfile.open(fileobj=io.BytesIO(archive), mode="r:*") as tf:
                tf.extractall(path=str(staging), filter="data")  # noqa: S202
        except (tarfile.TarError, EOFError, OSError) as e:
            raise ArchiveError(f"解包失败: {e}") from e

        root = _tree_root(staging)
        logger.debug("已解包到 %s", root)
        yield root
