"""公式与安装核心

- models.py: PackageDescriptor / InstallAction / InstallResult
- registry.py: 公式加载与校验
- fetcher.py: 归档下载 + SHA-256 校验 + 缓存
- extractor.py: 临时目录解包
- installer.py: 原子拷贝、回执、冒烟测试、依赖探测
"""

from tapkit.core.formula.extractor import extract
from tapkit.core.formula.fetcher import ArchiveFetcher, verify_checksum
from tapkit.core.formula.installer import Installer
from tapkit.core.formula.models import InstallAction, InstallResult, PackageDescriptor
from tapkit.core.formula.registry import FormulaRegistry

__all__ = [
    "ArchiveFetcher",
    "FormulaRegistry",
    "InstallAction",
    "InstallResult",
    "Installer",
    "PackageDescriptor",
    "extract",
    "verify_checksum",
]
