"""tapkit - 公式驱动的脚本工具安装器"""

__version__ = "0.3.0"
