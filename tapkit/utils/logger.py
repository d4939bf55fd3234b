"""tapkit 日志配置

CLI 入口调用 setup_logging() 一次；各模块只用 logging.getLogger(__name__)。
支持人类可读格式和 JSON 格式（供 CI 流水线解析安装日志）。
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

_TEXT_FORMAT = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """单行 JSON 日志格式器

    字段: timestamp / level / logger / message / module / line，
    有异常时附带 exception，有 package 属性时附带 package。
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        package = getattr(record, "package", None)
        if package:
            entry["package"] = package
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """配置根日志器，输出到 stderr

    参数:
        level: 日志级别字符串（DEBUG, INFO, WARNING, ERROR）
        json_output: True 时使用 JSONFormatter

    重复调用会先移除已有 handler，不会重复输出。
    """
    reset_logging()
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    root.addHandler(handler)


def reset_logging() -> None:
    """移除根日志器的全部 handler（测试中 CliRunner 替换 stderr 后使用）"""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
