"""日志配置测试"""

from __future__ import annotations

import json
import logging

from tapkit.utils.logger import JSONFormatter, reset_logging, setup_logging


def _record(msg: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("tapkit.test", logging.WARNING, __file__, 10, msg, None, None)
    for k, v in extra.items():
        setattr(record, k, v)
    return record


class TestJSONFormatter:
    def test_fields(self) -> None:
        entry = json.loads(JSONFormatter().format(_record("依赖 gum 未安装", package="gcx")))
        assert entry["level"] == "WARNING"
        assert entry["message"] == "依赖 gum 未安装"
        assert entry["package"] == "gcx"
        assert "exception" not in entry


class TestSetupLogging:
    def test_single_handler_after_repeat(self) -> None:
        root = logging.getLogger()
        saved = root.handlers[:], root.level
        try:
            setup_logging("DEBUG")
            setup_logging("WARNING", json_output=True)
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
            assert root.level == logging.WARNING
        finally:
            reset_logging()
            for h in saved[0]:
                root.addHandler(h)
            root.setLevel(saved[1])
