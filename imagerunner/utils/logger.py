"""imagerunner 日志配置

镜像内通常没有交互终端，日志输出到 stderr（由宿主侧采集串口/控制台）。
支持普通文本和结构化 JSON 两种输出格式。
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    """结构化 JSON 日志格式器，便于宿主侧解析控制台输出

    输出格式:
        {
            "timestamp": "2024-01-01T12:00:00+00:00",
            "level": "INFO",
            "logger": "imagerunner.core.manager",
            "message": "log message",
            "module": "manager",
            "function": "run",
            "line": 42,
            "exception": "traceback..." (仅在有异常时)
        }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False)


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """配置根日志器

    参数:
        level: 日志级别字符串（DEBUG, INFO, WARNING, ERROR, CRITICAL）
        json_output: 为 True 时使用 JSON 格式，否则使用人类可读格式

    说明:
        - 输出到 stderr
        - 自动清理已有 handlers，避免重复输出
    """
    root = logging.getLogger()

    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)

    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        fmt = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"
        handler.setFormatter(logging.Formatter(fmt))

    root.addHandler(handler)


def reset_logging() -> None:
    """重置根日志器配置，清理所有已注册的 handlers（测试中使用）"""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
