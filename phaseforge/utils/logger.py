"""phaseforge 日志配置

构建日志带两个上下文字段: package 与 phase。
  - 文本格式: 在消息前加 "[包/阶段]" 前缀
  - JSON 格式: 作为独立字段输出，CI 可按包、阶段过滤

构建器用 PackageLogAdapter 绑定包名，阶段名随单条日志的 extra 传入。
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import MutableMapping
from datetime import datetime, timezone
from typing import Any

CONTEXT_FIELDS = ("package", "phase")

TEXT_FORMAT = "%(asctime)s [%(levelname)-7s] %(name)s: %(context)s%(message)s"


def record_context(record: logging.LogRecord) -> dict[str, str]:
    """取出记录上非空的上下文字段"""
    found = {}
    for key in CONTEXT_FIELDS:
        value = getattr(record, key, None)
        if value:
            found[key] = str(value)
    return found


class TextFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        ctx = record_context(record)
        record.context = f"[{'/'.join(ctx.values())}] " if ctx else ""
        return super().format(record)


class JSONFormatter(logging.Formatter):
    """每条记录一行 JSON

    固定字段: timestamp level logger message module function line；
    package / phase 仅在记录携带时出现，异常堆栈放在 exception。
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update(record_context(record))
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


class PackageLogAdapter(logging.LoggerAdapter):
    """绑定包名的日志适配器，单条日志的 extra 与绑定字段合并"""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any],
    ) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """在根日志器上安装唯一的 stderr handler

    json_output 为 True 时输出 JSON 行，否则输出带上下文前缀的文本。
    重复调用会先清掉旧 handler。
    """
    reset_logging()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if json_output else TextFormatter())
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.addHandler(handler)


def reset_logging() -> None:
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
