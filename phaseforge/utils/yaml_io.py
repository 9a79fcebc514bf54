"""YAML 读写

phaseforge.yml 与构建索引都经由这里读写。读取时只接受顶层为映射的文档；
写入先落到同目录临时文件再替换，并发构建中途崩溃也不会留下半截索引。
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# 构建索引随包数量增长，超过 10MB 基本是误用
MAX_YAML_SIZE = 10 * 1024 * 1024


def atomic_write(path: Path, content: str) -> None:
    """写入 path，读者只会看到旧内容或新内容"""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def _read_limited(p: Path) -> str:
    size = p.stat().st_size
    if size > MAX_YAML_SIZE:
        raise ValueError(f"YAML 文件过大: {p} ({size} 字节), 上限 {MAX_YAML_SIZE} 字节")
    return p.read_text(encoding="utf-8")


def load_yaml(path: str | Path) -> dict[str, Any]:
    """读取顶层为映射的 YAML 文档

    文件缺失、为空或顶层不是映射时得到空字典（后者记一条警告）。
    语法错误抛 yaml.YAMLError，超过 MAX_YAML_SIZE 抛 ValueError。
    """
    p = Path(path)
    if not p.is_file():
        return {}
    try:
        document = yaml.safe_load(_read_limited(p))
    except yaml.YAMLError as e:
        logger.error("YAML 解析失败 %s: %s", p, e)
        raise
    if document is None:
        return {}
    if isinstance(document, dict):
        return document
    logger.warning("忽略 %s: 顶层是 %s 而不是映射", p, type(document).__name__)
    return {}


def dump_yaml(data: Any) -> str:
    """按插入顺序输出块风格 YAML，中文原样保留"""
    return yaml.safe_dump(data, allow_unicode=True, sort_keys=False, default_flow_style=False)


def save_yaml(path: str | Path, data: Any) -> None:
    try:
        text = dump_yaml(data)
    except yaml.YAMLError as e:
        logger.error("YAML 序列化失败 %s: %s", path, e)
        raise
    atomic_write(Path(path), text)
