"""构建索引

BuildIndex 把每个已发布包的版本、输出目录和约定产物写进一个 YAML 文件，
后续进程据此解析 "包:输出"，无需在同一进程内重新构建上游包。

文件结构:
    format: 1
    builds:
      <包名>:
        version: ...
        outputs: {<输出名>: <目录>}
        artifacts: {<约定名>: <输出名>}
        phases: [...]
        source_digest: ...
        duration: ...
        built_at: ...
"""

from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from phaseforge.utils.yaml_io import load_yaml, save_yaml

if TYPE_CHECKING:
    from phaseforge.core.descriptor import PackageDescriptor
    from phaseforge.core.models import BuildResult

logger = logging.getLogger(__name__)

INDEX_FORMAT = 1


class BuildIndex:
    """已发布构建的索引，每次修改立即落盘"""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        doc = load_yaml(self.path)
        fmt = doc.get("format", INDEX_FORMAT)
        if fmt != INDEX_FORMAT:
            logger.warning("构建索引格式 %s 与当前 %s 不一致: %s", fmt, INDEX_FORMAT, self.path)
        self._builds: dict[str, dict[str, Any]] = dict(doc.get("builds") or {})
        self._mutex = threading.Lock()

    def _flush(self) -> None:
        save_yaml(self.path, {"format": INDEX_FORMAT, "builds": self._builds})

    def record(self, descriptor: PackageDescriptor, result: BuildResult) -> dict[str, Any]:
        """登记一次成功构建，覆盖同名包的旧记录"""
        built_at = datetime.now(timezone.utc).replace(microsecond=0)
        entry = {
            "version": descriptor.version,
            "outputs": dict(result.outputs),
            "artifacts": {c.expected_name: c.output for c in descriptor.artifact_contracts},
            "phases": list(result.phases),
            "source_digest": result.source_digest,
            "duration": round(result.duration, 3),
            "built_at": built_at.isoformat(),
        }
        with self._mutex:
            self._builds[descriptor.name] = entry
            self._flush()
        logger.info("构建索引已更新: %s", descriptor.full_name)
        return copy.deepcopy(entry)

    def get(self, name: str) -> dict[str, Any] | None:
        with self._mutex:
            entry = self._builds.get(name)
            return copy.deepcopy(entry) if entry is not None else None

    def list_all(self) -> list[dict[str, Any]]:
        with self._mutex:
            return [{"name": name, **copy.deepcopy(e)} for name, e in self._builds.items()]

    def remove(self, name: str) -> bool:
        with self._mutex:
            if self._builds.pop(name, None) is None:
                return False
            self._flush()
        logger.info("构建索引已移除: %s", name)
        return True
