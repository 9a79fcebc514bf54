"""构建会话

一个会话持有:
  - 跟踪文件清单缓存: 按源码根目录首次使用时加载，会话内不失效；
    只缓存在会话对象上，不同会话之间不共享
  - 已构建包的描述符与结果，以及持久化的构建索引
  - 输入解析: 逻辑输入名 -> 生产者命名输出的目录

清单缓存和结果表均受锁保护，可供多个线程并发构建互不依赖的包。
"""

from __future__ import annotations

import logging
import os
import shutil
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from phaseforge.core.exceptions import ArtifactMissing, OutputMappingUnresolved
from phaseforge.core.models import BuildResult, InputRef, SourceSpec
from phaseforge.core.registry import BuildIndex
from phaseforge.core.source import (
    SourceSelector,
    SourceSnapshot,
    TrackedManifest,
    capture,
    git_predicate,
    tree_predicate,
)

if TYPE_CHECKING:
    from phaseforge.core.config import Config
    from phaseforge.core.descriptor import PackageDescriptor
    from phaseforge.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


class BuildSession:
    """一次构建会话的共享状态"""

    def __init__(
        self,
        config: Config | None = None,
        *,
        executor: CommandExecutor | None = None,
        index: BuildIndex | None = None,
    ) -> None:
        if config is None:
            from phaseforge.core.config import get_config
            config = get_config()
        self.config = config
        self.executor = executor
        self.work_root = Path(config.work_dir).resolve()
        self.store_dir = Path(config.store_dir).resolve()
        self.index = index if index is not None else BuildIndex(config.index_file)
        self._manifests: dict[Path, TrackedManifest] = {}
        self._manifest_lock = threading.Lock()
        self._descriptors: dict[str, PackageDescriptor] = {}
        self._results: dict[str, BuildResult] = {}
        self._expected_versions: dict[str, str] = {}
        self._lock = threading.Lock()

    # ---- 源码 ----

    def manifest(self, root: str | Path) -> TrackedManifest:
        """获取（必要时加载）root 的跟踪文件清单"""
        key = Path(root).resolve()
        cached = self._manifests.get(key)
        if cached is not None:
            return cached
        with self._manifest_lock:
            if key not in self._manifests:
                self._manifests[key] = TrackedManifest.load(
                    key, git_command=self.config.git_command, executor=self.executor,
                )
            return self._manifests[key]

    def selector(self, spec: SourceSpec) -> SourceSelector:
        if spec.select == "tree":
            return SourceSelector(tree_predicate)
        return SourceSelector(git_predicate(self.manifest(spec.root)))

    def capture_source(self, descriptor: PackageDescriptor, dest: Path) -> SourceSnapshot | None:
        """把描述符的源码快照捕获到 dest（由构建器随工作树一起清理）"""
        if descriptor.source is None:
            return None
        return capture(descriptor.source.root, self.selector(descriptor.source), dest)

    # ---- 构建 ----

    def build(self, descriptor: PackageDescriptor) -> BuildResult:
        """构建一次；失败抛出对应的 PhaseForgeError"""
        from phaseforge.core.builder import PackageBuild
        return PackageBuild(descriptor, self).run()

    def publish(self, descriptor: PackageDescriptor, staged: Mapping[str, Path]) -> dict[str, str]:
        """把暂存输出移动到 store/<name>-<version>/<output>"""
        target_root = self.store_dir / descriptor.full_name
        with self._lock:
            if target_root.exists():
                shutil.rmtree(target_root)
            target_root.mkdir(parents=True)
            published: dict[str, str] = {}
            try:
                for name, path in staged.items():
                    dest = target_root / name
                    # store 与 work 可能不在同一文件系统
                    shutil.move(str(path), str(dest))
                    published[name] = str(dest)
            except OSError:
                shutil.rmtree(target_root, ignore_errors=True)
                raise
        logger.info("输出已发布: %s -> %s", descriptor.full_name, target_root)
        return published

    def register(self, descriptor: PackageDescriptor, result: BuildResult) -> None:
        self.index.record(descriptor, result)
        with self._lock:
            self._descriptors[descriptor.name] = descriptor
            self._results[descriptor.name] = result

    def result(self, name: str) -> BuildResult | None:
        with self._lock:
            return self._results.get(name)

    def expect_versions(self, versions: Mapping[str, str]) -> None:
        """登记配方当前的版本；索引中版本不符的记录视为未构建"""
        with self._lock:
            self._expected_versions.update(versions)

    def indexed(self, name: str) -> dict[str, Any] | None:
        """索引中与配方版本一致的记录"""
        entry = self.index.get(name)
        if entry is None:
            return None
        with self._lock:
            expected = self._expected_versions.get(name)
        if expected is not None and str(entry.get("version")) != expected:
            logger.info(
                "索引中的 %s 版本为 %s，配方版本为 %s，视为未构建",
                name, entry.get("version"), expected,
            )
            return None
        return entry

    def is_available(self, name: str) -> bool:
        with self._lock:
            if name in self._results:
                return True
        return self.indexed(name) is not None

    # ---- 输入解析 ----

    def output_path(self, ref: InputRef) -> Path:
        """解析 "包:输出" 到目录；未声明或未构建抛 OutputMappingUnresolved"""
        with self._lock:
            producer = self._descriptors.get(ref.package)
            result = self._results.get(ref.package)
        if producer is not None and result is not None:
            producer.check_output(ref.output)
            path = result.outputs[ref.output]
        else:
            entry = self.indexed(ref.package)
            if entry is None:
                raise OutputMappingUnresolved(
                    f"包 {ref.package} 尚未构建当前版本，无法解析 {ref}"
                )
            outputs = entry.get("outputs") or {}
            if ref.output not in outputs:
                raise OutputMappingUnresolved(
                    f"包 {ref.package} 未声明输出 {ref.output!r} "
                    f"(已声明: {', '.join(outputs)})"
                )
            path = outputs[ref.output]
        p = Path(path)
        if not p.is_dir():
            raise OutputMappingUnresolved(f"{ref} 的输出目录不存在: {p}")
        return p

    def resolve_inputs(self, descriptor: PackageDescriptor) -> dict[str, Path]:
        """逻辑输入名 -> 输出目录（含 native_inputs）"""
        return {name: self.output_path(ref) for name, ref in descriptor.all_inputs.items()}

    def artifact(self, package: str, expected_name: str) -> Path:
        """按约定名取生产者的产物路径"""
        with self._lock:
            producer = self._descriptors.get(package)
        if producer is not None:
            outputs = {c.expected_name: c.output for c in producer.artifact_contracts}
        else:
            entry = self.indexed(package) or {}
            outputs = entry.get("artifacts") or {}
        if expected_name not in outputs:
            raise ArtifactMissing(f"包 {package} 未约定产物: {expected_name}")
        path = self.output_path(InputRef(package, outputs[expected_name])) / expected_name
        if not os.path.lexists(path):
            raise ArtifactMissing(f"约定产物不存在: {path}")
        return path
