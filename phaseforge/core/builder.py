"""单包构建执行器

一次 PackageBuild 对应一次构建请求，按状态机推进:

  UNBUILT -> SOURCE_CAPTURED -> PHASES_RUNNING -> SPLIT -> ASSEMBLED

  - SOURCE_CAPTURED: 全新工作树，源码快照已拷入，输入已解析
  - PHASES_RUNNING: 阶段严格顺序执行，随后按规则拆分输出
  - SPLIT: 拆分与产物约定完成
  - ASSEMBLED: 输出已发布到 store 并记入索引

任一步失败进入 FAILED: 暂存输出全部删除，不会留下看似可用的半成品。
FAILED / ASSEMBLED 为终态，重试必须新建 PackageBuild 从 UNBUILT 开始。
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from pathlib import Path
from typing import TYPE_CHECKING

from phaseforge.core.exceptions import (
    BuildStateError,
    ExecutionError,
    PhaseExecutionFailure,
    PhaseForgeError,
)
from phaseforge.core.models import TRANSITIONS, BuildContext, BuildResult, BuildState
from phaseforge.core.phases import Phase
from phaseforge.core.splitter import OutputSplitter
from phaseforge.utils.logger import PackageLogAdapter

if TYPE_CHECKING:
    from phaseforge.core.descriptor import PackageDescriptor
    from phaseforge.core.session import BuildSession

logger = logging.getLogger(__name__)

# 失败信息中保留的工具输出长度
DETAIL_TAIL = 500


class PackageBuild:
    """单个描述符的一次性构建"""

    def __init__(self, descriptor: PackageDescriptor, session: BuildSession) -> None:
        self.descriptor = descriptor
        self.session = session
        self.state = BuildState.UNBUILT
        self.history: list[BuildState] = [BuildState.UNBUILT]
        self.result = BuildResult(package=descriptor.name, version=descriptor.version)
        self.build_root = session.work_root / descriptor.full_name
        self.work_dir = self.build_root / "work"
        self.staging_dir = self.build_root / "outputs"
        # 源码快照、工作树和暂存输出都放在 build_root 下
        self.log = PackageLogAdapter(logger, {"package": descriptor.name})

    def _transition(self, new: BuildState) -> None:
        if new not in TRANSITIONS[self.state]:
            raise BuildStateError(
                f"{self.descriptor.name}: 非法状态迁移 {self.state.value} -> {new.value}"
            )
        self.log.debug("状态迁移: %s -> %s", self.state.value, new.value)
        self.state = new
        self.result.state = new
        self.history.append(new)

    def run(self) -> BuildResult:
        if self.state is not BuildState.UNBUILT:
            raise BuildStateError(
                f"{self.descriptor.name} 已处于 {self.state.value}，重试请新建构建"
            )
        start = time.monotonic()
        try:
            ctx = self._prepare()
            self._transition(BuildState.PHASES_RUNNING)
            for phase in self.descriptor.phases:
                self._run_phase(phase, ctx)
            self.result.failed_phase = ""
            OutputSplitter(
                self.descriptor.split_rules, self.descriptor.artifact_contracts,
            ).split(ctx.outputs)
            self._transition(BuildState.SPLIT)
            self.result.outputs = self.session.publish(self.descriptor, ctx.outputs)
            self.result.status = "success"
            self.result.duration = time.monotonic() - start
            self.session.register(self.descriptor, self.result)
            self._transition(BuildState.ASSEMBLED)
        except Exception as e:
            self.result.duration = time.monotonic() - start
            self._fail(e)
            raise
        shutil.rmtree(self.build_root, ignore_errors=True)
        self.log.info("构建完成: %s (%.1fs)", self.descriptor.full_name, self.result.duration)
        return self.result

    def _prepare(self) -> BuildContext:
        """全新工作树 + 源码快照 + 输入解析 + 创建输出目录"""
        if self.build_root.exists():
            shutil.rmtree(self.build_root)
        self.work_dir.mkdir(parents=True)
        snapshot = self.session.capture_source(self.descriptor, self.build_root / "source")
        if snapshot is not None:
            snapshot.materialize(self.work_dir)
            self.result.source_digest = snapshot.digest
        self._transition(BuildState.SOURCE_CAPTURED)

        inputs = self.session.resolve_inputs(self.descriptor)
        outputs: dict[str, Path] = {}
        for name in self.descriptor.outputs:
            outputs[name] = self.staging_dir / name
            outputs[name].mkdir(parents=True)
        return BuildContext(
            package=self.descriptor.name,
            version=self.descriptor.version,
            work_dir=self.work_dir,
            inputs=inputs,
            outputs=outputs,
            flags=self.descriptor.build_flags,
            executor=self.session.executor,
        )

    def _run_phase(self, phase: Phase, ctx: BuildContext) -> None:
        extra = {"phase": phase.name}
        self.result.failed_phase = phase.name
        self.log.info("阶段开始: %s", phase.name, extra=extra)
        start = time.monotonic()
        label = f"{self.descriptor.name} 阶段 {phase.name}"
        try:
            outcome = phase.action(ctx)
        except ExecutionError as e:
            raise PhaseExecutionFailure(
                f"{label} 失败: {e}",
                package=self.descriptor.name, phase=phase.name,
                returncode=e.returncode, detail=e.stderr[-DETAIL_TAIL:],
            ) from e
        except PhaseForgeError:
            raise
        except Exception as e:
            if not isinstance(e, (OSError, subprocess.SubprocessError)):
                self.log.exception("阶段 %s 抛出未预期的异常", phase.name, extra=extra)
            raise PhaseExecutionFailure(
                f"{label} 失败: {e!r}",
                package=self.descriptor.name, phase=phase.name, detail=repr(e),
            ) from e
        if outcome is False:
            raise PhaseExecutionFailure(
                f"{label} 报告失败",
                package=self.descriptor.name, phase=phase.name,
            )
        self.result.phases.append(phase.name)
        self.log.info(
            "阶段完成: %s (%.2fs)", phase.name, time.monotonic() - start, extra=extra,
        )

    def _fail(self, exc: Exception) -> None:
        reached_split = self.state is BuildState.SPLIT
        if BuildState.FAILED in TRANSITIONS[self.state]:
            self._transition(BuildState.FAILED)
        self.result.status = "failed"
        self.result.message = str(exc)
        self.result.outputs = {}
        shutil.rmtree(self.staging_dir, ignore_errors=True)
        if reached_split:
            # 发布或登记中途失败，store 中的部分输出同样不可用
            shutil.rmtree(self.session.store_dir / self.descriptor.full_name, ignore_errors=True)
        if not self.session.config.keep_failed:
            shutil.rmtree(self.build_root, ignore_errors=True)
        extra = {"phase": self.result.failed_phase}
        if isinstance(exc, PhaseForgeError):
            self.log.error("构建失败 %s: %s", self.descriptor.full_name, exc, extra=extra)
        else:
            self.log.exception("构建异常中止 %s", self.descriptor.full_name, extra=extra)
