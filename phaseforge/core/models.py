"""核心数据模型

描述符的组成部分（输入引用、源码规格、拆分规则、产物约定）、
阶段动作收到的构建上下文，以及一次构建的状态与结果。
除 BuildContext / BuildResult 外均为不可变值类型。
"""

from __future__ import annotations

import fnmatch
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any, Callable

from phaseforge.core.exceptions import OutputMappingUnresolved, ValidationError

if TYPE_CHECKING:
    from phaseforge.utils.shell import CommandExecutor

DEFAULT_OUTPUT = "out"


# =========================================================================
# 构建状态机
# =========================================================================

class BuildState(str, Enum):
    """单个包的构建状态

    UNBUILT -> SOURCE_CAPTURED -> PHASES_RUNNING -> SPLIT -> ASSEMBLED
    ASSEMBLED 之前任一状态上的失败 -> FAILED

    UNBUILT -> FAILED 对应源码捕获失败；SPLIT -> FAILED 对应发布或登记索引失败，
    此时已写入 store 的部分输出会一并删除。
    """
    UNBUILT = "unbuilt"
    SOURCE_CAPTURED = "source_captured"
    PHASES_RUNNING = "phases_running"
    SPLIT = "split"
    ASSEMBLED = "assembled"
    FAILED = "failed"


TRANSITIONS: dict[BuildState, frozenset[BuildState]] = {
    BuildState.UNBUILT: frozenset({BuildState.SOURCE_CAPTURED, BuildState.FAILED}),
    BuildState.SOURCE_CAPTURED: frozenset({BuildState.PHASES_RUNNING, BuildState.FAILED}),
    BuildState.PHASES_RUNNING: frozenset({BuildState.SPLIT, BuildState.FAILED}),
    BuildState.SPLIT: frozenset({BuildState.ASSEMBLED, BuildState.FAILED}),
    BuildState.ASSEMBLED: frozenset(),
    BuildState.FAILED: frozenset(),
}


# =========================================================================
# 描述符组成部分
# =========================================================================

def check_relative_path(path: str, what: str) -> str:
    """校验相对路径：非空、非绝对路径、不含 .."""
    p = PurePosixPath(path)
    if not path or p.is_absolute() or ".." in p.parts:
        raise ValidationError(f"{what} 必须是树内相对路径: {path!r}")
    return p.as_posix()


@dataclass(frozen=True)
class InputRef:
    """对另一个包某个命名输出的引用，文本形式为 "package:output" """

    package: str
    output: str = DEFAULT_OUTPUT

    def __post_init__(self) -> None:
        if not self.package or ":" in self.package:
            raise ValidationError(f"非法的包名: {self.package!r}")
        if not self.output:
            raise ValidationError(f"输入 {self.package} 的输出名不能为空")

    @classmethod
    def parse(cls, value: str | InputRef) -> InputRef:
        if isinstance(value, InputRef):
            return value
        package, sep, output = value.partition(":")
        return cls(package=package, output=output if sep else DEFAULT_OUTPUT)

    def __str__(self) -> str:
        return f"{self.package}:{self.output}"


@dataclass(frozen=True)
class SourceSpec:
    """源码位置 + 选择方式

    select:
      - git: 仅包含版本控制跟踪的文件
      - tree: 显式声明包含目录下全部文件
    """

    root: str
    select: str = "git"

    def __post_init__(self) -> None:
        if self.select not in ("git", "tree"):
            raise ValidationError(f"不支持的源码选择方式: {self.select}")


@dataclass(frozen=True)
class SplitRule:
    """把主输出中匹配 patterns 的文件移到 output"""

    output: str
    patterns: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "patterns", tuple(self.patterns))
        if not self.patterns:
            raise ValidationError(f"拆分规则 {self.output} 没有任何匹配模式")

    def matches(self, relpath: str) -> bool:
        return any(fnmatch.fnmatchcase(relpath, p) for p in self.patterns)


@dataclass(frozen=True)
class ArtifactContract:
    """生产者与消费者之间约定的产物名

    构建自动生成的文件名（source）与下游加载器静态期望的文件名
    （expected_name）不一致时，拆分后在 output 内复制或改名。
    """

    output: str
    source: str
    expected_name: str
    mode: str = "copy"  # copy | rename

    def __post_init__(self) -> None:
        if self.mode not in ("copy", "rename"):
            raise ValidationError(f"不支持的产物约定模式: {self.mode}")
        object.__setattr__(self, "source", check_relative_path(self.source, "产物源路径"))
        object.__setattr__(
            self, "expected_name", check_relative_path(self.expected_name, "约定产物名"),
        )
        if self.source == self.expected_name:
            raise ValidationError(f"产物约定的源与目标相同: {self.source}")


# =========================================================================
# 阶段上下文
# =========================================================================

@dataclass
class BuildContext:
    """传给每个阶段动作的上下文

    阶段之间没有其它通信渠道，跨阶段状态一律通过文件系统传递。
    """

    package: str
    version: str
    work_dir: Path
    inputs: Mapping[str, Path]
    outputs: Mapping[str, Path]
    flags: Mapping[str, Any]
    executor: CommandExecutor | None = None

    def output(self, name: str = DEFAULT_OUTPUT) -> Path:
        if name not in self.outputs:
            raise OutputMappingUnresolved(f"{self.package} 未声明输出: {name}")
        return self.outputs[name]

    def input(self, name: str) -> Path:
        if name not in self.inputs:
            raise OutputMappingUnresolved(f"{self.package} 未声明输入: {name}")
        return self.inputs[name]

    def placeholders(self) -> dict[str, Any]:
        """命令模板可用的占位符: {work} {out} {<输出名>} {inputs[名]} {flags[键]}"""
        values: dict[str, Any] = {name: str(path) for name, path in self.outputs.items()}
        values.update(
            work=str(self.work_dir),
            name=self.package,
            version=self.version,
            inputs={k: str(v) for k, v in self.inputs.items()},
            flags=dict(self.flags),
        )
        return values


PhaseAction = Callable[[BuildContext], Any]


# =========================================================================
# 构建结果
# =========================================================================

@dataclass
class BuildResult:
    """单个包一次构建的结果"""

    package: str
    version: str = ""
    status: str = "pending"   # pending | success | failed
    state: BuildState = BuildState.UNBUILT
    outputs: dict[str, str] = field(default_factory=dict)
    phases: list[str] = field(default_factory=list)
    failed_phase: str = ""
    message: str = ""
    duration: float = 0.0
    source_digest: str = ""

    @property
    def success(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict[str, Any]:
        return {
            "package": self.package,
            "version": self.version,
            "status": self.status,
            "state": self.state.value,
            "outputs": dict(self.outputs),
            "phases": list(self.phases),
            "failed_phase": self.failed_phase,
            "message": self.message,
            "duration": round(self.duration, 3),
            "source_digest": self.source_digest,
        }
