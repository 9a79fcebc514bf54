"""包描述符与继承解析

PackageDescriptor 是不可变记录：源码、阶段流水线、命名输入、命名输出、构建参数。
derive(base, overrides) 从基础描述符派生新描述符，只替换显式给出的字段，
绝不修改 base；phase_overrides 作用在 base 已解析的流水线上，而非空流水线。

用法:
    lib = PackageDescriptor(name="engine", version="3.1", outputs=("out", "lib"), ...)
    app = derive(lib, Overrides(
        name="engine-app",
        version_suffix="gui",
        phase_overrides=[delete("check"), replace("install", install_app)],
        inputs={"engine": "engine:lib"},
    ))
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, fields, replace
from types import MappingProxyType
from typing import Any

from phaseforge.core.exceptions import OutputMappingUnresolved, ValidationError
from phaseforge.core.models import (
    DEFAULT_OUTPUT,
    ArtifactContract,
    InputRef,
    SourceSpec,
    SplitRule,
)
from phaseforge.core.phases import Pipeline, PhaseOverride, PhaseOverrides

logger = logging.getLogger(__name__)


def _freeze_inputs(raw: Mapping[str, str | InputRef], what: str) -> Mapping[str, InputRef]:
    frozen: dict[str, InputRef] = {}
    for key, value in raw.items():
        if not key:
            raise ValidationError(f"{what} 的逻辑名不能为空")
        frozen[key] = InputRef.parse(value)
    return MappingProxyType(frozen)


def _freeze_flags(raw: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType({
        k: tuple(v) if isinstance(v, list) else v for k, v in raw.items()
    })


@dataclass(frozen=True)
class PackageDescriptor:
    """一个包的完整构建描述"""

    name: str
    version: str
    source: SourceSpec | None = None
    build_system: str = "gnu"
    phases: Pipeline = field(default_factory=Pipeline)
    inputs: Mapping[str, InputRef] = field(default_factory=dict)
    native_inputs: Mapping[str, InputRef] = field(default_factory=dict)
    outputs: tuple[str, ...] = (DEFAULT_OUTPUT,)
    build_flags: Mapping[str, Any] = field(default_factory=dict)
    split_rules: tuple[SplitRule, ...] = ()
    artifact_contracts: tuple[ArtifactContract, ...] = ()
    parent: str = ""

    def __post_init__(self) -> None:
        if not self.name or ":" in self.name:
            raise ValidationError(f"非法的包名: {self.name!r}")
        if not self.version:
            raise ValidationError(f"包 {self.name} 缺少 version")
        if not isinstance(self.phases, Pipeline):
            raise TypeError(f"包 {self.name} 的 phases 必须是 Pipeline")

        set_ = object.__setattr__
        set_(self, "inputs", _freeze_inputs(self.inputs, "inputs"))
        set_(self, "native_inputs", _freeze_inputs(self.native_inputs, "native_inputs"))
        set_(self, "build_flags", _freeze_flags(self.build_flags))
        set_(self, "outputs", tuple(self.outputs))
        set_(self, "split_rules", tuple(self.split_rules))
        set_(self, "artifact_contracts", tuple(self.artifact_contracts))
        self._validate()

    def _validate(self) -> None:
        errors: list[str] = []
        if DEFAULT_OUTPUT not in self.outputs:
            errors.append(f"outputs 必须包含 {DEFAULT_OUTPUT!r}")
        if len(set(self.outputs)) != len(self.outputs):
            errors.append(f"outputs 重复: {list(self.outputs)}")
        clash = set(self.inputs) & set(self.native_inputs)
        if clash:
            errors.append(f"inputs 与 native_inputs 重名: {sorted(clash)}")
        for rule in self.split_rules:
            if rule.output not in self.outputs:
                errors.append(f"拆分规则指向未声明的输出: {rule.output}")
            elif rule.output == DEFAULT_OUTPUT:
                errors.append(f"拆分规则不能指向主输出 {DEFAULT_OUTPUT!r}")
        for contract in self.artifact_contracts:
            if contract.output not in self.outputs:
                errors.append(f"产物约定指向未声明的输出: {contract.output}")
        if errors:
            raise ValidationError(f"包 {self.name} 描述无效: {'; '.join(errors)}", details=errors)

    @property
    def all_inputs(self) -> dict[str, InputRef]:
        """构建期可见的全部输入（native_inputs + inputs）"""
        return {**self.native_inputs, **self.inputs}

    @property
    def full_name(self) -> str:
        return f"{self.name}-{self.version}"

    def check_output(self, output: str) -> None:
        if output not in self.outputs:
            raise OutputMappingUnresolved(
                f"包 {self.name} 未声明输出 {output!r} (已声明: {', '.join(self.outputs)})"
            )

    def describe(self) -> dict[str, Any]:
        """可序列化的摘要（CLI / Web 展示用）"""
        return {
            "name": self.name,
            "version": self.version,
            "build_system": self.build_system,
            "parent": self.parent,
            "source": (
                {"root": self.source.root, "select": self.source.select}
                if self.source else None
            ),
            "phases": list(self.phases.names),
            "inputs": {k: str(v) for k, v in self.inputs.items()},
            "native_inputs": {k: str(v) for k, v in self.native_inputs.items()},
            "outputs": list(self.outputs),
            "build_flags": {
                k: list(v) if isinstance(v, tuple) else v
                for k, v in self.build_flags.items()
            },
        }


# =========================================================================
# 继承解析
# =========================================================================

@dataclass(frozen=True)
class Overrides:
    """派生时的字段覆盖，None 表示沿用 base"""

    name: str | None = None
    version: str | None = None
    version_suffix: str | None = None
    source: SourceSpec | None = None
    build_system: str | None = None
    phases: Pipeline | None = None
    phase_overrides: PhaseOverrides | Sequence[PhaseOverride] | None = None
    inputs: Mapping[str, str | InputRef] | None = None
    native_inputs: Mapping[str, str | InputRef] | None = None
    outputs: Iterable[str] | None = None
    build_flags: Mapping[str, Any] | None = None
    split_rules: Iterable[SplitRule] | None = None
    artifact_contracts: Iterable[ArtifactContract] | None = None


# 直接拷贝到子描述符的字段
_PLAIN_FIELDS = (
    "name", "source", "build_system", "inputs", "native_inputs",
    "build_flags",
)
_TUPLE_FIELDS = ("outputs", "split_rules", "artifact_contracts")


def derive(
    base: PackageDescriptor,
    overrides: Overrides | None = None,
    **fields_: Any,
) -> PackageDescriptor:
    """从 base 派生新描述符

    未覆盖的字段按引用从 base 拷贝；phase_overrides 在
    (overrides.phases 或 base.phases) 之上应用。
    build_system 变更时不校验流水线语义兼容性，由调用方自行提供合适的 phases。
    """
    if overrides is not None and fields_:
        raise ValidationError("overrides 与关键字字段不能同时给出")
    if overrides is None:
        known = {f.name for f in fields(Overrides)}
        unknown = sorted(set(fields_) - known)
        if unknown:
            raise ValidationError(f"未知的覆盖字段: {', '.join(unknown)}", details=unknown)
        overrides = Overrides(**fields_)

    changes: dict[str, Any] = {"parent": base.name}
    for key in _PLAIN_FIELDS:
        value = getattr(overrides, key)
        if value is not None:
            changes[key] = value
    for key in _TUPLE_FIELDS:
        value = getattr(overrides, key)
        if value is not None:
            changes[key] = tuple(value)

    version = overrides.version if overrides.version is not None else base.version
    if overrides.version_suffix:
        version = f"{version}-{overrides.version_suffix}"
    changes["version"] = version

    pipeline = overrides.phases if overrides.phases is not None else base.phases
    if overrides.phase_overrides is not None:
        pipeline = pipeline.apply(overrides.phase_overrides)
    changes["phases"] = pipeline

    child = replace(base, **changes)
    logger.debug(
        "派生描述符: %s -> %s (phases=%s)",
        base.full_name, child.full_name, list(child.phases.names),
    )
    return child
