"""构建阶段流水线与覆盖代数

流水线是一组有序、名字唯一的阶段。派生流水线不直接拼接列表，
而是在基础流水线上依次应用一组覆盖操作:

  Delete(name)                    删除阶段
  Replace(name, action)           替换动作，位置不变
  AddBefore(anchor, name, action) 在锚点前插入新阶段
  AddAfter(anchor, name, action)  在锚点后插入新阶段

同一组覆盖里两个操作指向同一阶段名，在构造 PhaseOverrides 时即被拒绝；
流水线记录派生链上已被覆盖过的阶段名，再次覆盖同名阶段同样被拒绝，
不做"后写者胜"的静默处理。
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from phaseforge.core.exceptions import PhaseOverrideConflict, ValidationError
from phaseforge.core.models import PhaseAction

logger = logging.getLogger(__name__)


def _clean_name(value: object, what: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{what}必须是字符串 (type={type(value).__name__})")
    name = value.strip()
    if not name:
        raise ValueError(f"{what}不能为空")
    return name


@dataclass(frozen=True)
class Phase:
    """一个命名的构建阶段"""

    name: str
    action: PhaseAction

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _clean_name(self.name, "阶段名"))
        if not callable(self.action):
            raise TypeError(
                f"阶段 {self.name} 的动作必须可调用 (type={type(self.action).__name__})"
            )


# =========================================================================
# 覆盖操作
# =========================================================================

def _index_of(phases: list[Phase], name: str, role: str) -> int:
    for i, phase in enumerate(phases):
        if phase.name == name:
            return i
    raise PhaseOverrideConflict(f"{role}阶段不存在: {name}")


def _ensure_absent(phases: list[Phase], name: str) -> None:
    if any(p.name == name for p in phases):
        raise PhaseOverrideConflict(f"阶段名已存在: {name}")


@dataclass(frozen=True)
class PhaseOverride:
    """覆盖操作基类，name 是该操作作用的阶段名"""

    name: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _clean_name(self.name, "阶段名"))
        if hasattr(self, "anchor"):
            object.__setattr__(self, "anchor", _clean_name(self.anchor, "锚点阶段名"))
        if hasattr(self, "action") and not callable(self.action):
            raise TypeError(f"阶段 {self.name} 的覆盖动作必须可调用")

    def apply_to(self, phases: list[Phase]) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class Delete(PhaseOverride):
    def apply_to(self, phases: list[Phase]) -> None:
        del phases[_index_of(phases, self.name, "待删除")]


@dataclass(frozen=True)
class Replace(PhaseOverride):
    action: PhaseAction = field(default=None)  # type: ignore[assignment]

    def apply_to(self, phases: list[Phase]) -> None:
        i = _index_of(phases, self.name, "待替换")
        phases[i] = Phase(self.name, self.action)


@dataclass(frozen=True)
class AddBefore(PhaseOverride):
    anchor: str = ""
    action: PhaseAction = field(default=None)  # type: ignore[assignment]

    def apply_to(self, phases: list[Phase]) -> None:
        i = _index_of(phases, self.anchor, "锚点")
        _ensure_absent(phases, self.name)
        phases.insert(i, Phase(self.name, self.action))


@dataclass(frozen=True)
class AddAfter(PhaseOverride):
    anchor: str = ""
    action: PhaseAction = field(default=None)  # type: ignore[assignment]

    def apply_to(self, phases: list[Phase]) -> None:
        i = _index_of(phases, self.anchor, "锚点")
        _ensure_absent(phases, self.name)
        phases.insert(i + 1, Phase(self.name, self.action))


def delete(name: str) -> Delete:
    return Delete(name)


def replace(name: str, action: PhaseAction) -> Replace:
    return Replace(name, action)


def add_before(anchor: str, name: str, action: PhaseAction) -> AddBefore:
    return AddBefore(name, anchor=anchor, action=action)


def add_after(anchor: str, name: str, action: PhaseAction) -> AddAfter:
    return AddAfter(name, anchor=anchor, action=action)


@dataclass(frozen=True)
class PhaseOverrides:
    """一组按声明顺序应用的覆盖操作"""

    ops: tuple[PhaseOverride, ...] = ()

    def __post_init__(self) -> None:
        ops = tuple(self.ops)
        object.__setattr__(self, "ops", ops)
        seen: set[str] = set()
        for op in ops:
            if not isinstance(op, PhaseOverride):
                raise TypeError(f"不是覆盖操作: {op!r}")
            if op.name in seen:
                raise PhaseOverrideConflict(f"同一组覆盖重复指向阶段: {op.name}")
            seen.add(op.name)

    @classmethod
    def of(cls, ops: PhaseOverrides | Iterable[PhaseOverride]) -> PhaseOverrides:
        if isinstance(ops, PhaseOverrides):
            return ops
        return cls(tuple(ops))

    @property
    def targets(self) -> frozenset[str]:
        return frozenset(op.name for op in self.ops)

    def __iter__(self) -> Iterator[PhaseOverride]:
        return iter(self.ops)

    def __len__(self) -> int:
        return len(self.ops)


# =========================================================================
# 流水线
# =========================================================================

@dataclass(frozen=True)
class Pipeline:
    """有序、名字唯一的阶段序列

    overridden 记录派生链上所有被覆盖操作指向过的阶段名。
    """

    phases: tuple[Phase, ...] = ()
    overridden: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        phases = tuple(self.phases)
        object.__setattr__(self, "phases", phases)
        object.__setattr__(self, "overridden", frozenset(self.overridden))
        names = [p.name for p in phases]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValidationError(f"流水线阶段名重复: {', '.join(dupes)}", details=dupes)

    @classmethod
    def of(cls, *phases: tuple[str, PhaseAction] | Phase) -> Pipeline:
        """Pipeline.of(("unpack", fn), ("build", fn2), ...)"""
        return cls(tuple(p if isinstance(p, Phase) else Phase(*p) for p in phases))

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(p.name for p in self.phases)

    def get(self, name: str) -> Phase | None:
        for phase in self.phases:
            if phase.name == name:
                return phase
        return None

    def __iter__(self) -> Iterator[Phase]:
        return iter(self.phases)

    def __len__(self) -> int:
        return len(self.phases)

    def __contains__(self, name: object) -> bool:
        return any(p.name == name for p in self.phases)

    def apply(self, overrides: PhaseOverrides | Iterable[PhaseOverride]) -> Pipeline:
        """在本流水线上应用覆盖，返回新流水线（本身不变）"""
        ov = PhaseOverrides.of(overrides)
        again = ov.targets & self.overridden
        if again:
            raise PhaseOverrideConflict(
                f"阶段已在派生链上被覆盖过: {', '.join(sorted(again))}"
            )
        phases = list(self.phases)
        for op in ov:
            op.apply_to(phases)
        derived = Pipeline(tuple(phases), overridden=self.overridden | ov.targets)
        logger.debug("流水线派生: %s -> %s", list(self.names), list(derived.names))
        return derived
