"""输出拆分器

流水线结束后，阶段写入主输出 out 的文件按拆分规则分配到各命名输出:
第一条匹配的规则决定去向，未匹配的留在 out。没有规则时即恒等拆分。
拆分是一个划分: 每个生成文件恰好落在一个输出中。

拆分后执行产物约定（ArtifactContract）: 在指定输出内把自动命名的文件
复制或改名为下游加载器期望的名字。源文件不存在即失败；
目标已存在则直接覆盖。约定是显式、确定的，不做模糊匹配。
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from phaseforge.core.exceptions import (
    ArtifactMissing,
    OutputMappingUnresolved,
    OutputSplitConflict,
)
from phaseforge.core.models import DEFAULT_OUTPUT, ArtifactContract, SplitRule

logger = logging.getLogger(__name__)


def list_files(root: Path) -> list[str]:
    """root 下所有文件和符号链接（相对路径，排序）"""
    found: list[str] = []
    if not root.exists():
        return found
    for dirpath, dirnames, filenames in os.walk(root):
        base = Path(dirpath)
        for d in list(dirnames):
            if (base / d).is_symlink():
                found.append((base / d).relative_to(root).as_posix())
                dirnames.remove(d)
        for name in filenames:
            found.append((base / name).relative_to(root).as_posix())
    return sorted(found)


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


@dataclass
class SplitReport:
    """拆分结果: 每个输出最终包含的文件"""

    assignments: dict[str, list[str]] = field(default_factory=dict)
    fixups: list[str] = field(default_factory=list)

    def files(self) -> set[tuple[str, str]]:
        return {(out, rel) for out, rels in self.assignments.items() for rel in rels}


class OutputSplitter:
    """按规则拆分输出并执行产物约定"""

    def __init__(
        self,
        rules: Sequence[SplitRule] = (),
        contracts: Sequence[ArtifactContract] = (),
    ) -> None:
        self.rules = tuple(rules)
        self.contracts = tuple(contracts)

    def route(self, relpath: str) -> str:
        for rule in self.rules:
            if rule.matches(relpath):
                return rule.output
        return DEFAULT_OUTPUT

    def split(self, outputs: Mapping[str, Path]) -> SplitReport:
        """拆分主输出，返回各输出的文件清单"""
        for rule in self.rules:
            if rule.output not in outputs:
                raise OutputMappingUnresolved(f"拆分规则指向未创建的输出: {rule.output}")
        primary = outputs[DEFAULT_OUTPUT]
        report = SplitReport(assignments={name: [] for name in outputs})

        # 阶段直接写入非主输出的文件原样保留
        for name, root in outputs.items():
            if name != DEFAULT_OUTPUT:
                report.assignments[name].extend(list_files(root))

        vacated: set[Path] = set()
        for rel in list_files(primary):
            target = self.route(rel)
            if target != DEFAULT_OUTPUT:
                src = primary / rel
                dst = outputs[target] / rel
                if os.path.lexists(dst):
                    raise OutputSplitConflict(f"输出 {target} 中已存在 {rel}")
                dst.parent.mkdir(parents=True, exist_ok=True)
                os.replace(src, dst)
                vacated.add(src.parent)
            report.assignments[target].append(rel)

        self._prune_empty_dirs(primary, vacated)
        for rels in report.assignments.values():
            rels.sort()
        logger.info(
            "输出拆分完成: %s",
            ", ".join(f"{k}={len(v)}" for k, v in report.assignments.items()),
        )

        report.fixups = self.apply_contracts(outputs)
        return report

    @staticmethod
    def _prune_empty_dirs(primary: Path, vacated: set[Path]) -> None:
        """删除因移走文件而变空的目录（阶段自建的空目录保留）"""
        for directory in sorted(vacated, key=lambda p: len(p.parts), reverse=True):
            current = directory
            while current != primary and current.is_dir() and not any(current.iterdir()):
                current.rmdir()
                current = current.parent

    def apply_contracts(self, outputs: Mapping[str, Path]) -> list[str]:
        """执行产物约定，返回 "输出:目标名" 列表"""
        done: list[str] = []
        for contract in self.contracts:
            if contract.output not in outputs:
                raise OutputMappingUnresolved(f"产物约定指向未创建的输出: {contract.output}")
            tree = outputs[contract.output]
            src = tree / contract.source
            dst = tree / contract.expected_name
            if not os.path.lexists(src):
                raise ArtifactMissing(
                    f"约定产物源文件不存在: {contract.output}:{contract.source}"
                )
            if os.path.lexists(dst):
                logger.info("约定产物目标已存在，覆盖: %s:%s", contract.output, contract.expected_name)
                _remove(dst)
            dst.parent.mkdir(parents=True, exist_ok=True)
            if contract.mode == "rename":
                os.replace(src, dst)
            elif src.is_dir() and not src.is_symlink():
                shutil.copytree(src, dst, symlinks=True)
            else:
                shutil.copy2(src, dst, follow_symlinks=False)
            logger.info(
                "约定产物就绪 (%s): %s:%s -> %s",
                contract.mode, contract.output, contract.source, contract.expected_name,
            )
            done.append(f"{contract.output}:{contract.expected_name}")
        return done
