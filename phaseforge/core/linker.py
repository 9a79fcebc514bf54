"""跨包产物组装

把若干已构建包的命名输出依次拷入目标目录，再删除 prune 列出的路径
（构建描述文件、暂存产物等不应进入最终发布包的内容）。

  - 两个来源写同一相对路径时，列表中靠后的来源胜出
  - prune 中的路径在拷贝结果里不存在即失败（暴露过期配置）
  - 在临时目录中组装，成功后才替换 dest；失败不留下半成品
  - 只读取生产者的输出，从不原地修改
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from phaseforge.core.exceptions import PruneTargetMissing
from phaseforge.core.models import DEFAULT_OUTPUT, BuildContext, InputRef, check_relative_path
from phaseforge.core.splitter import list_files

if TYPE_CHECKING:
    from phaseforge.core.descriptor import PackageDescriptor
    from phaseforge.core.models import PhaseAction
    from phaseforge.core.session import BuildSession

logger = logging.getLogger(__name__)


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def _merge_tree(src: Path, dst: Path) -> None:
    """把 src 合并进 dst，同名条目以 src 为准"""
    dst.mkdir(parents=True, exist_ok=True)
    with os.scandir(src) as it:
        entries = sorted(it, key=lambda e: e.name)
    for entry in entries:
        s = Path(entry.path)
        d = dst / entry.name
        if entry.is_dir(follow_symlinks=False):
            if os.path.lexists(d) and (d.is_symlink() or not d.is_dir()):
                _remove(d)
            _merge_tree(s, d)
        else:
            if os.path.lexists(d):
                _remove(d)
            shutil.copy2(s, d, follow_symlinks=False)


def assemble_trees(sources: Sequence[Path], dest: Path, prune: Sequence[str] = ()) -> list[str]:
    """按顺序合并 sources 到 dest 并裁剪，返回最终文件清单"""
    prune_rel = [check_relative_path(p, "裁剪路径") for p in prune]
    dest = Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(dir=str(dest.parent), prefix=f".{dest.name}-"))
    try:
        for src in sources:
            logger.info("  合并: %s", src)
            _merge_tree(Path(src), staging)
        for rel in prune_rel:
            target = staging / rel
            if not os.path.lexists(target):
                raise PruneTargetMissing(f"裁剪目标不存在: {rel}")
            _remove(target)
            logger.info("  裁剪: %s", rel)
        if os.path.lexists(dest):
            _remove(dest)
        os.replace(staging, dest)
    except BaseException:
        shutil.rmtree(staging, ignore_errors=True)
        raise
    files = list_files(dest)
    logger.info("组装完成: %s (%d 个文件)", dest, len(files))
    return files


def assemble(
    sources: Sequence[tuple[PackageDescriptor | str, str]],
    prune: Sequence[str],
    dest: str | Path,
    *,
    session: BuildSession,
) -> Path:
    """从已构建包的输出组装最终目录

    sources 中每项为 (描述符或包名, 输出名)，按列表顺序拷贝，后者覆盖前者。
    """
    paths: list[Path] = []
    for package, output in sources:
        if isinstance(package, str):
            ref = InputRef(package, output)
        else:
            package.check_output(output)
            ref = InputRef(package.name, output)
        paths.append(session.output_path(ref))
    dest = Path(dest)
    assemble_trees(paths, dest, prune)
    return dest


def assemble_phase(input_names: Sequence[str], prune: Sequence[str] = (),
                   output: str = DEFAULT_OUTPUT) -> PhaseAction:
    """组装阶段: 把已解析的输入合并进本包的输出"""
    names = tuple(input_names)
    pruned = tuple(prune)

    def action(ctx: BuildContext) -> None:
        assemble_trees([ctx.input(n) for n in names], ctx.output(output), pruned)

    action.__name__ = "assemble"
    return action
