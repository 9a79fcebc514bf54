"""源码选择器与源码快照

默认只把版本控制跟踪的文件纳入快照:
  - 目录: 纳入并递归
  - 普通文件 / 符号链接: 路径以清单中某一条目结尾（按路径分段匹配）时纳入
  - 其它（套接字、设备文件等）: 排除

清单无法获取（git 不可用、不是仓库）时直接失败，不回退为"包含全部文件"。
快照一经捕获即不可变，阶段只在工作树副本中写入。
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import stat
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from phaseforge.core.exceptions import ExecutionError, SourceUnavailable
from phaseforge.utils.shell import CommandExecutor, run_cmd

logger = logging.getLogger(__name__)

# 谓词签名与 lstat 结果配合: (路径, stat) -> 是否纳入
Predicate = Callable[[Path, os.stat_result], bool]

# tree 模式下也不纳入的版本控制元数据目录
VCS_DIRS = frozenset({".git", ".hg", ".svn"})


class TrackedManifest:
    """版本控制跟踪文件清单（相对 root 的 posix 路径集合）"""

    def __init__(self, root: Path, entries: Iterable[str]) -> None:
        self.root = root
        self.entries = frozenset(e for e in entries if e)

    @classmethod
    def load(
        cls, root: str | Path, *,
        git_command: str = "git",
        executor: CommandExecutor | None = None,
    ) -> TrackedManifest:
        """通过 git ls-files 获取清单，失败抛 SourceUnavailable"""
        root = Path(root).resolve()
        if not root.is_dir():
            raise SourceUnavailable(f"源码目录不存在: {root}")
        try:
            r = run_cmd(
                [git_command, "ls-files", "-z"],
                cwd=str(root), label="git ls-files", executor=executor,
            )
        except ExecutionError as e:
            raise SourceUnavailable(f"无法获取跟踪文件清单 {root}: {e}") from e
        entries = [e for e in r.stdout.split("\0") if e]
        logger.info("跟踪文件清单已加载: %s (%d 个文件)", root, len(entries))
        return cls(root, entries)

    def tracks(self, path: Path) -> bool:
        """path 是否以清单中某一条目结尾（按路径分段）"""
        parts = Path(path).parts
        return any("/".join(parts[i:]) in self.entries for i in range(len(parts)))

    def __len__(self) -> int:
        return len(self.entries)


def git_predicate(manifest: TrackedManifest) -> Predicate:
    def predicate(path: Path, st: os.stat_result) -> bool:
        if stat.S_ISDIR(st.st_mode):
            return True
        if stat.S_ISREG(st.st_mode) or stat.S_ISLNK(st.st_mode):
            return manifest.tracks(path)
        return False
    return predicate


def tree_predicate(path: Path, st: os.stat_result) -> bool:
    if stat.S_ISDIR(st.st_mode):
        return path.name not in VCS_DIRS
    return stat.S_ISREG(st.st_mode) or stat.S_ISLNK(st.st_mode)


class SourceSelector:
    """按谓词从源码树中选出快照文件"""

    def __init__(self, predicate: Predicate) -> None:
        self.predicate = predicate

    def select(self, root: str | Path) -> list[str]:
        """返回纳入快照的文件（相对 root，排序后）"""
        root = Path(root).resolve()
        if not root.is_dir():
            raise SourceUnavailable(f"源码目录不存在: {root}")
        selected: list[str] = []
        self._walk(root, root, selected)
        return sorted(selected)

    def _walk(self, root: Path, directory: Path, selected: list[str]) -> None:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
        for entry in entries:
            path = Path(entry.path)
            st = entry.stat(follow_symlinks=False)
            if not self.predicate(path, st):
                continue
            if stat.S_ISDIR(st.st_mode):
                self._walk(root, path, selected)
            else:
                selected.append(path.relative_to(root).as_posix())


# =========================================================================
# 快照
# =========================================================================

@dataclass(frozen=True)
class SourceSnapshot:
    """已捕获的源码快照"""

    root: Path
    files: tuple[str, ...]
    digest: str

    def materialize(self, dest: Path) -> None:
        """拷贝到工作树（dest 由调用方保证是全新目录）"""
        for rel in self.files:
            _copy_entry(self.root / rel, dest / rel)


def _copy_entry(src: Path, dst: Path) -> None:
    dst.parent.mkdir(parents=True, exist_ok=True)
    if src.is_symlink():
        os.symlink(os.readlink(src), dst)
    else:
        shutil.copy2(src, dst)


def snapshot_digest(root: Path, files: Iterable[str]) -> str:
    """按相对路径和内容（链接取目标）计算 sha256"""
    h = hashlib.sha256()
    for rel in files:
        path = root / rel
        h.update(rel.encode("utf-8") + b"\0")
        if path.is_symlink():
            h.update(b"link:" + os.readlink(path).encode("utf-8"))
        else:
            with open(path, "rb") as f:
                for chunk in iter(lambda: f.read(65536), b""):
                    h.update(chunk)
        h.update(b"\0")
    return h.hexdigest()


def capture(root: str | Path, selector: SourceSelector, dest: Path) -> SourceSnapshot:
    """把选中的文件拷贝到 dest，得到不可变快照"""
    root = Path(root).resolve()
    files = selector.select(root)
    if dest.exists():
        shutil.rmtree(dest)
    dest.mkdir(parents=True)
    try:
        for rel in files:
            _copy_entry(root / rel, dest / rel)
    except OSError as e:
        shutil.rmtree(dest, ignore_errors=True)
        raise SourceUnavailable(f"源码快照捕获失败 {root}: {e}") from e
    snapshot = SourceSnapshot(root=dest, files=tuple(files), digest=snapshot_digest(dest, files))
    logger.info("源码快照已捕获: %s (%d 个文件, %s)", root, len(files), snapshot.digest[:12])
    return snapshot
