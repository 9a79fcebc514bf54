"""标准构建系统

每个构建系统提供一条基础流水线，描述符在其上用覆盖代数增删改阶段:

  gnu:     unpack -> configure -> build -> check -> install
  copy:    unpack -> install (按 install_plan 拷贝到 out)
  trivial: 空流水线，阶段全部由描述符提供

工具链参数从 build_flags 派生:
  make / shell            覆盖 make 与 shell 可执行文件
  configure_flags         追加给 ./configure
  make_flags              追加给每次 make 调用
  parallel                make -j N
  tests                   为 False 时跳过 check
  test_target             check 阶段的 make 目标（默认 check）
  install_plan            {工作树相对路径: out 内相对路径}
  env                     额外环境变量
  timeout                 单条工具命令的超时秒数，超时按失败处理
参数值中可使用占位符 {out} {lib} {work} {inputs[名]} {flags[键]}。
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import tarfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

from phaseforge.core.exceptions import ValidationError
from phaseforge.core.models import DEFAULT_OUTPUT, BuildContext, PhaseAction, check_relative_path
from phaseforge.core.phases import Phase, Pipeline
from phaseforge.utils.shell import run_cmd

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIXES = (".tar", ".tar.gz", ".tgz", ".tar.bz2", ".tar.xz")


def _expand(value: Any, ctx: BuildContext) -> str:
    """展开占位符；字面花括号须写成 {{ 和 }}"""
    text = str(value)
    try:
        return text.format_map(ctx.placeholders())
    except (KeyError, IndexError, ValueError, AttributeError) as e:
        raise ValidationError(
            f"{ctx.package}: 无法展开 {text!r} 中的占位符 {e} (字面花括号请写成 {{{{ 和 }}}})"
        ) from e


def flag_args(ctx: BuildContext, key: str) -> list[str]:
    """把 build_flags[key] 展开为参数列表（字符串按 shell 规则切分）"""
    raw = ctx.flags.get(key)
    if raw is None:
        return []
    items = shlex.split(raw) if isinstance(raw, str) else list(raw)
    return [_expand(item, ctx) for item in items]


def build_env(ctx: BuildContext) -> dict[str, str]:
    extra = ctx.flags.get("env") or {}
    return {**os.environ, **{k: _expand(v, ctx) for k, v in extra.items()}}


def phase_timeout(ctx: BuildContext) -> float | None:
    raw = ctx.flags.get("timeout")
    if raw is None:
        return None
    try:
        seconds = float(raw)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"timeout 必须是秒数: {raw!r}") from e
    if seconds <= 0:
        raise ValidationError(f"timeout 必须为正数: {raw!r}")
    return seconds


def shell_phase(*args: str, cwd: str = "{work}", label: str = "") -> PhaseAction:
    """以参数列表调用外部工具的阶段动作，退出码非零即失败"""
    if not args:
        raise ValidationError("shell_phase 至少需要一个参数")

    def action(ctx: BuildContext) -> None:
        cmd = [_expand(a, ctx) for a in args]
        run_cmd(
            cmd, cwd=_expand(cwd, ctx), env=build_env(ctx),
            label=label or cmd[0], timeout=phase_timeout(ctx),
            executor=ctx.executor,
        )

    action.__name__ = label or args[0]
    return action


# =========================================================================
# gnu
# =========================================================================

def unpack(ctx: BuildContext) -> None:
    """工作树中只有一个源码包时就地解压，否则源码快照已是展开状态"""
    entries = list(ctx.work_dir.iterdir())
    if len(entries) != 1 or not entries[0].name.endswith(ARCHIVE_SUFFIXES):
        return
    archive = entries[0]
    with tarfile.open(archive) as tf:
        tf.extractall(path=str(ctx.work_dir), filter="data")
    archive.unlink()
    logger.info("源码包已解压: %s", archive.name)


def _make(ctx: BuildContext) -> list[str]:
    cmd = [str(ctx.flags.get("make", "make"))]
    jobs = ctx.flags.get("parallel")
    if jobs:
        cmd.append(f"-j{int(jobs)}")
    return cmd


def gnu_configure(ctx: BuildContext) -> None:
    if not (ctx.work_dir / "configure").exists():
        logger.info("没有 configure 脚本，跳过")
        return
    run_cmd(
        [str(ctx.flags.get("shell", "sh")), "./configure",
         f"--prefix={ctx.output()}", *flag_args(ctx, "configure_flags")],
        cwd=str(ctx.work_dir), env=build_env(ctx), label="configure",
        timeout=phase_timeout(ctx), executor=ctx.executor,
    )


def gnu_build(ctx: BuildContext) -> None:
    run_cmd(
        [*_make(ctx), *flag_args(ctx, "make_flags")],
        cwd=str(ctx.work_dir), env=build_env(ctx), label="make",
        timeout=phase_timeout(ctx), executor=ctx.executor,
    )


def gnu_check(ctx: BuildContext) -> None:
    if ctx.flags.get("tests", True) is False:
        logger.info("tests=False，跳过 check")
        return
    target = str(ctx.flags.get("test_target", "check"))
    run_cmd(
        [*_make(ctx), target, *flag_args(ctx, "make_flags")],
        cwd=str(ctx.work_dir), env=build_env(ctx), label="make check",
        timeout=phase_timeout(ctx), executor=ctx.executor,
    )


def gnu_install(ctx: BuildContext) -> None:
    run_cmd(
        [*_make(ctx), "install", *flag_args(ctx, "make_flags")],
        cwd=str(ctx.work_dir), env=build_env(ctx), label="make install",
        timeout=phase_timeout(ctx), executor=ctx.executor,
    )


# =========================================================================
# copy
# =========================================================================

def _copy_into(src: Path, dst: Path) -> None:
    if src.is_dir() and not src.is_symlink():
        shutil.copytree(src, dst, symlinks=True, dirs_exist_ok=True)
    else:
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, dst, follow_symlinks=False)


def copy_install(ctx: BuildContext) -> None:
    """按 install_plan 拷贝到主输出；未给出时拷贝整个工作树"""
    out = ctx.output(DEFAULT_OUTPUT)
    plan = ctx.flags.get("install_plan")
    if not plan:
        _copy_into(ctx.work_dir, out)
        return
    for src_rel, dst_rel in plan.items():
        src = ctx.work_dir / check_relative_path(src_rel, "install_plan 源")
        if not src.exists():
            raise ValidationError(f"install_plan 源不存在: {src_rel}")
        dst_rel = dst_rel.rstrip("/")
        dst = out / check_relative_path(dst_rel, "install_plan 目标") if dst_rel else out
        _copy_into(src, dst)


STANDARD_PIPELINES: dict[str, Callable[[], Pipeline]] = {
    "gnu": lambda: Pipeline((
        Phase("unpack", unpack),
        Phase("configure", gnu_configure),
        Phase("build", gnu_build),
        Phase("check", gnu_check),
        Phase("install", gnu_install),
    )),
    "copy": lambda: Pipeline((
        Phase("unpack", unpack),
        Phase("install", copy_install),
    )),
    "trivial": Pipeline,
}


def standard_pipeline(build_system: str) -> Pipeline:
    """构建系统的基础流水线"""
    factory = STANDARD_PIPELINES.get(build_system)
    if factory is None:
        raise ValidationError(
            f"未知的构建系统: {build_system} (可选: {', '.join(STANDARD_PIPELINES)})"
        )
    return factory()
