"""外部工具调用

configure / make / git 等工具链命令统一经 run_cmd 发出。
进程的创建由 CommandExecutor 负责，构建会话可以换成记录调用的假执行器。

约定的退出码:
  127  工具不存在
  124  超过 timeout 被终止
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import Protocol

from phaseforge.core.exceptions import ExecutionError

logger = logging.getLogger(__name__)

RC_NOT_FOUND = 127
RC_TIMEOUT = 124

# 错误信息里附带的工具输出长度
OUTPUT_TAIL = 500


@dataclass
class CommandResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0

    def tail(self, limit: int = OUTPUT_TAIL) -> str:
        """诊断用的输出尾部

        make 之类的工具常把错误写到 stdout，stderr 为空时取 stdout。
        """
        text = self.stderr.strip() or self.stdout.strip()
        return text[-limit:]


class CommandExecutor(Protocol):
    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        ...


class LocalExecutor:
    """在本机以子进程运行工具"""

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        argv = split_cmd(cmd)
        try:
            proc = subprocess.run(
                argv, cwd=cwd, env=env, timeout=timeout,
                capture_output=True, text=True, check=False,
            )
        except FileNotFoundError as e:
            return CommandResult(RC_NOT_FOUND, "", str(e))
        except subprocess.TimeoutExpired as e:
            partial = e.stdout.decode(errors="replace") if isinstance(e.stdout, bytes) else (e.stdout or "")
            return CommandResult(RC_TIMEOUT, partial, f"超过 {timeout}s 未结束，已终止")
        return CommandResult(proc.returncode, proc.stdout, proc.stderr)


_executor: CommandExecutor = LocalExecutor()


def get_executor() -> CommandExecutor:
    return _executor


def set_executor(executor: CommandExecutor) -> None:
    """替换进程级默认执行器；会话显式传入的执行器优先"""
    global _executor  # noqa: PLW0603
    _executor = executor


def split_cmd(cmd: str | list[str]) -> list[str]:
    return shlex.split(cmd) if isinstance(cmd, str) else list(cmd)


def format_cmd(cmd: str | list[str]) -> str:
    return cmd if isinstance(cmd, str) else shlex.join(cmd)


def run_cmd(
    cmd: str | list[str], *, cwd: str = ".",
    env: dict[str, str] | None = None,
    label: str = "cmd",
    timeout: float | None = None,
    executor: CommandExecutor | None = None,
) -> CommandResult:
    """运行一条工具命令，非零退出抛 ExecutionError

    异常消息形如 "<label>失败 (rc=N): <输出尾部>"；完整 stderr 挂在
    ExecutionError.stderr 上，由调用方决定截取多少。
    env 为 None 时子进程继承当前环境。
    """
    logger.info("  %s: %s (cwd=%s)", label, format_cmd(cmd), cwd)
    chosen = executor if executor is not None else _executor
    r = chosen.execute(cmd, cwd=cwd, env=env, timeout=timeout)
    if r.success:
        if r.stdout:
            logger.debug("  %s 输出尾部: %s", label, r.stdout.strip()[-200:])
        return r
    raise ExecutionError(
        f"{label}失败 (rc={r.returncode}): {r.tail()}",
        returncode=r.returncode,
        stderr=r.stderr or r.stdout,
    )
