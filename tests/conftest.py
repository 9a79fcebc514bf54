"""测试公共夹具"""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from phaseforge.core.config import Config
from phaseforge.utils.shell import CommandResult


class FakeExecutor:
    """按命令前缀返回预设结果的假执行器，记录全部调用"""

    def __init__(self, responses: dict[str, CommandResult] | None = None) -> None:
        self.responses = responses or {}
        self.calls: list[tuple[list[str], str]] = []
        self.timeouts: list[float | None] = []
        self._lock = threading.Lock()

    def execute(self, cmd, *, cwd=".", env=None, timeout=None) -> CommandResult:
        args = cmd.split() if isinstance(cmd, str) else list(cmd)
        with self._lock:
            self.calls.append((args, cwd))
            self.timeouts.append(timeout)
        key = " ".join(args)
        for prefix, result in self.responses.items():
            if key.startswith(prefix):
                return result
        return CommandResult(returncode=0, stdout="", stderr="")


@pytest.fixture()
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture()
def config(tmp_path: Path) -> Config:
    return Config(
        store_dir=str(tmp_path / "store"),
        work_dir=str(tmp_path / "work"),
        index_file=str(tmp_path / "builds.yml"),
    )


@pytest.fixture()
def make_executor():
    """FakeExecutor 工厂: make_executor({"git ls-files": CommandResult(...)})"""
    return FakeExecutor
