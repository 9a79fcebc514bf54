"""CLI / Web 测试夹具"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

import phaseforge.core.config as cfgmod
from phaseforge.services.container import reset_container
from phaseforge.utils.logger import reset_logging


@pytest.fixture()
def config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """写入指向测试配方的配置文件，并在结束后恢复全局状态"""
    path = tmp_path / "phaseforge.yml"
    path.write_text(
        f"store_dir: {tmp_path / 'store'}\n"
        f"work_dir: {tmp_path / 'work'}\n"
        f"index_file: {tmp_path / 'store' / 'index.yml'}\n"
        "recipe_modules:\n"
        "  - tests.st.recipes_fixture\n",
        encoding="utf-8",
    )
    monkeypatch.setattr(cfgmod, "_current", None)
    reset_container()
    yield path
    reset_container()
    reset_logging()
