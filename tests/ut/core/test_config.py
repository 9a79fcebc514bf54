"""配置加载测试"""

from __future__ import annotations

from pathlib import Path

import pytest

import phaseforge.core.config as cfgmod
from phaseforge.core.config import Config
from phaseforge.core.exceptions import ConfigError


class TestConfig:
    def test_defaults_when_missing(self, tmp_path: Path) -> None:
        cfg = Config.from_file(str(tmp_path / "none.yml"))
        assert cfg.store_dir == "store"
        assert cfg.recipe_modules == []
        assert cfg.keep_failed is False

    def test_load_known_and_extra(self, tmp_path: Path) -> None:
        path = tmp_path / "phaseforge.yml"
        path.write_text(
            "store_dir: /srv/store\n"
            "recipe_modules: demos.browser_recipe\n"
            "max_workers: 2\n"
            "mirror: https://example.invalid\n",
            encoding="utf-8",
        )
        cfg = Config.from_file(str(path))
        assert cfg.store_dir == "/srv/store"
        assert cfg.recipe_modules == ["demos.browser_recipe"]
        assert cfg.max_workers == 2
        assert cfg.extra == {"mirror": "https://example.invalid"}
        assert cfg.to_dict()["extra"] == {"mirror": "https://example.invalid"}

    def test_bad_recipe_modules(self, tmp_path: Path) -> None:
        path = tmp_path / "phaseforge.yml"
        path.write_text("recipe_modules: {a: 1}\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="recipe_modules"):
            Config.from_file(str(path))

    def test_malformed_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "phaseforge.yml"
        path.write_text("store_dir: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="无法读取"):
            Config.from_file(str(path))

    def test_init_config_sets_global(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setattr(cfgmod, "_current", None)
        path = tmp_path / "phaseforge.yml"
        path.write_text("work_dir: /tmp/pf-work\n", encoding="utf-8")
        cfg = cfgmod.init_config(str(path))
        assert cfgmod.get_config() is cfg
        assert cfg.work_dir == "/tmp/pf-work"

    def test_get_config_default(self, monkeypatch) -> None:
        monkeypatch.setattr(cfgmod, "_current", None)
        assert cfgmod.get_config().git_command == "git"

    @pytest.mark.parametrize("body, field", [
        ("max_workers: 0\n", "max_workers"),
        ("max_workers: many\n", "max_workers"),
        ("keep_failed: maybe\n", "keep_failed"),
        ("store_dir: ''\n", "store_dir"),
    ])
    def test_invalid_values(self, tmp_path: Path, body: str, field: str) -> None:
        path = tmp_path / "phaseforge.yml"
        path.write_text(body, encoding="utf-8")
        with pytest.raises(ConfigError, match=field):
            Config.from_file(str(path))

    def test_from_dict_keeps_unknown_keys(self) -> None:
        cfg = Config.from_dict({"git_command": "/opt/git/bin/git", "mirror": "m"})
        assert cfg.git_command == "/opt/git/bin/git"
        assert cfg.extra == {"mirror": "m"}
