"""CLI 命令测试"""

from __future__ import annotations

from pathlib import Path

from click.testing import CliRunner

from phaseforge import __version__
from phaseforge.cli import main


def _invoke(config_file: Path, *args: str):
    return CliRunner().invoke(main, ["-c", str(config_file), *args])


class TestPackagesCommands:
    def test_version(self) -> None:
        r = CliRunner().invoke(main, ["--version"])
        assert r.exit_code == 0
        assert __version__ in r.output

    def test_list(self, config_file: Path) -> None:
        r = _invoke(config_file, "list")
        assert r.exit_code == 0, r.output
        assert "engine" in r.output
        assert "outputs=out,lib" in r.output

    def test_show(self, config_file: Path) -> None:
        r = _invoke(config_file, "show", "app")
        assert r.exit_code == 0, r.output
        assert "继承自: engine" in r.output
        assert "engine <- engine:lib" in r.output
        assert "1. install" in r.output

    def test_show_missing(self, config_file: Path) -> None:
        r = _invoke(config_file, "show", "ghost")
        assert r.exit_code == 1
        assert "[PACKAGE_NOT_FOUND]" in r.output

    def test_bad_config(self, tmp_path: Path, config_file: Path) -> None:
        bad = tmp_path / "bad.yml"
        bad.write_text("recipe_modules: 3\n", encoding="utf-8")
        r = CliRunner().invoke(main, ["-c", str(bad), "list"])
        assert r.exit_code == 1
        assert "[CONFIG_ERROR]" in r.output


class TestBuildCommands:
    def test_build_with_inputs(self, config_file: Path, tmp_path: Path) -> None:
        r = _invoke(config_file, "build", "app")
        assert r.exit_code == 0, r.output
        assert "构建成功: app-2.0" in r.output
        out_line = [line for line in r.output.splitlines() if line.startswith("out\t")][0]
        out_dir = Path(out_line.split("\t", 1)[1])
        assert (out_dir / "bin" / "app").read_text().strip() == "fasl"

    def test_build_failure(self, config_file: Path) -> None:
        r = _invoke(config_file, "build", "broken")
        assert r.exit_code == 1
        assert "构建失败: broken (阶段 install)" in r.output
        assert "rc=4" in r.output

    def test_build_no_inputs(self, config_file: Path) -> None:
        r = _invoke(config_file, "build", "app", "--no-inputs")
        assert r.exit_code == 1
        assert "尚未构建" in r.output

    def test_builds_listing(self, config_file: Path) -> None:
        assert "构建索引为空" in _invoke(config_file, "builds").output
        _invoke(config_file, "build", "engine")
        r = _invoke(config_file, "builds")
        assert "engine" in r.output
        assert "lib=" in r.output

    def test_assemble(self, config_file: Path, tmp_path: Path) -> None:
        _invoke(config_file, "build", "app")
        dest = tmp_path / "final"
        r = _invoke(
            config_file, "assemble", str(dest), "engine", "app",
            "--prune", "share/README",
        )
        assert r.exit_code == 0, r.output
        assert (dest / "bin" / "app").is_file()
        assert not (dest / "share" / "README").exists()

    def test_assemble_missing_prune(self, config_file: Path, tmp_path: Path) -> None:
        _invoke(config_file, "build", "engine")
        r = _invoke(
            config_file, "assemble", str(tmp_path / "final"), "engine", "--prune", "nope",
        )
        assert r.exit_code == 1
        assert "[PRUNE_TARGET_MISSING]" in r.output
