"""构建索引测试"""

from __future__ import annotations

from pathlib import Path

from phaseforge.core.descriptor import PackageDescriptor
from phaseforge.core.models import ArtifactContract, BuildResult
from phaseforge.core.registry import BuildIndex
from phaseforge.utils.yaml_io import load_yaml


def _desc() -> PackageDescriptor:
    return PackageDescriptor(
        name="engine", version="3.1", outputs=("out", "lib"),
        artifact_contracts=(ArtifactContract("lib", "engine--system.fasl", "engine.fasl"),),
    )


def _result() -> BuildResult:
    return BuildResult(
        package="engine", version="3.1", status="success",
        outputs={"out": "/store/engine-3.1/out", "lib": "/store/engine-3.1/lib"},
        phases=["unpack", "install"], duration=1.23456, source_digest="ab" * 32,
    )


class TestBuildIndex:
    def test_record_and_get(self, tmp_path: Path) -> None:
        idx = BuildIndex(tmp_path / "builds.yml")
        entry = idx.record(_desc(), _result())
        assert entry["duration"] == 1.235
        got = idx.get("engine")
        assert got["outputs"]["lib"] == "/store/engine-3.1/lib"
        assert got["artifacts"] == {"engine.fasl": "lib"}
        assert got["built_at"]

    def test_persisted(self, tmp_path: Path) -> None:
        path = tmp_path / "builds.yml"
        BuildIndex(path).record(_desc(), _result())
        assert "engine" in load_yaml(path)["builds"]
        reloaded = BuildIndex(path)
        assert reloaded.get("engine")["version"] == "3.1"

    def test_list_and_remove(self, tmp_path: Path) -> None:
        idx = BuildIndex(tmp_path / "builds.yml")
        idx.record(_desc(), _result())
        assert [e["name"] for e in idx.list_all()] == ["engine"]
        assert idx.remove("engine") is True
        assert idx.remove("engine") is False
        assert idx.get("engine") is None

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        idx = BuildIndex(tmp_path / "nope" / "builds.yml")
        assert idx.list_all() == []

    def test_format_written(self, tmp_path: Path) -> None:
        path = tmp_path / "builds.yml"
        BuildIndex(path).record(_desc(), _result())
        assert load_yaml(path)["format"] == 1

    def test_returned_entries_are_copies(self, tmp_path: Path) -> None:
        idx = BuildIndex(tmp_path / "builds.yml")
        idx.record(_desc(), _result())
        idx.get("engine")["outputs"]["lib"] = "/elsewhere"
        assert idx.get("engine")["outputs"]["lib"] == "/store/engine-3.1/lib"
