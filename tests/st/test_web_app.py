"""Web API 端点测试"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from phaseforge.web.app import app


@pytest.fixture()
def client(config_file: Path):
    """创建 Flask 测试客户端，配置指向临时目录"""
    from phaseforge.core.config import init_config
    init_config(str(config_file))
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c


class TestGlobalErrorHandlers:
    def test_404_returns_json(self, client) -> None:
        resp = client.get("/api/nonexistent")
        assert resp.status_code == 404
        assert "error" in resp.get_json()

    def test_405_returns_json(self, client) -> None:
        resp = client.delete("/api/packages")
        assert resp.status_code == 405
        assert "error" in resp.get_json()


class TestApiPackages:
    def test_list(self, client) -> None:
        resp = client.get("/api/packages")
        assert resp.status_code == 200
        names = [p["name"] for p in resp.get_json()["packages"]]
        assert names == ["app", "broken", "engine"]

    def test_get(self, client) -> None:
        resp = client.get("/api/packages/app")
        assert resp.status_code == 200
        pkg = resp.get_json()["package"]
        assert pkg["parent"] == "engine"
        assert pkg["inputs"] == {"engine": "engine:lib"}

    def test_get_missing(self, client) -> None:
        resp = client.get("/api/packages/ghost")
        assert resp.status_code == 404


class TestApiBuild:
    def test_build_success(self, client) -> None:
        resp = client.post("/api/packages/app/build", json={})
        assert resp.status_code == 200
        result = resp.get_json()["result"]
        assert result["status"] == "success"
        assert result["state"] == "assembled"
        assert set(result["outputs"]) == {"out"}
        builds = client.get("/api/builds").get_json()["builds"]
        assert sorted(b["name"] for b in builds) == ["app", "engine"]

    def test_build_failure(self, client) -> None:
        resp = client.post("/api/packages/broken/build")
        assert resp.status_code == 422
        result = resp.get_json()["result"]
        assert result["failed_phase"] == "install"
        assert result["outputs"] == {}

    def test_build_unknown_package(self, client) -> None:
        resp = client.post("/api/packages/ghost/build", json={})
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "PACKAGE_NOT_FOUND"

    def test_build_rejects_non_bool(self, client) -> None:
        resp = client.post("/api/packages/app/build", json={"force": "yes"})
        assert resp.status_code == 400


class TestMockedService:
    @pytest.fixture()
    def mocked(self, config_file: Path):
        from phaseforge.services.container import set_container
        container = MagicMock()
        set_container(container)
        app.config["TESTING"] = True
        with app.test_client() as c:
            yield c, container.build

    def test_unexpected_error_returns_500(self, mocked) -> None:
        client, svc = mocked
        svc.list_all.side_effect = RuntimeError("boom")
        resp = client.get("/api/packages")
        assert resp.status_code == 500
        assert resp.get_json()["error"] == "服务器内部错误"

    def test_build_flags_forwarded(self, mocked) -> None:
        from phaseforge.core.models import BuildResult
        client, svc = mocked
        svc.build.return_value = BuildResult(package="app", version="2.0", status="success")
        resp = client.post("/api/packages/app/build", json={"with_inputs": False, "force": True})
        assert resp.status_code == 200
        svc.build.assert_called_once_with("app", with_inputs=False, force=True)
