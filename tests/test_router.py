"""
HTTP surface of the integrations router.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from backend.app.integrations.api.router import router
from backend.app.integrations.errors import RemoteDecodeError
from backend.app.integrations.services.fetcher import Fetcher
from backend.app.integrations.services.manager import IntegrationManager


@pytest.fixture
def manager(store, platform):
    fetcher = Fetcher(platform=platform)
    return IntegrationManager(store, fetcher, platform=platform)


@pytest.fixture
def client(manager):
    app = FastAPI()
    app.state.integration_manager = manager
    app.include_router(router, prefix="/api/integrations")
    return TestClient(app)


class TestInstall:
    def test_install_and_list(self, client, make_package):
        path = make_package(name="fs")

        r = client.post("/api/integrations/install", json={"target": str(path)})
        assert r.status_code == 200
        assert r.json()["status"] == "installed"
        assert r.json()["package"] == {"name": "fs", "version": "v1.0.0", "os": "linux", "arch": "amd64"}

        r = client.get("/api/integrations/installed")
        assert r.status_code == 200
        assert [p["name"] for p in r.json()["packages"]] == ["fs"]
        assert r.json()["errors"] == []

    def test_install_twice_conflicts(self, client, make_package):
        path = make_package(name="fs")
        client.post("/api/integrations/install", json={"target": str(path)})

        r = client.post("/api/integrations/install", json={"target": str(path)})
        assert r.status_code == 409

    def test_contradictory_options(self, client, make_package):
        path = make_package(name="fs")

        r = client.post(
            "/api/integrations/install",
            json={"target": str(path), "upgrade": True, "downgrade": True},
        )
        assert r.status_code == 400

    def test_bad_archive(self, client, tmp_path):
        path = tmp_path / "fs_v1.0.0_linux_amd64.ptar"
        path.write_bytes(b"not a zip")

        r = client.post("/api/integrations/install", json={"target": str(path)})
        assert r.status_code == 400

    def test_missing_file(self, client, tmp_path):
        path = tmp_path / "fs_v1.0.0_linux_amd64.ptar"

        r = client.post("/api/integrations/install", json={"target": str(path)})
        assert r.status_code == 404


class TestManifestLookup:
    def test_manifest_of_installed(self, client, make_package):
        client.post("/api/integrations/install", json={"target": str(make_package(name="fs"))})

        r = client.get("/api/integrations/installed/fs/v1.0.0")
        assert r.status_code == 200
        assert r.json()["name"] == "fs"
        assert r.json()["connectors"][0]["executable"] == "bin/worker"

    def test_not_installed(self, client):
        r = client.get("/api/integrations/installed/fs/v9.0.0")
        assert r.status_code == 404

    def test_invalid_version(self, client):
        r = client.get("/api/integrations/installed/fs/latest")
        assert r.status_code == 400


class TestUninstall:
    def test_uninstall(self, client, make_package):
        client.post("/api/integrations/install", json={"target": str(make_package(name="fs"))})

        r = client.post("/api/integrations/uninstall", json={"target": "fs"})
        assert r.status_code == 200
        assert [p["version"] for p in r.json()["removed"]] == ["v1.0.0"]

        r = client.get("/api/integrations/installed")
        assert r.json()["packages"] == []

    def test_uninstall_needs_target(self, client):
        r = client.post("/api/integrations/uninstall", json={})
        assert r.status_code == 400


class TestCatalogAndReload:
    def test_local_catalog(self, client, make_package):
        client.post("/api/integrations/install", json={"target": str(make_package(name="fs"))})

        r = client.get("/api/integrations/catalog", params={"only_local": "true"})
        assert r.status_code == 200
        rows = r.json()
        assert [(p["name"], p["installation"]["status"]) for p in rows] == [("fs", "installed")]

    def test_bad_catalog_is_upstream_error(self, client, manager, monkeypatch):
        def bad_index():
            raise RemoteDecodeError("https://api.example/v1/integrations/v1.0.0.json", "catalog index", "not json")

        monkeypatch.setattr(manager, "fetch_index", bad_index)

        r = client.get("/api/integrations/catalog")
        assert r.status_code == 502
        assert "catalog index" in r.json()["detail"]

    def test_reload(self, client, store, make_package):
        path = make_package(name="fs")
        (store.pkg_dir / path.name).write_bytes(path.read_bytes())

        r = client.post("/api/integrations/reload")
        assert r.status_code == 200
        assert r.json() == {"reloaded": 1}
        assert (store.cache_dir / "fs_v1.0.0_linux_amd64" / "manifest.yaml").exists()


def test_manager_not_initialized():
    app = FastAPI()
    app.include_router(router, prefix="/api/integrations")

    r = TestClient(app).get("/api/integrations/installed")
    assert r.status_code == 503
