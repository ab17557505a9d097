from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from imagegate.config import settings
from tests.helpers import ADMIN_PASSWORD, FakeBackend, make_platform, write_platforms


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.setattr(settings, "config_path", str(tmp_path / "platforms.json"))
    monkeypatch.setattr(settings, "seed_platforms_path", "")
    monkeypatch.setattr(settings, "admin_password", ADMIN_PASSWORD)
    monkeypatch.setattr(settings, "auth_secret", "test-session-secret")
    monkeypatch.setattr(settings, "require_auth_for_ai", True)
    monkeypatch.setattr(settings, "monitor_enabled", False)
    monkeypatch.setattr(settings, "log_file", "")
    monkeypatch.setattr(settings, "default_provider", "gemini")
    return settings


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, backend: FakeBackend, isolated_settings) -> TestClient:
    write_platforms(isolated_settings.config_path, [make_platform(1), make_platform(2)])
    from imagegate import main as main_module

    monkeypatch.setattr(main_module, "create_pool", backend.pool)
    with TestClient(main_module.app) as test_client:
        yield test_client


@pytest.fixture
def logged_in(client: TestClient) -> TestClient:
    response = client.post("/api/auth/login", json={"password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return client
