"""Test that the FastAPI app can be imported and the health and admin job endpoints work."""
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from catalog_analytics.core.config import settings
from catalog_analytics.jobs.registry import JobDefinition, JobRegistry
from catalog_analytics.main import app

ADMIN_KEY = "test-admin-key"


@pytest.fixture
def registry(monkeypatch):
    registry = JobRegistry()
    monkeypatch.setattr(app.state, "job_registry", registry)
    yield registry
    registry.stop_jobs()


@pytest.fixture
def client():
    # Not used as a context manager: startup would create tables and start timers
    return TestClient(app)


@pytest.fixture
def admin_key(monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_API_KEY", ADMIN_KEY)
    return {"X-Admin-Key": ADMIN_KEY}


def test_health_endpoint(client):
    """Test that GET /health returns 200 and {"status": "ok"}."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_admin_routes_disabled_without_configured_key(client, registry, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_API_KEY", None)

    response = client.get("/admin/jobs", headers={"X-Admin-Key": "anything"})

    assert response.status_code == 503


def test_admin_routes_require_header(client, registry, admin_key):
    assert client.get("/admin/jobs").status_code == 401


def test_admin_routes_reject_wrong_key(client, registry, admin_key):
    assert client.get("/admin/jobs", headers={"X-Admin-Key": "wrong"}).status_code == 403


def test_list_jobs(client, registry, admin_key):
    registry.register(JobDefinition(name="stats", interval=timedelta(hours=1), handler=lambda: None))

    response = client.get("/admin/jobs", headers=admin_key)

    assert response.status_code == 200
    body = response.json()
    assert body["scheduled"] is False
    assert body["jobs"]["stats"]["running"] is False
    assert body["jobs"]["stats"]["last_run"] is None


def test_trigger_unknown_job(client, registry, admin_key):
    response = client.post("/admin/jobs/nope/trigger", headers=admin_key)

    assert response.status_code == 404


def test_trigger_runs_job_after_accepting(client, registry, admin_key):
    calls = []
    registry.register(JobDefinition(name="stats", interval=timedelta(hours=1), handler=lambda: calls.append(1)))

    response = client.post("/admin/jobs/stats/trigger", headers=admin_key)

    assert response.status_code == 202
    assert response.json() == {"job": "stats", "accepted": True, "already_running": False}
    # TestClient runs background tasks before returning
    assert calls == [1]
    assert registry.get_job_status()["stats"]["last_succeeded"] is True
