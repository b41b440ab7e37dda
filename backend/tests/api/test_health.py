"""Tests for the liveness and readiness endpoints."""

from unittest.mock import AsyncMock

import pytest

from factory_pulse.core.exceptions import PersistenceError

pytestmark = pytest.mark.unit


def test_health_reports_healthy(api_client):
    response = api_client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "factory-pulse"}


def test_health_is_503_while_draining(api_client):
    api_client.app.state.shutting_down = True

    response = api_client.get("/api/health")

    assert response.status_code == 503
    assert response.json()["status"] == "shutting_down"


def test_ready_counts_configured_stages(api_client):
    response = api_client.get("/api/ready")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ready"
    assert body["checks"] == {"workflow_store": True, "workflow_stages": True}
    assert body["stage_count"] == 4


def test_ready_without_stages_is_degraded(api_client, store):
    store.stages.clear()

    response = api_client.get("/api/ready")

    assert response.status_code == 503
    body = response.json()
    assert body["status"] == "degraded"
    assert body["checks"] == {"workflow_store": True, "workflow_stages": False}


def test_ready_when_store_fails(api_client, store):
    store.count_workflow_stages = AsyncMock(side_effect=PersistenceError("connection refused"))

    response = api_client.get("/api/ready")

    assert response.status_code == 503
    assert response.json()["checks"]["workflow_store"] is False


def test_ready_is_503_while_draining(api_client, store):
    store.count_workflow_stages = AsyncMock(return_value=4)
    api_client.app.state.shutting_down = True

    response = api_client.get("/api/ready")

    assert response.status_code == 503
    store.count_workflow_stages.assert_not_awaited()
