"""API-specific test fixtures.

The app is built without running its lifespan, so no database is touched:
the workflow store and stage registry are swapped for in-memory versions
through dependency overrides.
"""

import pytest
from fastapi.testclient import TestClient

from factory_pulse.api.routes.stage_transitions import get_stage_registry, get_workflow_store
from factory_pulse.core.auth import require_actor
from factory_pulse.services.stage_registry import StageRegistry


@pytest.fixture
def api_client(store):
    """FastAPI test client backed by the shared in-memory store."""
    from factory_pulse.main import create_app

    app = create_app()
    registry = StageRegistry(store, ttl_seconds=300)
    app.dependency_overrides[get_workflow_store] = lambda: store
    app.dependency_overrides[get_stage_registry] = lambda: registry

    client = TestClient(app, raise_server_exceptions=False)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def login(api_client):
    """Authenticate subsequent requests as the given actor."""

    def _login(actor):
        api_client.app.dependency_overrides[require_actor] = lambda: actor

    return _login
