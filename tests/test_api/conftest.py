"""
Fixtures for the HTTP layer: an app over the in-memory service graph.

The processor is not started by the lifespan (testing config); tests
drive it with ``process_once()`` or start it explicitly.
"""

import pytest
from fastapi.testclient import TestClient

from statusflow.api.app import create_app


@pytest.fixture
def app(memory_services):
    return create_app(services=memory_services)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def risky_user(memory_services):
    return memory_services.engine.register(
        "riskyUser",
        resource_id="alice",
        attributes={"userPrincipalName": "alice@contoso.com"},
    )
