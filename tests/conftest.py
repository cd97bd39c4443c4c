"""
Shared pytest fixtures for StatusFlow tests.

Storage-sensitive tests use ``uow_provider`` which is parametrized over
the in-memory store and a SQLite file under tmp_path, so every such test
runs against both backends.
"""

import pytest

from statusflow.application.factories import StatusFlowFactory
from statusflow.config import StatusFlowConfig, reset_config
from statusflow.domain.models.resource_kind import ResourceKindRegistry
from statusflow.infrastructure.database import InMemoryStore, UnitOfWorkFactory, dispose_engines
from statusflow.kinds import AccountDirectory, risky_user_kind

from tests.mocks import RecordingSideEffect, build_widget_kind


@pytest.fixture(autouse=True)
def _reset_global_config():
    yield
    reset_config()


@pytest.fixture
def directory():
    return AccountDirectory()


@pytest.fixture
def widget_effect():
    return RecordingSideEffect()


@pytest.fixture
def kinds(directory, widget_effect):
    """riskyUser plus a widget kind whose 'on' transition has a side effect."""
    return ResourceKindRegistry([
        risky_user_kind(directory),
        build_widget_kind(side_effect=widget_effect),
    ])


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def sqlite_url(tmp_path):
    url = f"sqlite:///{tmp_path / 'statusflow.db'}"
    yield url
    dispose_engines()


@pytest.fixture(params=["inmemory", "sqlalchemy"])
def uow_provider(request, tmp_path):
    if request.param == "inmemory":
        yield UnitOfWorkFactory.provider(mode="inmemory", store=InMemoryStore())
    else:
        yield UnitOfWorkFactory.provider(
            mode="sqlalchemy",
            db_url=f"sqlite:///{tmp_path / 'statusflow.db'}",
        )
        dispose_engines()


@pytest.fixture
def services(uow_provider, kinds):
    """Service graph over each storage backend."""
    return StatusFlowFactory.create_with_dependencies(
        uow_provider, kinds, StatusFlowConfig.for_testing()
    )


@pytest.fixture
def memory_services(kinds, store):
    """Service graph over the in-memory store only."""
    return StatusFlowFactory.create_for_testing(kinds=kinds, store=store)


@pytest.fixture
def engine(services):
    return services.engine


@pytest.fixture
def tracker(services):
    return services.tracker


@pytest.fixture
def processor(services):
    return services.processor


@pytest.fixture
def user(engine):
    """riskyUser 'r1' in status none."""
    return engine.register("riskyUser", resource_id="r1", attributes={"userPrincipalName": "r1@contoso.com"})


@pytest.fixture
def assert_invariant(services):
    """Check desired_status is set iff an active operation references the resource."""

    def check(resource_id):
        with services.uow_provider() as uow:
            resource = uow.resources.get(resource_id)
            active = uow.operations.find_active_for_resource(resource_id)
        assert (resource.desired_status is not None) == (active is not None)
        if active is not None:
            assert resource.desired_status == active.target_status

    return check
