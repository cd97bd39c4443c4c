"""
Application Factories.

Factory pattern for wiring the StatusFlow services with proper dependency
injection. Every service built by one factory call shares the same
storage backend and kind registry.
"""

from dataclasses import dataclass
from typing import Optional

from statusflow.config import StatusFlowConfig, get_config
from statusflow.domain.models.resource_kind import ResourceKindRegistry
from statusflow.infrastructure.database import InMemoryStore, UnitOfWorkFactory, UnitOfWorkProvider
from statusflow.infrastructure.operations import OperationProcessor
from statusflow.kinds import default_registry
from statusflow.seed import load_seed

from .services.integrity_checker import IntegrityChecker
from .services.operation_tracker import OperationTracker
from .services.transition_engine import TransitionEngine


@dataclass
class StatusFlowServices:
    """Service container handed to the request gateway and the app lifespan."""

    config: StatusFlowConfig
    uow_provider: UnitOfWorkProvider
    kinds: ResourceKindRegistry
    tracker: OperationTracker
    engine: TransitionEngine
    processor: OperationProcessor
    integrity: IntegrityChecker


class StatusFlowFactory:
    """
    Factory for creating the StatusFlow service graph.

    Handles dependency injection based on configuration:
    - Testing: In-memory store, processor driven manually
    - Development: SQLite file under data_dir
    - Production: Configured SQLAlchemy URL

    Usage:
        # Using config
        services = StatusFlowFactory.create(StatusFlowConfig.for_development())

        # With custom dependencies
        services = StatusFlowFactory.create_with_dependencies(
            uow_provider=my_provider,
            kinds=my_kinds,
        )

        # Quick test setup
        services = StatusFlowFactory.create_for_testing()
    """

    @staticmethod
    def create(
        config: Optional[StatusFlowConfig] = None,
        kinds: Optional[ResourceKindRegistry] = None,
    ) -> StatusFlowServices:
        """
        Create services based on configuration.

        Args:
            config: StatusFlow configuration (uses global config if None)
            kinds: Kind registry (built-in kinds if None)
        """
        if config is None:
            config = get_config()

        if config.storage_mode == "sqlalchemy" and config.db_url and config.db_url.startswith("sqlite:///"):
            config.ensure_data_dir()

        provider = UnitOfWorkFactory.provider(
            mode=config.storage_mode,
            db_url=config.db_url,
            echo=config.log_sql,
        )
        services = StatusFlowFactory.create_with_dependencies(provider, kinds, config)
        if config.seed_file:
            load_seed(services.engine, config.seed_file)
        return services

    @staticmethod
    def create_for_testing(
        kinds: Optional[ResourceKindRegistry] = None,
        store: Optional[InMemoryStore] = None,
    ) -> StatusFlowServices:
        """
        Create services over an in-memory store.

        Args:
            kinds: Kind registry (built-in kinds if None)
            store: Shared in-memory store (a fresh one if None)
        """
        config = StatusFlowConfig.for_testing()
        provider = UnitOfWorkFactory.provider(mode="inmemory", store=store or InMemoryStore())
        return StatusFlowFactory.create_with_dependencies(provider, kinds, config)

    @staticmethod
    def create_with_dependencies(
        uow_provider: UnitOfWorkProvider,
        kinds: Optional[ResourceKindRegistry] = None,
        config: Optional[StatusFlowConfig] = None,
    ) -> StatusFlowServices:
        """Create services with explicitly provided dependencies."""
        config = config or StatusFlowConfig.for_testing()
        kinds = kinds if kinds is not None else default_registry()

        tracker = OperationTracker(uow_provider, kinds)
        engine = TransitionEngine(
            uow_provider,
            kinds,
            tracker=tracker,
            sync_budget_seconds=config.sync_budget_seconds,
        )
        processor = OperationProcessor(
            uow_provider,
            kinds,
            tracker=tracker,
            poll_interval_seconds=config.poll_interval_seconds,
            batch_size=config.batch_size,
            stale_after_seconds=config.stale_after_seconds,
            retention_days=config.operation_retention_days,
        )
        integrity = IntegrityChecker(
            uow_provider,
            kinds,
            tracker=tracker,
            stale_after_seconds=config.stale_after_seconds,
        )
        return StatusFlowServices(
            config=config,
            uow_provider=uow_provider,
            kinds=kinds,
            tracker=tracker,
            engine=engine,
            processor=processor,
            integrity=integrity,
        )
