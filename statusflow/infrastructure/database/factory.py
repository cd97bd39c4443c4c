"""
Unit of Work Factory.

Factory pattern for creating the appropriate UnitOfWork implementation
based on configuration or mode.

Services take a *provider* (a zero-argument callable returning a fresh
unit of work) so that every request gets its own transaction.
"""

from typing import Callable, Optional

from statusflow.domain.interfaces.unit_of_work import IUnitOfWork
from .inmemory_unit_of_work import InMemoryStore, InMemoryUnitOfWork
from .unit_of_work import SQLAlchemyUnitOfWork

UnitOfWorkProvider = Callable[[], IUnitOfWork]

DEFAULT_DB_URL = "sqlite:///data/statusflow.db"


class UnitOfWorkFactory:
    """
    Factory for creating the appropriate UnitOfWork implementation.

    Usage:
        # Shared in-memory store (tests, single process)
        provider = UnitOfWorkFactory.provider()

        # Config-based
        provider = UnitOfWorkFactory.provider(
            mode=config.storage_mode,
            db_url=config.db_url,
        )
    """

    @staticmethod
    def provider(
        mode: str = "inmemory",
        db_url: Optional[str] = None,
        echo: bool = False,
        store: Optional[InMemoryStore] = None,
    ) -> UnitOfWorkProvider:
        """
        Build a provider of fresh units of work over one shared backend.

        In-memory providers share a single InMemoryStore; SQLAlchemy
        providers share an engine.
        """
        if mode == "inmemory":
            shared = store or InMemoryStore()
            return lambda: InMemoryUnitOfWork(shared)

        elif mode == "sqlalchemy":
            url = db_url or DEFAULT_DB_URL
            return lambda: SQLAlchemyUnitOfWork(url, echo=echo)

        else:
            raise ValueError(
                f"Unknown storage mode: {mode}. Use 'inmemory' or 'sqlalchemy'"
            )
