"""Database infrastructure: unit of work implementations and factory."""

from .inmemory_unit_of_work import (
    InMemoryStore,
    InMemoryUnitOfWork,
    InMemoryResourceRepository,
    InMemoryOperationRepository,
)
from .unit_of_work import SQLAlchemyUnitOfWork, get_engine, dispose_engines
from .factory import UnitOfWorkFactory, UnitOfWorkProvider, DEFAULT_DB_URL

__all__ = [
    "InMemoryStore",
    "InMemoryUnitOfWork",
    "InMemoryResourceRepository",
    "InMemoryOperationRepository",
    "SQLAlchemyUnitOfWork",
    "get_engine",
    "dispose_engines",
    "UnitOfWorkFactory",
    "UnitOfWorkProvider",
    "DEFAULT_DB_URL",
]
