"""SQLAlchemy repository implementations."""

from .resource_repository import SQLAlchemyResourceRepository
from .operation_repository import SQLAlchemyOperationRepository

__all__ = [
    "SQLAlchemyResourceRepository",
    "SQLAlchemyOperationRepository",
]
