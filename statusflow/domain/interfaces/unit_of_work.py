"""
Unit of Work Interface.

Groups repository calls into one atomic commit. Leaving the context
without commit() rolls everything back.

Usage:
    with uow:
        resource = uow.resources.get(resource_id)
        uow.resources.set_desired(resource_id, "dismissed")
        uow.operations.add(operation)
        uow.commit()
"""

from abc import ABC, abstractmethod

from .repositories import IResourceRepository, IOperationRepository


class IUnitOfWork(ABC):
    """Transaction boundary over the resource and operation stores."""

    resources: IResourceRepository
    operations: IOperationRepository

    @abstractmethod
    def __enter__(self) -> "IUnitOfWork":
        ...

    @abstractmethod
    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        ...

    @abstractmethod
    def commit(self) -> None:
        """Make all changes since enter (or last commit) durable."""

    @abstractmethod
    def rollback(self) -> None:
        """Discard uncommitted changes."""
