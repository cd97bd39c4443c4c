"""Domain Interfaces - abstractions implemented by the infrastructure layer."""

from .repositories import IResourceRepository, IOperationRepository
from .unit_of_work import IUnitOfWork

__all__ = [
    "IResourceRepository",
    "IOperationRepository",
    "IUnitOfWork",
]
