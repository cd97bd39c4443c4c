"""
Repository Interfaces.

Contracts for the resource store and the operation store. Every mutating
method is atomic on its own; multi-step changes are grouped by an
IUnitOfWork.

Error contract:
- Unknown ids on mutation raise NotFound
- Failed compare-and-set guards raise Conflict
- Lookups return None instead of raising
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from statusflow.domain.models.resource import Resource
from statusflow.domain.models.operation import Operation, OperationState


class IResourceRepository(ABC):
    """Resource Store."""

    @abstractmethod
    def get(self, resource_id: str) -> Optional[Resource]:
        """Get resource by id."""

    @abstractmethod
    def add(self, resource: Resource) -> Resource:
        """Add a new resource. Raises Conflict if the id is taken."""

    @abstractmethod
    def list(self, kind: Optional[str] = None, limit: int = 100) -> List[Resource]:
        """List resources, optionally of one kind."""

    @abstractmethod
    def compare_and_set(
        self,
        resource_id: str,
        expected_status: str,
        new_status: str,
        status_detail: Optional[str] = None,
        clear_desired: bool = False,
        only_if_idle: bool = False,
    ) -> Resource:
        """
        Atomically set ``status`` if it currently equals ``expected_status``.

        Args:
            resource_id: Target resource
            expected_status: Status the caller read
            new_status: Status to write
            status_detail: Detail stored alongside the new status
            clear_desired: Also clear ``desired_status``
            only_if_idle: Also require ``desired_status`` to be empty

        Returns:
            The updated resource

        Raises:
            NotFound: Unknown resource
            Conflict: Guard failed, nothing written
        """

    @abstractmethod
    def set_desired(
        self,
        resource_id: str,
        desired_status: Optional[str],
        expected_status: Optional[str] = None,
    ) -> Resource:
        """
        Atomically set or clear ``desired_status``.

        Setting requires that no desired status is already present (and,
        when ``expected_status`` is given, that ``status`` still equals it).
        Clearing is unconditional.

        Raises:
            NotFound: Unknown resource
            Conflict: Guard failed, nothing written
        """


class IOperationRepository(ABC):
    """Operation store with a resource_id -> active operation index."""

    @abstractmethod
    def add(self, operation: Operation) -> Operation:
        """Record a new operation."""

    @abstractmethod
    def get(self, operation_id: str) -> Optional[Operation]:
        """Get operation by id."""

    @abstractmethod
    def update(self, operation: Operation, expected_state: OperationState) -> Operation:
        """
        Persist ``operation`` if the stored state equals ``expected_state``.

        Raises:
            NotFound: Unknown operation
            Conflict: Stored state differs, nothing written
        """

    @abstractmethod
    def find_active_for_resource(self, resource_id: str) -> Optional[Operation]:
        """Latest non-terminal operation for a resource."""

    @abstractmethod
    def list_for_resource(self, resource_id: str, limit: int = 100) -> List[Operation]:
        """Operations for a resource, newest first."""

    @abstractmethod
    def list_active(self, limit: int = 1000) -> List[Operation]:
        """All non-terminal operations, oldest first."""

    @abstractmethod
    def get_pending(self, limit: int = 100) -> List[Operation]:
        """Pending operations ordered by created_at."""

    @abstractmethod
    def get_stalled(self, started_before: datetime, limit: int = 100) -> List[Operation]:
        """Running operations claimed before ``started_before``."""

    @abstractmethod
    def delete_terminal(self, before: datetime, limit: int = 1000) -> int:
        """Delete finished operations completed before a given time."""
