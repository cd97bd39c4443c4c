"""
Operation Tracker.

Owns long-running operations and keeps the desired-status invariant:

    resource.desired_status is set  <=>  a non-terminal operation references it

Every method that touches an operation updates the referenced resource in
the same unit of work, so the two stores never disagree after a commit.

State machine (enforced by Operation.advance_to):
    pending -> running -> {succeeded, failed}
    pending -> failed
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Union

from statusflow.domain.errors import (
    AlreadyTerminal,
    Conflict,
    InvalidTransition,
    NotFound,
    OperationInFlight,
)
from statusflow.domain.interfaces.unit_of_work import IUnitOfWork
from statusflow.domain.models.operation import Operation, OperationState
from statusflow.domain.models.resource import Resource
from statusflow.domain.models.resource_kind import ResourceKindRegistry

logger = logging.getLogger(__name__)


class OperationTracker:
    """
    Creates, advances and looks up operations.

    Usage:
        tracker = OperationTracker(uow_provider, kinds)
        operation = tracker.create("user-1", "confirmedCompromised", {"duration": 3600})
        tracker.advance(operation.id, OperationState.RUNNING)
        tracker.advance(operation.id, OperationState.SUCCEEDED)
    """

    def __init__(
        self,
        uow_provider: Callable[[], IUnitOfWork],
        kinds: ResourceKindRegistry,
    ):
        """
        Args:
            uow_provider: Returns a fresh unit of work per call
            kinds: Transition tables checked on create and again on success
        """
        self._uow_provider = uow_provider
        self._kinds = kinds

    # ═══════════════════════════════════════════════════════════════════════════
    # Creation
    # ═══════════════════════════════════════════════════════════════════════════

    def create(
        self,
        resource_id: str,
        target_status: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Operation:
        """
        Record a pending operation and mark the resource's desired status.

        Raises:
            NotFound: Unknown resource
            InvalidTransition: Target unreachable per the kind's table
            OperationInFlight: Another operation is unresolved
        """
        with self._uow_provider() as uow:
            resource = uow.resources.get(resource_id)
            if resource is None:
                raise NotFound.resource(resource_id)
            kind = self._kinds.get(resource.kind)
            if not kind.can_transition(resource.status, target_status):
                raise InvalidTransition(
                    f"Cannot move {resource.kind} '{resource_id}' "
                    f"from '{resource.status}' to '{target_status}'",
                    current=resource.status,
                    requested=target_status,
                )
            operation = self.create_in(uow, resource, target_status, params)
            uow.commit()
        return operation

    def create_in(
        self,
        uow: IUnitOfWork,
        resource: Resource,
        target_status: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Operation:
        """
        Record an operation inside the caller's unit of work.

        The caller has validated the transition and commits.
        """
        active = uow.operations.find_active_for_resource(resource.id)
        if active is not None or resource.in_flight:
            raise OperationInFlight(
                resource.id,
                active.id if active else None,
                resource.desired_status or (active.target_status if active else None),
            )

        uow.resources.set_desired(resource.id, target_status, expected_status=resource.status)
        operation = uow.operations.add(
            Operation.for_transition(
                resource_id=resource.id,
                from_status=resource.status,
                target_status=target_status,
                params=params,
            )
        )
        logger.info(
            f"Operation {operation.id} recorded: {resource.id} "
            f"'{resource.status}' -> '{target_status}'"
        )
        return operation

    # ═══════════════════════════════════════════════════════════════════════════
    # Progression
    # ═══════════════════════════════════════════════════════════════════════════

    def advance(
        self,
        operation_id: str,
        new_state: Union[OperationState, str],
        failure_reason: Optional[str] = None,
    ) -> Operation:
        """
        Move an operation forward and reconcile its resource.

        On succeeded the resource status becomes the target (guarded by
        the status the operation started from) and desired status is
        cleared. If the guard fails the operation is failed instead and
        the resource keeps its status. On failed the desired status is
        cleared and the reason stored.

        Raises:
            NotFound: Unknown operation
            AlreadyTerminal: Operation already finished (nothing changes)
            InvalidTransition: Move not in the state machine
        """
        if isinstance(new_state, str):
            new_state = OperationState(new_state)

        with self._uow_provider() as uow:
            operation = uow.operations.get(operation_id)
            if operation is None:
                raise NotFound.operation(operation_id)
            previous_state = operation.state

            resource = uow.resources.get(operation.resource_id)
            if new_state == OperationState.SUCCEEDED and operation.can_advance_to(new_state):
                if resource is None:
                    new_state = OperationState.FAILED
                    failure_reason = f"resource '{operation.resource_id}' no longer exists"
                elif resource.status != operation.from_status:
                    new_state = OperationState.FAILED
                    failure_reason = (
                        f"resource status changed from '{operation.from_status}' "
                        f"to '{resource.status}' while the operation ran"
                    )
                elif not self._allowed(resource, operation):
                    new_state = OperationState.FAILED
                    failure_reason = (
                        f"{resource.kind} cannot move from '{operation.from_status}' "
                        f"to '{operation.target_status}'"
                    )
                if new_state == OperationState.FAILED:
                    logger.warning(f"Operation {operation_id} cannot succeed: {failure_reason}")

            operation.advance_to(new_state, failure_reason)

            try:
                operation = uow.operations.update(operation, expected_state=previous_state)
            except Conflict:
                current = uow.operations.get(operation_id)
                if current is not None and current.is_terminal:
                    raise AlreadyTerminal(operation_id, current.state.value) from None
                raise

            if operation.state == OperationState.SUCCEEDED:
                uow.resources.compare_and_set(
                    operation.resource_id,
                    expected_status=operation.from_status,
                    new_status=operation.target_status,
                    status_detail=operation.params.get("statusDetail"),
                    clear_desired=True,
                )
            elif operation.state == OperationState.FAILED and resource is not None:
                self._reconcile_desired(uow, operation.resource_id)

            uow.commit()

        logger.info(
            f"Operation {operation_id} {previous_state.value} -> {operation.state.value}"
            + (f" ({operation.failure_reason})" if operation.state == OperationState.FAILED else "")
        )
        return operation

    def _allowed(self, resource: Resource, operation: Operation) -> bool:
        if resource.kind not in self._kinds:
            return False
        return self._kinds.get(resource.kind).can_transition(
            operation.from_status, operation.target_status
        )

    def reclaim(self, operation_id: str) -> Operation:
        """
        Restart a running operation after a processor crash.

        Raises:
            NotFound: Unknown operation
            AlreadyTerminal: Operation finished meanwhile
            InvalidTransition: Operation is not running
        """
        with self._uow_provider() as uow:
            operation = uow.operations.get(operation_id)
            if operation is None:
                raise NotFound.operation(operation_id)
            if operation.is_terminal:
                raise AlreadyTerminal(operation_id, operation.state.value)
            operation.reclaim()
            operation = uow.operations.update(operation, expected_state=OperationState.RUNNING)
            uow.commit()
        logger.info(f"Operation {operation_id} reclaimed (attempt {operation.attempts})")
        return operation

    def reconcile(self, resource_id: str) -> Optional[str]:
        """
        Re-derive a resource's desired status from its active operations.

        Returns:
            The desired status after reconciliation

        Raises:
            NotFound: Unknown resource
        """
        with self._uow_provider() as uow:
            if uow.resources.get(resource_id) is None:
                raise NotFound.resource(resource_id)
            self._reconcile_desired(uow, resource_id)
            uow.commit()
            return uow.resources.get(resource_id).desired_status

    def _reconcile_desired(self, uow: IUnitOfWork, resource_id: str) -> None:
        """Point desired status at the remaining active operation, or clear it."""
        remaining = uow.operations.find_active_for_resource(resource_id)
        uow.resources.set_desired(resource_id, None)
        if remaining is not None:
            uow.resources.set_desired(resource_id, remaining.target_status)

    # ═══════════════════════════════════════════════════════════════════════════
    # Queries
    # ═══════════════════════════════════════════════════════════════════════════

    def get(self, operation_id: str) -> Operation:
        """
        Raises:
            NotFound: Unknown operation
        """
        with self._uow_provider() as uow:
            operation = uow.operations.get(operation_id)
        if operation is None:
            raise NotFound.operation(operation_id)
        return operation

    def active_for(self, resource_id: str) -> Optional[Operation]:
        """Latest unresolved operation for a resource, if any."""
        with self._uow_provider() as uow:
            return uow.operations.find_active_for_resource(resource_id)

    def list_for_resource(self, resource_id: str, limit: int = 100) -> List[Operation]:
        """
        Raises:
            NotFound: Unknown resource
        """
        with self._uow_provider() as uow:
            if uow.resources.get(resource_id) is None:
                raise NotFound.resource(resource_id)
            return uow.operations.list_for_resource(resource_id, limit=limit)
