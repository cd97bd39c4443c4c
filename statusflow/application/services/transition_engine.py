"""
Transition Engine.

Validates requested status changes and applies them either inline
(synchronous path) or by recording a long-running operation
(asynchronous path).

Decision Flow:
    1. Load resource                      -> NotFound
    2. Requested status in kind's set     -> InvalidTransition
    3. Nothing in flight                  -> OperationInFlight (a Conflict)
    4. Caller's expected status matches   -> Conflict
    5. Requested == current               -> no-op, resource returned as is
    6. Allowed by the transition table    -> InvalidTransition
    7. Estimated time <= sync budget      -> compare-and-set, return resource
       otherwise                          -> desired status + pending operation

Side effects never run here. They are executed by the operation processor
once the operation has been committed.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from statusflow.domain.errors import Conflict, InvalidTransition, NotFound, OperationInFlight
from statusflow.domain.interfaces.unit_of_work import IUnitOfWork
from statusflow.domain.models.change_request import ChangeRequest
from statusflow.domain.models.operation import Operation
from statusflow.domain.models.resource import Resource
from statusflow.domain.models.resource_kind import ResourceKind, ResourceKindRegistry
from .operation_tracker import OperationTracker

logger = logging.getLogger(__name__)


@dataclass
class ChangeResult:
    """
    Outcome of a change request.

    Attributes:
        resource: Resource state after the request was handled
        kind: The resource's kind
        operation: Operation recorded for the asynchronous path, else None
    """

    resource: Resource
    kind: ResourceKind
    operation: Optional[Operation] = None

    @property
    def completed(self) -> bool:
        """True when the change was applied synchronously (or was a no-op)."""
        return self.operation is None


class TransitionEngine:
    """
    Applies status changes to resources.

    Usage:
        engine = TransitionEngine(uow_provider, kinds, tracker, sync_budget_seconds=2.0)
        engine.register("riskyUser", resource_id="r1")
        engine.register("riskyUser", resource_id="r2")

        result = engine.request_change("r1", "dismissed")
        assert result.completed

        result = engine.request_change("r2", "confirmedCompromised", params={"duration": 3600})
        if not result.completed:
            poll(result.operation.id)
    """

    def __init__(
        self,
        uow_provider: Callable[[], IUnitOfWork],
        kinds: ResourceKindRegistry,
        tracker: Optional[OperationTracker] = None,
        sync_budget_seconds: float = 2.0,
    ):
        self._uow_provider = uow_provider
        self._kinds = kinds
        self._tracker = tracker or OperationTracker(uow_provider, kinds)
        self._sync_budget_seconds = sync_budget_seconds

    @property
    def kinds(self) -> ResourceKindRegistry:
        return self._kinds

    # ═══════════════════════════════════════════════════════════════════════════
    # Resources
    # ═══════════════════════════════════════════════════════════════════════════

    def register(
        self,
        kind_name: str,
        resource_id: Optional[str] = None,
        status: Optional[str] = None,
        status_detail: Optional[str] = None,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> Resource:
        """
        Add a resource in the kind's initial status (or ``status``).

        Raises:
            NotFound: Unknown kind
            InvalidTransition: ``status`` is not a status of the kind
            Conflict: ``resource_id`` already taken
        """
        kind = self._kinds.get(kind_name)
        initial = status if status is not None else kind.initial_status
        if not kind.is_valid_status(initial):
            raise InvalidTransition(
                f"'{initial}' is not a status of kind '{kind.name}'",
                requested=initial,
            )

        resource = Resource(kind=kind.name, status=initial, status_detail=status_detail,
                            attributes=dict(attributes or {}))
        if resource_id is not None:
            resource.id = resource_id

        with self._uow_provider() as uow:
            resource = uow.resources.add(resource)
            uow.commit()
        logger.info(f"Registered {kind.name} {resource.id} in status '{initial}'")
        return resource

    def get_resource(self, resource_id: str) -> Resource:
        """
        Raises:
            NotFound: Unknown resource
        """
        with self._uow_provider() as uow:
            resource = uow.resources.get(resource_id)
        if resource is None:
            raise NotFound.resource(resource_id)
        return resource

    # ═══════════════════════════════════════════════════════════════════════════
    # Change Requests
    # ═══════════════════════════════════════════════════════════════════════════

    def submit(self, request: ChangeRequest) -> ChangeResult:
        """Apply a validated ChangeRequest."""
        return self.request_change(
            request.resource_id,
            request.status,
            params=request.params,
            expected_status=request.expected_status,
            status_detail=request.status_detail,
        )

    def request_change(
        self,
        resource_id: str,
        requested_status: str,
        params: Optional[Dict[str, Any]] = None,
        expected_status: Optional[str] = None,
        status_detail: Optional[str] = None,
    ) -> ChangeResult:
        """
        Request that a resource move to ``requested_status``.

        A lost compare-and-set is retried once with freshly read state,
        unless the caller pinned ``expected_status``.

        Raises:
            NotFound: Unknown resource
            InvalidTransition: Unknown or unreachable status
            Conflict: Lost a race, expected status mismatch, or an
                operation for the resource is unresolved (OperationInFlight)
        """
        params = dict(params or {})
        attempts = 1 if expected_status is not None else 2

        for attempt in range(1, attempts + 1):
            try:
                return self._attempt(resource_id, requested_status, params, expected_status, status_detail)
            except OperationInFlight:
                raise
            except Conflict as e:
                if attempt >= attempts:
                    logger.info(f"Change of {resource_id} to '{requested_status}' lost to a concurrent update")
                    raise
                logger.debug(f"Retrying change of {resource_id} after conflict: {e.message}")

        raise AssertionError("unreachable")

    def _attempt(
        self,
        resource_id: str,
        requested_status: str,
        params: Dict[str, Any],
        expected_status: Optional[str],
        status_detail: Optional[str],
    ) -> ChangeResult:
        with self._uow_provider() as uow:
            resource = uow.resources.get(resource_id)
            if resource is None:
                raise NotFound.resource(resource_id)
            kind = self._kinds.get(resource.kind)

            if not kind.is_valid_status(requested_status):
                raise InvalidTransition(
                    f"'{requested_status}' is not a status of kind '{kind.name}'. "
                    f"Allowed: {', '.join(sorted(kind.statuses))}",
                    current=resource.status,
                    requested=requested_status,
                )

            if resource.in_flight:
                active = uow.operations.find_active_for_resource(resource_id)
                raise OperationInFlight(resource_id, active.id if active else None, resource.desired_status)

            if expected_status is not None and resource.status != expected_status:
                raise Conflict(
                    f"Resource '{resource_id}' is '{resource.status}', expected '{expected_status}'",
                    expected=expected_status,
                    actual=resource.status,
                    resource_id=resource_id,
                )

            if requested_status == resource.status:
                return ChangeResult(resource=resource, kind=kind)

            if not kind.can_transition(resource.status, requested_status):
                raise InvalidTransition(
                    f"Cannot move {kind.name} '{resource_id}' from '{resource.status}' "
                    f"to '{requested_status}'",
                    current=resource.status,
                    requested=requested_status,
                )

            if self._is_synchronous(kind, resource, requested_status, params):
                updated = uow.resources.compare_and_set(
                    resource_id,
                    expected_status=resource.status,
                    new_status=requested_status,
                    status_detail=status_detail,
                    only_if_idle=True,
                )
                uow.commit()
                logger.info(f"{kind.name} {resource_id}: '{resource.status}' -> '{requested_status}'")
                return ChangeResult(resource=updated, kind=kind)

            if status_detail is not None:
                params["statusDetail"] = status_detail
            operation = self._tracker.create_in(uow, resource, requested_status, params)
            uow.commit()
            return ChangeResult(resource=uow.resources.get(resource_id), kind=kind, operation=operation)

    def _is_synchronous(
        self,
        kind: ResourceKind,
        resource: Resource,
        requested_status: str,
        params: Dict[str, Any],
    ) -> bool:
        if kind.needs_side_effect(resource, requested_status, params):
            logger.debug(f"{kind.name} {resource.id} -> '{requested_status}' has a side effect to run")
            return False
        estimate = kind.estimate_seconds(resource, requested_status, params)
        if estimate > self._sync_budget_seconds:
            logger.debug(
                f"{kind.name} {resource.id} -> '{requested_status}' estimated at {estimate}s, "
                f"over the {self._sync_budget_seconds}s budget"
            )
            return False
        return True
