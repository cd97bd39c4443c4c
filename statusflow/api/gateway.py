"""
Request Gateway.

Maps inbound change requests onto the transition engine and shapes the
responses of the change-status pattern:

    synchronous completion  -> 200, full resource (desiredStatus mirrors status)
    asynchronous acceptance -> 202, operation reference + Operation-Location
    domain failure          -> 404 / 409 / 422, {"error": {code, message}}

The gateway is framework-agnostic; the FastAPI routers only translate
GatewayResponse objects into HTTP responses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional
import logging

from statusflow.application.services.operation_tracker import OperationTracker
from statusflow.application.services.transition_engine import ChangeResult, TransitionEngine
from statusflow.application.validators import (
    ValidationError,
    validate_change_request,
    validate_limit,
    validate_operation_id,
    validate_resource_id,
)
from statusflow.domain.errors import (
    AlreadyTerminal,
    Conflict,
    InvalidTransition,
    NotFound,
    StatusFlowError,
)
from statusflow.domain.models.operation import Operation
from statusflow.domain.models.resource import Resource

logger = logging.getLogger(__name__)

OPERATION_LOCATION_HEADER = "Operation-Location"

_STATUS_CODES = {
    NotFound: 404,
    InvalidTransition: 422,
    Conflict: 409,
    AlreadyTerminal: 409,
}


@dataclass
class GatewayResponse:
    status_code: int
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)


def _timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def error_body(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"error": error}


def status_code_for(error: Exception) -> int:
    """HTTP status for a domain or validation error."""
    if isinstance(error, StatusFlowError):
        for error_type in type(error).__mro__:
            if error_type in _STATUS_CODES:
                return _STATUS_CODES[error_type]
        return 500
    if isinstance(error, ValueError):
        return 422
    return 500


class RequestGateway:
    """
    Translates change requests and lookups into wire responses.

    Usage:
        gateway = RequestGateway(engine, tracker, operations_path="/operations")
        response = gateway.patch_resource("r1", "confirmedCompromised")
        response.status_code  # 200 or 202
    """

    def __init__(
        self,
        engine: TransitionEngine,
        tracker: OperationTracker,
        operations_path: str = "/operations",
        on_accepted: Optional[Callable[[Operation], None]] = None,
    ):
        """
        Args:
            engine: Transition engine applying the changes
            tracker: Operation tracker serving operation lookups
            operations_path: URL prefix of the operation polling endpoint
            on_accepted: Called with each newly accepted operation
                (e.g. to wake the operation processor)
        """
        self._engine = engine
        self._tracker = tracker
        self._operations_path = operations_path.rstrip("/")
        self._on_accepted = on_accepted

    # ═══════════════════════════════════════════════════════════════════════════
    # Change Requests
    # ═══════════════════════════════════════════════════════════════════════════

    def patch_resource(
        self,
        resource_id: str,
        status: str,
        expected_status: Optional[str] = None,
        status_detail: Optional[str] = None,
    ) -> GatewayResponse:
        """PATCH /resources/{id} with a new status."""
        return self._change(resource_id, status, expected_status, status_detail, params=None)

    def post_change_request(
        self,
        resource_id: str,
        status: str,
        params: Optional[Dict[str, Any]] = None,
        expected_status: Optional[str] = None,
        status_detail: Optional[str] = None,
    ) -> GatewayResponse:
        """POST /resources/{id}/changeRequests with kind-specific parameters."""
        return self._change(resource_id, status, expected_status, status_detail, params=params)

    def _change(
        self,
        resource_id: str,
        status: str,
        expected_status: Optional[str],
        status_detail: Optional[str],
        params: Optional[Dict[str, Any]],
    ) -> GatewayResponse:
        try:
            request = validate_change_request(
                resource_id,
                status,
                expected_status=expected_status,
                status_detail=status_detail,
                params=params,
            )
            result = self._engine.submit(request)
        except (StatusFlowError, ValidationError) as e:
            return self._error(e)

        if result.completed:
            return GatewayResponse(200, self.resource_body(result.resource, mirror_desired=True))

        if self._on_accepted is not None:
            self._on_accepted(result.operation)
        return self._accepted(result)

    # ═══════════════════════════════════════════════════════════════════════════
    # Lookups
    # ═══════════════════════════════════════════════════════════════════════════

    def get_resource(self, resource_id: str) -> GatewayResponse:
        try:
            resource = self._engine.get_resource(validate_resource_id(resource_id))
        except (StatusFlowError, ValueError) as e:
            return self._error(e)
        return GatewayResponse(200, self.resource_body(resource))

    def get_operation(self, operation_id: str) -> GatewayResponse:
        try:
            operation = self._tracker.get(validate_operation_id(operation_id))
        except (StatusFlowError, ValueError) as e:
            return self._error(e)
        return GatewayResponse(200, self.operation_body(operation))

    def list_operations(self, resource_id: str, limit: int = 100) -> GatewayResponse:
        try:
            operations = self._tracker.list_for_resource(
                validate_resource_id(resource_id),
                limit=validate_limit(limit),
            )
        except (StatusFlowError, ValueError) as e:
            return self._error(e)
        return GatewayResponse(200, {"value": [self.operation_body(o) for o in operations]})

    # ═══════════════════════════════════════════════════════════════════════════
    # Representations
    # ═══════════════════════════════════════════════════════════════════════════

    def resource_body(self, resource: Resource, mirror_desired: bool = False) -> Dict[str, Any]:
        """
        Wire representation of a resource.

        ``desiredStatus`` is omitted when nothing is in flight, except on a
        completed change where it mirrors the new status.
        """
        body: Dict[str, Any] = {
            "id": resource.id,
            "kind": resource.kind,
            "status": resource.status,
            "statusDetail": resource.status_detail,
            "lastUpdated": _timestamp(resource.last_updated),
        }
        if resource.desired_status is not None:
            body["desiredStatus"] = resource.desired_status
        elif mirror_desired:
            body["desiredStatus"] = resource.status
        return body

    def operation_body(self, operation: Operation) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "id": operation.id,
            "state": operation.state.value,
            "resourceId": operation.resource_id,
            "targetStatus": operation.target_status,
            "fromStatus": operation.from_status,
            "createdAt": _timestamp(operation.created_at),
            "attempts": operation.attempts,
        }
        if operation.started_at:
            body["startedAt"] = _timestamp(operation.started_at)
        if operation.completed_at:
            body["completedAt"] = _timestamp(operation.completed_at)
        if operation.failure_reason:
            body["failureReason"] = operation.failure_reason
        return body

    def operation_location(self, operation_id: str) -> str:
        return f"{self._operations_path}/{operation_id}"

    def _accepted(self, result: ChangeResult) -> GatewayResponse:
        operation = result.operation
        resource = result.resource
        location = self.operation_location(operation.id)
        body = {
            "id": resource.id,
            "createdAt": _timestamp(operation.created_at),
            "status": result.kind.pending_label(operation.target_status) or resource.status,
            "desiredStatus": operation.target_status,
            "operation": {
                "id": operation.id,
                "state": operation.state.value,
                "location": location,
            },
        }
        return GatewayResponse(202, body, {OPERATION_LOCATION_HEADER: location})

    def _error(self, error: Exception) -> GatewayResponse:
        status_code = status_code_for(error)
        if isinstance(error, StatusFlowError):
            body = error_body(error.code, error.message, error.details)
        else:
            field_name = getattr(error, "field", None)
            body = error_body("ValidationError", str(error), {"field": field_name} if field_name else None)

        if status_code >= 500:
            logger.error(f"Unmapped error {type(error).__name__}: {error}")
        else:
            logger.debug(f"Request rejected with {status_code}: {error}")
        return GatewayResponse(status_code, body)
