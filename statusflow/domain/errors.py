"""
Domain Errors.

Error taxonomy shared by the stores, the transition engine and the
operation tracker. The request gateway is the only place these are
translated into wire responses.

Hierarchy:
    StatusFlowError
    ├── NotFound            (unknown resource / operation id)
    ├── InvalidTransition   (requested status unreachable from current status)
    ├── Conflict            (concurrent mutation raced and lost)
    │   └── OperationInFlight (an operation for the resource is unresolved)
    ├── AlreadyTerminal     (advance() on a finished operation)
    └── SideEffectFailure   (asynchronous execution failed)
"""

from typing import Any, Dict, Optional


class StatusFlowError(Exception):
    """Base class for all domain errors."""

    code = "StatusFlowError"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for error responses."""
        data: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            data["details"] = self.details
        return data


class NotFound(StatusFlowError):
    code = "NotFound"

    @classmethod
    def resource(cls, resource_id: str) -> "NotFound":
        return cls(f"Resource '{resource_id}' not found", resource_id=resource_id)

    @classmethod
    def operation(cls, operation_id: str) -> "NotFound":
        return cls(f"Operation '{operation_id}' not found", operation_id=operation_id)


class InvalidTransition(StatusFlowError):
    code = "InvalidTransition"

    def __init__(
        self,
        message: str,
        current: Optional[str] = None,
        requested: Optional[str] = None,
        **details: Any,
    ):
        super().__init__(message, **details)
        self.current = current
        self.requested = requested


class Conflict(StatusFlowError):
    code = "Conflict"

    def __init__(
        self,
        message: str,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
        **details: Any,
    ):
        super().__init__(message, **details)
        self.expected = expected
        self.actual = actual


class OperationInFlight(Conflict):
    """A change was requested while an operation for the resource is unresolved."""

    def __init__(self, resource_id: str, operation_id: Optional[str], desired_status: Optional[str]):
        super().__init__(
            f"Resource '{resource_id}' is transitioning to '{desired_status}'; "
            f"retry after operation '{operation_id}' resolves",
            resource_id=resource_id,
            operation_id=operation_id,
            desired_status=desired_status,
        )
        self.operation_id = operation_id


class AlreadyTerminal(StatusFlowError):
    code = "AlreadyTerminal"

    def __init__(self, operation_id: str, state: str):
        super().__init__(
            f"Operation '{operation_id}' already finished in state '{state}'",
            operation_id=operation_id,
            state=state,
        )
        self.operation_id = operation_id
        self.state = state


class SideEffectFailure(StatusFlowError):
    """
    Raised inside the operation processor when a side effect fails.

    Never propagated to the original HTTP caller; the processor records
    it on the Operation as ``failure_reason``.
    """

    code = "SideEffectFailure"


__all__ = [
    "StatusFlowError",
    "NotFound",
    "InvalidTransition",
    "Conflict",
    "OperationInFlight",
    "AlreadyTerminal",
    "SideEffectFailure",
]
