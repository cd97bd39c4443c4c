"""
Operation Domain Model.

Represents a long-running status transition. Operations are written in
the same unit of work that marks the resource's desired status, before
any side effect starts, so a crash between recording and execution is
recoverable by the processor.

State machine:
    pending -> running -> succeeded
                       -> failed
    pending -> failed            (rejected before execution starts)

Terminal states are final.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, Any, FrozenSet, Optional
from datetime import datetime
from enum import Enum
import uuid

from statusflow.domain.errors import AlreadyTerminal, InvalidTransition


class OperationState(Enum):
    """Operation lifecycle states."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (OperationState.SUCCEEDED, OperationState.FAILED)


ACTIVE_STATES: FrozenSet[OperationState] = frozenset(
    {OperationState.PENDING, OperationState.RUNNING}
)

_ALLOWED_ADVANCES: Dict[OperationState, FrozenSet[OperationState]] = {
    OperationState.PENDING: frozenset({OperationState.RUNNING, OperationState.FAILED}),
    OperationState.RUNNING: frozenset({OperationState.SUCCEEDED, OperationState.FAILED}),
    OperationState.SUCCEEDED: frozenset(),
    OperationState.FAILED: frozenset(),
}


@dataclass
class Operation:
    """
    Operation Entity.

    Attributes:
        id: UUID used as the polling locator
        resource_id: Resource the transition targets
        target_status: Status applied to the resource on success
        from_status: Resource status when the operation was created
        params: Kind-specific request parameters (e.g. duration)
        state: Current lifecycle state
        attempts: Number of times a processor claimed or resumed it
        created_at: When the operation was recorded
        started_at: When a processor first claimed it
        completed_at: When it reached a terminal state
        failure_reason: Why it failed, if it did
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    resource_id: str = ""
    target_status: str = ""
    from_status: str = ""
    params: Dict[str, Any] = field(default_factory=dict)

    state: OperationState = OperationState.PENDING
    attempts: int = 0

    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def can_advance_to(self, new_state: OperationState) -> bool:
        """Check the state machine without mutating."""
        return new_state in _ALLOWED_ADVANCES[self.state]

    def advance_to(self, new_state: OperationState, failure_reason: Optional[str] = None) -> None:
        """
        Move to ``new_state``.

        Raises:
            AlreadyTerminal: If the operation already finished
            InvalidTransition: If the move is not in the state machine
        """
        if self.is_terminal:
            raise AlreadyTerminal(self.id, self.state.value)
        if not self.can_advance_to(new_state):
            raise InvalidTransition(
                f"Operation cannot move from '{self.state.value}' to '{new_state.value}'",
                current=self.state.value,
                requested=new_state.value,
                operation_id=self.id,
            )

        now = datetime.now()
        if new_state == OperationState.RUNNING:
            self.started_at = now
            self.attempts += 1
        else:
            self.completed_at = now
        if new_state == OperationState.FAILED:
            self.failure_reason = failure_reason or "unspecified failure"
        self.state = new_state

    def reclaim(self) -> None:
        """Restart the clock on a running operation picked up again after a crash."""
        if self.state != OperationState.RUNNING:
            raise InvalidTransition(
                f"Only running operations can be reclaimed, '{self.id}' is '{self.state.value}'",
                current=self.state.value,
                requested=OperationState.RUNNING.value,
                operation_id=self.id,
            )
        self.started_at = datetime.now()
        self.attempts += 1

    def copy(self) -> "Operation":
        return replace(self, params=dict(self.params))

    @classmethod
    def for_transition(
        cls,
        resource_id: str,
        from_status: str,
        target_status: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> "Operation":
        """Factory method for a freshly requested transition."""
        return cls(
            resource_id=resource_id,
            from_status=from_status,
            target_status=target_status,
            params=dict(params or {}),
        )
