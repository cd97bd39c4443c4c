"""
Built-in Resource Kinds.

riskyUser
    A user flagged by identity protection. Confirming compromise is
    instant unless a ``duration`` is given, in which case the account is
    disabled for that long. Disabling is slow and therefore tracked as an
    operation.

    none                 -> confirmedCompromised, dismissed
    confirmedCompromised -> dismissed, none
    dismissed            -> none
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional
import logging
import threading

from statusflow.domain.errors import SideEffectFailure
from statusflow.domain.models.operation import Operation
from statusflow.domain.models.resource import Resource
from statusflow.domain.models.resource_kind import ResourceKind, ResourceKindRegistry

logger = logging.getLogger(__name__)

RISKY_USER = "riskyUser"

# Rough cost of disabling an account in the directory
ACCOUNT_DISABLE_SECONDS = 60.0


class AccountDirectory:
    """
    Account store the riskyUser side effects act on.

    Disabling is idempotent: disabling an already disabled account extends
    the lock to the later expiry.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._disabled_until: Dict[str, datetime] = {}

    def disable(self, principal: str, seconds: int) -> datetime:
        until = datetime.now() + timedelta(seconds=seconds)
        with self._lock:
            current = self._disabled_until.get(principal)
            if current is None or current < until:
                self._disabled_until[principal] = until
            until = self._disabled_until[principal]
        logger.info(f"Account {principal} disabled until {until.isoformat()}")
        return until

    def is_disabled(self, principal: str) -> bool:
        with self._lock:
            until = self._disabled_until.get(principal)
        return until is not None and until > datetime.now()

    def disabled_until(self, principal: str) -> Optional[datetime]:
        with self._lock:
            return self._disabled_until.get(principal)


def _estimate_risky_user(resource: Resource, target_status: str, params: Dict[str, Any]) -> float:
    if target_status == "confirmedCompromised" and "duration" in params:
        return ACCOUNT_DISABLE_SECONDS
    return 0.0


def _needs_account_disable(resource: Resource, target_status: str, params: Dict[str, Any]) -> bool:
    return "duration" in params


def risky_user_kind(directory: Optional[AccountDirectory] = None) -> ResourceKind:
    """
    Build the riskyUser kind.

    Args:
        directory: Account store disabled accounts are written to
    """
    directory = directory or AccountDirectory()

    def disable_account(resource: Resource, operation: Operation) -> None:
        duration = operation.params.get("duration")
        if duration is None:
            return
        principal = resource.attributes.get("userPrincipalName") or resource.id
        try:
            directory.disable(principal, int(duration))
        except (TypeError, ValueError) as e:
            raise SideEffectFailure(f"Could not disable account {principal}: {e}") from e

    return ResourceKind.build(
        name=RISKY_USER,
        transitions={
            "none": {"confirmedCompromised", "dismissed"},
            "confirmedCompromised": {"dismissed", "none"},
            "dismissed": {"none"},
        },
        initial_status="none",
        side_effects={
            "confirmedCompromised": disable_account,
        },
        estimator=_estimate_risky_user,
        side_effect_condition=_needs_account_disable,
        pending_labels={
            "confirmedCompromised": "confirmingCompromising",
        },
    )


def default_registry(directory: Optional[AccountDirectory] = None) -> ResourceKindRegistry:
    """Registry holding every built-in kind."""
    return ResourceKindRegistry([risky_user_kind(directory)])
