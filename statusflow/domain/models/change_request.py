"""
Change Request Value Object.

Ephemeral input to the transition engine. Never persisted; once the
engine decides on a path its parameters live on in the Operation (if
any) and nowhere else.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional


@dataclass(frozen=True)
class ChangeRequest:
    """
    Requested status change for one resource.

    Attributes:
        resource_id: Target resource
        status: Requested status
        expected_status: Optional compare-and-set guard supplied by the caller
        status_detail: Optional detail to store with the new status
        params: Kind-specific parameters (e.g. {"duration": 3600})
    """

    resource_id: str
    status: str
    expected_status: Optional[str] = None
    status_detail: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)
