"""
Resource Domain Model.

A Resource is a domain entity whose side effects are requested by
changing its ``status`` rather than by calling an action endpoint.

Design Philosophy:
- ``status`` is the committed state, ``desired_status`` is the state an
  in-flight operation is driving the resource towards
- The resource never holds a reference to its operation; the link is an
  indexed lookup owned by the operation repository
- ``version`` is bumped by the store on every committed mutation
"""

from dataclasses import dataclass, field, replace
from typing import Dict, Any, Optional
from datetime import datetime
import uuid


@dataclass
class Resource:
    """
    Resource Entity.

    Attributes:
        id: Opaque unique identifier (immutable)
        kind: Name of the ResourceKind supplying statuses and transitions
        status: Current committed status
        desired_status: Target status while a transition is in flight
        status_detail: Free-text detail describing the current status
        last_updated: When status or detail last changed
        attributes: Kind-specific metadata (e.g. user principal name)
        version: Store-maintained mutation counter
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    kind: str = ""
    status: str = ""
    desired_status: Optional[str] = None
    status_detail: Optional[str] = None
    last_updated: datetime = field(default_factory=datetime.now)
    attributes: Dict[str, Any] = field(default_factory=dict)
    version: int = 1

    @property
    def in_flight(self) -> bool:
        """True while a long-running transition targets this resource."""
        return self.desired_status is not None

    def copy(self) -> "Resource":
        """Detached copy, safe to hand out of a store."""
        return replace(self, attributes=dict(self.attributes))
