"""
Request models for the resource API.

Only the body shape is checked here; status membership and transition
rules are enforced by the transition engine.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class StatusPatch(BaseModel):
    """Body of PATCH /resources/{id}."""

    model_config = ConfigDict(extra="forbid")

    status: str = Field(..., min_length=1, max_length=64, description="Requested status")
    expectedStatus: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=64,
        description="Apply only if the resource is currently in this status",
    )
    statusDetail: Optional[str] = Field(
        default=None,
        max_length=1000,
        description="Free-text detail stored with the new status",
    )


class ChangeRequestBody(StatusPatch):
    """
    Body of POST /resources/{id}/changeRequests.

    Any field besides the StatusPatch ones is a kind-specific parameter,
    e.g. ``{"status": "confirmedCompromised", "duration": 3600}``.
    """

    model_config = ConfigDict(extra="allow")

    @property
    def params(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})
