"""Domain Models - Entities, Value Objects, and Configuration."""

from .resource import Resource
from .operation import (
    Operation,
    OperationState,
    ACTIVE_STATES,
)
from .resource_kind import (
    ResourceKind,
    ResourceKindRegistry,
    SideEffect,
    SideEffectCondition,
    Estimator,
)
from .change_request import ChangeRequest
from .integrity import (
    IntegrityIssue,
    IntegrityIssueType,
    IntegritySeverity,
    IntegrityReport,
    RepairAction,
)

__all__ = [
    # Resource
    "Resource",
    # Operation
    "Operation",
    "OperationState",
    "ACTIVE_STATES",
    # Kinds
    "ResourceKind",
    "ResourceKindRegistry",
    "SideEffect",
    "SideEffectCondition",
    "Estimator",
    # Requests
    "ChangeRequest",
    # Integrity Check
    "IntegrityIssue",
    "IntegrityIssueType",
    "IntegritySeverity",
    "IntegrityReport",
    "RepairAction",
]
