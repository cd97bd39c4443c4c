"""
Data Integrity Domain Models.

Models for checking the desired-status invariant between the resource
store and the operation store:

    desired_status is set  <=>  a non-terminal operation references the resource

Design Philosophy:
- IntegrityIssue represents a single consistency problem
- IntegrityReport aggregates all issues from a check run
- Supports both detection and automated repair
"""

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any
from datetime import datetime
from enum import Enum


class IntegrityIssueType(Enum):
    """Types of integrity issues detected."""
    DESIRED_WITHOUT_OPERATION = "desired_without_operation"   # desired_status set, nothing in flight
    OPERATION_WITHOUT_DESIRED = "operation_without_desired"   # active operation, desired_status empty
    DESIRED_MISMATCH = "desired_mismatch"                     # desired_status != operation target
    DUPLICATE_ACTIVE = "duplicate_active"                     # several active operations per resource
    UNKNOWN_STATUS = "unknown_status"                         # status outside the kind's set
    OPERATION_STUCK = "operation_stuck"                       # running longer than the stale threshold
    DANGLING_OPERATION = "dangling_operation"                 # operation for a missing resource


class IntegritySeverity(Enum):
    """Severity level of integrity issues."""
    CRITICAL = "critical"   # Invariant broken
    WARNING = "warning"     # May resolve itself, worth watching
    INFO = "info"           # For reference only


class RepairAction(Enum):
    """Available repair actions for issues."""
    CLEAR_DESIRED = "clear_desired"
    SET_DESIRED = "set_desired"
    FAIL_OPERATION = "fail_operation"
    RESUME_OPERATION = "resume_operation"
    MANUAL_REQUIRED = "manual_required"


@dataclass
class IntegrityIssue:
    """
    Single integrity issue detected during checking.

    Attributes:
        issue_type: Type of the issue
        severity: How serious the issue is
        resource_id: Resource involved
        operation_id: Operation involved (if any)
        message: Human-readable description
        details: Additional context
        suggested_action: Recommended repair action
        auto_repairable: Whether it can be fixed automatically
    """

    issue_type: IntegrityIssueType
    severity: IntegritySeverity
    resource_id: str
    operation_id: Optional[str] = None
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    suggested_action: RepairAction = RepairAction.MANUAL_REQUIRED
    auto_repairable: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "issue_type": self.issue_type.value,
            "severity": self.severity.value,
            "resource_id": self.resource_id,
            "operation_id": self.operation_id,
            "message": self.message,
            "details": self.details,
            "suggested_action": self.suggested_action.value,
            "auto_repairable": self.auto_repairable,
        }

    @classmethod
    def desired_without_operation(cls, resource_id: str, desired_status: str) -> "IntegrityIssue":
        return cls(
            issue_type=IntegrityIssueType.DESIRED_WITHOUT_OPERATION,
            severity=IntegritySeverity.CRITICAL,
            resource_id=resource_id,
            message=f"Resource {resource_id} wants '{desired_status}' but no operation is active",
            details={"desired_status": desired_status},
            suggested_action=RepairAction.CLEAR_DESIRED,
            auto_repairable=True,
        )

    @classmethod
    def operation_without_desired(cls, resource_id: str, operation_id: str, target_status: str) -> "IntegrityIssue":
        return cls(
            issue_type=IntegrityIssueType.OPERATION_WITHOUT_DESIRED,
            severity=IntegritySeverity.CRITICAL,
            resource_id=resource_id,
            operation_id=operation_id,
            message=f"Operation {operation_id} is active but resource {resource_id} has no desired status",
            details={"target_status": target_status},
            suggested_action=RepairAction.SET_DESIRED,
            auto_repairable=True,
        )

    @classmethod
    def desired_mismatch(
        cls, resource_id: str, operation_id: str, desired_status: str, target_status: str
    ) -> "IntegrityIssue":
        return cls(
            issue_type=IntegrityIssueType.DESIRED_MISMATCH,
            severity=IntegritySeverity.CRITICAL,
            resource_id=resource_id,
            operation_id=operation_id,
            message=(
                f"Resource {resource_id} wants '{desired_status}' "
                f"but operation {operation_id} targets '{target_status}'"
            ),
            details={"desired_status": desired_status, "target_status": target_status},
            suggested_action=RepairAction.SET_DESIRED,
            auto_repairable=True,
        )

    @classmethod
    def operation_stuck(cls, resource_id: str, operation_id: str, running_seconds: float) -> "IntegrityIssue":
        return cls(
            issue_type=IntegrityIssueType.OPERATION_STUCK,
            severity=IntegritySeverity.WARNING,
            resource_id=resource_id,
            operation_id=operation_id,
            message=f"Operation {operation_id} running for {running_seconds:.0f}s",
            details={"running_seconds": running_seconds},
            suggested_action=RepairAction.RESUME_OPERATION,
            auto_repairable=False,
        )

    @classmethod
    def duplicate_active(cls, resource_id: str, operation_ids: List[str]) -> "IntegrityIssue":
        return cls(
            issue_type=IntegrityIssueType.DUPLICATE_ACTIVE,
            severity=IntegritySeverity.CRITICAL,
            resource_id=resource_id,
            operation_id=operation_ids[-1],
            message=f"Resource {resource_id} has {len(operation_ids)} active operations",
            details={"operation_ids": list(operation_ids)},
            suggested_action=RepairAction.FAIL_OPERATION,
            auto_repairable=True,
        )

    @classmethod
    def unknown_status(cls, resource_id: str, kind: str, status: str) -> "IntegrityIssue":
        return cls(
            issue_type=IntegrityIssueType.UNKNOWN_STATUS,
            severity=IntegritySeverity.CRITICAL,
            resource_id=resource_id,
            message=f"Resource {resource_id} has status '{status}' unknown to kind '{kind}'",
            details={"kind": kind, "status": status},
        )

    @classmethod
    def dangling_operation(cls, resource_id: str, operation_id: str) -> "IntegrityIssue":
        return cls(
            issue_type=IntegrityIssueType.DANGLING_OPERATION,
            severity=IntegritySeverity.WARNING,
            resource_id=resource_id,
            operation_id=operation_id,
            message=f"Operation {operation_id} references missing resource {resource_id}",
            suggested_action=RepairAction.FAIL_OPERATION,
            auto_repairable=True,
        )


@dataclass
class IntegrityReport:
    """
    Aggregated integrity check report.

    Contains all issues found during a check run, with statistics
    and repair results if repair was performed.
    """

    checked_at: datetime = field(default_factory=datetime.now)
    duration_ms: float = 0

    total_checked: int = 0
    issues_found: int = 0
    critical_count: int = 0
    warning_count: int = 0
    info_count: int = 0

    issues: List[IntegrityIssue] = field(default_factory=list)

    repaired_count: int = 0
    repair_failed_count: int = 0

    def add_issue(self, issue: IntegrityIssue) -> None:
        """Add an issue to the report."""
        self.issues.append(issue)
        self.issues_found += 1

        if issue.severity == IntegritySeverity.CRITICAL:
            self.critical_count += 1
        elif issue.severity == IntegritySeverity.WARNING:
            self.warning_count += 1
        else:
            self.info_count += 1

    @property
    def is_healthy(self) -> bool:
        """Check if no critical issues were found."""
        return self.critical_count == 0

    def get_issues_by_type(self, issue_type: IntegrityIssueType) -> List[IntegrityIssue]:
        return [i for i in self.issues if i.issue_type == issue_type]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "checked_at": self.checked_at.isoformat(),
            "duration_ms": self.duration_ms,
            "total_checked": self.total_checked,
            "issues_found": self.issues_found,
            "critical_count": self.critical_count,
            "warning_count": self.warning_count,
            "info_count": self.info_count,
            "is_healthy": self.is_healthy,
            "issues": [i.to_dict() for i in self.issues],
            "repaired_count": self.repaired_count,
            "repair_failed_count": self.repair_failed_count,
        }

    def summary(self) -> str:
        """Generate human-readable summary."""
        status = "HEALTHY" if self.is_healthy else "UNHEALTHY"
        lines = [
            status,
            f"Checked: {self.total_checked} resources in {self.duration_ms:.2f}ms",
            f"Issues: {self.issues_found} (Critical: {self.critical_count}, "
            f"Warning: {self.warning_count}, Info: {self.info_count})",
        ]
        if self.repaired_count > 0 or self.repair_failed_count > 0:
            lines.append(f"Repaired: {self.repaired_count}, Failed: {self.repair_failed_count}")
        return "\n".join(lines)
