"""
Integrity Checker.

Detects (and optionally repairs) disagreements between the resource
store and the operation store. After every commit made through the
tracker and engine the stores agree; the checker exists for data written
by older versions, manual edits and crashes in between processes sharing
a database.
"""

from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, List, Optional
import logging
import time

from statusflow.domain.errors import AlreadyTerminal, NotFound, StatusFlowError
from statusflow.domain.interfaces.unit_of_work import IUnitOfWork
from statusflow.domain.models.integrity import (
    IntegrityIssue,
    IntegrityIssueType,
    IntegrityReport,
)
from statusflow.domain.models.operation import Operation, OperationState
from statusflow.domain.models.resource_kind import ResourceKindRegistry
from .operation_tracker import OperationTracker

logger = logging.getLogger(__name__)


class IntegrityChecker:
    """
    Checks the desired-status invariant across all resources.

    Usage:
        checker = IntegrityChecker(uow_provider, kinds)
        report = checker.check()
        if not report.is_healthy:
            checker.repair(report)
    """

    def __init__(
        self,
        uow_provider: Callable[[], IUnitOfWork],
        kinds: ResourceKindRegistry,
        tracker: Optional[OperationTracker] = None,
        stale_after_seconds: float = 300.0,
        max_resources: int = 10000,
    ):
        self._uow_provider = uow_provider
        self._kinds = kinds
        self._tracker = tracker or OperationTracker(uow_provider, kinds)
        self._stale_after = stale_after_seconds
        self._max_resources = max_resources

    def check(self) -> IntegrityReport:
        """Run all checks against one consistent read of both stores."""
        started = time.perf_counter()
        report = IntegrityReport()

        with self._uow_provider() as uow:
            resources = {r.id: r for r in uow.resources.list(limit=self._max_resources)}
            active = uow.operations.list_active(limit=self._max_resources)
            for operation in active:
                if operation.resource_id not in resources:
                    owner = uow.resources.get(operation.resource_id)
                    if owner is not None:
                        resources[owner.id] = owner

        by_resource: Dict[str, List[Operation]] = defaultdict(list)
        for operation in active:
            by_resource[operation.resource_id].append(operation)

        now = datetime.now()
        for operation in active:
            if operation.resource_id not in resources:
                report.add_issue(IntegrityIssue.dangling_operation(operation.resource_id, operation.id))
            elif (
                operation.state == OperationState.RUNNING
                and operation.started_at is not None
                and (now - operation.started_at).total_seconds() > self._stale_after
            ):
                report.add_issue(IntegrityIssue.operation_stuck(
                    operation.resource_id,
                    operation.id,
                    (now - operation.started_at).total_seconds(),
                ))

        for resource in resources.values():
            report.total_checked += 1

            if resource.kind in self._kinds:
                kind = self._kinds.get(resource.kind)
                if not kind.is_valid_status(resource.status):
                    report.add_issue(IntegrityIssue.unknown_status(resource.id, kind.name, resource.status))

            operations = sorted(by_resource.get(resource.id, []), key=lambda o: o.created_at)
            if len(operations) > 1:
                report.add_issue(IntegrityIssue.duplicate_active(resource.id, [o.id for o in operations]))

            latest = operations[-1] if operations else None
            if latest is None and resource.desired_status is not None:
                report.add_issue(IntegrityIssue.desired_without_operation(resource.id, resource.desired_status))
            elif latest is not None and resource.desired_status is None:
                report.add_issue(IntegrityIssue.operation_without_desired(
                    resource.id, latest.id, latest.target_status
                ))
            elif latest is not None and resource.desired_status != latest.target_status:
                report.add_issue(IntegrityIssue.desired_mismatch(
                    resource.id, latest.id, resource.desired_status, latest.target_status
                ))

        report.duration_ms = (time.perf_counter() - started) * 1000
        if report.issues_found:
            logger.warning(f"Integrity check found {report.issues_found} issues")
        else:
            logger.debug(f"Integrity check clean ({report.total_checked} resources)")
        return report

    def repair(self, report: IntegrityReport) -> IntegrityReport:
        """
        Apply automatic repairs for the issues in ``report``.

        Duplicate and dangling operations are failed first so desired
        statuses are reconciled against what remains active.
        """
        order = {
            IntegrityIssueType.DANGLING_OPERATION: 0,
            IntegrityIssueType.DUPLICATE_ACTIVE: 1,
        }
        issues = sorted(
            (i for i in report.issues if i.auto_repairable),
            key=lambda i: order.get(i.issue_type, 2),
        )

        for issue in issues:
            try:
                self._repair_issue(issue)
                report.repaired_count += 1
            except StatusFlowError as e:
                report.repair_failed_count += 1
                logger.error(f"Failed to repair {issue.issue_type.value} on {issue.resource_id}: {e}")

        if report.repaired_count:
            logger.info(f"Repaired {report.repaired_count} integrity issues")
        return report

    def _repair_issue(self, issue: IntegrityIssue) -> None:
        if issue.issue_type == IntegrityIssueType.DANGLING_OPERATION:
            self._fail(issue.operation_id, "resource no longer exists")

        elif issue.issue_type == IntegrityIssueType.DUPLICATE_ACTIVE:
            for operation_id in issue.details["operation_ids"][:-1]:
                self._fail(operation_id, f"superseded by operation {issue.operation_id}")

        elif issue.issue_type in (
            IntegrityIssueType.DESIRED_WITHOUT_OPERATION,
            IntegrityIssueType.OPERATION_WITHOUT_DESIRED,
            IntegrityIssueType.DESIRED_MISMATCH,
        ):
            self._tracker.reconcile(issue.resource_id)

    def _fail(self, operation_id: str, reason: str) -> None:
        try:
            self._tracker.advance(operation_id, OperationState.FAILED, reason)
        except (AlreadyTerminal, NotFound):
            logger.debug(f"Operation {operation_id} already gone, nothing to fail")
