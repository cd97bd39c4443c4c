"""
Integrity Checker tests.

Each test corrupts the stores directly through a unit of work (bypassing
engine and tracker), then checks detection and repair.
"""

import time

import pytest

from statusflow.application.services import IntegrityChecker
from statusflow.domain.models import Operation, OperationState, Resource
from statusflow.domain.models.integrity import IntegrityIssueType, IntegritySeverity


@pytest.fixture
def checker(services):
    return services.integrity


def corrupt(services, mutate):
    with services.uow_provider() as uow:
        result = mutate(uow)
        uow.commit()
    return result


def issue_types(report):
    return {issue.issue_type for issue in report.issues}


class TestHealthy:

    def test_empty_stores(self, checker):
        report = checker.check()

        assert report.is_healthy
        assert report.issues_found == 0
        assert report.total_checked == 0

    def test_after_normal_flows(self, engine, processor, checker, user):
        engine.request_change(user.id, "confirmedCompromised", params={"duration": 60})
        other = engine.register("riskyUser", resource_id="r2")
        engine.request_change(other.id, "dismissed")

        in_flight = checker.check()
        processor.process_once()
        settled = checker.check()

        assert in_flight.is_healthy and in_flight.issues_found == 0
        assert settled.is_healthy and settled.issues_found == 0
        assert settled.total_checked == 2


class TestDetectAndRepair:

    def test_desired_without_operation(self, services, checker, engine, user, assert_invariant):
        corrupt(services, lambda uow: uow.resources.set_desired(user.id, "dismissed"))

        report = checker.check()

        assert issue_types(report) == {IntegrityIssueType.DESIRED_WITHOUT_OPERATION}
        assert not report.is_healthy

        checker.repair(report)

        assert report.repaired_count == 1
        assert engine.get_resource(user.id).desired_status is None
        assert checker.check().is_healthy
        assert_invariant(user.id)

    def test_operation_without_desired(self, services, checker, engine, user, assert_invariant):
        op = corrupt(services, lambda uow: uow.operations.add(
            Operation.for_transition(user.id, "none", "confirmedCompromised")
        ))

        report = checker.check()

        issue = report.get_issues_by_type(IntegrityIssueType.OPERATION_WITHOUT_DESIRED)[0]
        assert issue.operation_id == op.id

        checker.repair(report)

        assert engine.get_resource(user.id).desired_status == "confirmedCompromised"
        assert checker.check().is_healthy
        assert_invariant(user.id)

    def test_desired_mismatch(self, services, checker, tracker, engine, user, assert_invariant):
        tracker.create(user.id, "confirmedCompromised", {"duration": 60})

        def overwrite(uow):
            uow.resources.set_desired(user.id, None)
            uow.resources.set_desired(user.id, "dismissed")

        corrupt(services, overwrite)

        report = checker.check()

        assert issue_types(report) == {IntegrityIssueType.DESIRED_MISMATCH}

        checker.repair(report)

        assert engine.get_resource(user.id).desired_status == "confirmedCompromised"
        assert_invariant(user.id)

    def test_duplicate_active_keeps_newest(self, services, checker, tracker, user, assert_invariant):
        first = tracker.create(user.id, "confirmedCompromised", {"duration": 60})
        time.sleep(0.002)
        second = corrupt(services, lambda uow: uow.operations.add(
            Operation.for_transition(user.id, "none", "dismissed")
        ))

        report = checker.check()

        assert IntegrityIssueType.DUPLICATE_ACTIVE in issue_types(report)
        duplicate = report.get_issues_by_type(IntegrityIssueType.DUPLICATE_ACTIVE)[0]
        assert duplicate.details["operation_ids"] == [first.id, second.id]

        checker.repair(report)

        failed = tracker.get(first.id)
        assert failed.state == OperationState.FAILED
        assert second.id in failed.failure_reason
        assert tracker.get(second.id).state == OperationState.PENDING
        assert checker.check().is_healthy
        assert_invariant(user.id)

    def test_dangling_operation(self, services, checker, tracker):
        op = corrupt(services, lambda uow: uow.operations.add(
            Operation.for_transition("ghost", "none", "dismissed")
        ))

        report = checker.check()

        issue = report.get_issues_by_type(IntegrityIssueType.DANGLING_OPERATION)[0]
        assert issue.severity == IntegritySeverity.WARNING

        checker.repair(report)

        assert tracker.get(op.id).state == OperationState.FAILED
        assert checker.check().issues_found == 0

    def test_resource_beyond_page_is_not_dangling(self, services, engine, tracker, assert_invariant):
        checker = IntegrityChecker(services.uow_provider, services.kinds, tracker, max_resources=1)
        engine.register("riskyUser", resource_id="a")
        engine.register("riskyUser", resource_id="b")
        accepted = engine.request_change("b", "confirmedCompromised", params={"duration": 60})

        report = checker.check()
        checker.repair(report)

        assert IntegrityIssueType.DANGLING_OPERATION not in issue_types(report)
        assert report.is_healthy
        assert tracker.get(accepted.operation.id).state == OperationState.PENDING
        assert engine.get_resource("b").desired_status == "confirmedCompromised"
        assert_invariant("b")


class TestManualIssues:

    def test_unknown_status_is_not_repaired(self, services, checker):
        corrupt(services, lambda uow: uow.resources.add(
            Resource(id="r9", kind="riskyUser", status="hacked")
        ))

        report = checker.repair(checker.check())

        issue = report.get_issues_by_type(IntegrityIssueType.UNKNOWN_STATUS)[0]
        assert not issue.auto_repairable
        assert report.repaired_count == 0
        assert not checker.check().is_healthy

    def test_stuck_operation_is_a_warning(self, services, tracker, engine, user):
        checker = IntegrityChecker(services.uow_provider, services.kinds, tracker, stale_after_seconds=0)
        accepted = engine.request_change(user.id, "confirmedCompromised", params={"duration": 60})
        tracker.advance(accepted.operation.id, OperationState.RUNNING)
        time.sleep(0.01)

        report = checker.check()

        assert issue_types(report) == {IntegrityIssueType.OPERATION_STUCK}
        assert report.is_healthy
        assert report.warning_count == 1


class TestReport:

    def test_to_dict_and_summary(self, services, checker, user):
        corrupt(services, lambda uow: uow.resources.set_desired(user.id, "dismissed"))

        report = checker.check()
        data = report.to_dict()

        assert data["is_healthy"] is False
        assert data["issues"][0]["issue_type"] == "desired_without_operation"
        assert report.summary().startswith("UNHEALTHY")
