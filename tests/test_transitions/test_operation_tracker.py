"""
Operation Tracker tests: lifecycle, resource reconciliation and the
desired-status invariant.
"""

import time

import pytest

from statusflow.domain.errors import AlreadyTerminal, InvalidTransition, NotFound, OperationInFlight
from statusflow.domain.models import Operation, OperationState


@pytest.fixture
def pending(tracker, user):
    return tracker.create(user.id, "confirmedCompromised", {"duration": 3600})


class TestCreate:

    def test_create_marks_desired_status(self, tracker, engine, pending, assert_invariant):
        resource = engine.get_resource(pending.resource_id)

        assert pending.state == OperationState.PENDING
        assert resource.status == "none"
        assert resource.desired_status == "confirmedCompromised"
        assert_invariant(resource.id)

    def test_create_while_active_is_rejected(self, tracker, pending):
        with pytest.raises(OperationInFlight) as exc_info:
            tracker.create(pending.resource_id, "dismissed")

        assert exc_info.value.operation_id == pending.id

    def test_create_unreachable_target(self, tracker, engine, user):
        engine.request_change(user.id, "dismissed")

        with pytest.raises(InvalidTransition):
            tracker.create(user.id, "confirmedCompromised")

    def test_create_unknown_status(self, tracker, user):
        with pytest.raises(InvalidTransition):
            tracker.create(user.id, "hacked")

        assert tracker.active_for(user.id) is None

    def test_create_unknown_resource(self, tracker):
        with pytest.raises(NotFound):
            tracker.create("missing", "dismissed")


class TestAdvance:

    def test_success_applies_target_status(self, tracker, engine, pending, assert_invariant):
        tracker.advance(pending.id, OperationState.RUNNING)
        done = tracker.advance(pending.id, OperationState.SUCCEEDED)

        resource = engine.get_resource(pending.resource_id)
        assert done.state == OperationState.SUCCEEDED
        assert done.completed_at is not None
        assert resource.status == "confirmedCompromised"
        assert resource.desired_status is None
        assert_invariant(resource.id)

    def test_success_applies_status_detail(self, tracker, engine, user):
        op = tracker.create(user.id, "confirmedCompromised", {"statusDetail": "confirmed by SOC"})
        tracker.advance(op.id, OperationState.RUNNING)
        tracker.advance(op.id, OperationState.SUCCEEDED)

        assert engine.get_resource(user.id).status_detail == "confirmed by SOC"

    def test_advance_accepts_state_names(self, tracker, pending):
        assert tracker.advance(pending.id, "running").state == OperationState.RUNNING

    def test_second_success_is_already_terminal(self, tracker, engine, pending):
        tracker.advance(pending.id, OperationState.RUNNING)
        tracker.advance(pending.id, OperationState.SUCCEEDED)
        before = engine.get_resource(pending.resource_id)

        with pytest.raises(AlreadyTerminal):
            tracker.advance(pending.id, OperationState.SUCCEEDED)

        assert tracker.get(pending.id).state == OperationState.SUCCEEDED
        assert engine.get_resource(pending.resource_id) == before

    def test_failure_keeps_status_and_clears_desired(self, tracker, engine, pending, assert_invariant):
        tracker.advance(pending.id, OperationState.RUNNING)
        failed = tracker.advance(pending.id, OperationState.FAILED, "directory unavailable")

        resource = engine.get_resource(pending.resource_id)
        assert failed.failure_reason == "directory unavailable"
        assert resource.status == "none"
        assert resource.desired_status is None
        assert_invariant(resource.id)

    def test_pending_can_fail_before_running(self, tracker, engine, pending):
        tracker.advance(pending.id, OperationState.FAILED, "rejected")

        assert engine.get_resource(pending.resource_id).desired_status is None

    def test_backwards_move_is_invalid(self, tracker, pending):
        tracker.advance(pending.id, OperationState.RUNNING)

        with pytest.raises(InvalidTransition):
            tracker.advance(pending.id, OperationState.PENDING)

        assert tracker.get(pending.id).state == OperationState.RUNNING

    def test_skipping_running_is_invalid(self, tracker, engine, pending):
        with pytest.raises(InvalidTransition):
            tracker.advance(pending.id, OperationState.SUCCEEDED)

        assert tracker.get(pending.id).state == OperationState.PENDING
        assert engine.get_resource(pending.resource_id).desired_status == "confirmedCompromised"

    def test_success_fails_when_status_moved_underneath(self, tracker, engine, services, pending, assert_invariant):
        tracker.advance(pending.id, OperationState.RUNNING)
        with services.uow_provider() as uow:
            uow.resources.compare_and_set(pending.resource_id, "none", "dismissed")
            uow.commit()

        result = tracker.advance(pending.id, OperationState.SUCCEEDED)

        resource = engine.get_resource(pending.resource_id)
        assert result.state == OperationState.FAILED
        assert "changed" in result.failure_reason
        assert resource.status == "dismissed"
        assert resource.desired_status is None
        assert_invariant(resource.id)

    def test_success_never_writes_status_outside_kind(self, tracker, engine, services, user, assert_invariant):
        def record_forbidden(uow):
            uow.resources.set_desired(user.id, "hacked")
            return uow.operations.add(Operation.for_transition(user.id, "none", "hacked"))

        with services.uow_provider() as uow:
            op = record_forbidden(uow)
            uow.commit()
        tracker.advance(op.id, OperationState.RUNNING)

        result = tracker.advance(op.id, OperationState.SUCCEEDED)

        resource = engine.get_resource(user.id)
        assert result.state == OperationState.FAILED
        assert "hacked" in result.failure_reason
        assert resource.status == "none"
        assert resource.desired_status is None
        assert_invariant(user.id)

    def test_unknown_operation(self, tracker):
        with pytest.raises(NotFound):
            tracker.advance("00000000-0000-0000-0000-000000000000", OperationState.RUNNING)

    def test_new_operation_allowed_after_resolution(self, tracker, pending):
        tracker.advance(pending.id, OperationState.FAILED, "rejected")

        retry = tracker.create(pending.resource_id, "confirmedCompromised", {"duration": 60})

        assert retry.id != pending.id
        assert tracker.active_for(pending.resource_id).id == retry.id


class TestReclaim:

    def test_reclaim_running(self, tracker, pending):
        tracker.advance(pending.id, OperationState.RUNNING)

        reclaimed = tracker.reclaim(pending.id)

        assert reclaimed.attempts == 2
        assert reclaimed.state == OperationState.RUNNING

    def test_reclaim_pending_is_invalid(self, tracker, pending):
        with pytest.raises(InvalidTransition):
            tracker.reclaim(pending.id)

    def test_reclaim_terminal(self, tracker, pending):
        tracker.advance(pending.id, OperationState.FAILED, "rejected")

        with pytest.raises(AlreadyTerminal):
            tracker.reclaim(pending.id)


class TestQueries:

    def test_get(self, tracker, pending):
        assert tracker.get(pending.id) == pending

    def test_get_unknown(self, tracker):
        with pytest.raises(NotFound):
            tracker.get("00000000-0000-0000-0000-000000000000")

    def test_active_for_idle_resource(self, tracker, user):
        assert tracker.active_for(user.id) is None

    def test_list_for_resource_newest_first(self, tracker, pending):
        tracker.advance(pending.id, OperationState.FAILED, "rejected")
        time.sleep(0.002)
        second = tracker.create(pending.resource_id, "dismissed")

        assert [o.id for o in tracker.list_for_resource(pending.resource_id)] == [second.id, pending.id]

    def test_list_for_unknown_resource(self, tracker):
        with pytest.raises(NotFound):
            tracker.list_for_resource("missing")

    def test_reconcile_restores_missing_desired(self, tracker, services, pending):
        with services.uow_provider() as uow:
            uow.resources.set_desired(pending.resource_id, None)
            uow.commit()

        assert tracker.reconcile(pending.resource_id) == "confirmedCompromised"
