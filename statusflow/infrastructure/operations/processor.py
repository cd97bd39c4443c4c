"""
Operation Processor.

Background worker that executes the side effects of pending operations
and resolves them through the operation tracker.

Operations are committed before the processor ever sees them, so a crash
between the change request and execution leaves a pending (or running)
operation that is picked up on the next poll (or by resume_stalled()).
"""

from datetime import datetime, timedelta
from typing import Callable, Optional
import threading
import logging

from statusflow.domain.errors import (
    AlreadyTerminal,
    Conflict,
    InvalidTransition,
    NotFound,
    SideEffectFailure,
)
from statusflow.domain.interfaces.unit_of_work import IUnitOfWork
from statusflow.domain.models.operation import Operation, OperationState
from statusflow.domain.models.resource_kind import ResourceKindRegistry
from statusflow.application.services.operation_tracker import OperationTracker

logger = logging.getLogger(__name__)


class OperationProcessor:
    """
    Side-effect executor for asynchronous transitions.

    Responsibilities:
    1. Poll for pending operations
    2. Claim each one (pending -> running) so no other worker runs it
    3. Run the kind's side effect for the target status
    4. Resolve the operation (succeeded/failed) via the tracker
    5. Support graceful shutdown

    Usage:
        processor = OperationProcessor(uow_provider, kinds, tracker)
        processor.start()  # Background thread
        ...
        processor.stop()   # Graceful shutdown

    For testing:
        processed = processor.process_once()  # Single batch
    """

    def __init__(
        self,
        uow_provider: Callable[[], IUnitOfWork],
        kinds: ResourceKindRegistry,
        tracker: Optional[OperationTracker] = None,
        poll_interval_seconds: float = 1.0,
        batch_size: int = 50,
        stale_after_seconds: float = 300.0,
        retention_days: int = 7,
    ):
        """
        Initialize the processor.

        Args:
            uow_provider: Returns a fresh unit of work per call
            kinds: Registry providing each resource's side effects
            tracker: Tracker used to advance operations
            poll_interval_seconds: How often to poll when idle
            batch_size: Maximum operations to process per batch
            stale_after_seconds: Running operations older than this are
                resumed by resume_stalled()
            retention_days: Finished operations older than this are deleted
                when the loop starts
        """
        self._uow_provider = uow_provider
        self._kinds = kinds
        self._tracker = tracker or OperationTracker(uow_provider, kinds)
        self._poll_interval = poll_interval_seconds
        self._batch_size = batch_size
        self._stale_after = stale_after_seconds
        self._retention_days = retention_days

        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._wakeup = threading.Event()

    def start(self) -> None:
        """Start the processor in a background thread."""
        if self._running:
            logger.warning("OperationProcessor already running")
            return

        self._running = True
        self._wakeup.clear()
        self._thread = threading.Thread(target=self._run_loop, daemon=True, name="OperationProcessor")
        self._thread.start()
        logger.info("OperationProcessor started")

    def stop(self, timeout: float = 5.0) -> None:
        """
        Stop the processor gracefully.

        Args:
            timeout: Maximum seconds to wait for thread to finish
        """
        if not self._running:
            return

        self._running = False
        self._wakeup.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("OperationProcessor did not stop within timeout")
        self._thread = None
        logger.info("OperationProcessor stopped")

    def is_running(self) -> bool:
        return self._running

    def wake(self) -> None:
        """Skip the rest of the current idle wait, e.g. right after a request."""
        self._wakeup.set()

    def process_once(self) -> int:
        """
        Process a single batch of pending operations.

        Returns:
            Number of operations that reached a terminal state
        """
        return self._process_batch()

    def _run_loop(self) -> None:
        logger.info("OperationProcessor loop started")
        try:
            resumed = self.resume_stalled()
            if resumed:
                logger.info(f"Resumed {resumed} stalled operations on startup")
            self.cleanup_old_operations()
        except Exception as e:
            logger.error(f"OperationProcessor startup maintenance failed: {e}", exc_info=True)

        while self._running:
            try:
                processed = self._process_batch()
                if processed == 0:
                    self._wakeup.wait(self._poll_interval)
                    self._wakeup.clear()
            except Exception as e:
                logger.error(f"OperationProcessor error in loop: {e}", exc_info=True)
                self._wakeup.wait(self._poll_interval * 2)
                self._wakeup.clear()
        logger.info("OperationProcessor loop ended")

    def _process_batch(self) -> int:
        with self._uow_provider() as uow:
            pending = uow.operations.get_pending(limit=self._batch_size)

        if not pending:
            return 0

        processed = 0
        for operation in pending:
            claimed = self._claim(operation)
            if claimed is None:
                continue
            if self._execute(claimed):
                processed += 1

        if processed > 0:
            logger.info(f"Processed {processed}/{len(pending)} operations")
        return processed

    def _claim(self, operation: Operation) -> Optional[Operation]:
        """Move pending -> running; None if another worker got there first."""
        try:
            return self._tracker.advance(operation.id, OperationState.RUNNING)
        except (AlreadyTerminal, Conflict, InvalidTransition, NotFound) as e:
            logger.debug(f"Skipping operation {operation.id}: {e}")
            return None

    def _execute(self, operation: Operation) -> bool:
        """
        Run the side effect of a claimed operation and resolve it.

        Returns:
            True if the operation reached a terminal state here
        """
        try:
            self._run_side_effect(operation)
        except Exception as e:
            reason = e.message if isinstance(e, SideEffectFailure) else f"{type(e).__name__}: {e}"
            logger.error(f"Side effect of operation {operation.id} failed: {reason}")
            return self._resolve(operation, OperationState.FAILED, reason)
        return self._resolve(operation, OperationState.SUCCEEDED)

    def _run_side_effect(self, operation: Operation) -> None:
        with self._uow_provider() as uow:
            resource = uow.resources.get(operation.resource_id)
        if resource is None:
            raise SideEffectFailure(f"Resource '{operation.resource_id}' no longer exists")

        kind = self._kinds.get(resource.kind)
        effect = kind.side_effect_for(operation.target_status)
        if effect is None:
            logger.debug(f"No side effect for {kind.name} -> '{operation.target_status}'")
            return
        effect(resource, operation)

    def _resolve(
        self,
        operation: Operation,
        state: OperationState,
        failure_reason: Optional[str] = None,
    ) -> bool:
        try:
            self._tracker.advance(operation.id, state, failure_reason)
        except AlreadyTerminal:
            logger.warning(f"Operation {operation.id} was resolved elsewhere")
            return False
        return True

    # ═══════════════════════════════════════════════════════════════════════════
    # Maintenance Methods
    # ═══════════════════════════════════════════════════════════════════════════

    def resume_stalled(self) -> int:
        """
        Re-run operations left running longer than the stale threshold.

        Side effects may therefore run more than once and must tolerate
        repetition.

        Returns:
            Number of operations resolved
        """
        started_before = datetime.now() - timedelta(seconds=self._stale_after)
        with self._uow_provider() as uow:
            stalled = uow.operations.get_stalled(started_before, limit=self._batch_size)

        resolved = 0
        for operation in stalled:
            try:
                reclaimed = self._tracker.reclaim(operation.id)
            except (AlreadyTerminal, Conflict, InvalidTransition, NotFound) as e:
                logger.debug(f"Skipping stalled operation {operation.id}: {e}")
                continue
            logger.warning(
                f"Resuming operation {operation.id} stalled since {operation.started_at}"
            )
            if self._execute(reclaimed):
                resolved += 1
        return resolved

    def cleanup_old_operations(self, days_old: Optional[int] = None, limit: int = 1000) -> int:
        """
        Delete finished operations.

        Args:
            days_old: Delete operations completed more than this many days ago
                (the configured retention if None)
            limit: Maximum operations to delete per call

        Returns:
            Number of deleted operations
        """
        if days_old is None:
            days_old = self._retention_days
        before = datetime.now() - timedelta(days=days_old)

        with self._uow_provider() as uow:
            deleted = uow.operations.delete_terminal(before=before, limit=limit)
            uow.commit()

        if deleted > 0:
            logger.info(f"Cleaned up {deleted} old operations")

        return deleted
