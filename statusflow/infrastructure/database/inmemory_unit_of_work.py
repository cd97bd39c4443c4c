"""
In-Memory Unit of Work.

Dictionary-backed stores for tests and single-process development.

Transactions are serialized: a unit of work holds the store's re-entrant
lock from enter to exit. Repositories record the before-image of each
entry they are about to change in the store's undo journal, so leaving
without commit() restores only what the transaction touched. Repository
calls made outside a unit of work take the same lock per call and are
not journaled.
"""

from copy import deepcopy
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
import threading

from statusflow.domain.errors import Conflict, NotFound
from statusflow.domain.interfaces.repositories import IOperationRepository, IResourceRepository
from statusflow.domain.interfaces.unit_of_work import IUnitOfWork
from statusflow.domain.models.operation import Operation, OperationState
from statusflow.domain.models.resource import Resource


_MISSING = object()


class InMemoryStore:
    """Shared state behind every InMemoryUnitOfWork created for it."""

    def __init__(self):
        self.lock = threading.RLock()
        self.resources: Dict[str, Resource] = {}
        self.operations: Dict[str, Operation] = {}
        # resource_id -> ids of non-terminal operations, oldest first
        self.active_index: Dict[str, List[str]] = {}
        self._journal: Optional[Dict[Tuple[str, str], Any]] = None

    def begin(self) -> Optional[Dict[Tuple[str, str], Any]]:
        """Open a journal; returns the enclosing one to hand back to end()."""
        outer = self._journal
        self._journal = {}
        return outer

    def touch(self, table: str, key: str) -> None:
        """Record the before-image of one entry, once per transaction."""
        if self._journal is None or (table, key) in self._journal:
            return
        entry = getattr(self, table).get(key, _MISSING)
        self._journal[(table, key)] = entry if entry is _MISSING else deepcopy(entry)

    def end(self, outer: Optional[Dict[Tuple[str, str], Any]], rollback: bool) -> None:
        journal = self._journal or {}
        if rollback:
            for (table, key), before in journal.items():
                entries = getattr(self, table)
                if before is _MISSING:
                    entries.pop(key, None)
                else:
                    entries[key] = before
        elif outer is not None:
            for key, before in journal.items():
                outer.setdefault(key, before)
        self._journal = outer


class InMemoryResourceRepository(IResourceRepository):
    """Resource store backed by InMemoryStore."""

    def __init__(self, store: InMemoryStore):
        self._store = store

    def get(self, resource_id: str) -> Optional[Resource]:
        with self._store.lock:
            resource = self._store.resources.get(resource_id)
            return resource.copy() if resource else None

    def add(self, resource: Resource) -> Resource:
        with self._store.lock:
            if resource.id in self._store.resources:
                raise Conflict(f"Resource '{resource.id}' already exists", resource_id=resource.id)
            self._store.touch("resources", resource.id)
            self._store.resources[resource.id] = resource.copy()
            return resource.copy()

    def list(self, kind: Optional[str] = None, limit: int = 100) -> List[Resource]:
        with self._store.lock:
            matching = [
                r.copy() for r in self._store.resources.values()
                if kind is None or r.kind == kind
            ]
        matching.sort(key=lambda r: r.id)
        return matching[:limit]

    def compare_and_set(
        self,
        resource_id: str,
        expected_status: str,
        new_status: str,
        status_detail: Optional[str] = None,
        clear_desired: bool = False,
        only_if_idle: bool = False,
    ) -> Resource:
        with self._store.lock:
            resource = self._require(resource_id)
            if resource.status != expected_status or (only_if_idle and resource.in_flight):
                raise Conflict(
                    f"Resource '{resource_id}' changed concurrently "
                    f"(status '{resource.status}', desired '{resource.desired_status}')",
                    expected=expected_status,
                    actual=resource.status,
                    resource_id=resource_id,
                )
            self._store.touch("resources", resource_id)
            resource.status = new_status
            if status_detail is not None:
                resource.status_detail = status_detail
            if clear_desired:
                resource.desired_status = None
            resource.last_updated = datetime.now()
            resource.version += 1
            return resource.copy()

    def set_desired(
        self,
        resource_id: str,
        desired_status: Optional[str],
        expected_status: Optional[str] = None,
    ) -> Resource:
        with self._store.lock:
            resource = self._require(resource_id)
            if desired_status is not None:
                if resource.in_flight or (
                    expected_status is not None and resource.status != expected_status
                ):
                    raise Conflict(
                        f"Resource '{resource_id}' changed concurrently "
                        f"(status '{resource.status}', desired '{resource.desired_status}')",
                        expected=expected_status,
                        actual=resource.status,
                        resource_id=resource_id,
                    )
            self._store.touch("resources", resource_id)
            resource.desired_status = desired_status
            resource.version += 1
            return resource.copy()

    def _require(self, resource_id: str) -> Resource:
        resource = self._store.resources.get(resource_id)
        if resource is None:
            raise NotFound.resource(resource_id)
        return resource


class InMemoryOperationRepository(IOperationRepository):
    """Operation store backed by InMemoryStore, with an active-operation index."""

    def __init__(self, store: InMemoryStore):
        self._store = store

    def add(self, operation: Operation) -> Operation:
        with self._store.lock:
            self._store.touch("operations", operation.id)
            self._store.touch("active_index", operation.resource_id)
            self._store.operations[operation.id] = operation.copy()
            if not operation.is_terminal:
                self._store.active_index.setdefault(operation.resource_id, []).append(operation.id)
            return operation.copy()

    def get(self, operation_id: str) -> Optional[Operation]:
        with self._store.lock:
            operation = self._store.operations.get(operation_id)
            return operation.copy() if operation else None

    def update(self, operation: Operation, expected_state: OperationState) -> Operation:
        with self._store.lock:
            current = self._store.operations.get(operation.id)
            if current is None:
                raise NotFound.operation(operation.id)
            if current.state != expected_state:
                raise Conflict(
                    f"Operation '{operation.id}' is '{current.state.value}', "
                    f"expected '{expected_state.value}'",
                    expected=expected_state.value,
                    actual=current.state.value,
                    operation_id=operation.id,
                )
            self._store.touch("operations", operation.id)
            self._store.operations[operation.id] = operation.copy()
            if operation.is_terminal:
                self._store.touch("active_index", operation.resource_id)
                active = self._store.active_index.get(operation.resource_id, [])
                if operation.id in active:
                    active.remove(operation.id)
                if not active:
                    self._store.active_index.pop(operation.resource_id, None)
            return operation.copy()

    def find_active_for_resource(self, resource_id: str) -> Optional[Operation]:
        with self._store.lock:
            active = self._store.active_index.get(resource_id)
            if not active:
                return None
            return self._store.operations[active[-1]].copy()

    def list_for_resource(self, resource_id: str, limit: int = 100) -> List[Operation]:
        with self._store.lock:
            matching = [
                o.copy() for o in self._store.operations.values()
                if o.resource_id == resource_id
            ]
        matching.sort(key=lambda o: o.created_at, reverse=True)
        return matching[:limit]

    def list_active(self, limit: int = 1000) -> List[Operation]:
        with self._store.lock:
            active = [o.copy() for o in self._store.operations.values() if not o.is_terminal]
        active.sort(key=lambda o: o.created_at)
        return active[:limit]

    def get_pending(self, limit: int = 100) -> List[Operation]:
        with self._store.lock:
            pending = [
                o.copy() for o in self._store.operations.values()
                if o.state == OperationState.PENDING
            ]
        pending.sort(key=lambda o: o.created_at)
        return pending[:limit]

    def get_stalled(self, started_before: datetime, limit: int = 100) -> List[Operation]:
        with self._store.lock:
            stalled = [
                o.copy() for o in self._store.operations.values()
                if o.state == OperationState.RUNNING
                and o.started_at is not None
                and o.started_at < started_before
            ]
        stalled.sort(key=lambda o: o.started_at)
        return stalled[:limit]

    def delete_terminal(self, before: datetime, limit: int = 1000) -> int:
        with self._store.lock:
            to_delete = [
                o.id for o in self._store.operations.values()
                if o.is_terminal and o.completed_at and o.completed_at < before
            ][:limit]
            for operation_id in to_delete:
                self._store.touch("operations", operation_id)
                del self._store.operations[operation_id]
            return len(to_delete)


class InMemoryUnitOfWork(IUnitOfWork):
    """
    In-memory implementation of IUnitOfWork.

    Pass the same InMemoryStore to several units of work to share state
    between them (e.g. engine, tracker and processor in one process).
    """

    def __init__(self, store: Optional[InMemoryStore] = None):
        self.store = store or InMemoryStore()
        self.resources = InMemoryResourceRepository(self.store)
        self.operations = InMemoryOperationRepository(self.store)
        self._outer: Optional[Dict[Tuple[str, str], Any]] = None
        self._active = False

    def __enter__(self) -> "InMemoryUnitOfWork":
        self.store.lock.acquire()
        self._outer = self.store.begin()
        self._active = True
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            if self._active:
                self.store.end(self._outer, rollback=True)
        finally:
            self._active = False
            self._outer = None
            self.store.lock.release()

    def commit(self) -> None:
        if self._active:
            self.store.end(self._outer, rollback=False)
            self._outer = self.store.begin()

    def rollback(self) -> None:
        if self._active:
            self.store.end(self._outer, rollback=True)
            self._outer = self.store.begin()
