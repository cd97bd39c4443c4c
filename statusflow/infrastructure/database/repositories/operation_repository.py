"""
SQLAlchemy Operation Repository Implementation.

Implements IOperationRepository on the sf_operations table. State
changes are conditional on the previously read state, which makes
advance() atomic across concurrent processors.
"""

from typing import List, Optional
from datetime import datetime
import json

from sqlalchemy import and_, update
from sqlalchemy.orm import Session

from statusflow.domain.errors import Conflict, NotFound
from statusflow.domain.interfaces.repositories import IOperationRepository
from statusflow.domain.models.operation import ACTIVE_STATES, Operation, OperationState
from statusflow.infrastructure.database.models import OperationORM

_ACTIVE_VALUES = [s.value for s in ACTIVE_STATES]
_TERMINAL_VALUES = [OperationState.SUCCEEDED.value, OperationState.FAILED.value]


class SQLAlchemyOperationRepository(IOperationRepository):
    """SQLAlchemy implementation of IOperationRepository."""

    def __init__(self, session: Session):
        self._session = session

    def _to_domain(self, orm: OperationORM) -> Operation:
        """Convert ORM model to domain model."""
        return Operation(
            id=orm.id,
            resource_id=orm.resource_id,
            target_status=orm.target_status,
            from_status=orm.from_status,
            params=json.loads(orm.params) if orm.params else {},
            state=OperationState(orm.state),
            attempts=orm.attempts,
            created_at=orm.created_at,
            started_at=orm.started_at,
            completed_at=orm.completed_at,
            failure_reason=orm.failure_reason,
        )

    def _to_orm(self, operation: Operation) -> OperationORM:
        """Convert domain model to ORM model."""
        return OperationORM(
            id=operation.id,
            resource_id=operation.resource_id,
            target_status=operation.target_status,
            from_status=operation.from_status,
            params=json.dumps(operation.params),
            state=operation.state.value,
            attempts=operation.attempts,
            created_at=operation.created_at,
            started_at=operation.started_at,
            completed_at=operation.completed_at,
            failure_reason=operation.failure_reason,
        )

    def add(self, operation: Operation) -> Operation:
        orm = self._to_orm(operation)
        self._session.add(orm)
        self._session.flush()
        return self._to_domain(orm)

    def get(self, operation_id: str) -> Optional[Operation]:
        orm = self._session.get(OperationORM, operation_id, populate_existing=True)
        return self._to_domain(orm) if orm else None

    def update(self, operation: Operation, expected_state: OperationState) -> Operation:
        result = self._session.execute(
            update(OperationORM)
            .where(
                OperationORM.id == operation.id,
                OperationORM.state == expected_state.value,
            )
            .values(
                state=operation.state.value,
                attempts=operation.attempts,
                started_at=operation.started_at,
                completed_at=operation.completed_at,
                failure_reason=operation.failure_reason,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = self.get(operation.id)
            if current is None:
                raise NotFound.operation(operation.id)
            raise Conflict(
                f"Operation '{operation.id}' is '{current.state.value}', "
                f"expected '{expected_state.value}'",
                expected=expected_state.value,
                actual=current.state.value,
                operation_id=operation.id,
            )
        return self.get(operation.id)

    def find_active_for_resource(self, resource_id: str) -> Optional[Operation]:
        orm = (
            self._session.query(OperationORM)
            .filter(
                and_(
                    OperationORM.resource_id == resource_id,
                    OperationORM.state.in_(_ACTIVE_VALUES),
                )
            )
            .order_by(OperationORM.created_at.desc())
            .first()
        )
        return self._to_domain(orm) if orm else None

    def list_for_resource(self, resource_id: str, limit: int = 100) -> List[Operation]:
        orms = (
            self._session.query(OperationORM)
            .filter(OperationORM.resource_id == resource_id)
            .order_by(OperationORM.created_at.desc())
            .limit(limit)
            .all()
        )
        return [self._to_domain(orm) for orm in orms]

    def list_active(self, limit: int = 1000) -> List[Operation]:
        orms = (
            self._session.query(OperationORM)
            .filter(OperationORM.state.in_(_ACTIVE_VALUES))
            .order_by(OperationORM.created_at.asc())
            .limit(limit)
            .all()
        )
        return [self._to_domain(orm) for orm in orms]

    def get_pending(self, limit: int = 100) -> List[Operation]:
        orms = (
            self._session.query(OperationORM)
            .filter(OperationORM.state == OperationState.PENDING.value)
            .order_by(OperationORM.created_at.asc())
            .limit(limit)
            .all()
        )
        return [self._to_domain(orm) for orm in orms]

    def get_stalled(self, started_before: datetime, limit: int = 100) -> List[Operation]:
        orms = (
            self._session.query(OperationORM)
            .filter(
                and_(
                    OperationORM.state == OperationState.RUNNING.value,
                    OperationORM.started_at < started_before,
                )
            )
            .order_by(OperationORM.started_at.asc())
            .limit(limit)
            .all()
        )
        return [self._to_domain(orm) for orm in orms]

    def delete_terminal(self, before: datetime, limit: int = 1000) -> int:
        ids = [
            row.id
            for row in self._session.query(OperationORM.id)
            .filter(
                and_(
                    OperationORM.state.in_(_TERMINAL_VALUES),
                    OperationORM.completed_at < before,
                )
            )
            .limit(limit)
            .all()
        ]
        if not ids:
            return 0
        return (
            self._session.query(OperationORM)
            .filter(OperationORM.id.in_(ids))
            .delete(synchronize_session=False)
        )
