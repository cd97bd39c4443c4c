"""
SQLAlchemy Resource Repository Implementation.

Compare-and-set is a single conditional UPDATE; the affected row count
decides between success and Conflict, so concurrent writers never lose
an update.
"""

from typing import List, Optional
from datetime import datetime
import json

from sqlalchemy import update
from sqlalchemy.orm import Session

from statusflow.domain.errors import Conflict, NotFound
from statusflow.domain.interfaces.repositories import IResourceRepository
from statusflow.domain.models.resource import Resource
from statusflow.infrastructure.database.models import ResourceORM


class SQLAlchemyResourceRepository(IResourceRepository):
    """SQLAlchemy implementation of IResourceRepository (sf_resources table)."""

    def __init__(self, session: Session):
        self._session = session

    def _to_domain(self, orm: ResourceORM) -> Resource:
        """Convert ORM model to domain model."""
        return Resource(
            id=orm.id,
            kind=orm.kind,
            status=orm.status,
            desired_status=orm.desired_status,
            status_detail=orm.status_detail,
            last_updated=orm.last_updated,
            attributes=json.loads(orm.attributes) if orm.attributes else {},
            version=orm.version,
        )

    def _to_orm(self, resource: Resource) -> ResourceORM:
        """Convert domain model to ORM model."""
        return ResourceORM(
            id=resource.id,
            kind=resource.kind,
            status=resource.status,
            desired_status=resource.desired_status,
            status_detail=resource.status_detail,
            last_updated=resource.last_updated,
            attributes=json.dumps(resource.attributes),
            version=resource.version,
        )

    def _load(self, resource_id: str) -> Optional[ResourceORM]:
        # populate_existing: conditional UPDATEs bypass the identity map
        return self._session.get(ResourceORM, resource_id, populate_existing=True)

    def get(self, resource_id: str) -> Optional[Resource]:
        orm = self._load(resource_id)
        return self._to_domain(orm) if orm else None

    def add(self, resource: Resource) -> Resource:
        if self._load(resource.id) is not None:
            raise Conflict(f"Resource '{resource.id}' already exists", resource_id=resource.id)
        orm = self._to_orm(resource)
        self._session.add(orm)
        self._session.flush()
        return self._to_domain(orm)

    def list(self, kind: Optional[str] = None, limit: int = 100) -> List[Resource]:
        query = self._session.query(ResourceORM)
        if kind is not None:
            query = query.filter(ResourceORM.kind == kind)
        orms = query.order_by(ResourceORM.id.asc()).limit(limit).all()
        return [self._to_domain(orm) for orm in orms]

    def compare_and_set(
        self,
        resource_id: str,
        expected_status: str,
        new_status: str,
        status_detail: Optional[str] = None,
        clear_desired: bool = False,
        only_if_idle: bool = False,
    ) -> Resource:
        stmt = update(ResourceORM).where(
            ResourceORM.id == resource_id,
            ResourceORM.status == expected_status,
        )
        if only_if_idle:
            stmt = stmt.where(ResourceORM.desired_status.is_(None))

        values = {
            "status": new_status,
            "last_updated": datetime.now(),
            "version": ResourceORM.version + 1,
        }
        if status_detail is not None:
            values["status_detail"] = status_detail
        if clear_desired:
            values["desired_status"] = None

        result = self._session.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self._raise_guard_failure(resource_id, expected_status)
        return self.get(resource_id)

    def set_desired(
        self,
        resource_id: str,
        desired_status: Optional[str],
        expected_status: Optional[str] = None,
    ) -> Resource:
        stmt = update(ResourceORM).where(ResourceORM.id == resource_id)
        if desired_status is not None:
            stmt = stmt.where(ResourceORM.desired_status.is_(None))
            if expected_status is not None:
                stmt = stmt.where(ResourceORM.status == expected_status)

        result = self._session.execute(
            stmt.values(
                desired_status=desired_status,
                version=ResourceORM.version + 1,
            ).execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self._raise_guard_failure(resource_id, expected_status)
        return self.get(resource_id)

    def _raise_guard_failure(self, resource_id: str, expected_status: Optional[str]) -> None:
        current = self._load(resource_id)
        if current is None:
            raise NotFound.resource(resource_id)
        raise Conflict(
            f"Resource '{resource_id}' changed concurrently "
            f"(status '{current.status}', desired '{current.desired_status}')",
            expected=expected_status,
            actual=current.status,
            resource_id=resource_id,
        )
