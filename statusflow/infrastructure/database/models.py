"""
SQLAlchemy ORM Models.

Tables:
- sf_resources: resource store (status, desired_status, metadata)
- sf_operations: long-running operations, indexed by (resource_id, state)
  to serve the resource -> active operation lookup
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class ResourceORM(Base):
    """Persisted resource."""

    __tablename__ = "sf_resources"

    id = Column(String(128), primary_key=True)
    kind = Column(String(64), nullable=False, index=True)
    status = Column(String(64), nullable=False)
    desired_status = Column(String(64), nullable=True)
    status_detail = Column(Text, nullable=True)
    last_updated = Column(DateTime, nullable=False, default=datetime.now)
    attributes = Column(Text, nullable=True)  # JSON
    version = Column(Integer, nullable=False, default=1)


class OperationORM(Base):
    """Persisted long-running operation."""

    __tablename__ = "sf_operations"

    id = Column(String(36), primary_key=True)
    resource_id = Column(String(128), nullable=False)
    target_status = Column(String(64), nullable=False)
    from_status = Column(String(64), nullable=False)
    params = Column(Text, nullable=True)  # JSON
    state = Column(String(16), nullable=False, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    failure_reason = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_sf_operations_resource_state", "resource_id", "state"),
    )
