"""
SQLAlchemy Unit of Work.

One session per unit of work; engines are shared per database URL and
the schema is created the first time an URL is used.

Usage:
    with SQLAlchemyUnitOfWork("sqlite:///data/statusflow.db") as uow:
        uow.resources.set_desired(resource_id, "dismissed")
        uow.operations.add(operation)
        uow.commit()
"""

from typing import Dict, Optional, Tuple
import logging
import threading

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from statusflow.domain.interfaces.unit_of_work import IUnitOfWork
from .models import Base
from .repositories.operation_repository import SQLAlchemyOperationRepository
from .repositories.resource_repository import SQLAlchemyResourceRepository

logger = logging.getLogger(__name__)

_engines: Dict[Tuple[str, bool], Engine] = {}
_engines_lock = threading.Lock()


def get_engine(db_url: str, echo: bool = False) -> Engine:
    """Return the shared engine for ``db_url``, creating tables on first use."""
    key = (db_url, echo)
    with _engines_lock:
        engine = _engines.get(key)
        if engine is None:
            kwargs = {"echo": echo}
            if db_url.startswith("sqlite"):
                kwargs["connect_args"] = {"check_same_thread": False}
                if db_url in ("sqlite://", "sqlite:///:memory:"):
                    kwargs["poolclass"] = StaticPool
            engine = create_engine(db_url, **kwargs)
            Base.metadata.create_all(engine)
            _engines[key] = engine
            logger.info(f"Initialized database schema for {engine.url.render_as_string(hide_password=True)}")
        return engine


def dispose_engines() -> None:
    """Dispose all shared engines (tests, shutdown)."""
    with _engines_lock:
        for engine in _engines.values():
            engine.dispose()
        _engines.clear()


class SQLAlchemyUnitOfWork(IUnitOfWork):
    """SQLAlchemy implementation of IUnitOfWork."""

    def __init__(self, db_url: str, echo: bool = False):
        self._db_url = db_url
        self._echo = echo
        self._session_factory = sessionmaker(bind=get_engine(db_url, echo), expire_on_commit=False)
        self._session: Optional[Session] = None

    def __enter__(self) -> "SQLAlchemyUnitOfWork":
        self._session = self._session_factory()
        self.resources = SQLAlchemyResourceRepository(self._session)
        self.operations = SQLAlchemyOperationRepository(self._session)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            if exc_type is not None:
                self.rollback()
        finally:
            self._session.close()
            self._session = None

    def commit(self) -> None:
        self._session.commit()

    def rollback(self) -> None:
        self._session.rollback()
