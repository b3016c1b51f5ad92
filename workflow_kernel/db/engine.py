"""
Module: workflow_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and the serialized transactional scope every command runs in.
Architecture position: Kernel > DB.  May import from db/base.py and models/
    (create_tables only).  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - One mutation at a time: ``Database.transaction()`` holds a re-entrant
      lock for the whole unit of work, so commands are globally ordered and
      each one completes or fails entirely before the next is observed.
    - Consistent reads: ``Database.snapshot()`` takes the same lock, so no
      reader observes one half of a compound mutation.
    - Atomicity: a unit of work commits on normal exit and rolls back on any
      exception, which is then re-raised.

Failure modes:
    - Exceptions raised inside a unit of work propagate after rollback.
    - ``RuntimeError`` if ``transaction()`` is nested inside another
      ``transaction()`` on the same thread.

Design note:
    The Database is an explicit object handed to the engine.  Nothing here
    is a module-level singleton, so tests run many isolated instances.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from workflow_kernel.logging_config import get_logger

logger = get_logger("db.engine")

IN_MEMORY_URL = "sqlite://"


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores FOREIGN KEY constraints unless asked per connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create a SQLAlchemy engine for ``database_url``.

    In-memory SQLite gets a single shared connection (StaticPool) so every
    session sees the same database; SQLite in general is opened with
    ``check_same_thread=False`` because access is serialized by the
    Database lock rather than by thread affinity.
    """
    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if database_url in (IN_MEMORY_URL, "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, echo=echo, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(database_url, echo=echo, pool_pre_ping=True)


class Database:
    """
    Owns the engine, the session factory and the mutation lock.

    Contract:
        Services receive a ``Session`` from ``transaction()`` or
        ``snapshot()`` and only ever ``flush()`` it.  This class alone
        commits and rolls back.

    Guarantees:
        - ``transaction()`` is serialized and atomic.
        - ``snapshot()`` never sees uncommitted or half-applied work.
    """

    def __init__(self, database_url: str = IN_MEMORY_URL, echo: bool = False):
        self.url = database_url
        self.engine = build_engine(database_url, echo=echo)
        self._session_factory = sessionmaker(
            bind=self.engine, expire_on_commit=False,
        )
        self._lock = threading.RLock()
        self._local = threading.local()

        logger.info(
            "database_initialized",
            extra={"dialect": self.engine.dialect.name, "echo": echo},
        )

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def session_factory(self) -> sessionmaker:
        """Unserialized sessions, for tooling and tests that manage their own scope."""
        return self._session_factory

    def create_tables(self) -> None:
        """Create all tables.  Idempotent."""
        from workflow_kernel.db.base import Base
        import workflow_kernel.models  # noqa: F401  registers all tables

        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        """Drop all tables. Use with caution - primarily for testing."""
        from workflow_kernel.db.base import Base
        import workflow_kernel.models  # noqa: F401

        Base.metadata.drop_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """
        Provide a serialized transactional scope.

        Postconditions: On normal exit, session is committed and closed.
            On exception, session is rolled back and closed, and the
            exception is re-raised to the caller.

        Usage:
            with database.transaction() as session:
                session.add(entity)
                # Commits on successful exit, rolls back on exception
        """
        with self._lock:
            if getattr(self._local, "active", False):
                raise RuntimeError("Nested Database.transaction() is not supported")
            self._local.active = True
            session = self._session_factory()
            logger.debug("transaction_started")
            try:
                yield session
                session.commit()
                logger.debug("transaction_committed")
            except Exception:
                session.rollback()
                logger.debug("transaction_rolled_back")
                raise
            finally:
                session.close()
                self._local.active = False

    @contextmanager
    def snapshot(self) -> Generator[Session, None, None]:
        """
        Provide a read-only scope over committed state.

        The session is rolled back on exit; anything a caller adds to it is
        discarded.
        """
        with self._lock:
            session = self._session_factory()
            try:
                yield session
            finally:
                session.rollback()
                session.close()
