"""Database session management for Relay."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ..core.config import get_settings

Base = declarative_base()
_engine: Engine | None = None
_SessionLocal: sessionmaker[Session] | None = None


def _use_immediate_transactions(engine: Engine) -> None:
    """Open every SQLite transaction with BEGIN IMMEDIATE.

    pysqlite defers BEGIN until the first write, so two claimers could both read
    the same rows before either deletes them. Taking the write lock at BEGIN
    serialises claimers the way row locks do on server databases.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _create_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            future=True,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        _use_immediate_transactions(engine)
        return engine
    return create_engine(database_url, future=True, pool_pre_ping=True)


def configure_engine(database_url: str | None = None) -> None:
    """Initialise the SQLAlchemy engine from configuration."""

    global _engine, _SessionLocal
    if _engine is not None:
        return
    _engine = _create_engine(database_url or get_settings().database_url)
    _SessionLocal = sessionmaker(bind=_engine, expire_on_commit=False, future=True)


def dispose_engine() -> None:
    """Close pooled connections and forget the configured engine."""

    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_engine() -> Engine:
    if _engine is None:
        configure_engine()
    if _engine is None:
        raise RuntimeError("Database engine could not be initialised")
    return _engine


def table_exists(table_name: str) -> bool:
    return inspect(get_engine()).has_table(table_name)


@contextmanager
def session_scope(**execution_options: Any) -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations.

    Execution options such as ``isolation_level`` apply to the connection the
    session binds for this transaction.
    """

    if _SessionLocal is None:
        configure_engine()
    if _SessionLocal is None:
        raise RuntimeError("Database session factory is not initialised")
    session = _SessionLocal()
    try:
        if execution_options:
            session.connection(execution_options=execution_options)
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
