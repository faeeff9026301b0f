"""
SQLAlchemy declarative base and async engine/session factory.
"""
from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from backend.config import settings


class Base(DeclarativeBase):
    pass


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """
    Let SQLAlchemy own BEGIN on SQLite connections.

    The sqlite3 driver defers BEGIN until the first DML statement, which breaks
    SAVEPOINT (begin_nested) semantics. No-op for other backends.
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")


engine = create_async_engine(
    settings.async_database_url,
    echo=False,
    pool_pre_ping=True,
)
enable_sqlite_savepoints(engine)

AsyncSessionFactory: async_sessionmaker[AsyncSession] = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)
