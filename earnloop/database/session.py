# earnloop/database/session.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from earnloop.database.base import Base

SQLITE_PRAGMAS: tuple[str, ...] = (
    "PRAGMA foreign_keys=ON",
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA busy_timeout=5000",  # ms a writer waits for the lock
)


def _install_sqlite_locking(engine: AsyncEngine) -> None:
    """
    Every unit of work on SQLite opens with BEGIN IMMEDIATE, so writers queue
    for the database lock up front instead of upgrading a stale read snapshot.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _connection_record) -> None:
        # the driver must not emit its own BEGIN
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        for pragma in SQLITE_PRAGMAS:
            cursor.execute(pragma)
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """
    Engine + session factory. SQLite for development and tests, PostgreSQL
    (asyncpg) in production, where FOR UPDATE row locks do the serializing.
    """

    def __init__(self, database_url: str, *, echo: bool = False) -> None:
        self.database_url = database_url
        self.is_sqlite = database_url.startswith("sqlite")

        engine_kwargs: dict = {"echo": echo, "pool_pre_ping": True}
        if self.is_sqlite:
            engine_kwargs["connect_args"] = {"timeout": 30}
        else:
            engine_kwargs.update(pool_size=10, max_overflow=20)

        self.engine: AsyncEngine = create_async_engine(database_url, **engine_kwargs)
        if self.is_sqlite:
            _install_sqlite_locking(self.engine)

        self.SessionLocal = async_sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
            autoflush=False,
            class_=AsyncSession,
        )

    async def init_models(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.SessionLocal() as s:
            yield s
