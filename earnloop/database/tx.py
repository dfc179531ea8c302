# earnloop/database/tx.py
from __future__ import annotations

from contextlib import asynccontextmanager

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


@asynccontextmanager
async def transactional(session: AsyncSession):
    """
    Safe transactional context for SQLAlchemy 2.x autobegin.

    - If a transaction is already active, use SAVEPOINT (begin_nested)
    - Otherwise, start a new transaction (committed on exit)
    """
    if session.in_transaction():
        async with session.begin_nested():
            yield
    else:
        async with session.begin():
            yield


def upsert(session: AsyncSession, model):
    """
    Dialect-aware INSERT construct that supports .on_conflict_do_update().
    """
    if session.bind.dialect.name == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)
