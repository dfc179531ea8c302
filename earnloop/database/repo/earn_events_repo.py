# earnloop/database/repo/earn_events_repo.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.database.models import EarnEvent, EarnEventType


async def insert_event_once(session: AsyncSession, event: EarnEvent) -> bool:
    """
    Inserts inside a SAVEPOINT so a duplicate (event_type, dedup_key) only
    rolls back this insert, never the caller's unit of work.
    Returns False on duplicate.
    """
    try:
        async with session.begin_nested():
            session.add(event)
            await session.flush()  # triggers uq constraint check
    except IntegrityError:
        return False
    return True


async def get_by_dedup_key(
    session: AsyncSession,
    *,
    event_type: EarnEventType,
    dedup_key: str,
) -> EarnEvent | None:
    res = await session.execute(
        select(EarnEvent).where(
            EarnEvent.event_type == event_type,
            EarnEvent.dedup_key == dedup_key,
        )
    )
    return res.scalar_one_or_none()


async def count_since(session: AsyncSession, *, user_id: int, since: datetime) -> int:
    res = await session.execute(
        select(func.count(EarnEvent.id)).where(
            EarnEvent.user_id == user_id,
            EarnEvent.created_at > since,
        )
    )
    return int(res.scalar_one() or 0)


async def count_since_by_type(
    session: AsyncSession,
    *,
    user_id: int,
    event_type: EarnEventType,
    since: datetime,
) -> int:
    res = await session.execute(
        select(func.count(EarnEvent.id)).where(
            EarnEvent.user_id == user_id,
            EarnEvent.event_type == event_type,
            EarnEvent.created_at >= since,
        )
    )
    return int(res.scalar_one() or 0)


async def sum_since(session: AsyncSession, *, user_id: int, since: datetime | None = None) -> int:
    q = select(func.coalesce(func.sum(EarnEvent.credits_amount), 0)).where(EarnEvent.user_id == user_id)
    if since is not None:
        q = q.where(EarnEvent.created_at >= since)
    res = await session.execute(q)
    return int(res.scalar_one() or 0)
