# earnloop/database/repo/streak_repo.py
from __future__ import annotations

from datetime import date

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.database.models import Streak


async def get_streak(session: AsyncSession, user_id: int) -> Streak | None:
    res = await session.execute(
        select(Streak)
        .where(Streak.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def get_or_create_streak(session: AsyncSession, user_id: int) -> Streak:
    row = await get_streak(session, user_id)
    if row is not None:
        return row

    row = Streak(
        user_id=user_id,
        current_streak=0,
        longest_streak=0,
        last_checkin_date=None,
        streak_savers=0,
        version=0,
    )
    session.add(row)
    await session.flush()
    return row


async def compare_and_set(
    session: AsyncSession,
    *,
    user_id: int,
    expected_version: int,
    current_streak: int,
    longest_streak: int,
    last_checkin_date: date,
    streak_savers: int,
) -> bool:
    """
    Writes the new streak state only if nobody else did since we read it.
    """
    res = await session.execute(
        update(Streak)
        .where(
            Streak.user_id == user_id,
            Streak.version == expected_version,
        )
        .values(
            current_streak=current_streak,
            longest_streak=longest_streak,
            last_checkin_date=last_checkin_date,
            streak_savers=streak_savers,
            version=Streak.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    return (res.rowcount or 0) == 1


async def add_savers(session: AsyncSession, *, user_id: int, count: int) -> None:
    await session.execute(
        update(Streak)
        .where(Streak.user_id == user_id)
        .values(
            streak_savers=Streak.streak_savers + count,
            version=Streak.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
