# earnloop/database/repo/jackpot_repo.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.database.models import JackpotPool, JackpotSpin, User
from earnloop.database.tx import upsert


POOL_ID = 1


async def ensure_pool(session: AsyncSession, *, seed_tokens: int) -> None:
    stmt = upsert(session, JackpotPool).values(
        id=POOL_ID,
        pool_tokens=seed_tokens,
        total_contributed=0,
        total_won=0,
    )
    await session.execute(stmt.on_conflict_do_nothing(index_elements=["id"]))


async def get_pool(session: AsyncSession) -> JackpotPool | None:
    res = await session.execute(
        select(JackpotPool)
        .where(JackpotPool.id == POOL_ID)
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def lock_pool_tokens(session: AsyncSession) -> int:
    res = await session.execute(
        select(JackpotPool.pool_tokens).where(JackpotPool.id == POOL_ID).with_for_update()
    )
    return int(res.scalar_one_or_none() or 0)


async def contribute(session: AsyncSession, *, amount: int) -> None:
    await session.execute(
        update(JackpotPool)
        .where(JackpotPool.id == POOL_ID)
        .values(
            pool_tokens=JackpotPool.pool_tokens + amount,
            total_contributed=JackpotPool.total_contributed + amount,
        )
        .execution_options(synchronize_session=False)
    )


async def pay_out(
    session: AsyncSession,
    *,
    amount: int,
    winner_id: int,
    total_amount: int,
    now: datetime,
) -> bool:
    """
    Conditional payout: only applies while the pool still holds `amount`.
    """
    res = await session.execute(
        update(JackpotPool)
        .where(
            JackpotPool.id == POOL_ID,
            JackpotPool.pool_tokens >= amount,
        )
        .values(
            pool_tokens=JackpotPool.pool_tokens - amount,
            total_won=JackpotPool.total_won + amount,
            last_winner_id=winner_id,
            last_amount=total_amount,
            last_won_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return (res.rowcount or 0) == 1


async def record_spin(session: AsyncSession, spin: JackpotSpin) -> JackpotSpin:
    session.add(spin)
    await session.flush()
    return spin


async def recent_big_wins(session: AsyncSession, *, min_multiplier: float = 5, limit: int = 10):
    q = (
        select(JackpotSpin, User.email)
        .join(User, User.id == JackpotSpin.user_id)
        .where(JackpotSpin.multiplier >= min_multiplier)
        .order_by(JackpotSpin.created_at.desc(), JackpotSpin.id.desc())
        .limit(limit)
    )
    res = await session.execute(q)
    return res.all()


async def user_history(session: AsyncSession, *, user_id: int, limit: int = 20) -> list[JackpotSpin]:
    res = await session.execute(
        select(JackpotSpin)
        .where(JackpotSpin.user_id == user_id)
        .order_by(JackpotSpin.created_at.desc(), JackpotSpin.id.desc())
        .limit(limit)
    )
    return list(res.scalars().all())


async def get_pool_tokens(session: AsyncSession) -> int:
    res = await session.execute(select(JackpotPool.pool_tokens).where(JackpotPool.id == POOL_ID))
    return int(res.scalar_one_or_none() or 0)
