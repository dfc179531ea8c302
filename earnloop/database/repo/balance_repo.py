# earnloop/database/repo/balance_repo.py
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.database.models import AccountBalance


@dataclass(frozen=True, slots=True)
class BalanceRow:
    user_id: int
    credits_balance: int
    tokens: int
    lifetime_earned: int
    lifetime_spent: int


_RETURNING = (
    AccountBalance.user_id,
    AccountBalance.credits_balance,
    AccountBalance.tokens,
    AccountBalance.lifetime_earned,
    AccountBalance.lifetime_spent,
)


def _row(r) -> BalanceRow:
    user_id, credits, tokens, earned, spent = r
    return BalanceRow(
        user_id=int(user_id),
        credits_balance=int(credits),
        tokens=int(tokens),
        lifetime_earned=int(earned),
        lifetime_spent=int(spent),
    )


async def create_balance(session: AsyncSession, *, user_id: int) -> BalanceRow:
    session.add(
        AccountBalance(
            user_id=user_id,
            credits_balance=0,
            tokens=0,
            lifetime_earned=0,
            lifetime_spent=0,
        )
    )
    await session.flush()
    return BalanceRow(user_id=user_id, credits_balance=0, tokens=0, lifetime_earned=0, lifetime_spent=0)


async def get_balance(session: AsyncSession, user_id: int) -> BalanceRow | None:
    res = await session.execute(select(*_RETURNING).where(AccountBalance.user_id == user_id))
    r = res.one_or_none()
    return _row(r) if r is not None else None


async def _execute_returning(session: AsyncSession, stmt) -> BalanceRow | None:
    res = await session.execute(
        stmt.returning(*_RETURNING).execution_options(synchronize_session=False)
    )
    r = res.one_or_none()
    return _row(r) if r is not None else None


async def add_credits(session: AsyncSession, *, user_id: int, amount: int) -> BalanceRow | None:
    """
    Single-statement credit. None => no balance row for user.
    """
    stmt = (
        update(AccountBalance)
        .where(AccountBalance.user_id == user_id)
        .values(
            credits_balance=AccountBalance.credits_balance + amount,
            lifetime_earned=AccountBalance.lifetime_earned + amount,
        )
    )
    return await _execute_returning(session, stmt)


async def take_credits(session: AsyncSession, *, user_id: int, amount: int) -> BalanceRow | None:
    """
    Conditional debit: only applies when credits_balance >= amount.
    None => row missing OR insufficient (caller disambiguates).
    """
    stmt = (
        update(AccountBalance)
        .where(
            AccountBalance.user_id == user_id,
            AccountBalance.credits_balance >= amount,
        )
        .values(
            credits_balance=AccountBalance.credits_balance - amount,
            lifetime_spent=AccountBalance.lifetime_spent + amount,
        )
    )
    return await _execute_returning(session, stmt)


async def shift_tokens(session: AsyncSession, *, user_id: int, delta: int) -> BalanceRow | None:
    """
    Conditional token change: only applies when tokens + delta >= 0.
    """
    stmt = (
        update(AccountBalance)
        .where(
            AccountBalance.user_id == user_id,
            AccountBalance.tokens + delta >= 0,
        )
        .values(tokens=AccountBalance.tokens + delta)
    )
    return await _execute_returning(session, stmt)
