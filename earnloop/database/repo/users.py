# earnloop/database/repo/users.py
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.database.models.user import User


async def get_user(session: AsyncSession, user_id: int) -> User | None:
    res = await session.execute(select(User).where(User.id == user_id))
    return res.scalar_one_or_none()


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    res = await session.execute(select(User).where(User.email == email))
    return res.scalar_one_or_none()


async def create_user(session: AsyncSession, *, email: str) -> User:
    user = User(email=email)
    session.add(user)
    await session.flush()  # user.id becomes available
    return user


async def is_banned(session: AsyncSession, user_id: int) -> bool:
    res = await session.execute(select(User.is_banned).where(User.id == user_id))
    return bool(res.scalar_one_or_none())
