# earnloop/services/accounts.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.database.models import User
from earnloop.database.repo import earn_events_repo, streak_repo, users
from earnloop.database.tx import transactional
from earnloop.errors import AlreadyRecorded, NotFound, ValidationError
from earnloop.services.checkin import CheckinService, StreakSnapshot, StreakState
from earnloop.services.ledger import BalanceSnapshot, LedgerService

log = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass(frozen=True, slots=True)
class Profile:
    user_id: int
    email: str
    is_banned: bool
    balance: BalanceSnapshot
    streak: StreakSnapshot
    streak_state: StreakState
    total_earned: int


class AccountService:
    @staticmethod
    async def open_account(session: AsyncSession, *, email: str) -> User:
        """
        User + zero balance + empty streak, together or not at all.
        """
        email = (email or "").strip().lower()
        if not _EMAIL_RE.match(email):
            raise ValidationError("Invalid email address", code="INVALID_EMAIL")

        async with transactional(session):
            if await users.get_user_by_email(session, email) is not None:
                raise AlreadyRecorded("Email already registered", code="EMAIL_EXISTS")

            user = await users.create_user(session, email=email)
            await LedgerService.open_balance(session, user_id=user.id)
            await streak_repo.get_or_create_streak(session, user.id)

        log.info("account opened user=%s", user.id)
        return user

    @staticmethod
    async def get_profile(session: AsyncSession, *, user_id: int, today: date) -> Profile:
        user = await users.get_user(session, user_id)
        if user is None:
            raise NotFound("User not found", code="USER_NOT_FOUND")

        balance = await LedgerService.get_balance(session, user_id=user_id)
        snap, state = await CheckinService.get_streak(session, user_id=user_id, today=today)

        return Profile(
            user_id=user.id,
            email=user.email,
            is_banned=user.is_banned,
            balance=balance,
            streak=snap,
            streak_state=state,
            total_earned=await earn_events_repo.sum_since(session, user_id=user_id),
        )
