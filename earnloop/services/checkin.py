# earnloop/services/checkin.py
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.config import Settings
from earnloop.database.models import EarnEventType
from earnloop.database.repo import streak_repo
from earnloop.database.tx import transactional
from earnloop.errors import PersistenceError, ValidationError
from earnloop.services.earn import EarnEventRecorder, checkin_key
from earnloop.services.ledger import BalanceSnapshot

log = logging.getLogger(__name__)


class StreakState(str, enum.Enum):
    FRESH = "fresh"
    ACTIVE = "active"
    BROKEN = "broken"


@dataclass(frozen=True, slots=True)
class StreakSnapshot:
    current_streak: int = 0
    longest_streak: int = 0
    last_checkin_date: date | None = None
    streak_savers: int = 0


@dataclass(frozen=True, slots=True)
class StreakTransition:
    changed: bool
    saver_used: bool
    after: StreakSnapshot


def classify_streak(snap: StreakSnapshot, today: date) -> StreakState:
    """
    Fresh: never checked in. Active: today or yesterday (or the day before with a saver left).
    Broken: anything older.
    """
    if snap.last_checkin_date is None:
        return StreakState.FRESH
    gap = (today - snap.last_checkin_date).days
    if gap <= 1:
        return StreakState.ACTIVE
    if gap == 2 and snap.streak_savers > 0:
        return StreakState.ACTIVE
    return StreakState.BROKEN


def advance_streak(snap: StreakSnapshot, today: date) -> StreakTransition:
    last = snap.last_checkin_date

    if last == today:
        return StreakTransition(changed=False, saver_used=False, after=snap)

    savers = snap.streak_savers
    saver_used = False

    if last == today - timedelta(days=1):
        current = snap.current_streak + 1
    elif last == today - timedelta(days=2) and savers > 0:
        # the only way a missed day does not reset
        savers -= 1
        saver_used = True
        current = snap.current_streak + 1
    else:
        current = 1

    after = StreakSnapshot(
        current_streak=current,
        longest_streak=max(snap.longest_streak, current),
        last_checkin_date=today,
        streak_savers=savers,
    )
    return StreakTransition(changed=True, saver_used=saver_used, after=after)


@dataclass(frozen=True, slots=True)
class CheckinResult:
    ok: bool
    already: bool
    credits_earned: int
    streak: StreakSnapshot
    state: StreakState
    saver_used: bool = False
    balance: BalanceSnapshot | None = None


def _snapshot(row) -> StreakSnapshot:
    return StreakSnapshot(
        current_streak=int(row.current_streak or 0),
        longest_streak=int(row.longest_streak or 0),
        last_checkin_date=row.last_checkin_date,
        streak_savers=int(row.streak_savers or 0),
    )


class CheckinService:
    @staticmethod
    async def get_streak(session: AsyncSession, *, user_id: int, today: date) -> tuple[StreakSnapshot, StreakState]:
        row = await streak_repo.get_streak(session, user_id)
        snap = _snapshot(row) if row is not None else StreakSnapshot()
        return snap, classify_streak(snap, today)

    @staticmethod
    async def checkin(
        session: AsyncSession,
        *,
        settings: Settings,
        user_id: int,
        today: date,
        device_id: int | None = None,
        ip: str | None = None,
        now: datetime | None = None,
    ) -> CheckinResult:
        """
        Earn event + credit + streak transition, all or nothing.
        A second call on the same day returns already=True and changes nothing.
        """
        async with transactional(session):
            row = await streak_repo.get_or_create_streak(session, user_id)
            before = _snapshot(row)
            expected_version = int(row.version or 0)

            rec = await EarnEventRecorder.record(
                session,
                user_id=user_id,
                event_type=EarnEventType.CHECKIN,
                amount=settings.checkin_reward,
                dedup_key=checkin_key(user_id, today),
                metadata={"day": today.isoformat()},
                device_id=device_id,
                ip=ip,
                now=now,
            )
            if not rec.applied:
                return CheckinResult(
                    ok=True,
                    already=True,
                    credits_earned=0,
                    streak=before,
                    state=classify_streak(before, today),
                )

            tr = advance_streak(before, today)
            if not tr.changed:
                # event for today was new but the streak already says today: inconsistent store
                raise ValidationError("Streak already advanced today", code="ALREADY_CHECKED_IN")

            ok = await streak_repo.compare_and_set(
                session,
                user_id=user_id,
                expected_version=expected_version,
                current_streak=tr.after.current_streak,
                longest_streak=tr.after.longest_streak,
                last_checkin_date=tr.after.last_checkin_date,
                streak_savers=tr.after.streak_savers,
            )
            if not ok:
                # rolls back the event and the credit with it
                raise PersistenceError("Streak changed concurrently, retry", code="STREAK_CONFLICT")

        log.debug(
            "checkin user=%s streak=%s saver_used=%s",
            user_id, tr.after.current_streak, tr.saver_used,
        )
        return CheckinResult(
            ok=True,
            already=False,
            credits_earned=settings.checkin_reward,
            streak=tr.after,
            state=StreakState.ACTIVE,
            saver_used=tr.saver_used,
            balance=rec.balance,
        )

    @staticmethod
    async def add_streak_saver(session: AsyncSession, *, user_id: int, count: int = 1) -> None:
        if count <= 0:
            raise ValidationError("Saver count must be positive", code="INVALID_AMOUNT")
        await streak_repo.get_or_create_streak(session, user_id)
        await streak_repo.add_savers(session, user_id=user_id, count=count)
