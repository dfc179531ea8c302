from __future__ import annotations

from datetime import date, timedelta

import pytest
from sqlalchemy import func, select, update

from earnloop.database.models import EarnEvent, Streak
from earnloop.database.repo import streak_repo
from earnloop.errors import PersistenceError
from earnloop.handlers import checkin
from earnloop.services.checkin import (
    CheckinService,
    StreakSnapshot,
    StreakState,
    advance_streak,
    classify_streak,
)
from earnloop.services.ledger import LedgerService

TODAY = date(2026, 3, 10)


def snapshot(*, current=0, longest=0, days_ago=None, savers=0) -> StreakSnapshot:
    last = TODAY - timedelta(days=days_ago) if days_ago is not None else None
    return StreakSnapshot(current_streak=current, longest_streak=longest, last_checkin_date=last, streak_savers=savers)


async def set_streak(session, user_id: int, *, current: int, longest: int, days_ago: int, savers: int = 0) -> None:
    await session.execute(
        update(Streak)
        .where(Streak.user_id == user_id)
        .values(
            current_streak=current,
            longest_streak=longest,
            last_checkin_date=TODAY - timedelta(days=days_ago),
            streak_savers=savers,
        )
    )
    await session.commit()


def test_first_checkin_starts_at_one():
    tr = advance_streak(snapshot(), TODAY)
    assert tr.changed
    assert tr.after.current_streak == 1
    assert tr.after.longest_streak == 1
    assert tr.after.last_checkin_date == TODAY


def test_consecutive_day_increments():
    tr = advance_streak(snapshot(current=4, longest=4, days_ago=1), TODAY)
    assert tr.after.current_streak == 5
    assert tr.after.longest_streak == 5
    assert not tr.saver_used


def test_same_day_is_no_op():
    snap = snapshot(current=3, longest=7, days_ago=0)
    tr = advance_streak(snap, TODAY)
    assert not tr.changed
    assert tr.after == snap


def test_one_missed_day_consumes_saver():
    tr = advance_streak(snapshot(current=6, longest=6, days_ago=2, savers=2), TODAY)
    assert tr.saver_used
    assert tr.after.current_streak == 7
    assert tr.after.streak_savers == 1


def test_one_missed_day_without_saver_resets():
    tr = advance_streak(snapshot(current=6, longest=9, days_ago=2), TODAY)
    assert tr.after.current_streak == 1
    assert tr.after.longest_streak == 9


def test_two_missed_days_reset_even_with_saver():
    tr = advance_streak(snapshot(current=6, longest=6, days_ago=3, savers=1), TODAY)
    assert not tr.saver_used
    assert tr.after.current_streak == 1
    assert tr.after.streak_savers == 1


def test_classify_streak():
    assert classify_streak(snapshot(), TODAY) == StreakState.FRESH
    assert classify_streak(snapshot(current=1, days_ago=0), TODAY) == StreakState.ACTIVE
    assert classify_streak(snapshot(current=1, days_ago=1), TODAY) == StreakState.ACTIVE
    assert classify_streak(snapshot(current=1, days_ago=2, savers=1), TODAY) == StreakState.ACTIVE
    assert classify_streak(snapshot(current=1, days_ago=2), TODAY) == StreakState.BROKEN


async def test_checkin_twice_same_day(session, settings, make_user):
    uid = await make_user("daily@example.com")

    first = await CheckinService.checkin(session, settings=settings, user_id=uid, today=TODAY)
    again = await CheckinService.checkin(session, settings=settings, user_id=uid, today=TODAY)

    assert first.already is False
    assert first.credits_earned == settings.checkin_reward
    assert first.streak.current_streak == 1
    assert again.already is True
    assert again.credits_earned == 0

    b = await LedgerService.get_balance(session, user_id=uid)
    assert b.credits_balance == settings.checkin_reward


async def test_checkin_uses_saver_after_missed_day(session, settings, make_user):
    uid = await make_user("saver@example.com")
    await set_streak(session, uid, current=5, longest=5, days_ago=2, savers=1)

    res = await CheckinService.checkin(session, settings=settings, user_id=uid, today=TODAY)

    assert res.saver_used
    assert res.streak.current_streak == 6
    assert res.streak.streak_savers == 0


async def test_checkin_resets_without_saver(session, settings, make_user):
    uid = await make_user("lapsed@example.com")
    await set_streak(session, uid, current=5, longest=8, days_ago=2)

    res = await CheckinService.checkin(session, settings=settings, user_id=uid, today=TODAY)

    assert not res.saver_used
    assert res.streak.current_streak == 1
    assert res.streak.longest_streak == 8


async def test_streak_conflict_rolls_back_credit(session, settings, make_user, monkeypatch):
    uid = await make_user("conflict@example.com")

    async def lost_race(*args, **kwargs) -> bool:
        return False

    monkeypatch.setattr(streak_repo, "compare_and_set", lost_race)

    with pytest.raises(PersistenceError) as exc:
        await CheckinService.checkin(session, settings=settings, user_id=uid, today=TODAY)
    assert exc.value.code == "STREAK_CONFLICT"

    b = await LedgerService.get_balance(session, user_id=uid)
    assert b.credits_balance == 0
    res = await session.execute(select(func.count(EarnEvent.id)).where(EarnEvent.user_id == uid))
    assert res.scalar_one() == 0


async def test_checkin_handler_rejects_repeat(ctx, make_user):
    uid = await make_user("handler@example.com")

    first = await checkin(ctx, user_id=uid)
    again = await checkin(ctx, user_id=uid)

    assert first["success"] is True
    assert first["data"]["streak"]["current_streak"] == 1
    assert again["success"] is False
    assert again["status"] == 409
    assert again["error"]["code"] == "ALREADY_CHECKED_IN"
