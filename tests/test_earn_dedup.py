from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import func, select

from earnloop.database.models import EarnEvent, EarnEventType
from earnloop.errors import ValidationError
from earnloop.handlers import ad_reward_callback, checkin, complete_learn_module, record_earn_event
from earnloop.services.earn import SCOPED_EVENT_TYPES, EarnEventRecorder
from earnloop.services.ledger import LedgerService


async def _count_events(db, user_id: int) -> int:
    async with db.session() as s:
        res = await s.execute(select(func.count(EarnEvent.id)).where(EarnEvent.user_id == user_id))
        return int(res.scalar_one())


async def test_same_dedup_key_credits_once(session, make_user):
    uid = await make_user("dedup@example.com")

    first = await EarnEventRecorder.record(
        session, user_id=uid, event_type=EarnEventType.REWARDED_AD, amount=10, dedup_key="ad:abc"
    )
    second = await EarnEventRecorder.record(
        session, user_id=uid, event_type=EarnEventType.REWARDED_AD, amount=10, dedup_key="ad:abc"
    )

    assert first.applied is True
    assert second.applied is False
    assert second.event is not None and second.event.id == first.event.id
    b = await LedgerService.get_balance(session, user_id=uid)
    assert b.credits_balance == 10


async def test_same_key_different_type_is_distinct(session, make_user):
    uid = await make_user("types@example.com")

    a = await EarnEventRecorder.record(
        session, user_id=uid, event_type=EarnEventType.REWARDED_AD, amount=10, dedup_key="k1"
    )
    b = await EarnEventRecorder.record(
        session, user_id=uid, event_type=EarnEventType.LEARN_MODULE, amount=15, dedup_key="k1"
    )

    assert a.applied and b.applied


async def test_events_without_key_are_never_deduplicated(session, make_user):
    uid = await make_user("nokey@example.com")

    for _ in range(3):
        res = await EarnEventRecorder.record(session, user_id=uid, event_type=EarnEventType.REWARDED_AD, amount=5)
        assert res.applied

    b = await LedgerService.get_balance(session, user_id=uid)
    assert b.credits_balance == 15


async def test_concurrent_duplicates_apply_once(db, make_user):
    uid = await make_user("burst@example.com")

    async def deliver() -> bool:
        async with db.session() as s:
            res = await EarnEventRecorder.record(
                s, user_id=uid, event_type=EarnEventType.REWARDED_AD, amount=10, dedup_key="ad:txn-1"
            )
            await s.commit()
            return res.applied

    results = await asyncio.gather(*(deliver() for _ in range(5)))

    assert results.count(True) == 1
    assert await _count_events(db, uid) == 1
    async with db.session() as s:
        b = await LedgerService.get_balance(s, user_id=uid)
    assert b.credits_balance == 10


async def test_ad_callback_duplicate_is_acknowledged(ctx, make_user):
    uid = await make_user("ads@example.com")

    first = await ad_reward_callback(ctx, user_id=uid, transaction_id="txn-42")
    again = await ad_reward_callback(ctx, user_id=uid, transaction_id="txn-42")

    assert first["success"] is True
    assert first["data"]["credited"] is True
    assert first["data"]["credits_earned"] == ctx.settings.ad_reward

    assert again["success"] is True
    assert again["data"]["credited"] is False
    assert again["data"]["duplicate"] is True
    assert await _count_events(ctx.db, uid) == 1


async def test_ad_callback_requires_transaction_id(ctx, make_user):
    uid = await make_user("noid@example.com")

    res = await ad_reward_callback(ctx, user_id=uid, transaction_id="")

    assert res["success"] is False
    assert res["status"] == 400
    assert res["error"]["code"] == "INVALID_AD_DATA"


async def test_learn_module_once_per_day(ctx, make_user):
    uid = await make_user("learner@example.com")

    first = await complete_learn_module(ctx, user_id=uid, module_id="budgeting-101", quiz_score=90)
    again = await complete_learn_module(ctx, user_id=uid, module_id="budgeting-101", quiz_score=95)

    assert first["success"] is True
    assert first["data"]["credits_earned"] == ctx.settings.learn_reward
    assert again["success"] is False
    assert again["status"] == 409
    assert again["error"]["code"] == "MODULE_ALREADY_COMPLETED"


async def test_learn_module_failed_quiz(ctx, make_user):
    uid = await make_user("failer@example.com")

    res = await complete_learn_module(ctx, user_id=uid, module_id="m1", quiz_score=40)

    assert res["success"] is False
    assert res["error"]["code"] == "QUIZ_FAILED"
    assert await _count_events(ctx.db, uid) == 0


async def test_record_earn_event_rejects_unknown_type(ctx, make_user):
    uid = await make_user("typo@example.com")

    res = await record_earn_event(ctx, user_id=uid, event_type="lottery", amount=5)

    assert res["success"] is False
    assert res["error"]["code"] == "INVALID_EVENT_TYPE"


async def test_capped_types_cannot_be_recorded_directly(ctx, make_user):
    uid = await make_user("sneaky@example.com")
    await checkin(ctx, user_id=uid)

    for et in SCOPED_EVENT_TYPES:
        res = await record_earn_event(ctx, user_id=uid, event_type=et.value, amount=5)
        assert res["success"] is False
        assert res["error"]["code"] == "EVENT_TYPE_NOT_ALLOWED"

    async with ctx.db.session() as s:
        checkins = await s.execute(
            select(func.count(EarnEvent.id)).where(
                EarnEvent.user_id == uid, EarnEvent.event_type == EarnEventType.CHECKIN
            )
        )
        assert checkins.scalar_one() == 1
        b = await LedgerService.get_balance(s, user_id=uid)
    assert b.credits_balance == ctx.settings.checkin_reward


async def test_recorder_requires_key_for_capped_types(session, make_user):
    uid = await make_user("nokeycheckin@example.com")

    for et in SCOPED_EVENT_TYPES:
        with pytest.raises(ValidationError) as exc:
            await EarnEventRecorder.record(session, user_id=uid, event_type=et, amount=5)
        assert exc.value.code == "MISSING_DEDUP_KEY"

    res = await session.execute(select(func.count(EarnEvent.id)).where(EarnEvent.user_id == uid))
    assert res.scalar_one() == 0


async def test_rewarded_ad_still_recordable_directly(ctx, make_user):
    uid = await make_user("direct@example.com")

    res = await record_earn_event(
        ctx, user_id=uid, event_type="rewarded_ad", amount=10, dedup_key="ad:direct-1"
    )
    again = await record_earn_event(
        ctx, user_id=uid, event_type="rewarded_ad", amount=10, dedup_key="ad:direct-1"
    )

    assert res["data"]["applied"] is True
    assert again["data"]["applied"] is False
