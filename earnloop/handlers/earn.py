# earnloop/handlers/earn.py
from __future__ import annotations

import logging

from earnloop.database.models import EarnEventType
from earnloop.errors import AlreadyRecorded, BannedAccount, FraudBlocked, ValidationError
from earnloop.handlers.common import AppContext, balance_data, envelope, iso, session_scope
from earnloop.services.checkin import CheckinService
from earnloop.services.earn import SCOPED_EVENT_TYPES, EarnEventRecorder, EarnService
from earnloop.services.fraud import FraudCheckResult, FraudGate
from earnloop.utils.dates import utc_now

log = logging.getLogger(__name__)


async def _gate(ctx: AppContext, *, user_id: int, device_id: int | None, ip: str | None) -> FraudCheckResult:
    # own scope: flags and risk increments are committed before any rejection
    async with session_scope(ctx.db) as session:
        return await FraudGate.check_eligibility(
            session,
            settings=ctx.settings,
            user_id=user_id,
            device_id=device_id,
            ip=ip,
        )


def _raise_if_blocked(check: FraudCheckResult) -> None:
    if check.banned:
        raise BannedAccount(check.reason or "Account suspended")
    if not check.allowed:
        raise FraudBlocked(check.reason or "Action blocked", risk_score=check.risk_score)


@envelope
async def check_earn_eligibility(
    ctx: AppContext,
    *,
    user_id: int,
    device_id: int | None = None,
    ip: str | None = None,
) -> dict:
    check = await _gate(ctx, user_id=user_id, device_id=device_id, ip=ip)
    return {"allowed": check.allowed, "reason": check.reason, "risk_score": check.risk_score}


@envelope
async def record_earn_event(
    ctx: AppContext,
    *,
    user_id: int,
    event_type: str,
    amount: int,
    dedup_key: str | None = None,
    metadata: dict | None = None,
    device_id: int | None = None,
    ip: str | None = None,
) -> dict:
    try:
        et = EarnEventType(event_type)
    except ValueError as e:
        raise ValidationError(f"Unknown event type: {event_type!r}", code="INVALID_EVENT_TYPE") from e
    if et in SCOPED_EVENT_TYPES:
        raise ValidationError(
            f"{et.value} events are recorded by their own operation", code="EVENT_TYPE_NOT_ALLOWED"
        )

    _raise_if_blocked(await _gate(ctx, user_id=user_id, device_id=device_id, ip=ip))

    async with session_scope(ctx.db) as session:
        res = await EarnEventRecorder.record(
            session,
            user_id=user_id,
            event_type=et,
            amount=amount,
            dedup_key=dedup_key,
            metadata=metadata,
            device_id=device_id,
            ip=ip,
        )

    return {
        "applied": res.applied,
        "event_id": res.event.id if res.event is not None else None,
        "balance": balance_data(res.balance),
    }


@envelope
async def ad_reward_callback(
    ctx: AppContext,
    *,
    user_id: int,
    transaction_id: str,
    ad_unit_id: str | None = None,
    device_id: int | None = None,
    ip: str | None = None,
) -> dict:
    """
    Ad-network server callback. Always acknowledged once the payload is valid:
    duplicates and fraud-blocked deliveries answer success with credited=False,
    so the network stops retrying.
    """
    if not transaction_id:
        raise ValidationError("Missing ad transaction id", code="INVALID_AD_DATA")

    check = await _gate(ctx, user_id=user_id, device_id=device_id, ip=ip)
    if not check.allowed:
        log.warning("ad callback not credited user=%s txn=%s reason=%s", user_id, transaction_id, check.reason)
        return {"credited": False, "duplicate": False, "blocked": True, "reason": check.reason}

    async with session_scope(ctx.db) as session:
        res = await EarnService.rewarded_ad(
            session,
            settings=ctx.settings,
            user_id=user_id,
            transaction_id=transaction_id,
            ad_unit_id=ad_unit_id,
            device_id=device_id,
            ip=ip,
        )

    return {
        "credited": res.credited,
        "duplicate": res.duplicate,
        "blocked": False,
        "credits_earned": res.credits_earned,
        "base_reward": res.base_reward,
        "boost_applied": res.boost_applied,
        "ads_today": res.ads_today,
        "balance": balance_data(res.balance),
    }


@envelope
async def complete_learn_module(
    ctx: AppContext,
    *,
    user_id: int,
    module_id: str,
    quiz_score: int | None = None,
    device_id: int | None = None,
    ip: str | None = None,
) -> dict:
    if not module_id:
        raise ValidationError("Module ID required", code="MISSING_MODULE_ID")

    _raise_if_blocked(await _gate(ctx, user_id=user_id, device_id=device_id, ip=ip))

    async with session_scope(ctx.db) as session:
        res = await EarnService.learn_module(
            session,
            settings=ctx.settings,
            user_id=user_id,
            module_id=module_id,
            quiz_score=quiz_score,
            today=ctx.time.today(),
            device_id=device_id,
            ip=ip,
        )

    return {
        "credits_earned": ctx.settings.learn_reward,
        "module_id": module_id,
        "quiz_score": quiz_score,
        "balance": balance_data(res.balance),
    }


@envelope
async def checkin(
    ctx: AppContext,
    *,
    user_id: int,
    device_id: int | None = None,
    ip: str | None = None,
) -> dict:
    _raise_if_blocked(await _gate(ctx, user_id=user_id, device_id=device_id, ip=ip))

    async with session_scope(ctx.db) as session:
        res = await CheckinService.checkin(
            session,
            settings=ctx.settings,
            user_id=user_id,
            today=ctx.time.today(),
            device_id=device_id,
            ip=ip,
            now=utc_now(),
        )

    if res.already:
        raise AlreadyRecorded("Already checked in today", code="ALREADY_CHECKED_IN")

    return {
        "credits_earned": res.credits_earned,
        "balance": balance_data(res.balance),
        "streak": {
            "current_streak": res.streak.current_streak,
            "longest_streak": res.streak.longest_streak,
            "last_checkin_date": res.streak.last_checkin_date.isoformat() if res.streak.last_checkin_date else None,
            "streak_savers": res.streak.streak_savers,
            "state": res.state.value,
        },
        "streak_saver_used": res.saver_used,
    }


@envelope
async def earn_status(ctx: AppContext, *, user_id: int) -> dict:
    async with session_scope(ctx.db) as session:
        st = await EarnService.status(
            session, user_id=user_id, today=ctx.time.today(), timezone=ctx.settings.timezone
        )
    return {
        "today_earned": st.today_earned,
        "total_earned": st.total_earned,
        "ads_today": st.ads_today,
        "checked_in_today": st.checked_in_today,
        "as_of": iso(utc_now()),
    }
