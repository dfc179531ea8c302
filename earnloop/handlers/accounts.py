# earnloop/handlers/accounts.py
from __future__ import annotations

from earnloop.errors import ValidationError
from earnloop.handlers.common import AppContext, balance_data, envelope, session_scope
from earnloop.services.accounts import AccountService
from earnloop.services.fraud import FraudGate


@envelope
async def open_account(ctx: AppContext, *, email: str) -> dict:
    async with session_scope(ctx.db) as session:
        user = await AccountService.open_account(session, email=email)
    return {"user_id": user.id, "email": user.email}


@envelope
async def get_profile(ctx: AppContext, *, user_id: int) -> dict:
    async with session_scope(ctx.db) as session:
        p = await AccountService.get_profile(session, user_id=user_id, today=ctx.time.today())
    return {
        "user_id": p.user_id,
        "email": p.email,
        "is_banned": p.is_banned,
        "balance": balance_data(p.balance),
        "streak": {
            "current_streak": p.streak.current_streak,
            "longest_streak": p.streak.longest_streak,
            "last_checkin_date": p.streak.last_checkin_date.isoformat() if p.streak.last_checkin_date else None,
            "streak_savers": p.streak.streak_savers,
            "state": p.streak_state.value,
        },
        "total_earned": p.total_earned,
    }


@envelope
async def register_device(
    ctx: AppContext,
    *,
    user_id: int,
    fingerprint: str,
    platform: str | None = None,
    ip: str | None = None,
) -> dict:
    if not fingerprint:
        raise ValidationError("Device fingerprint required", code="MISSING_FINGERPRINT")
    async with session_scope(ctx.db) as session:
        device_id = await FraudGate.register_device(
            session,
            user_id=user_id,
            fingerprint=fingerprint,
            platform=platform,
            ip=ip,
        )
    return {"device_id": device_id}
