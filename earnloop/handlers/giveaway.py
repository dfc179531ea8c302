# earnloop/handlers/giveaway.py
from __future__ import annotations

from earnloop.handlers.common import AppContext, balance_data, envelope, iso, session_scope
from earnloop.services.fulfillment import hand_off
from earnloop.services.giveaway import GIVEAWAY_CONFIGS, EntryResult


def _entry_data(res: EntryResult) -> dict:
    return {
        "giveaway_id": res.giveaway_id,
        "entry_type": res.entry_type.value,
        "entries": {"free": res.free, "bonus": res.bonus, "paid": res.paid, "total": res.total},
        "credits_spent": res.credits_spent or None,
        "balance": balance_data(res.balance),
        "cooldown_ends_at": iso(res.cooldown_ends_at),
    }


@envelope
async def claim_free_entry(ctx: AppContext, *, user_id: int, giveaway_id: str) -> dict:
    async with session_scope(ctx.db) as session:
        res = await ctx.giveaways.claim_free(session, user_id=user_id, giveaway_id=giveaway_id)
    return _entry_data(res)


@envelope
async def buy_entry(ctx: AppContext, *, user_id: int, giveaway_id: str) -> dict:
    async with session_scope(ctx.db) as session:
        res = await ctx.giveaways.buy_entry(session, user_id=user_id, giveaway_id=giveaway_id)
    return _entry_data(res)


@envelope
async def earn_bonus_entry(ctx: AppContext, *, user_id: int, giveaway_id: str) -> dict:
    async with session_scope(ctx.db) as session:
        res = await ctx.giveaways.earn_bonus(session, user_id=user_id, giveaway_id=giveaway_id)
    return _entry_data(res)


@envelope
async def giveaway_entries(ctx: AppContext, *, user_id: int) -> dict:
    async with session_scope(ctx.db) as session:
        rows = await ctx.giveaways.entries_for(session, user_id=user_id)
    return {
        "entries": {
            e.giveaway_id: {
                "free": e.free,
                "bonus": e.bonus,
                "paid": e.paid,
                "total": e.total,
                "can_earn_bonus": e.can_earn_bonus,
                "cooldown_ends_at": iso(e.cooldown_ends_at),
            }
            for e in rows
        },
        "config": {
            "entry_cost": ctx.settings.giveaway_entry_cost,
            "max_bonus_entries": ctx.settings.giveaway_max_bonus_entries,
            "cooldown_hours": ctx.settings.giveaway_bonus_cooldown_hours,
        },
        "giveaways": [
            {"id": c.id, "name": c.name, "prize": c.prize_description, "frequency": c.frequency}
            for c in GIVEAWAY_CONFIGS.values()
        ],
    }


@envelope
async def run_giveaway_draw(ctx: AppContext, *, giveaway_id: str) -> dict:
    async with session_scope(ctx.db) as session:
        outcome = await ctx.giveaways.run_draw(session, giveaway_id=giveaway_id, rng=ctx.rng)

    # committed; the lock is released
    await hand_off(ctx.fulfillment, outcome.fulfillment)

    return {
        "ok": outcome.ok,
        "giveaway_id": outcome.giveaway_id,
        "giveaway_name": outcome.giveaway_name,
        "draw_id": outcome.draw_id,
        "winner": (
            {
                "user_id": outcome.winner_user_id,
                "email": outcome.winner_email,
                "total_entries": outcome.winner_entries,
            }
            if outcome.ok
            else None
        ),
        "total_participants": outcome.total_participants,
        "total_entries": outcome.total_entries,
        "prize_type": outcome.prize_type.value,
        "prize_value": outcome.prize_value,
        "prize_description": outcome.prize_description,
        "prize_delivered": outcome.prize_delivered,
        "error": outcome.error,
    }


@envelope
async def draw_history(ctx: AppContext, *, limit: int = 20) -> dict:
    async with session_scope(ctx.db) as session:
        rows = await ctx.giveaways.draw_history(session, limit=limit)
    return {"draws": [{**r, "created_at": iso(r["created_at"])} for r in rows]}


@envelope
async def giveaway_stats(ctx: AppContext, *, giveaway_id: str) -> dict:
    async with session_scope(ctx.db) as session:
        st = await ctx.giveaways.stats(session, giveaway_id=giveaway_id)
    return {
        "giveaway_id": st.giveaway_id,
        "name": st.name,
        "total_participants": st.total_participants,
        "total_entries": st.total_entries,
        "draws": st.draws,
        "last_draw_at": iso(st.last_draw_at),
    }
