# earnloop/handlers/games.py
from __future__ import annotations

from earnloop.handlers.common import AppContext, envelope, iso, session_scope
from earnloop.services.mystery_bag import MysteryBagService
from earnloop.services.spin import JackpotService


@envelope
async def spin_jackpot(ctx: AppContext, *, user_id: int, bet_amount: int) -> dict:
    async with session_scope(ctx.db) as session:
        res = await JackpotService.spin(
            session,
            settings=ctx.settings,
            user_id=user_id,
            bet_amount=bet_amount,
            rng=ctx.rng,
        )
    return {
        "bet_amount": res.bet_amount,
        "multiplier": res.multiplier,
        "win_amount": res.win_amount,
        "jackpot_bonus": res.jackpot_bonus or None,
        "net_result": res.net_result,
        "is_jackpot": res.is_jackpot,
        "new_balance": res.new_tokens,
        "new_pool_tokens": res.pool_tokens,
        "message": res.message,
    }


@envelope
async def jackpot_info(ctx: AppContext, *, user_id: int) -> dict:
    async with session_scope(ctx.db) as session:
        info = await JackpotService.info(session, settings=ctx.settings, user_id=user_id)

    last = info.last_winner
    return {
        "pool_tokens": info.pool_tokens,
        "total_contributed": info.total_contributed,
        "total_won": info.total_won,
        "last_winner": (
            {"user_id": last["user_id"], "amount": last["amount"], "won_at": iso(last["won_at"])}
            if last
            else None
        ),
        "user_tokens": info.user_tokens,
        "config": {"min_bet": info.min_bet, "max_bet": info.max_bet},
        "recent_big_wins": [{**w, "created_at": iso(w["created_at"])} for w in info.recent_big_wins],
        "my_history": [{**h, "created_at": iso(h["created_at"])} for h in info.my_history],
    }


@envelope
async def purchase_mystery_bag(ctx: AppContext, *, user_id: int) -> dict:
    async with session_scope(ctx.db) as session:
        res = await MysteryBagService.open(
            session,
            settings=ctx.settings,
            user_id=user_id,
            rng=ctx.rng,
        )
    return {
        "open_id": res.open_id,
        "tokens_spent": res.tokens_spent,
        "prize": {"kind": res.prize.kind, "amount": res.prize.amount},
        "tokens": res.tokens,
        "credits_balance": res.credits_balance,
    }
