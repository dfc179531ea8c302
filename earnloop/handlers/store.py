# earnloop/handlers/store.py
from __future__ import annotations

from dataclasses import asdict

from earnloop.handlers.common import AppContext, balance_data, envelope, iso, session_scope
from earnloop.services import geo_pricing
from earnloop.services.fulfillment import hand_off


@envelope
async def get_adjusted_price(ctx: AppContext, *, base_price: int, country_code: str | None = None) -> dict:
    tier = geo_pricing.get_tier_info(country_code)
    return {
        "base_price": int(base_price),
        "adjusted_price": geo_pricing.get_adjusted_price(base_price, country_code),
        "tier": tier.tier,
        "multiplier": tier.multiplier,
        "description": tier.description,
    }


@envelope
async def redeem_store_item(
    ctx: AppContext,
    *,
    user_id: int,
    item_id: int,
    email: str | None = None,
    country_code: str | None = None,
) -> dict:
    async with session_scope(ctx.db) as session:
        res = await ctx.store.redeem(
            session,
            user_id=user_id,
            item_id=item_id,
            email=email,
            country_code=country_code,
        )

    await hand_off(ctx.fulfillment, res.fulfillment)

    return {
        "message": res.message,
        "redemption_id": res.redemption_id,
        "status": res.status.value,
        "item": {
            "id": res.item_id,
            "name": res.item_name,
            "item_type": res.item_type.value,
            "expires_at": iso(res.expires_at),
        },
        "credits_spent": res.credits_spent,
        "new_balance": res.balance.credits_balance,
        "balance": balance_data(res.balance),
    }


@envelope
async def list_store_items(ctx: AppContext, *, user_id: int, country_code: str | None = None) -> dict:
    async with session_scope(ctx.db) as session:
        listing = await ctx.store.list_items(session, user_id=user_id, country_code=country_code)

    return {
        "items_by_category": {
            cat: [{**asdict(i), "item_type": i.item_type.value} for i in items]
            for cat, items in listing["items_by_category"].items()
        },
        "balance": listing["balance"],
        "pricing": asdict(listing["pricing"]),
    }


@envelope
async def store_inventory(ctx: AppContext, *, user_id: int) -> dict:
    async with session_scope(ctx.db) as session:
        inv = await ctx.store.inventory(session, user_id=user_id)
    return {
        "items": [{**i, "expires_at": iso(i["expires_at"])} for i in inv["items"]],
        "active_boost": inv["active_boost"],
    }


@envelope
async def redemption_history(ctx: AppContext, *, user_id: int, limit: int = 50) -> dict:
    async with session_scope(ctx.db) as session:
        rows = await ctx.store.history(session, user_id=user_id, limit=limit)
    return {
        "redemptions": [
            {**r, "expires_at": iso(r["expires_at"]), "created_at": iso(r["created_at"])}
            for r in rows
        ]
    }
