from __future__ import annotations

import pytest
from sqlalchemy import select

from earnloop.database.models import GiveawayEntry, Redemption, RedemptionStatus, StoreItemType
from earnloop.errors import ValidationError
from earnloop.handlers import (
    ad_reward_callback,
    list_store_items,
    redeem_store_item,
    redemption_history,
    store_inventory,
)
from earnloop.services.checkin import CheckinService
from earnloop.services.fulfillment import FulfillmentRequest, LoggingFulfillment, hand_off
from earnloop.services.ledger import LedgerService
from earnloop.services.store import item_price


async def test_gift_card_redemption_end_to_end(ctx, fulfillment, make_user, make_item):
    uid = await make_user("gift@example.com", credits=5000)
    item_id = await make_item("$5 Gift Card", cost=5000, item_type=StoreItemType.GIFTCARD)

    first = await redeem_store_item(ctx, user_id=uid, item_id=item_id, email="gift@example.com", country_code="US")
    again = await redeem_store_item(ctx, user_id=uid, item_id=item_id, email="gift@example.com", country_code="US")

    assert first["success"] is True
    assert first["data"]["credits_spent"] == 5000
    assert first["data"]["new_balance"] == 0
    assert first["data"]["status"] == "pending"
    assert len(fulfillment.submitted) == 1

    assert again["success"] is False
    assert again["error"]["code"] == "INSUFFICIENT_CREDITS"

    async with ctx.db.session() as s:
        rows = (await s.execute(select(Redemption).where(Redemption.user_id == uid))).scalars().all()
    assert len(rows) == 1
    assert rows[0].status == RedemptionStatus.PENDING
    assert rows[0].delivery_email == "gift@example.com"


async def test_gift_card_is_geo_priced(ctx, session, make_user, make_item):
    uid = await make_user("korea@example.com", credits=10_000)
    item_id = await make_item("$5 Gift Card", cost=5000, item_type=StoreItemType.GIFTCARD)

    res = await ctx.store.redeem(session, user_id=uid, item_id=item_id, email="korea@example.com", country_code="KR")

    assert res.credits_spent == 7500
    assert res.balance.credits_balance == 2500


async def test_gift_card_requires_valid_email(ctx, session, make_user, make_item):
    uid = await make_user("mail@example.com", credits=10_000)
    item_id = await make_item("$5 Gift Card", cost=5000, item_type=StoreItemType.GIFTCARD)

    with pytest.raises(ValidationError) as exc:
        await ctx.store.redeem(session, user_id=uid, item_id=item_id, country_code="US")
    assert exc.value.code == "EMAIL_REQUIRED"

    with pytest.raises(ValidationError) as exc:
        await ctx.store.redeem(session, user_id=uid, item_id=item_id, email="not-an-email", country_code="US")
    assert exc.value.code == "INVALID_EMAIL"

    b = await LedgerService.get_balance(session, user_id=uid)
    assert b.credits_balance == 10_000


async def test_non_gift_items_ignore_geo_pricing(ctx, session, make_user, make_item):
    uid = await make_user("saver@example.com", credits=1000)
    item_id = await make_item("Streak Saver", cost=200, item_type=StoreItemType.STREAK_SAVER, max_per_user=1)

    res = await ctx.store.redeem(session, user_id=uid, item_id=item_id, country_code="IN")

    assert res.credits_spent == 200
    assert res.status == RedemptionStatus.COMPLETED
    snap, _ = await CheckinService.get_streak(session, user_id=uid, today=ctx.time.today())
    assert snap.streak_savers == 1

    with pytest.raises(ValidationError) as exc:
        await ctx.store.redeem(session, user_id=uid, item_id=item_id)
    assert exc.value.code == "MAX_REDEMPTIONS"


async def test_boost_doubles_ad_reward(ctx, make_user, make_item):
    uid = await make_user("boosted@example.com", credits=300)
    item_id = await make_item("2x Boost (24h)", cost=300, item_type=StoreItemType.BOOST, duration_days=1)

    redeemed = await redeem_store_item(ctx, user_id=uid, item_id=item_id)
    ad = await ad_reward_callback(ctx, user_id=uid, transaction_id="boosted-1")
    inv = await store_inventory(ctx, user_id=uid)

    assert redeemed["success"] is True
    assert ad["data"]["boost_applied"] is True
    assert ad["data"]["credits_earned"] == ctx.settings.ad_reward * ctx.settings.boost_multiplier
    assert inv["data"]["active_boost"] is True


async def test_token_pack_adds_tokens(ctx, session, make_user, make_item):
    uid = await make_user("pack@example.com", credits=100)
    item_id = await make_item("Token Pack", cost=100, item_type=StoreItemType.TOKEN_PACK, tokens_granted=250)

    res = await ctx.store.redeem(session, user_id=uid, item_id=item_id)

    assert res.balance.tokens == 250
    assert res.balance.credits_balance == 0


async def test_giveaway_item_adds_paid_entry(ctx, session, make_user, make_item):
    uid = await make_user("ticket@example.com", credits=100)
    item_id = await make_item(
        "Weekly Entry", cost=100, item_type=StoreItemType.GIVEAWAY, giveaway_id="weekly_bonus"
    )

    await ctx.store.redeem(session, user_id=uid, item_id=item_id)

    entries = await ctx.giveaways.entries_for(session, user_id=uid)
    assert [(e.giveaway_id, e.paid, e.free) for e in entries] == [("weekly_bonus", 1, 0)]


async def test_misconfigured_giveaway_item_rolls_back(ctx, session, make_user, make_item):
    uid = await make_user("broken@example.com", credits=100)
    item_id = await make_item("Orphan Entry", cost=100, item_type=StoreItemType.GIVEAWAY)

    with pytest.raises(ValidationError) as exc:
        await ctx.store.redeem(session, user_id=uid, item_id=item_id)
    assert exc.value.code == "ITEM_MISCONFIGURED"

    b = await LedgerService.get_balance(session, user_id=uid)
    assert b.credits_balance == 100
    assert (await session.execute(select(GiveawayEntry))).first() is None


async def test_unknown_item(ctx, make_user):
    uid = await make_user("ghost@example.com", credits=100)

    res = await redeem_store_item(ctx, user_id=uid, item_id=4242)

    assert res["success"] is False
    assert res["status"] == 404
    assert res["error"]["code"] == "ITEM_NOT_FOUND"


async def test_listing_and_history(ctx, make_user, make_item):
    uid = await make_user("shopper@example.com", credits=400)
    cosmetic = await make_item("Gold Frame", cost=150, item_type=StoreItemType.COSMETIC)
    await make_item("$5 Gift Card", cost=5000, item_type=StoreItemType.GIFTCARD)

    await redeem_store_item(ctx, user_id=uid, item_id=cosmetic)
    listing = await list_store_items(ctx, user_id=uid, country_code="GB")
    history = await redemption_history(ctx, user_id=uid)

    items = listing["data"]["items_by_category"]["test"]
    by_name = {i["name"]: i for i in items}
    assert by_name["$5 Gift Card"]["credits_cost"] == 5000
    assert by_name["$5 Gift Card"]["can_afford"] is False
    assert by_name["Gold Frame"]["user_redemptions"] == 1
    assert listing["data"]["balance"] == 250
    assert listing["data"]["pricing"]["tier"] == 1

    (row,) = history["data"]["redemptions"]
    assert row["item_id"] == cosmetic
    assert row["status"] == "completed"


def test_item_price_only_adjusts_gift_cards():
    class _Item:
        def __init__(self, item_type, cost):
            self.item_type = item_type
            self.credits_cost = cost

    assert item_price(_Item(StoreItemType.GIFTCARD, 5000), None) == 15000
    assert item_price(_Item(StoreItemType.BOOST, 300), None) == 300


async def test_default_fulfillment_only_logs(caplog):
    default = LoggingFulfillment()
    request = FulfillmentRequest(
        redemption_id=7, user_id=1, delivery_email="a@example.com", description="$5 Gift Card", value=5
    )

    with caplog.at_level("INFO", logger="earnloop.services.fulfillment"):
        for _ in range(3):
            assert await hand_off(default, request) is True

    assert not hasattr(default, "submitted")
    assert vars(default) == {}
    assert sum("redemption=7" in r.getMessage() for r in caplog.records) == 3
