# earnloop/scripts/seed_store.py
from __future__ import annotations

import asyncio

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.config import settings
from earnloop.database.models import StoreItem, StoreItemType
from earnloop.database.repo import jackpot_repo
from earnloop.database.session import Database

T = StoreItemType

# (name, description, credits_cost, type, category, duration_days, max_per_user, extra)
CATALOG: list[tuple] = [
    ("$5 Amazon Gift Card", "Digital Amazon gift card code sent to your email", 5000, T.GIFTCARD, "giftcards", None, None, {}),
    ("$10 Amazon Gift Card", "Digital Amazon gift card code sent to your email", 9500, T.GIFTCARD, "giftcards", None, None, {}),
    ("$25 Amazon Gift Card", "Digital Amazon gift card code sent to your email", 23000, T.GIFTCARD, "giftcards", None, None, {}),
    ("$5 Apple Gift Card", "Digital Apple gift card code sent to your email", 5000, T.GIFTCARD, "giftcards", None, None, {}),
    ("$10 Google Play Gift Card", "Digital Google Play gift card code sent to your email", 9500, T.GIFTCARD, "giftcards", None, None, {}),
    ("Dark Mode Pro", "Unlock the sleek dark theme with OLED blacks", 100, T.COSMETIC, "cosmetics", None, 1, {}),
    ("Gold Theme", "Luxurious gold accents everywhere", 300, T.COSMETIC, "cosmetics", None, 1, {}),
    ("Streak Saver", "Protects your streak if you miss a day (single use)", 150, T.STREAK_SAVER, "powerups", None, None, {}),
    ("2x Boost (24h)", "Double your ad rewards for 24 hours", 100, T.BOOST, "powerups", 1, None, {}),
    ("2x Boost (7 days)", "Double your ad rewards for a full week", 500, T.BOOST, "powerups", 7, None, {}),
    ("100 Tokens", "Tokens for the jackpot and mystery bags", 100, T.TOKEN_PACK, "tokens", None, None, {"tokens_granted": 100}),
    ("550 Tokens", "Tokens for the jackpot and mystery bags", 500, T.TOKEN_PACK, "tokens", None, None, {"tokens_granted": 550}),
    ("Bonus Giveaway Entry", "Get +1 extra entry to the monthly giveaway", 200, T.GIVEAWAY, "giveaways", None, 5, {"giveaway_id": "monthly_giveaway"}),
]


async def seed(session: AsyncSession) -> int:
    """
    Upserts the catalog by name. Items no longer listed are deactivated, never
    deleted, since redemptions keep pointing at them.
    """
    existing = {item.name: item for item in (await session.execute(select(StoreItem))).scalars()}
    listed: set[str] = set()

    for i, (name, description, cost, item_type, category, duration, max_per_user, extra) in enumerate(CATALOG):
        listed.add(name)
        item = existing.get(name)
        if item is None:
            item = StoreItem(name=name)
            session.add(item)
        item.description = description
        item.credits_cost = cost
        item.item_type = item_type
        item.category = category
        item.duration_days = duration
        item.max_per_user = max_per_user
        item.sort_order = i
        item.is_active = True
        item.tokens_granted = extra.get("tokens_granted", 0)
        item.giveaway_id = extra.get("giveaway_id")

    for name, item in existing.items():
        if name not in listed:
            item.is_active = False

    await jackpot_repo.ensure_pool(session, seed_tokens=settings.jackpot_seed_tokens)
    await session.flush()
    return len(CATALOG)


async def main() -> None:
    db = Database(settings.database_url)
    await db.init_models()

    async with db.session() as session:
        n = await seed(session)
        await session.commit()

    await db.close()
    print(f"Seeded {n} store items")


if __name__ == "__main__":
    asyncio.run(main())
