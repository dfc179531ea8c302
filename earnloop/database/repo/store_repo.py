# earnloop/database/repo/store_repo.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.database.models import InventoryItem, Redemption, StoreItem, StoreItemType
from earnloop.database.tx import upsert


async def get_active_item(session: AsyncSession, item_id: int) -> StoreItem | None:
    res = await session.execute(
        select(StoreItem).where(StoreItem.id == item_id, StoreItem.is_active.is_(True))
    )
    return res.scalar_one_or_none()


async def list_active_items(session: AsyncSession) -> list[StoreItem]:
    res = await session.execute(
        select(StoreItem)
        .where(StoreItem.is_active.is_(True))
        .order_by(StoreItem.category.asc(), StoreItem.sort_order.asc(), StoreItem.id.asc())
    )
    return list(res.scalars().all())


async def count_user_redemptions(session: AsyncSession, *, user_id: int, item_id: int) -> int:
    res = await session.execute(
        select(func.count(Redemption.id)).where(
            Redemption.user_id == user_id,
            Redemption.item_id == item_id,
        )
    )
    return int(res.scalar_one() or 0)


async def redemption_counts(session: AsyncSession, *, user_id: int) -> dict[int, int]:
    res = await session.execute(
        select(Redemption.item_id, func.count(Redemption.id))
        .where(Redemption.user_id == user_id, Redemption.item_id.is_not(None))
        .group_by(Redemption.item_id)
    )
    return {int(item_id): int(n) for item_id, n in res.all()}


async def add_redemption(session: AsyncSession, redemption: Redemption) -> Redemption:
    session.add(redemption)
    await session.flush()  # redemption.id becomes available
    return redemption


async def list_redemptions(session: AsyncSession, *, user_id: int, limit: int = 50) -> list[Redemption]:
    res = await session.execute(
        select(Redemption)
        .where(Redemption.user_id == user_id)
        .order_by(Redemption.created_at.desc(), Redemption.id.desc())
        .limit(limit)
    )
    return list(res.scalars().all())


async def add_to_inventory(
    session: AsyncSession,
    *,
    user_id: int,
    item: StoreItem,
    now: datetime,
    expires_at: datetime | None = None,
    activate: bool = False,
    stackable: bool = True,
) -> None:
    """
    Upsert of the (user, item) inventory row.
    stackable  -> quantity += 1
    activate   -> (re)activates with a fresh expiry
    """
    stmt = upsert(session, InventoryItem).values(
        user_id=user_id,
        item_id=item.id,
        item_type=item.item_type,
        quantity=1,
        is_active=activate,
        activated_at=now if activate else None,
        expires_at=expires_at,
    )

    set_: dict = {}
    if stackable:
        set_["quantity"] = InventoryItem.quantity + 1
    if activate:
        set_.update(is_active=True, activated_at=now, expires_at=expires_at)

    if set_:
        stmt = stmt.on_conflict_do_update(index_elements=["user_id", "item_id"], set_=set_)
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=["user_id", "item_id"])
    await session.execute(stmt)


async def list_inventory(session: AsyncSession, *, user_id: int) -> list[tuple[InventoryItem, StoreItem]]:
    res = await session.execute(
        select(InventoryItem, StoreItem)
        .join(StoreItem, StoreItem.id == InventoryItem.item_id)
        .where(InventoryItem.user_id == user_id)
        .order_by(InventoryItem.created_at.desc(), InventoryItem.id.desc())
    )
    return [(inv, item) for inv, item in res.all()]


async def has_active_boost(session: AsyncSession, *, user_id: int, now: datetime) -> bool:
    res = await session.execute(
        select(InventoryItem.id)
        .where(
            InventoryItem.user_id == user_id,
            InventoryItem.item_type == StoreItemType.BOOST,
            InventoryItem.is_active.is_(True),
            (InventoryItem.expires_at.is_(None)) | (InventoryItem.expires_at > now),
        )
        .limit(1)
    )
    return res.scalar_one_or_none() is not None
