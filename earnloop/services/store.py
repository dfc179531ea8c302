# earnloop/services/store.py
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.database.models import Redemption, RedemptionStatus, StoreItem, StoreItemType
from earnloop.database.repo import audit_repo, store_repo
from earnloop.database.tx import transactional
from earnloop.errors import NotFound, ValidationError
from earnloop.services.checkin import CheckinService
from earnloop.services.fulfillment import FulfillmentRequest
from earnloop.services.geo_pricing import get_adjusted_price, get_tier_info
from earnloop.services.giveaway import GiveawayService
from earnloop.services.ledger import BalanceSnapshot, LedgerService
from earnloop.utils.dates import utc_now

log = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def item_price(item: StoreItem, country_code: str | None) -> int:
    # only gift cards are geo-priced
    if item.item_type == StoreItemType.GIFTCARD:
        return get_adjusted_price(item.credits_cost, country_code)
    return int(item.credits_cost)


@dataclass(frozen=True, slots=True)
class RedeemResult:
    redemption_id: int
    item_id: int
    item_name: str
    item_type: StoreItemType
    credits_spent: int
    status: RedemptionStatus
    balance: BalanceSnapshot
    expires_at: datetime | None
    message: str
    fulfillment: FulfillmentRequest | None = field(default=None, repr=False)


@dataclass(frozen=True, slots=True)
class StoreListing:
    id: int
    name: str
    description: str | None
    item_type: StoreItemType
    category: str
    base_cost: int
    credits_cost: int
    duration_days: int | None
    max_per_user: int | None
    user_redemptions: int
    can_afford: bool
    can_redeem: bool


class StoreService:
    def __init__(self, giveaways: GiveawayService) -> None:
        self.giveaways = giveaways

    async def redeem(
        self,
        session: AsyncSession,
        *,
        user_id: int,
        item_id: int | None,
        email: str | None = None,
        country_code: str | None = None,
        now: datetime | None = None,
    ) -> RedeemResult:
        """
        Debit + redemption row + item effect in one transaction.
        Gift cards stay pending; the returned fulfillment request is submitted after commit.
        """
        if not item_id:
            raise ValidationError("Item ID required", code="MISSING_ITEM_ID")
        now = now or utc_now()

        async with transactional(session):
            item = await store_repo.get_active_item(session, int(item_id))
            if item is None:
                raise NotFound("Item not found", code="ITEM_NOT_FOUND")

            is_giftcard = item.item_type == StoreItemType.GIFTCARD
            if is_giftcard:
                if not email:
                    raise ValidationError("Email required for gift card redemption", code="EMAIL_REQUIRED")
                if not _EMAIL_RE.match(email):
                    raise ValidationError("Invalid email address", code="INVALID_EMAIL")

            if item.max_per_user is not None:
                count = await store_repo.count_user_redemptions(session, user_id=user_id, item_id=item.id)
                if count >= item.max_per_user:
                    raise ValidationError("Maximum redemptions reached for this item", code="MAX_REDEMPTIONS")

            price = item_price(item, country_code)

            # raises InsufficientBalance
            balance = await LedgerService.debit(session, user_id=user_id, amount=price, reason=f"store:{item.id}")

            expires_at = now + timedelta(days=item.duration_days) if item.duration_days else None
            tier = get_tier_info(country_code)

            redemption = await store_repo.add_redemption(
                session,
                Redemption(
                    user_id=user_id,
                    item_id=item.id,
                    credits_spent=price,
                    status=RedemptionStatus.PENDING if is_giftcard else RedemptionStatus.COMPLETED,
                    delivery_email=email if is_giftcard else None,
                    country_code=(country_code or "").upper()[:2] or None,
                    metadata_json=json.dumps({
                        "base_cost": item.credits_cost,
                        "tier": tier.tier,
                        "multiplier": tier.multiplier,
                    }),
                    expires_at=expires_at,
                    created_at=now,
                ),
            )

            balance, message = await self._apply_effect(
                session,
                user_id=user_id,
                item=item,
                balance=balance,
                expires_at=expires_at,
                email=email,
                now=now,
            )

            request: FulfillmentRequest | None = None
            if is_giftcard:
                request = FulfillmentRequest(
                    redemption_id=redemption.id,
                    user_id=user_id,
                    delivery_email=email,
                    description=item.name,
                    value=price,
                    country_code=country_code,
                )
                await audit_repo.log_action(
                    session,
                    action="giftcard_redemption",
                    target_type="redemption",
                    target_id=redemption.id,
                    payload={"user_id": user_id, "item_id": item.id, "credits_spent": price},
                )

        log.info("redeem user=%s item=%s type=%s spent=%s", user_id, item.id, item.item_type.value, price)
        return RedeemResult(
            redemption_id=redemption.id,
            item_id=item.id,
            item_name=item.name,
            item_type=item.item_type,
            credits_spent=price,
            status=redemption.status,
            balance=balance,
            expires_at=expires_at,
            message=message,
            fulfillment=request,
        )

    async def _apply_effect(
        self,
        session: AsyncSession,
        *,
        user_id: int,
        item: StoreItem,
        balance: BalanceSnapshot,
        expires_at: datetime | None,
        email: str | None,
        now: datetime,
    ) -> tuple[BalanceSnapshot, str]:
        t = item.item_type

        if t == StoreItemType.GIFTCARD:
            return balance, (
                f"Gift card request received! Your {item.name} code will be sent to {email} within 24-48 hours."
            )

        if t == StoreItemType.STREAK_SAVER:
            await store_repo.add_to_inventory(session, user_id=user_id, item=item, now=now)
            await CheckinService.add_streak_saver(session, user_id=user_id, count=1)
            return balance, "Streak Saver added! It will automatically protect your streak if you miss a day."

        if t == StoreItemType.BOOST:
            await store_repo.add_to_inventory(
                session,
                user_id=user_id,
                item=item,
                now=now,
                expires_at=expires_at,
                activate=True,
                stackable=False,
            )
            return balance, f"{item.name} activated!"

        if t == StoreItemType.GIVEAWAY:
            if not item.giveaway_id:
                raise ValidationError("Item is not linked to a giveaway", code="ITEM_MISCONFIGURED")
            await store_repo.add_to_inventory(session, user_id=user_id, item=item, now=now)
            await self.giveaways.add_paid_entry(session, user_id=user_id, giveaway_id=item.giveaway_id, now=now)
            return balance, "Bonus giveaway entry added! Check the Giveaways tab to see your entries."

        if t == StoreItemType.TOKEN_PACK:
            if item.tokens_granted <= 0:
                raise ValidationError("Token pack grants no tokens", code="ITEM_MISCONFIGURED")
            balance = await LedgerService.adjust_tokens(
                session, user_id=user_id, delta=item.tokens_granted, reason=f"store:{item.id}"
            )
            return balance, f"{item.tokens_granted} tokens added!"

        # cosmetic: permanent unlock
        await store_repo.add_to_inventory(
            session,
            user_id=user_id,
            item=item,
            now=now,
            activate=True,
            stackable=False,
        )
        return balance, f"{item.name} unlocked! Check your profile to see it."

    async def list_items(self, session: AsyncSession, *, user_id: int, country_code: str | None = None) -> dict:
        items = await store_repo.list_active_items(session)
        counts = await store_repo.redemption_counts(session, user_id=user_id)
        balance = await LedgerService.get_balance(session, user_id=user_id)

        by_category: dict[str, list[StoreListing]] = {}
        for item in items:
            price = item_price(item, country_code)
            used = counts.get(item.id, 0)
            by_category.setdefault(item.category or "general", []).append(
                StoreListing(
                    id=item.id,
                    name=item.name,
                    description=item.description,
                    item_type=item.item_type,
                    category=item.category,
                    base_cost=item.credits_cost,
                    credits_cost=price,
                    duration_days=item.duration_days,
                    max_per_user=item.max_per_user,
                    user_redemptions=used,
                    can_afford=balance.credits_balance >= price,
                    can_redeem=item.max_per_user is None or used < item.max_per_user,
                )
            )

        return {
            "items_by_category": by_category,
            "balance": balance.credits_balance,
            "pricing": get_tier_info(country_code),
        }

    async def inventory(self, session: AsyncSession, *, user_id: int, now: datetime | None = None) -> dict:
        now = now or utc_now()
        rows = await store_repo.list_inventory(session, user_id=user_id)
        items = [
            {
                "item_id": item.id,
                "name": item.name,
                "item_type": StoreItemType(inv.item_type).value,
                "quantity": inv.quantity,
                "is_active": bool(inv.is_active and (inv.expires_at is None or inv.expires_at > now)),
                "expires_at": inv.expires_at,
            }
            for inv, item in rows
        ]
        return {
            "items": items,
            "active_boost": await store_repo.has_active_boost(session, user_id=user_id, now=now),
        }

    async def history(self, session: AsyncSession, *, user_id: int, limit: int = 50) -> list[dict]:
        rows = await store_repo.list_redemptions(session, user_id=user_id, limit=limit)
        return [
            {
                "redemption_id": r.id,
                "item_id": r.item_id,
                "credits_spent": r.credits_spent,
                "status": RedemptionStatus(r.status).value,
                "delivery_email": r.delivery_email,
                "expires_at": r.expires_at,
                "created_at": r.created_at,
                "metadata": json.loads(r.metadata_json) if r.metadata_json else None,
            }
            for r in rows
        ]
