# earnloop/services/giveaway.py
from __future__ import annotations

import json
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.config import Settings
from earnloop.database.models import (
    EarnEventType,
    EntryType,
    GiveawayDraw,
    GiveawayEntry,
    PrizeType,
    Redemption,
    RedemptionStatus,
)
from earnloop.database.repo import audit_repo, giveaway_repo, store_repo
from earnloop.database.tx import transactional
from earnloop.errors import NotFound, ValidationError
from earnloop.services.earn import EarnEventRecorder, giveaway_win_key
from earnloop.services.fulfillment import FulfillmentRequest
from earnloop.services.ledger import BalanceSnapshot, LedgerService
from earnloop.services.weighted import default_rng, weighted_pick
from earnloop.utils.dates import is_last_day_of_month, utc_now
from earnloop.utils.locks import KeyedLocks
from earnloop.utils.text import mask_email

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GiveawayConfig:
    id: str
    name: str
    prize_type: PrizeType
    prize_value: int  # credits, or gift card dollars
    prize_description: str
    frequency: str  # "weekly" | "monthly"

    @property
    def min_gap(self) -> timedelta:
        # a scheduled draw never repeats inside this window
        return timedelta(hours=144) if self.frequency == "weekly" else timedelta(days=25)


GIVEAWAY_CONFIGS: dict[str, GiveawayConfig] = {
    "monthly_giveaway": GiveawayConfig(
        id="monthly_giveaway",
        name="Monthly Gift Card Giveaway",
        prize_type=PrizeType.GIFT_CARD,
        prize_value=50,
        prize_description="$50 Gift Card",
        frequency="monthly",
    ),
    "weekly_bonus": GiveawayConfig(
        id="weekly_bonus",
        name="Weekly Credit Drop",
        prize_type=PrizeType.CREDITS,
        prize_value=500,
        prize_description="500 Bonus Credits",
        frequency="weekly",
    ),
}

DRAW_HOUR = 23


def get_config(giveaway_id: str) -> GiveawayConfig:
    if not giveaway_id:
        raise ValidationError("Giveaway ID required", code="MISSING_GIVEAWAY_ID")
    config = GIVEAWAY_CONFIGS.get(giveaway_id)
    if config is None:
        raise NotFound(f"Unknown giveaway ID: {giveaway_id}", code="GIVEAWAY_NOT_FOUND")
    return config


def is_draw_due(config: GiveawayConfig, now: datetime, last_draw_at: datetime | None) -> bool:
    """
    weekly:  Sunday from 23:00, and more than 144h since the last draw
    monthly: last day of the month from 23:00, and more than 25 days since the last draw
    """
    if now.hour < DRAW_HOUR:
        return False

    if config.frequency == "weekly":
        in_window = now.weekday() == 6
    else:
        in_window = is_last_day_of_month(now.date())

    if not in_window:
        return False
    return last_draw_at is None or (now - last_draw_at) > config.min_gap


@dataclass(frozen=True, slots=True)
class EntryResult:
    giveaway_id: str
    entry_type: EntryType
    free: int
    bonus: int
    paid: int
    credits_spent: int = 0
    balance: BalanceSnapshot | None = None
    cooldown_ends_at: datetime | None = None

    @property
    def total(self) -> int:
        return self.free + self.bonus + self.paid


@dataclass(frozen=True, slots=True)
class UserEntries:
    giveaway_id: str
    free: int
    bonus: int
    paid: int
    can_earn_bonus: bool
    cooldown_ends_at: datetime | None

    @property
    def total(self) -> int:
        return self.free + self.bonus + self.paid


@dataclass(frozen=True, slots=True)
class DrawOutcome:
    ok: bool
    giveaway_id: str
    giveaway_name: str
    prize_type: PrizeType
    prize_value: int
    prize_description: str
    total_participants: int = 0
    total_entries: int = 0
    draw_id: int | None = None
    winner_user_id: int | None = None
    winner_email: str | None = None
    winner_entries: int = 0
    prize_delivered: bool = False
    skipped: bool = False
    error: str | None = None
    # handed to fulfillment by whoever commits the session
    fulfillment: FulfillmentRequest | None = field(default=None, repr=False)


@dataclass(frozen=True, slots=True)
class GiveawayStats:
    giveaway_id: str
    name: str
    total_participants: int
    total_entries: int
    draws: int
    last_draw_at: datetime | None


class GiveawayService:
    """
    Entries and draws for one giveaway id are serialized: an in-process lock per id
    plus a FOR UPDATE read of the giveaway row inside the transaction.
    The in-process lock is always taken before the session touches the database.
    """

    def __init__(self, settings: Settings, locks: KeyedLocks | None = None) -> None:
        self.settings = settings
        self.locks = locks or KeyedLocks()

    # ---------------- entries ----------------

    async def _counters(self, session: AsyncSession, *, user_id: int, giveaway_id: str):
        counters = await giveaway_repo.get_user_counters(session, user_id=user_id, giveaway_id=giveaway_id)

        def n(et: EntryType) -> int:
            c = counters.get(et)
            return c.entries_count if c else 0

        return counters, n(EntryType.FREE), n(EntryType.BONUS), n(EntryType.PAID)

    async def claim_free(self, session: AsyncSession, *, user_id: int, giveaway_id: str, now: datetime | None = None) -> EntryResult:
        get_config(giveaway_id)
        now = now or utc_now()

        async with self.locks.hold(giveaway_id):
            async with transactional(session):
                await giveaway_repo.lock_giveaway(session, giveaway_id)

                added = await giveaway_repo.increment_entry(
                    session,
                    user_id=user_id,
                    giveaway_id=giveaway_id,
                    entry_type=EntryType.FREE,
                    now=now,
                    cap=1,
                )
                if not added:
                    raise ValidationError("Free entry already claimed", code="ALREADY_CLAIMED")

                _, free, bonus, paid = await self._counters(session, user_id=user_id, giveaway_id=giveaway_id)

        return EntryResult(giveaway_id=giveaway_id, entry_type=EntryType.FREE, free=free, bonus=bonus, paid=paid)

    async def buy_entry(self, session: AsyncSession, *, user_id: int, giveaway_id: str, now: datetime | None = None) -> EntryResult:
        get_config(giveaway_id)
        now = now or utc_now()
        cost = self.settings.giveaway_entry_cost

        async with self.locks.hold(giveaway_id):
            async with transactional(session):
                await giveaway_repo.lock_giveaway(session, giveaway_id)

                _, free, _, _ = await self._counters(session, user_id=user_id, giveaway_id=giveaway_id)
                if free < 1:
                    raise ValidationError("Claim free entry first", code="NO_FREE_ENTRY")

                # raises InsufficientBalance
                balance = await LedgerService.debit(
                    session, user_id=user_id, amount=cost, reason=f"giveaway_entry:{giveaway_id}"
                )
                await giveaway_repo.increment_entry(
                    session,
                    user_id=user_id,
                    giveaway_id=giveaway_id,
                    entry_type=EntryType.PAID,
                    now=now,
                )
                _, free, bonus, paid = await self._counters(session, user_id=user_id, giveaway_id=giveaway_id)

        return EntryResult(
            giveaway_id=giveaway_id,
            entry_type=EntryType.PAID,
            free=free,
            bonus=bonus,
            paid=paid,
            credits_spent=cost,
            balance=balance,
        )

    async def add_paid_entry(self, session: AsyncSession, *, user_id: int, giveaway_id: str, now: datetime) -> None:
        """
        Paid entry bought through the store (the store already debited).

        Runs inside the caller's open transaction, which already holds the write lock,
        so only the row lock is taken here. Waiting on the in-process lock at this point
        could stall behind a draw that is itself waiting for this transaction.
        """
        get_config(giveaway_id)
        async with transactional(session):
            await giveaway_repo.lock_giveaway(session, giveaway_id)
            await giveaway_repo.increment_entry(
                session,
                user_id=user_id,
                giveaway_id=giveaway_id,
                entry_type=EntryType.PAID,
                now=now,
            )

    async def earn_bonus(self, session: AsyncSession, *, user_id: int, giveaway_id: str, now: datetime | None = None) -> EntryResult:
        get_config(giveaway_id)
        now = now or utc_now()
        cooldown = timedelta(hours=self.settings.giveaway_bonus_cooldown_hours)
        max_bonus = self.settings.giveaway_max_bonus_entries

        async with self.locks.hold(giveaway_id):
            async with transactional(session):
                await giveaway_repo.lock_giveaway(session, giveaway_id)

                counters, free, bonus, _ = await self._counters(session, user_id=user_id, giveaway_id=giveaway_id)
                if free < 1:
                    raise ValidationError("Claim free entry first", code="NO_FREE_ENTRY")
                if bonus >= max_bonus:
                    raise ValidationError("Maximum bonus entries earned", code="MAX_BONUS_ENTRIES")

                last = counters.get(EntryType.BONUS)
                if last is not None and last.updated_at + cooldown > now:
                    remaining = last.updated_at + cooldown - now
                    hours = max(1, int(remaining.total_seconds() // 3600) + 1)
                    raise ValidationError(
                        f"Next bonus entry available in {hours} hours",
                        code="BONUS_COOLDOWN",
                    )

                added = await giveaway_repo.increment_entry(
                    session,
                    user_id=user_id,
                    giveaway_id=giveaway_id,
                    entry_type=EntryType.BONUS,
                    now=now,
                    cap=max_bonus,
                )
                if not added:
                    raise ValidationError("Maximum bonus entries earned", code="MAX_BONUS_ENTRIES")

                _, free, bonus, paid = await self._counters(session, user_id=user_id, giveaway_id=giveaway_id)

        return EntryResult(
            giveaway_id=giveaway_id,
            entry_type=EntryType.BONUS,
            free=free,
            bonus=bonus,
            paid=paid,
            cooldown_ends_at=now + cooldown,
        )

    async def entries_for(self, session: AsyncSession, *, user_id: int, now: datetime | None = None) -> list[UserEntries]:
        now = now or utc_now()
        cooldown = timedelta(hours=self.settings.giveaway_bonus_cooldown_hours)
        rows = await giveaway_repo.list_user_entries(session, user_id=user_id)

        grouped: dict[str, dict[EntryType, GiveawayEntry]] = {}
        for r in rows:
            grouped.setdefault(r.giveaway_id, {})[EntryType(r.entry_type)] = r

        out: list[UserEntries] = []
        for gid, by_type in grouped.items():
            free = by_type.get(EntryType.FREE)
            bonus = by_type.get(EntryType.BONUS)
            paid = by_type.get(EntryType.PAID)

            bonus_count = bonus.entries_count if bonus else 0
            cooldown_end = (bonus.updated_at + cooldown) if bonus else None
            if cooldown_end is not None and cooldown_end <= now:
                cooldown_end = None

            out.append(
                UserEntries(
                    giveaway_id=gid,
                    free=free.entries_count if free else 0,
                    bonus=bonus_count,
                    paid=paid.entries_count if paid else 0,
                    can_earn_bonus=(
                        free is not None
                        and bonus_count < self.settings.giveaway_max_bonus_entries
                        and cooldown_end is None
                    ),
                    cooldown_ends_at=cooldown_end,
                )
            )
        return out

    # ---------------- draws ----------------

    async def run_draw(
        self,
        session: AsyncSession,
        *,
        giveaway_id: str,
        now: datetime | None = None,
        min_gap: timedelta | None = None,
        rng: random.Random | None = None,
    ) -> DrawOutcome:
        """
        Picks a winner weighted by ticket count, records the draw, archives and clears
        the entries and delivers the prize, all in one transaction.

        With `min_gap`, a draw younger than the gap makes this a no-op (skipped=True),
        so a scheduler firing twice in one window draws once.
        """
        config = get_config(giveaway_id)
        now = now or utc_now()
        rng = rng or default_rng()

        base = dict(
            giveaway_id=giveaway_id,
            giveaway_name=config.name,
            prize_type=config.prize_type,
            prize_value=config.prize_value,
            prize_description=config.prize_description,
        )

        async with self.locks.hold(giveaway_id):
            async with transactional(session):
                state = await giveaway_repo.lock_giveaway(session, giveaway_id)

                if min_gap is not None and state.last_draw_at is not None and now - state.last_draw_at <= min_gap:
                    log.info("draw skipped giveaway=%s last=%s", giveaway_id, state.last_draw_at)
                    return DrawOutcome(ok=False, skipped=True, error="too_soon", **base)

                entrants = await giveaway_repo.get_entrants(session, giveaway_id)
                if not entrants:
                    log.info("draw without participants giveaway=%s", giveaway_id)
                    return DrawOutcome(ok=False, error="no_participants", **base)

                total_entries = sum(e.total for e in entrants)
                roll = rng.random()
                winner = weighted_pick([(e, e.total) for e in entrants], roll)

                draw = await giveaway_repo.save_draw(
                    session,
                    GiveawayDraw(
                        giveaway_id=giveaway_id,
                        winner_user_id=winner.user_id,
                        total_participants=len(entrants),
                        total_entries=total_entries,
                        prize_type=config.prize_type,
                        prize_value=config.prize_value,
                        prize_delivered=False,
                        roll=f"{roll:.6f}",
                        created_at=now,
                    ),
                )

                archived = await giveaway_repo.archive_and_clear(session, giveaway_id=giveaway_id, draw_id=draw.id)

                request: FulfillmentRequest | None = None
                if config.prize_type == PrizeType.CREDITS:
                    await EarnEventRecorder.record(
                        session,
                        user_id=winner.user_id,
                        event_type=EarnEventType.GIVEAWAY_WIN,
                        amount=config.prize_value,
                        dedup_key=giveaway_win_key(draw.id),
                        metadata={"reason": f"Won {config.name}", "draw_id": draw.id},
                        now=now,
                    )
                else:
                    redemption = await store_repo.add_redemption(
                        session,
                        Redemption(
                            user_id=winner.user_id,
                            item_id=None,
                            credits_spent=0,
                            status=RedemptionStatus.PENDING,
                            delivery_email=winner.email,
                            metadata_json=json.dumps({
                                "source": "giveaway_win",
                                "giveaway_name": config.name,
                                "gift_card_value": config.prize_value,
                                "draw_id": draw.id,
                            }),
                            created_at=now,
                        ),
                    )
                    draw.redemption_id = redemption.id
                    request = FulfillmentRequest(
                        redemption_id=redemption.id,
                        user_id=winner.user_id,
                        delivery_email=winner.email,
                        description=config.prize_description,
                        value=config.prize_value,
                        source="giveaway_win",
                    )

                draw.prize_delivered = True
                await session.flush()

                await giveaway_repo.set_last_draw_at(session, giveaway_id, now)
                await audit_repo.log_action(
                    session,
                    action="giveaway_draw",
                    target_type="giveaway_draw",
                    target_id=draw.id,
                    payload={
                        "giveaway_id": giveaway_id,
                        "winner_id": winner.user_id,
                        "total_participants": len(entrants),
                        "total_entries": total_entries,
                        "archived_rows": archived,
                        "prize_type": config.prize_type.value,
                        "prize_value": config.prize_value,
                        "roll": draw.roll,
                    },
                )

        log.info(
            "draw done giveaway=%s draw=%s winner=%s participants=%s entries=%s",
            giveaway_id, draw.id, winner.user_id, len(entrants), total_entries,
        )
        return DrawOutcome(
            ok=True,
            draw_id=draw.id,
            winner_user_id=winner.user_id,
            winner_email=winner.email,
            winner_entries=winner.total,
            total_participants=len(entrants),
            total_entries=total_entries,
            prize_delivered=True,
            fulfillment=request,
            **base,
        )

    async def draw_history(self, session: AsyncSession, *, limit: int = 20) -> list[dict]:
        rows = await giveaway_repo.get_draw_history(session, limit=limit)
        out: list[dict] = []
        for draw, email in rows:
            config = GIVEAWAY_CONFIGS.get(draw.giveaway_id)
            out.append({
                "draw_id": draw.id,
                "giveaway_id": draw.giveaway_id,
                "giveaway_name": config.name if config else draw.giveaway_id,
                "winner_email": mask_email(email),
                "total_participants": draw.total_participants,
                "total_entries": draw.total_entries,
                "prize_type": PrizeType(draw.prize_type).value,
                "prize_value": draw.prize_value,
                "prize_delivered": draw.prize_delivered,
                "created_at": draw.created_at,
            })
        return out

    async def stats(self, session: AsyncSession, *, giveaway_id: str) -> GiveawayStats:
        config = get_config(giveaway_id)
        entrants = await giveaway_repo.get_entrants(session, giveaway_id)
        return GiveawayStats(
            giveaway_id=giveaway_id,
            name=config.name,
            total_participants=len(entrants),
            total_entries=sum(e.total for e in entrants),
            draws=await giveaway_repo.count_draws(session, giveaway_id),
            last_draw_at=await giveaway_repo.get_last_draw_at(session, giveaway_id),
        )
