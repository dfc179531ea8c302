# earnloop/services/mystery_bag.py
from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.config import Settings
from earnloop.database.models import EarnEventType, MysteryBagOpen
from earnloop.database.tx import transactional
from earnloop.services.earn import EarnEventRecorder, mystery_bag_key
from earnloop.services.ledger import LedgerService
from earnloop.services.weighted import default_rng, weighted_pick
from earnloop.utils.dates import utc_now

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BagPrize:
    kind: str  # "tokens" | "credits"
    amount: int


# (prize, weight); weights sum to 100
PRIZES: tuple[tuple[BagPrize, int], ...] = (
    (BagPrize("tokens", 0), 25),
    (BagPrize("tokens", 10), 30),
    (BagPrize("tokens", 25), 20),
    (BagPrize("tokens", 50), 12),
    (BagPrize("credits", 25), 9),
    (BagPrize("tokens", 250), 2),
    (BagPrize("credits", 100), 2),
)


@dataclass(frozen=True, slots=True)
class MysteryBagResult:
    open_id: int
    tokens_spent: int
    prize: BagPrize
    tokens: int
    credits_balance: int


class MysteryBagService:
    @staticmethod
    async def open(
        session: AsyncSession,
        *,
        settings: Settings,
        user_id: int,
        rng: random.Random | None = None,
        now: datetime | None = None,
    ) -> MysteryBagResult:
        rng = rng or default_rng()
        now = now or utc_now()
        cost = settings.mystery_bag_cost

        async with transactional(session):
            # raises InsufficientTokens
            balance = await LedgerService.adjust_tokens(session, user_id=user_id, delta=-cost, reason="mystery_bag")

            roll = rng.random()
            prize = weighted_pick(PRIZES, roll)

            row = MysteryBagOpen(
                user_id=user_id,
                tokens_spent=cost,
                prize_kind=prize.kind,
                prize_amount=prize.amount,
                roll=f"{roll:.6f}",
                created_at=now,
            )
            session.add(row)
            await session.flush()

            if prize.amount > 0:
                if prize.kind == "tokens":
                    balance = await LedgerService.adjust_tokens(
                        session, user_id=user_id, delta=prize.amount, reason="mystery_bag_prize"
                    )
                else:
                    rec = await EarnEventRecorder.record(
                        session,
                        user_id=user_id,
                        event_type=EarnEventType.MYSTERY_BAG,
                        amount=prize.amount,
                        dedup_key=mystery_bag_key(row.id),
                        metadata={"open_id": row.id},
                        now=now,
                    )
                    balance = rec.balance or balance

        log.debug("mystery bag user=%s prize=%s:%s", user_id, prize.kind, prize.amount)
        return MysteryBagResult(
            open_id=row.id,
            tokens_spent=cost,
            prize=prize,
            tokens=balance.tokens,
            credits_balance=balance.credits_balance,
        )
