# earnloop/services/spin.py
from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.config import Settings
from earnloop.database.models import JackpotSpin
from earnloop.database.repo import jackpot_repo
from earnloop.database.tx import transactional
from earnloop.errors import ValidationError
from earnloop.services.ledger import LedgerService
from earnloop.services.weighted import default_rng, weighted_pick
from earnloop.utils.dates import utc_now
from earnloop.utils.text import mask_email

log = logging.getLogger(__name__)


# (multiplier, weight); weights sum to 100
MULTIPLIERS: tuple[tuple[float, int], ...] = (
    (0.0, 35),    # lose all
    (0.25, 20),
    (0.5, 15),
    (1.0, 10),    # break even
    (1.5, 8),
    (2.0, 6),
    (3.0, 3),
    (5.0, 2),
    (10.0, 1),
)
TOP_MULTIPLIER = max(m for m, _ in MULTIPLIERS)
BIG_WIN_MULTIPLIER = 5.0


@dataclass(frozen=True, slots=True)
class SpinResult:
    bet_amount: int
    multiplier: float
    win_amount: int
    jackpot_bonus: int
    net_result: int
    is_jackpot: bool
    new_tokens: int
    pool_tokens: int
    spin_id: int
    message: str


@dataclass(frozen=True, slots=True)
class JackpotInfo:
    pool_tokens: int
    total_contributed: int
    total_won: int
    last_winner: dict | None
    user_tokens: int
    min_bet: int
    max_bet: int
    recent_big_wins: list[dict]
    my_history: list[dict]


def _message(multiplier: float, is_jackpot: bool, bonus: int) -> str:
    if is_jackpot:
        return f"JACKPOT! You hit {multiplier:g}x and won {bonus} bonus tokens!"
    if multiplier == 0:
        return "Better luck next time!"
    if multiplier < 1:
        return f"Got {multiplier:g}x - partial return"
    if multiplier == 1:
        return "Break even!"
    return f"{multiplier:g}x WIN!"


class JackpotService:
    @staticmethod
    async def spin(
        session: AsyncSession,
        *,
        settings: Settings,
        user_id: int,
        bet_amount: int,
        rng: random.Random | None = None,
        now: datetime | None = None,
    ) -> SpinResult:
        """
        Debit, draw, pool contribution, payout and spin record in one transaction.
        An interrupted spin leaves no trace: the stake is never taken without an outcome.
        """
        if bet_amount is None or not (settings.jackpot_min_bet <= int(bet_amount) <= settings.jackpot_max_bet):
            raise ValidationError(
                f"Bet must be between {settings.jackpot_min_bet} and {settings.jackpot_max_bet} tokens",
                code="INVALID_BET",
            )
        bet = int(bet_amount)
        rng = rng or default_rng()
        now = now or utc_now()

        async with transactional(session):
            await jackpot_repo.ensure_pool(session, seed_tokens=settings.jackpot_seed_tokens)

            # stake first; raises InsufficientTokens
            await LedgerService.adjust_tokens(session, user_id=user_id, delta=-bet, reason="jackpot_bet")

            table_roll = rng.random()
            jackpot_roll = rng.random()

            multiplier = float(weighted_pick(MULTIPLIERS, table_roll))
            is_jackpot = jackpot_roll < settings.jackpot_chance
            if is_jackpot:
                multiplier = TOP_MULTIPLIER

            win_amount = math.floor(bet * multiplier)
            bonus = 0

            if is_jackpot:
                pool_tokens = await jackpot_repo.lock_pool_tokens(session)
                bonus = math.floor(pool_tokens * settings.jackpot_pool_share)
                if bonus > 0:
                    paid = await jackpot_repo.pay_out(
                        session,
                        amount=bonus,
                        winner_id=user_id,
                        total_amount=win_amount + bonus,
                        now=now,
                    )
                    if not paid:
                        bonus = 0

            total_win = win_amount + bonus
            net = total_win - bet

            if net < 0:
                contribution = math.floor(-net * settings.jackpot_contribution)
                if contribution > 0:
                    await jackpot_repo.contribute(session, amount=contribution)

            if total_win > 0:
                balance = await LedgerService.adjust_tokens(
                    session, user_id=user_id, delta=total_win, reason="jackpot_win"
                )
            else:
                balance = await LedgerService.get_balance(session, user_id=user_id)

            spin = await jackpot_repo.record_spin(
                session,
                JackpotSpin(
                    user_id=user_id,
                    bet_amount=bet,
                    multiplier=multiplier,
                    win_amount=total_win,
                    jackpot_bonus=bonus,
                    net_result=net,
                    is_jackpot=is_jackpot,
                    roll=f"{table_roll:.6f}:{jackpot_roll:.6f}",
                    created_at=now,
                ),
            )

            pool_tokens_after = await jackpot_repo.get_pool_tokens(session)

        if is_jackpot:
            log.info("jackpot hit user=%s bonus=%s total=%s", user_id, bonus, total_win)
        elif multiplier >= BIG_WIN_MULTIPLIER:
            log.info("jackpot big win user=%s x%s win=%s", user_id, multiplier, total_win)

        return SpinResult(
            bet_amount=bet,
            multiplier=multiplier,
            win_amount=total_win,
            jackpot_bonus=bonus,
            net_result=net,
            is_jackpot=is_jackpot,
            new_tokens=balance.tokens,
            pool_tokens=pool_tokens_after,
            spin_id=spin.id,
            message=_message(multiplier, is_jackpot, bonus),
        )

    @staticmethod
    async def info(session: AsyncSession, *, settings: Settings, user_id: int) -> JackpotInfo:
        pool = await jackpot_repo.get_pool(session)
        balance = await LedgerService.get_balance(session, user_id=user_id)
        wins = await jackpot_repo.recent_big_wins(session, min_multiplier=BIG_WIN_MULTIPLIER)
        history = await jackpot_repo.user_history(session, user_id=user_id)

        last_winner = None
        if pool is not None and pool.last_winner_id is not None:
            last_winner = {
                "user_id": pool.last_winner_id,
                "amount": pool.last_amount,
                "won_at": pool.last_won_at,
            }

        return JackpotInfo(
            pool_tokens=pool.pool_tokens if pool else settings.jackpot_seed_tokens,
            total_contributed=pool.total_contributed if pool else 0,
            total_won=pool.total_won if pool else 0,
            last_winner=last_winner,
            user_tokens=balance.tokens,
            min_bet=settings.jackpot_min_bet,
            max_bet=settings.jackpot_max_bet,
            recent_big_wins=[
                {
                    "email": mask_email(email),
                    "multiplier": float(s.multiplier),
                    "win_amount": s.win_amount,
                    "bet_amount": s.bet_amount,
                    "created_at": s.created_at,
                }
                for s, email in wins
            ],
            my_history=[
                {
                    "bet_amount": s.bet_amount,
                    "multiplier": float(s.multiplier),
                    "win_amount": s.win_amount,
                    "net_result": s.net_result,
                    "is_jackpot": s.is_jackpot,
                    "created_at": s.created_at,
                }
                for s in history
            ],
        )
