# earnloop/services/ledger.py
from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.database.repo import balance_repo
from earnloop.database.repo.balance_repo import BalanceRow
from earnloop.errors import InsufficientBalance, InsufficientTokens, NotFound, ValidationError

log = logging.getLogger(__name__)

# public name for what every ledger call returns
BalanceSnapshot = BalanceRow


class LedgerService:
    """
    The only writer of balances. Every mutation is a single conditional UPDATE
    relative to the stored value, so concurrent spends cannot both pass a stale check.

    The ledger never commits: callers wrap it in `transactional(session)` together
    with the record that justifies the mutation.
    """

    @staticmethod
    async def open_balance(session: AsyncSession, *, user_id: int) -> BalanceSnapshot:
        return await balance_repo.create_balance(session, user_id=user_id)

    @staticmethod
    async def get_balance(session: AsyncSession, *, user_id: int) -> BalanceSnapshot:
        row = await balance_repo.get_balance(session, user_id)
        if row is None:
            raise NotFound(f"No balance for user {user_id}", code="USER_NOT_FOUND")
        return row

    @staticmethod
    async def credit(session: AsyncSession, *, user_id: int, amount: int, reason: str) -> BalanceSnapshot:
        amount = int(amount)
        if amount <= 0:
            raise ValidationError("Credit amount must be positive", code="INVALID_AMOUNT")

        row = await balance_repo.add_credits(session, user_id=user_id, amount=amount)
        if row is None:
            raise NotFound(f"No balance for user {user_id}", code="USER_NOT_FOUND")

        log.debug("credit user=%s amount=%s reason=%s balance=%s", user_id, amount, reason, row.credits_balance)
        return row

    @staticmethod
    async def debit(session: AsyncSession, *, user_id: int, amount: int, reason: str) -> BalanceSnapshot:
        amount = int(amount)
        if amount <= 0:
            raise ValidationError("Debit amount must be positive", code="INVALID_AMOUNT")

        row = await balance_repo.take_credits(session, user_id=user_id, amount=amount)
        if row is None:
            # no row matched: either the account is missing or it cannot cover the amount
            current = await balance_repo.get_balance(session, user_id)
            if current is None:
                raise NotFound(f"No balance for user {user_id}", code="USER_NOT_FOUND")
            raise InsufficientBalance(
                f"Insufficient credits: need {amount}, have {current.credits_balance}",
            )

        log.debug("debit user=%s amount=%s reason=%s balance=%s", user_id, amount, reason, row.credits_balance)
        return row

    @staticmethod
    async def adjust_tokens(session: AsyncSession, *, user_id: int, delta: int, reason: str) -> BalanceSnapshot:
        delta = int(delta)
        if delta == 0:
            raise ValidationError("Token delta must be non-zero", code="INVALID_AMOUNT")

        row = await balance_repo.shift_tokens(session, user_id=user_id, delta=delta)
        if row is None:
            current = await balance_repo.get_balance(session, user_id)
            if current is None:
                raise NotFound(f"No balance for user {user_id}", code="USER_NOT_FOUND")
            raise InsufficientTokens(f"Insufficient tokens: need {-delta}, have {current.tokens}")

        log.debug("tokens user=%s delta=%s reason=%s tokens=%s", user_id, delta, reason, row.tokens)
        return row
