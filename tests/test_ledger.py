from __future__ import annotations

import asyncio

import pytest

from earnloop.database.tx import transactional
from earnloop.errors import InsufficientBalance, InsufficientTokens, NotFound, ValidationError
from earnloop.services.ledger import LedgerService


async def _debit_once(db, user_id: int, amount: int) -> bool:
    async with db.session() as s:
        try:
            async with transactional(s):
                await LedgerService.debit(s, user_id=user_id, amount=amount, reason="test")
        except InsufficientBalance:
            return False
    return True


async def test_concurrent_debits_never_overdraw(db, make_user):
    uid = await make_user("race@example.com", credits=500)

    results = await asyncio.gather(*(_debit_once(db, uid, 100) for _ in range(10)))

    assert results.count(True) == 5
    async with db.session() as s:
        b = await LedgerService.get_balance(s, user_id=uid)
    assert b.credits_balance == 0
    assert b.lifetime_spent == 500


async def test_debit_insufficient_leaves_balance(session, make_user):
    uid = await make_user("poor@example.com", credits=40)

    with pytest.raises(InsufficientBalance) as exc:
        async with transactional(session):
            await LedgerService.debit(session, user_id=uid, amount=50, reason="test")

    assert exc.value.code == "INSUFFICIENT_CREDITS"
    b = await LedgerService.get_balance(session, user_id=uid)
    assert b.credits_balance == 40


async def test_credit_tracks_lifetime_earned(session, make_user):
    uid = await make_user("earner@example.com")

    async with transactional(session):
        await LedgerService.credit(session, user_id=uid, amount=30, reason="test")
        b = await LedgerService.credit(session, user_id=uid, amount=20, reason="test")

    assert b.credits_balance == 50
    assert b.lifetime_earned == 50


async def test_non_positive_amounts_rejected(session, make_user):
    uid = await make_user("zero@example.com", credits=10)

    with pytest.raises(ValidationError):
        await LedgerService.credit(session, user_id=uid, amount=0, reason="test")
    with pytest.raises(ValidationError):
        await LedgerService.debit(session, user_id=uid, amount=-5, reason="test")
    with pytest.raises(ValidationError):
        await LedgerService.adjust_tokens(session, user_id=uid, delta=0, reason="test")


async def test_tokens_cannot_go_negative(session, make_user):
    uid = await make_user("tokens@example.com", tokens=20)

    with pytest.raises(InsufficientTokens):
        async with transactional(session):
            await LedgerService.adjust_tokens(session, user_id=uid, delta=-21, reason="test")

    async with transactional(session):
        b = await LedgerService.adjust_tokens(session, user_id=uid, delta=-20, reason="test")
    assert b.tokens == 0


async def test_unknown_user(session):
    with pytest.raises(NotFound):
        await LedgerService.get_balance(session, user_id=9999)
    with pytest.raises(NotFound):
        async with transactional(session):
            await LedgerService.debit(session, user_id=9999, amount=1, reason="test")


async def test_interleaved_credits_and_debits_balance_out(db, make_user):
    uid = await make_user("mixed@example.com", credits=200)

    async def credit_once() -> None:
        async with db.session() as s:
            async with transactional(s):
                await LedgerService.credit(s, user_id=uid, amount=30, reason="test")

    ops = [_debit_once(db, uid, 50) for _ in range(10)] + [credit_once() for _ in range(5)]
    results = await asyncio.gather(*ops)

    debited = sum(1 for r in results[:10] if r)
    async with db.session() as s:
        b = await LedgerService.get_balance(s, user_id=uid)
    assert b.credits_balance == 200 + 5 * 30 - debited * 50
    assert b.credits_balance >= 0
