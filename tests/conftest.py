from __future__ import annotations

from dataclasses import replace

import pytest

from earnloop.config import Settings
from earnloop.database import Database
from earnloop.database.models import StoreItem, StoreItemType
from earnloop.database.tx import transactional
from earnloop.handlers.common import AppContext
from earnloop.services.accounts import AccountService
from earnloop.services.ledger import LedgerService

from tests.helpers import RecordingFulfillment


@pytest.fixture
def settings(tmp_path) -> Settings:
    return replace(
        Settings(),
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'earnloop_test.db'}",
        environment="development",
    )


@pytest.fixture
async def db(settings):
    database = Database(settings.database_url)
    await database.init_models()
    yield database
    await database.close()


@pytest.fixture
async def session(db):
    async with db.session() as s:
        yield s


@pytest.fixture
def fulfillment() -> RecordingFulfillment:
    return RecordingFulfillment()


@pytest.fixture
def ctx(db, settings, fulfillment) -> AppContext:
    return AppContext(db=db, settings=settings, fulfillment=fulfillment)


@pytest.fixture
def make_user(db):
    async def _make(email: str, *, credits: int = 0, tokens: int = 0) -> int:
        async with db.session() as s:
            user = await AccountService.open_account(s, email=email)
            async with transactional(s):
                if credits:
                    await LedgerService.credit(s, user_id=user.id, amount=credits, reason="test_seed")
                if tokens:
                    await LedgerService.adjust_tokens(s, user_id=user.id, delta=tokens, reason="test_seed")
            return user.id

    return _make


@pytest.fixture
def make_item(db):
    async def _make(
        name: str,
        *,
        cost: int,
        item_type: StoreItemType,
        max_per_user: int | None = None,
        duration_days: int | None = None,
        tokens_granted: int = 0,
        giveaway_id: str | None = None,
    ) -> int:
        async with db.session() as s:
            item = StoreItem(
                name=name,
                credits_cost=cost,
                item_type=item_type,
                category="test",
                max_per_user=max_per_user,
                duration_days=duration_days,
                tokens_granted=tokens_granted,
                giveaway_id=giveaway_id,
                is_active=True,
                sort_order=0,
            )
            s.add(item)
            await s.commit()
            return item.id

    return _make
