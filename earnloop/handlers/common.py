# earnloop/handlers/common.py
from __future__ import annotations

import functools
import logging
import random
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.config import Settings
from earnloop.database.session import Database
from earnloop.errors import BannedAccount, EconomyError, FraudBlocked, PersistenceError
from earnloop.services.fulfillment import GiftCardFulfillment, LoggingFulfillment
from earnloop.services.giveaway import GiveawayService
from earnloop.services.ledger import BalanceSnapshot
from earnloop.services.store import StoreService
from earnloop.utils.dt import TimeProvider
from earnloop.utils.locks import KeyedLocks

log = logging.getLogger(__name__)


@dataclass
class AppContext:
    """
    Everything a handler needs, built once at startup and passed in explicitly.
    `rng` stays None in production (services fall back to SystemRandom).
    """
    db: Database
    settings: Settings
    fulfillment: GiftCardFulfillment = field(default_factory=LoggingFulfillment)
    locks: KeyedLocks = field(default_factory=KeyedLocks)
    rng: random.Random | None = None
    giveaways: GiveawayService = field(init=False)
    store: StoreService = field(init=False)
    time: TimeProvider = field(init=False)

    def __post_init__(self) -> None:
        self.giveaways = GiveawayService(self.settings, self.locks)
        self.store = StoreService(self.giveaways)
        self.time = TimeProvider(self.settings.timezone)


@asynccontextmanager
async def session_scope(db: Database) -> AsyncIterator[AsyncSession]:
    """
    One session per request. Commits on success and rolls back on error.
    Raw SQLAlchemy failures surface as PersistenceError.
    """
    async with db.session() as session:
        try:
            yield session
            await session.commit()
        except EconomyError:
            await session.rollback()
            raise
        except SQLAlchemyError as e:
            await session.rollback()
            log.exception("storage failure")
            raise PersistenceError("Temporary storage failure, please retry") from e
        except Exception:
            await session.rollback()
            raise


def ok(data: Any = None) -> dict:
    return {"success": True, "data": data}


def error(exc: EconomyError) -> dict:
    return {
        "success": False,
        "status": exc.status,
        "error": {"message": exc.message, "code": exc.code},
    }


def envelope(fn: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[dict]]:
    """
    Turns a handler's return value into the success envelope and any
    EconomyError into the error envelope. Nothing escapes to the caller.
    """

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs) -> dict:
        try:
            data = await fn(*args, **kwargs)
        except (FraudBlocked, BannedAccount) as e:
            log.warning("%s rejected: %s (%s)", fn.__name__, e.message, e.code)
            return error(e)
        except EconomyError as e:
            log.info("%s failed: %s (%s)", fn.__name__, e.message, e.code)
            return error(e)
        except Exception:
            log.exception("%s crashed", fn.__name__)
            return error(EconomyError("Internal Server Error"))
        return ok(data)

    return wrapper


def balance_data(b: BalanceSnapshot | None) -> dict | None:
    if b is None:
        return None
    return {
        "credits_balance": b.credits_balance,
        "tokens": b.tokens,
        "lifetime_earned": b.lifetime_earned,
        "lifetime_spent": b.lifetime_spent,
    }


def iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt is not None else None
