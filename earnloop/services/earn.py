# earnloop/services/earn.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.config import Settings
from earnloop.database.models import EarnEvent, EarnEventType
from earnloop.database.repo import earn_events_repo, store_repo
from earnloop.database.tx import transactional
from earnloop.errors import AlreadyRecorded, ValidationError
from earnloop.services.ledger import BalanceSnapshot, LedgerService
from earnloop.utils.dates import local_date, local_day_start, utc_now

log = logging.getLogger(__name__)


def checkin_key(user_id: int, day: date) -> str:
    return f"checkin:{user_id}:{day.isoformat()}"


def learn_module_key(user_id: int, module_id: str, day: date) -> str:
    return f"learn:{user_id}:{module_id}:{day.isoformat()}"


def ad_callback_key(transaction_id: str) -> str:
    return f"ad:{transaction_id}"


def giveaway_win_key(draw_id: int) -> str:
    return f"giveaway:{draw_id}"


def mystery_bag_key(open_id: int) -> str:
    return f"bag:{open_id}"


# capped per day or per draw; only the owning service builds their keys
SCOPED_EVENT_TYPES = frozenset({
    EarnEventType.CHECKIN,
    EarnEventType.LEARN_MODULE,
    EarnEventType.GIVEAWAY_WIN,
    EarnEventType.MYSTERY_BAG,
})


@dataclass(frozen=True, slots=True)
class RecordResult:
    applied: bool
    event: EarnEvent | None
    balance: BalanceSnapshot | None = None


class EarnEventRecorder:
    @staticmethod
    async def record(
        session: AsyncSession,
        *,
        user_id: int,
        event_type: EarnEventType,
        amount: int,
        dedup_key: str | None = None,
        metadata: dict | None = None,
        device_id: int | None = None,
        ip: str | None = None,
        now: datetime | None = None,
    ) -> RecordResult:
        """
        Records a reward action at most once per (event_type, dedup_key) and credits the ledger.

        The unique constraint decides, at insert time. A duplicate returns applied=False
        with the stored event and leaves the ledger untouched.
        """
        amount = int(amount)
        if amount <= 0:
            raise ValidationError("Earn amount must be positive", code="INVALID_AMOUNT")
        if event_type in SCOPED_EVENT_TYPES and not dedup_key:
            raise ValidationError(
                f"{event_type.value} events require a dedup key", code="MISSING_DEDUP_KEY"
            )

        event = EarnEvent(
            user_id=user_id,
            device_id=device_id,
            event_type=event_type,
            credits_amount=amount,
            dedup_key=dedup_key,
            metadata_json=json.dumps(metadata) if metadata else None,
            ip_address=ip,
            created_at=now or utc_now(),
        )

        async with transactional(session):
            inserted = await earn_events_repo.insert_event_once(session, event)
            if not inserted:
                existing = None
                if dedup_key is not None:
                    existing = await earn_events_repo.get_by_dedup_key(
                        session, event_type=event_type, dedup_key=dedup_key
                    )
                log.info("earn duplicate type=%s key=%s user=%s", event_type.value, dedup_key, user_id)
                return RecordResult(applied=False, event=existing)

            balance = await LedgerService.credit(
                session,
                user_id=user_id,
                amount=amount,
                reason=event_type.value,
            )

        return RecordResult(applied=True, event=event, balance=balance)


@dataclass(frozen=True, slots=True)
class AdRewardResult:
    credited: bool
    duplicate: bool
    credits_earned: int
    base_reward: int
    boost_applied: bool
    ads_today: int
    balance: BalanceSnapshot | None


@dataclass(frozen=True, slots=True)
class EarnStatus:
    today_earned: int
    total_earned: int
    ads_today: int
    checked_in_today: bool


class EarnService:
    @staticmethod
    async def rewarded_ad(
        session: AsyncSession,
        *,
        settings: Settings,
        user_id: int,
        transaction_id: str,
        ad_unit_id: str | None = None,
        device_id: int | None = None,
        ip: str | None = None,
        now: datetime | None = None,
    ) -> AdRewardResult:
        """
        Server-to-server ad callback. The network's transaction id is the dedup key,
        so repeated deliveries credit once.
        """
        if not transaction_id:
            raise ValidationError("Missing ad transaction id", code="INVALID_AD_DATA")

        now = now or utc_now()
        day_start = local_day_start(local_date(now, settings.timezone), settings.timezone)

        boost = await store_repo.has_active_boost(session, user_id=user_id, now=now)
        amount = settings.ad_reward * (settings.boost_multiplier if boost else 1)

        res = await EarnEventRecorder.record(
            session,
            user_id=user_id,
            event_type=EarnEventType.REWARDED_AD,
            amount=amount,
            dedup_key=ad_callback_key(transaction_id),
            metadata={"ad_unit_id": ad_unit_id, "transaction_id": transaction_id},
            device_id=device_id,
            ip=ip,
            now=now,
        )

        ads_today = await earn_events_repo.count_since_by_type(
            session,
            user_id=user_id,
            event_type=EarnEventType.REWARDED_AD,
            since=day_start,
        )

        return AdRewardResult(
            credited=res.applied,
            duplicate=not res.applied,
            credits_earned=amount if res.applied else 0,
            base_reward=settings.ad_reward,
            boost_applied=boost,
            ads_today=ads_today,
            balance=res.balance,
        )

    @staticmethod
    async def learn_module(
        session: AsyncSession,
        *,
        settings: Settings,
        user_id: int,
        module_id: str,
        quiz_score: int | None,
        today: date,
        device_id: int | None = None,
        ip: str | None = None,
        now: datetime | None = None,
    ) -> RecordResult:
        if not module_id:
            raise ValidationError("Module ID required", code="MISSING_MODULE_ID")
        if quiz_score is not None and quiz_score < settings.learn_min_score:
            raise ValidationError(
                f"Quiz not passed. Score at least {settings.learn_min_score}% to earn credits.",
                code="QUIZ_FAILED",
            )

        res = await EarnEventRecorder.record(
            session,
            user_id=user_id,
            event_type=EarnEventType.LEARN_MODULE,
            amount=settings.learn_reward,
            dedup_key=learn_module_key(user_id, module_id, today),
            metadata={"module_id": module_id, "quiz_score": quiz_score},
            device_id=device_id,
            ip=ip,
            now=now,
        )
        if not res.applied:
            raise AlreadyRecorded("Module already completed today", code="MODULE_ALREADY_COMPLETED")
        return res

    @staticmethod
    async def status(
        session: AsyncSession, *, user_id: int, today: date, timezone: str = "UTC"
    ) -> EarnStatus:
        # today is a date in `timezone`; created_at is naive UTC
        day_start = local_day_start(today, timezone)

        today_earned = await earn_events_repo.sum_since(session, user_id=user_id, since=day_start)
        total_earned = await earn_events_repo.sum_since(session, user_id=user_id)
        ads_today = await earn_events_repo.count_since_by_type(
            session,
            user_id=user_id,
            event_type=EarnEventType.REWARDED_AD,
            since=day_start,
        )
        checked_in = await earn_events_repo.get_by_dedup_key(
            session,
            event_type=EarnEventType.CHECKIN,
            dedup_key=checkin_key(user_id, today),
        )

        return EarnStatus(
            today_earned=today_earned,
            total_earned=total_earned,
            ads_today=ads_today,
            checked_in_today=checked_in is not None,
        )
