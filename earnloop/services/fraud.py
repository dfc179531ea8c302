# earnloop/services/fraud.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.config import Settings
from earnloop.database.models import FlagSeverity
from earnloop.database.repo import earn_events_repo, fraud_repo, users
from earnloop.utils.dates import utc_now

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FraudCheckResult:
    allowed: bool
    risk_score: int
    reason: str | None = None
    banned: bool = False


class FraudGate:
    DATACENTER_RISK = 30
    DEVICE_BLOCK_THRESHOLD = 50
    VELOCITY_RISK = 20
    VELOCITY_DEVICE_PENALTY = 10
    BANNED_RISK = 100

    @staticmethod
    def is_datacenter_ip(ip: str | None, prefixes: tuple[str, ...]) -> bool:
        if not ip:
            return False
        return any(ip.startswith(p) for p in prefixes)

    @staticmethod
    async def register_device(
        session: AsyncSession,
        *,
        user_id: int,
        fingerprint: str,
        platform: str | None = None,
        ip: str | None = None,
    ) -> int:
        return await fraud_repo.upsert_device(
            session,
            user_id=user_id,
            fingerprint=fingerprint,
            platform=platform,
            ip=ip,
        )

    @staticmethod
    async def check_eligibility(
        session: AsyncSession,
        *,
        settings: Settings,
        user_id: int,
        device_id: int | None,
        ip: str | None,
        now: datetime | None = None,
    ) -> FraudCheckResult:
        """
        Additive risk scoring before any earn event is recorded.
        Writes flags and device risk (they must survive a rejection); never touches balances.
        """
        now = now or utc_now()

        # terminal for the account, regardless of score
        if await users.is_banned(session, user_id):
            log.warning("fraud: banned account user=%s", user_id)
            return FraudCheckResult(
                allowed=False,
                risk_score=FraudGate.BANNED_RISK,
                reason="Account suspended",
                banned=True,
            )

        risk = 0

        if FraudGate.is_datacenter_ip(ip, settings.datacenter_ip_prefixes):
            risk += FraudGate.DATACENTER_RISK
            await fraud_repo.add_flag(
                session,
                user_id=user_id,
                device_id=device_id,
                flag_type="datacenter_ip",
                severity=FlagSeverity.MEDIUM,
                reason="Earn attempt from datacenter/VPN IP",
                metadata={"ip": ip},
            )
            log.warning("fraud: datacenter ip user=%s ip=%s", user_id, ip)

        if device_id is not None:
            device = await fraud_repo.get_device(session, device_id)
            if device is not None:
                risk += int(device.risk_score or 0)
                if device.is_blocked or device.risk_score >= FraudGate.DEVICE_BLOCK_THRESHOLD:
                    log.warning("fraud: device flagged user=%s device=%s risk=%s", user_id, device_id, device.risk_score)
                    return FraudCheckResult(
                        allowed=False,
                        risk_score=risk,
                        reason="Device flagged for suspicious activity",
                    )

        since = now - timedelta(minutes=settings.velocity_window_minutes)
        recent = await earn_events_repo.count_since(session, user_id=user_id, since=since)
        if recent >= settings.velocity_max_events:
            risk += FraudGate.VELOCITY_RISK
            await fraud_repo.add_flag(
                session,
                user_id=user_id,
                device_id=device_id,
                flag_type="velocity_abuse",
                severity=FlagSeverity.HIGH,
                reason="Too many earn events in short time",
                metadata={"recent_earns": recent},
            )
            if device_id is not None:
                await fraud_repo.increment_risk(
                    session,
                    device_id=device_id,
                    amount=FraudGate.VELOCITY_DEVICE_PENALTY,
                )
            log.warning("fraud: velocity user=%s recent=%s", user_id, recent)
            return FraudCheckResult(
                allowed=False,
                risk_score=risk,
                reason="Too many requests. Please try again later.",
            )

        return FraudCheckResult(allowed=True, risk_score=risk)
