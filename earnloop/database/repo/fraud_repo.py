# earnloop/database/repo/fraud_repo.py
from __future__ import annotations

import json

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.database.models import Device, FlagSeverity, FraudFlag
from earnloop.database.tx import upsert


async def get_device(session: AsyncSession, device_id: int) -> Device | None:
    res = await session.execute(
        select(Device)
        .where(Device.id == device_id)
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def increment_risk(session: AsyncSession, *, device_id: int, amount: int) -> None:
    # relative to the stored value; survives restarts and other instances
    await session.execute(
        update(Device)
        .where(Device.id == device_id)
        .values(risk_score=Device.risk_score + amount)
        .execution_options(synchronize_session=False)
    )


async def add_flag(
    session: AsyncSession,
    *,
    user_id: int,
    device_id: int | None,
    flag_type: str,
    severity: FlagSeverity,
    reason: str,
    metadata: dict | None = None,
) -> None:
    session.add(
        FraudFlag(
            user_id=user_id,
            device_id=device_id,
            flag_type=flag_type,
            severity=severity,
            reason=reason,
            metadata_json=json.dumps(metadata) if metadata else None,
        )
    )
    await session.flush()


async def list_flags(session: AsyncSession, *, user_id: int) -> list[FraudFlag]:
    res = await session.execute(
        select(FraudFlag).where(FraudFlag.user_id == user_id).order_by(FraudFlag.id.asc())
    )
    return list(res.scalars().all())


async def upsert_device(
    session: AsyncSession,
    *,
    user_id: int,
    fingerprint: str,
    platform: str | None,
    ip: str | None,
) -> int:
    stmt = upsert(session, Device).values(
        user_id=user_id,
        fingerprint=fingerprint,
        platform=platform,
        ip_address=ip,
        risk_score=0,
        is_blocked=False,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "fingerprint"],
        set_={"platform": platform, "ip_address": ip, "last_seen_at": func.now()},
    ).returning(Device.id)
    res = await session.execute(stmt)
    return int(res.scalar_one())
