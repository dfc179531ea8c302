from __future__ import annotations

import json

from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.database.models import AuditLog


async def log_action(
    session: AsyncSession,
    *,
    action: str,
    target_type: str | None = None,
    target_id: int | None = None,
    payload: dict | None = None,
) -> None:
    session.add(
        AuditLog(
            action=action,
            target_type=target_type,
            target_id=target_id,
            payload_json=json.dumps(payload, default=str) if payload else None,
        )
    )
    await session.flush()
