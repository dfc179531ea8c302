from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from earnloop.database.base import Base


class AuditLog(Base):
    """
    System actions (draw runs, fulfillment hand-offs) for audit.
    Payload is JSON string (services serialize dict->json).
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_action_time", "action", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    action: Mapped[str] = mapped_column(String(64), index=True)  # e.g. "giveaway_draw"
    target_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    target_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    payload_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), server_default=func.now())
