from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from earnloop.database.base import Base


class EarnEventType(str, enum.Enum):
    CHECKIN = "checkin"
    REWARDED_AD = "rewarded_ad"
    LEARN_MODULE = "learn_module"
    GIVEAWAY_WIN = "giveaway_win"
    MYSTERY_BAG = "mystery_bag"


class EarnEvent(Base):
    """
    Immutable, append-only record of one reward-granting action.
    """
    __tablename__ = "earn_events"
    __table_args__ = (
        Index("ix_earn_events_user_created", "user_id", "created_at"),

        # Anti-duplicate credit protection. NULL dedup keys never collide.
        # checkin      -> "checkin:{user_id}:{YYYY-MM-DD}"
        # learn_module -> "learn:{user_id}:{module_id}:{YYYY-MM-DD}"
        # rewarded_ad  -> "ad:{network transaction id}"
        UniqueConstraint("event_type", "dedup_key", name="uq_earn_events_type_dedup"),

        CheckConstraint("credits_amount > 0", name="ck_earn_events_amount_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    # lookup only, no ownership
    device_id: Mapped[int | None] = mapped_column(ForeignKey("devices.id", ondelete="SET NULL"), nullable=True)

    event_type: Mapped[EarnEventType] = mapped_column(Enum(EarnEventType, native_enum=False), index=True)
    credits_amount: Mapped[int] = mapped_column(Integer)

    dedup_key: Mapped[str | None] = mapped_column(String(191), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), index=True)
