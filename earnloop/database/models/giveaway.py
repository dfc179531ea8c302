from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from earnloop.database.base import Base


class EntryType(str, enum.Enum):
    FREE = "free"
    BONUS = "bonus"
    PAID = "paid"


class PrizeType(str, enum.Enum):
    CREDITS = "credits"
    GIFT_CARD = "gift_card"


class Giveaway(Base):
    """
    One row per giveaway id. Lock anchor for entries and draws (SELECT .. FOR UPDATE).
    """
    __tablename__ = "giveaways"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    last_draw_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)


class GiveawayEntry(Base):
    """
    Live entry counters. totalEntries = free + bonus + paid is derived, never stored.
    """
    __tablename__ = "giveaway_entries"
    __table_args__ = (
        UniqueConstraint("user_id", "giveaway_id", "entry_type", name="uq_giveaway_entries_user_gw_type"),
        Index("ix_giveaway_entries_giveaway", "giveaway_id"),
        CheckConstraint("entries_count >= 0", name="ck_giveaway_entries_count_nonneg"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    giveaway_id: Mapped[str] = mapped_column(String(100))
    entry_type: Mapped[EntryType] = mapped_column(Enum(EntryType, native_enum=False))
    entries_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False))


class GiveawayEntryArchive(Base):
    """
    Entries cleared by a draw, kept for audit.
    """
    __tablename__ = "giveaway_entries_archive"
    __table_args__ = (
        Index("ix_giveaway_archive_draw", "draw_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    giveaway_id: Mapped[str] = mapped_column(String(100))
    entry_type: Mapped[EntryType] = mapped_column(Enum(EntryType, native_enum=False))
    entries_count: Mapped[int] = mapped_column(Integer)

    draw_id: Mapped[int] = mapped_column(ForeignKey("giveaway_draws.id", ondelete="CASCADE"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False))


class GiveawayDraw(Base):
    """
    Immutable record of one completed draw.
    """
    __tablename__ = "giveaway_draws"
    __table_args__ = (
        Index("ix_giveaway_draws_gw_time", "giveaway_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    giveaway_id: Mapped[str] = mapped_column(String(100))
    winner_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)

    total_participants: Mapped[int] = mapped_column(Integer)
    total_entries: Mapped[int] = mapped_column(Integer)

    prize_type: Mapped[PrizeType] = mapped_column(Enum(PrizeType, native_enum=False))
    prize_value: Mapped[int] = mapped_column(Integer)  # credits or gift card dollars
    prize_delivered: Mapped[bool] = mapped_column(Boolean, default=False)
    redemption_id: Mapped[int | None] = mapped_column(ForeignKey("redemptions.id"), nullable=True)

    roll: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False))
