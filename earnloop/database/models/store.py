from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from earnloop.database.base import Base


class StoreItemType(str, enum.Enum):
    GIFTCARD = "giftcard"
    STREAK_SAVER = "streak_saver"
    BOOST = "boost"
    GIVEAWAY = "giveaway"
    TOKEN_PACK = "token_pack"
    COSMETIC = "cosmetic"


class RedemptionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FULFILLED = "fulfilled"


class StoreItem(Base):
    __tablename__ = "store_items"

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    credits_cost: Mapped[int] = mapped_column(Integer)  # base price; gift cards are geo-adjusted
    item_type: Mapped[StoreItemType] = mapped_column(Enum(StoreItemType, native_enum=False))
    category: Mapped[str] = mapped_column(String(50), default="general")

    duration_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_per_user: Mapped[int | None] = mapped_column(Integer, nullable=True)

    tokens_granted: Mapped[int] = mapped_column(Integer, default=0)  # token_pack only
    giveaway_id: Mapped[str | None] = mapped_column(String(100), nullable=True)  # giveaway only

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)


class Redemption(Base):
    """
    Pending gift-card redemptions are handed to fulfillment after commit.
    """
    __tablename__ = "redemptions"
    __table_args__ = (
        Index("ix_redemptions_user_item", "user_id", "item_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    item_id: Mapped[int | None] = mapped_column(ForeignKey("store_items.id"), nullable=True)  # NULL for giveaway prizes

    credits_spent: Mapped[int] = mapped_column(Integer)
    status: Mapped[RedemptionStatus] = mapped_column(Enum(RedemptionStatus, native_enum=False), index=True)

    delivery_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    country_code: Mapped[str | None] = mapped_column(String(2), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False))


class InventoryItem(Base):
    __tablename__ = "user_inventory"
    __table_args__ = (
        UniqueConstraint("user_id", "item_id", name="uq_user_inventory_user_item"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    item_id: Mapped[int] = mapped_column(ForeignKey("store_items.id"))
    item_type: Mapped[StoreItemType] = mapped_column(Enum(StoreItemType, native_enum=False))

    quantity: Mapped[int] = mapped_column(Integer, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), server_default=func.now())
