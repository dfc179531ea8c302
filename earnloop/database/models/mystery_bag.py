from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from earnloop.database.base import Base


class MysteryBagOpen(Base):
    __tablename__ = "mystery_bag_opens"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)

    tokens_spent: Mapped[int] = mapped_column(Integer)
    prize_kind: Mapped[str] = mapped_column(String(16))  # "tokens" | "credits"
    prize_amount: Mapped[int] = mapped_column(Integer, default=0)

    roll: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False))
