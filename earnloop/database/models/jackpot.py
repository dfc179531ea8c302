from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from earnloop.database.base import Base


class JackpotPool(Base):
    """
    Singleton (id=1). pool_tokens only decreases by amounts it currently holds.
    """
    __tablename__ = "jackpot_pool"
    __table_args__ = (
        CheckConstraint("pool_tokens >= 0", name="ck_jackpot_pool_nonneg"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)  # always 1

    pool_tokens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_contributed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_won: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    last_winner_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    last_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_won_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        server_default=func.now(),
        onupdate=func.now(),
    )


class JackpotSpin(Base):
    """
    Immutable record of one bet and its outcome.
    """
    __tablename__ = "jackpot_spins"
    __table_args__ = (
        Index("ix_jackpot_spins_user_time", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)

    bet_amount: Mapped[int] = mapped_column(Integer)
    multiplier: Mapped[float] = mapped_column(Numeric(6, 2, asdecimal=False))
    win_amount: Mapped[int] = mapped_column(Integer)  # includes jackpot_bonus
    jackpot_bonus: Mapped[int] = mapped_column(Integer, default=0)
    net_result: Mapped[int] = mapped_column(Integer)
    is_jackpot: Mapped[bool] = mapped_column(Boolean, default=False)

    # RNG roll text for audit
    roll: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False))
