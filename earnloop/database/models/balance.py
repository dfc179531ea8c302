from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from earnloop.database.base import Base

if TYPE_CHECKING:
    from earnloop.database.models.user import User


class AccountBalance(Base):
    """
    One row per user. Mutated only through LedgerService (conditional UPDATEs).
    """
    __tablename__ = "balances"
    __table_args__ = (
        CheckConstraint("credits_balance >= 0", name="ck_balances_credits_nonneg"),
        CheckConstraint("tokens >= 0", name="ck_balances_tokens_nonneg"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True, index=True)

    credits_balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    tokens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # monotonically non-decreasing
    lifetime_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lifetime_spent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        server_default=func.now(),
        onupdate=func.now(),
    )

    user: Mapped["User"] = relationship(back_populates="balance")
