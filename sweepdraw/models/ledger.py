from __future__ import annotations

import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from .id_type import ID_TYPE
from .utils import to_money

if TYPE_CHECKING:
    from .sweepstake import Sweepstake
    from .user import User


class TransactionType(str, enum.Enum):
    SWEEPSTAKE_ENTRY = "SWEEPSTAKE_ENTRY"
    SWEEPSTAKE_REFUND = "SWEEPSTAKE_REFUND"
    PRIZE_WIN = "PRIZE_WIN"
    HOUSE_FEE = "HOUSE_FEE"


class Transaction(Base):
    """Balance movement tied to a user (or to the house when ``user_id`` is null).

    ``amount`` is signed from the user's point of view: entries are negative,
    refunds and prizes positive. House fees are positive amounts with no user.
    """

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    sweepstake_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("sweepstakes.id", ondelete="SET NULL"), nullable=True
    )
    type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType, native_enum=False, length=32, validate_strings=True),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="COMPLETED")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    user: Mapped[Optional["User"]] = relationship(back_populates="transactions")
    sweepstake: Mapped[Optional["Sweepstake"]] = relationship(back_populates="transactions")

    __table_args__ = (
        Index("ix_transactions_sweepstake_type", "sweepstake_id", "type"),
        Index("ix_transactions_user", "user_id"),
    )

    def __init__(
        self,
        *,
        type: TransactionType,
        amount: Decimal,
        sweepstake_id: Optional[str] = None,
        user_id: Optional[int] = None,
        description: Optional[str] = None,
        status: str = "COMPLETED",
        created_at: Optional[datetime] = None,
    ) -> None:
        self.type = type
        self.amount = to_money(amount)
        self.sweepstake_id = sweepstake_id
        self.user_id = user_id
        self.description = description
        self.status = status
        if created_at is not None:
            self.created_at = created_at

    def __repr__(self) -> str:
        return (
            f"<Transaction(id={self.id}, type={self.type.value}, user_id={self.user_id}, "
            f"amount={self.amount}, sweepstake_id={self.sweepstake_id})>"
        )
