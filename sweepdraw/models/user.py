from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional
from sqlalchemy.orm import Session, Mapped, mapped_column, relationship, validates
from sqlalchemy import CheckConstraint, DateTime, Numeric, String, select

from .base import Base
from .id_type import ID_TYPE
from .utils import to_money

if TYPE_CHECKING:
    from .sweepstake import SweepstakeParticipant
    from .ledger import Transaction


class User(Base):
    """An account that can enter sweepstakes and hold a balance."""

    def __init__(
        self,
        username: str,
        email: Optional[str] = None,
        balance: Decimal = Decimal("0"),
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        """Create a new :class:`User` record.

        Parameters
        ----------
        username : str
            Unique login name.
        email : str, optional
            Contact address. Never included in audit material.
        balance : Decimal, default: 0
            Opening balance.
        created_at : datetime, optional
            Explicit creation timestamp.
        updated_at : datetime, optional
            Explicit last update timestamp.
        """

        self.username = username
        self.email = email
        self.balance = to_money(balance)
        if created_at is not None:
            self.created_at = created_at
        if updated_at is not None:
            self.updated_at = updated_at

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(100), unique=True, nullable=True)
    balance: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, default=Decimal("0")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # relationships
    participations: Mapped[list["SweepstakeParticipant"]] = relationship(
        back_populates="user"
    )
    transactions: Mapped[list["Transaction"]] = relationship(back_populates="user")

    __table_args__ = (CheckConstraint("balance >= 0", name="balance_non_negative"),)

    @validates("email")
    def _normalize_email(self, _key: str, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        normalized = value.strip().lower()
        return normalized or None

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}', balance={self.balance})>"

    @classmethod
    def get_by_username(cls, session: Session, username: str) -> Optional["User"]:
        """Retrieve a user by their username."""

        return session.scalar(select(cls).where(cls.username == username))

    @classmethod
    def get_for_update(cls, session: Session, user_id: int) -> Optional["User"]:
        """Load a user and lock the row for the rest of the transaction."""

        return session.scalar(
            select(cls)
            .where(cls.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    def credit(self, amount: Decimal) -> None:
        """Add ``amount`` to the balance."""

        amount = to_money(amount)
        if amount < 0:
            raise ValueError("credit amount must not be negative")
        self.balance = to_money(self.balance) + amount

    def debit(self, amount: Decimal) -> None:
        """Subtract ``amount`` from the balance; the balance may not go negative."""

        amount = to_money(amount)
        if amount < 0:
            raise ValueError("debit amount must not be negative")
        current = to_money(self.balance)
        if current < amount:
            raise ValueError("balance is insufficient for this debit")
        self.balance = current - amount
