"""Database models for sweepstakes and their participants."""

from __future__ import annotations

import enum
import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship, validates

from ..draw.engine import DrawProof, DrawResult
from ..draw.seed import ParticipantRecord
from .base import Base
from .id_type import ID_TYPE, PUBLIC_ID_TYPE
from .utils import generate_public_id, to_money

if TYPE_CHECKING:
    from .user import User
    from .ledger import Transaction


class SweepstakeStatus(str, enum.Enum):
    """Lifecycle states of a sweepstake."""

    SCHEDULED = "SCHEDULED"
    ACTIVE = "ACTIVE"
    DRAWING = "DRAWING"
    FINISHED = "FINISHED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (SweepstakeStatus.FINISHED, SweepstakeStatus.CANCELLED)

    @property
    def accepts_entries(self) -> bool:
        return self in (SweepstakeStatus.SCHEDULED, SweepstakeStatus.ACTIVE)


# Written once, together, by the draw-and-settle transaction.
DRAW_FIELDS = (
    "winner_participant_id",
    "winner_user_id",
    "winner_index",
    "algorithm",
    "seed",
    "hash",
    "proof",
    "participant_snapshot",
)


class Sweepstake(Base):
    """A drawable prize pool with a capped number of entries."""

    __tablename__ = "sweepstakes"

    id: Mapped[str] = mapped_column(PUBLIC_ID_TYPE, primary_key=True)
    """Public identifier; embedded verbatim in draw seeds."""

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[SweepstakeStatus] = mapped_column(
        Enum(SweepstakeStatus, native_enum=False, length=16, validate_strings=True),
        nullable=False,
        default=SweepstakeStatus.SCHEDULED,
    )

    max_participants: Mapped[int] = mapped_column(Integer, nullable=False)
    entry_fee: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    house_fee_fraction: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    prize_pool: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, default=Decimal("0")
    )
    """Participants x entry fee x (1 - house fee fraction)."""

    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    winner_participant_id: Mapped[Optional[str]] = mapped_column(
        PUBLIC_ID_TYPE, nullable=True
    )
    """Set exactly once; non-null means the draw has been settled."""

    winner_user_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    winner_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    algorithm: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    seed: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    proof: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Published proof document as JSON text."""

    participant_snapshot: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    """Participants exactly as fed to the draw."""

    executed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancel_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

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

    participants: Mapped[list["SweepstakeParticipant"]] = relationship(
        back_populates="sweepstake",
        cascade="all, delete-orphan",
        order_by="SweepstakeParticipant.id",
    )
    winner_user: Mapped[Optional["User"]] = relationship(foreign_keys=[winner_user_id])
    transactions: Mapped[list["Transaction"]] = relationship(back_populates="sweepstake")

    __table_args__ = (
        Index("ix_sweepstakes_status_end_time", "status", "end_time"),
        Index("ix_sweepstakes_status_start_time", "status", "start_time"),
    )

    def __init__(
        self,
        *,
        title: str,
        max_participants: int,
        entry_fee: Decimal,
        start_time: datetime,
        end_time: datetime,
        house_fee_fraction: Decimal = Decimal("0.05"),
        description: Optional[str] = None,
        status: SweepstakeStatus = SweepstakeStatus.SCHEDULED,
        id: Optional[str] = None,
    ) -> None:
        self.id = id or generate_public_id("swp")
        self.title = title
        self.description = description
        self.status = status
        self.max_participants = max_participants
        self.entry_fee = to_money(entry_fee)
        self.house_fee_fraction = Decimal(str(house_fee_fraction))
        self.prize_pool = Decimal("0.00")
        self.start_time = start_time
        self.end_time = end_time

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<Sweepstake(id={id}, status={status}, participants={count})>".format(
            id=self.id,
            status=self.status.value if self.status else None,
            count=len(self.participants),
        )

    @validates(*DRAW_FIELDS)
    def _write_once(self, key: str, value: Any) -> Any:
        current = getattr(self, key)
        if current is not None and current != value:
            raise ValueError(
                f"Sweepstake '{self.id}' field '{key}' is immutable once drawn"
            )
        return value

    @validates("status")
    def _status_leaves_terminal(self, _key: str, value: SweepstakeStatus) -> SweepstakeStatus:
        current = self.status
        if current is not None and current.is_terminal and value != current:
            raise ValueError(
                f"Sweepstake '{self.id}' is {current.value} and cannot move to {value}"
            )
        return value

    @classmethod
    def get(
        cls, session: Session, sweepstake_id: str, *, for_update: bool = False
    ) -> Optional["Sweepstake"]:
        """Return the sweepstake with ``sweepstake_id``.

        With ``for_update`` the row is locked (``SELECT ... FOR UPDATE`` on
        databases that support it) and reloaded from the database, so checks
        made afterwards see the committed state.
        """

        stmt = select(cls).where(cls.id == sweepstake_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return session.scalar(stmt)

    @property
    def participant_count(self) -> int:
        return len(self.participants)

    @property
    def is_drawn(self) -> bool:
        return self.winner_participant_id is not None

    def participant_for_user(self, user_id: int) -> Optional["SweepstakeParticipant"]:
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None

    def collected_fees(self) -> Decimal:
        return to_money(sum((to_money(p.entry_fee) for p in self.participants), Decimal("0")))

    def compute_prize_pool(self) -> Decimal:
        """Return participants x entry fee x (1 - house fee fraction)."""

        payout = Decimal("1") - Decimal(self.house_fee_fraction)
        return to_money(self.collected_fees() * payout)

    def refresh_prize_pool(self) -> Decimal:
        self.prize_pool = self.compute_prize_pool()
        return self.prize_pool

    def participant_records(self) -> list[ParticipantRecord]:
        """Return the draw input for the current participants."""

        return [p.to_record() for p in self.participants]

    def record_draw(self, result: DrawResult, *, executed_at: datetime) -> None:
        """Copy ``result`` onto the draw fields and mark the sweepstake finished.

        The caller is responsible for doing this inside the settlement
        transaction.
        """

        winner = next(
            (p for p in self.participants if p.id == result.winner_participant_id),
            None,
        )
        if winner is None:
            raise ValueError(
                f"Winner '{result.winner_participant_id}' is not a participant of '{self.id}'"
            )
        self.winner_participant_id = winner.id
        self.winner_user_id = winner.user_id
        self.winner_index = result.winner_index
        self.algorithm = result.algorithm
        self.seed = result.seed
        self.hash = result.hash
        self.proof = result.proof.to_json()
        self.participant_snapshot = result.snapshot()
        self.executed_at = executed_at
        self.status = SweepstakeStatus.FINISHED

    def draw_result(self) -> Optional[DrawResult]:
        """Rebuild the persisted :class:`DrawResult`, or ``None`` before the draw."""

        if not self.is_drawn or self.proof is None or self.participant_snapshot is None:
            return None
        proof = DrawProof.from_dict(json.loads(self.proof))
        participants = tuple(
            ParticipantRecord.from_dict(item) for item in self.participant_snapshot
        )
        executed_at = self.executed_at or datetime.now(timezone.utc)
        return DrawResult(
            sweepstake_id=self.id,
            winner_participant_id=self.winner_participant_id,
            winner_user_id=str(self.winner_user_id),
            winner_index=self.winner_index if self.winner_index is not None else -1,
            algorithm=self.algorithm or "",
            seed=self.seed or "",
            hash=self.hash or "",
            proof=proof,
            participants=participants,
            generated_at=executed_at,
        )


class SweepstakeParticipant(Base):
    """One entry of a user into a sweepstake."""

    __tablename__ = "sweepstake_participants"

    id: Mapped[str] = mapped_column(PUBLIC_ID_TYPE, primary_key=True)
    """Participant id; unique, sorted ordinally when drawing."""

    sweepstake_id: Mapped[str] = mapped_column(
        ForeignKey("sweepstakes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    entry_fee: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    sweepstake: Mapped["Sweepstake"] = relationship(back_populates="participants")
    user: Mapped["User"] = relationship(back_populates="participations")

    __table_args__ = (
        UniqueConstraint("sweepstake_id", "user_id", name="uq_participant_per_user"),
    )

    def __init__(
        self,
        *,
        user_id: int,
        entry_fee: Decimal,
        joined_at: Optional[datetime] = None,
        sweepstake: Optional["Sweepstake"] = None,
        sweepstake_id: Optional[str] = None,
        id: Optional[str] = None,
    ) -> None:
        self.id = id or generate_public_id("prt")
        self.user_id = user_id
        self.entry_fee = to_money(entry_fee)
        self.joined_at = joined_at or datetime.now(timezone.utc)
        if sweepstake is not None:
            self.sweepstake = sweepstake
        if sweepstake_id is not None:
            self.sweepstake_id = sweepstake_id

    @validates("joined_at")
    def _joined_at_immutable(self, _key: str, value: datetime) -> datetime:
        if self.joined_at is not None and self.joined_at != value:
            raise ValueError("joined_at cannot change after entry")
        return value

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<SweepstakeParticipant(id={id}, sweepstake_id={sid}, user_id={uid})>".format(
            id=self.id, sid=self.sweepstake_id, uid=self.user_id
        )

    def to_record(self) -> ParticipantRecord:
        return ParticipantRecord(
            participant_id=self.id,
            user_id=str(self.user_id),
            joined_at=self.joined_at,
            entry_fee=to_money(self.entry_fee),
        )


__all__ = [
    "DRAW_FIELDS",
    "Sweepstake",
    "SweepstakeParticipant",
    "SweepstakeStatus",
]
