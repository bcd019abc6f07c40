from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, CheckConstraint, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, Session, mapped_column

from .base import Base
from .id_type import ID_TYPE


class AuditLog(Base):
    """Append-only record of system and user actions."""

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    actor_type: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_user_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    subject_table: Mapped[str] = mapped_column(String(50), nullable=False)
    subject_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("actor_type IN ('system','user')", name="actor_type_enum"),
        Index("ix_audit_logs_subject", "subject_table", "subject_id"),
        Index("ix_audit_logs_action", "action"),
    )

    @classmethod
    def record(
        cls,
        session: Session,
        action: str,
        *,
        subject_table: str,
        subject_id: Optional[str] = None,
        actor_user_id: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
        occurred_at: Optional[datetime] = None,
    ) -> "AuditLog":
        """Append an entry to the session; the caller owns the transaction."""

        entry = cls(
            actor_type="user" if actor_user_id is not None else "system",
            actor_user_id=actor_user_id,
            action=action,
            subject_table=subject_table,
            subject_id=subject_id,
            details=details,
            occurred_at=occurred_at or datetime.now(timezone.utc),
        )
        session.add(entry)
        return entry
