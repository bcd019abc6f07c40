from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .user import User  # noqa: F401
from .sweepstake import (  # noqa: F401
    Sweepstake,
    SweepstakeParticipant,
    SweepstakeStatus,
)
from .ledger import Transaction, TransactionType  # noqa: F401
from .audit import AuditLog  # noqa: F401

__all__ = [
    "Base",
    "User",
    "Sweepstake",
    "SweepstakeParticipant",
    "SweepstakeStatus",
    "Transaction",
    "TransactionType",
    "AuditLog",
]
