"""Exception taxonomy for draws, settlement, and participation requests."""

from __future__ import annotations


class DrawError(Exception):
    """Base class for failures inside the draw engine and settlement."""


class EmptyParticipantSet(DrawError, ValueError):
    """A draw was requested for a sweepstake without participants."""


class InvalidModulus(DrawError, ValueError):
    """Index reduction was asked for a non-positive modulus.

    Reaching this means a participant count of zero slipped past the seed
    builder, which is a programming error rather than a runtime condition.
    """


class InvalidSeedField(DrawError, ValueError):
    """A seed field is empty, duplicated, or contains a reserved delimiter."""


class AlreadyDrawn(DrawError):
    """The sweepstake already has a winner; the draw must not run again."""

    def __init__(self, sweepstake_id: str) -> None:
        super().__init__(f"Sweepstake '{sweepstake_id}' has already been drawn")
        self.sweepstake_id = sweepstake_id


class SettlementTransactionFailure(DrawError):
    """A write inside the draw-and-settle transaction failed."""

    def __init__(self, sweepstake_id: str, message: str) -> None:
        super().__init__(f"Settlement of sweepstake '{sweepstake_id}' failed: {message}")
        self.sweepstake_id = sweepstake_id


class SweepstakeRejection(Exception):
    """A join, leave, or draw request was refused for an expected reason.

    ``reason`` is a stable machine-readable code; the message is meant for
    the end user.
    """

    reason = "rejected"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class SweepstakeNotFound(SweepstakeRejection):
    reason = "sweepstake_not_found"


class UserNotFound(SweepstakeRejection):
    reason = "user_not_found"


class SweepstakeClosed(SweepstakeRejection):
    reason = "sweepstake_closed"


class AlreadyJoined(SweepstakeRejection):
    reason = "already_joined"


class CapacityReached(SweepstakeRejection):
    reason = "capacity_reached"


class SweepstakeExpired(SweepstakeRejection):
    reason = "sweepstake_expired"


class InsufficientBalance(SweepstakeRejection):
    reason = "insufficient_balance"


class NotParticipating(SweepstakeRejection):
    reason = "not_participating"


class WithdrawalLocked(SweepstakeRejection):
    reason = "withdrawal_locked"


__all__ = [
    "AlreadyDrawn",
    "AlreadyJoined",
    "CapacityReached",
    "DrawError",
    "EmptyParticipantSet",
    "InsufficientBalance",
    "InvalidModulus",
    "InvalidSeedField",
    "NotParticipating",
    "SettlementTransactionFailure",
    "SweepstakeClosed",
    "SweepstakeExpired",
    "SweepstakeNotFound",
    "SweepstakeRejection",
    "UserNotFound",
    "WithdrawalLocked",
]
