"""Transactional workflows over sweepstakes.

Every function takes the caller's :class:`~sqlalchemy.orm.Session` and does
its reads and writes inside the caller's transaction, flushing at the end.
Any exception leaves the transaction to be rolled back by the caller, e.g.::

    with Session.begin() as session:
        join_sweepstake(session, sweepstake_id, user_id)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
import logging
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import DEFAULT_SETTINGS, DrawSettings
from .db.utils import as_utc
from .draw.audit import AuditReport, generate_report
from .draw.engine import DrawEngine, DrawResult
from .errors import (
    AlreadyDrawn,
    AlreadyJoined,
    CapacityReached,
    InsufficientBalance,
    NotParticipating,
    SettlementTransactionFailure,
    SweepstakeClosed,
    SweepstakeExpired,
    SweepstakeNotFound,
    UserNotFound,
    WithdrawalLocked,
)
from .models import (
    AuditLog,
    Sweepstake,
    SweepstakeParticipant,
    SweepstakeStatus,
    Transaction,
    TransactionType,
    User,
)
from .models.utils import generate_public_id, to_money
from .notifications import Notifier

logger = logging.getLogger(__name__)

MIN_PARTICIPANTS = 2
MAX_PARTICIPANTS = 10_000


@dataclass(frozen=True)
class JoinOutcome:
    participant: SweepstakeParticipant
    sweepstake: Sweepstake
    participant_count: int
    status: SweepstakeStatus


@dataclass(frozen=True)
class LeaveOutcome:
    sweepstake: Sweepstake
    refund_amount: Decimal
    remaining_participants: int
    status: SweepstakeStatus


@dataclass(frozen=True)
class Settlement:
    """What the draw-and-settle transaction wrote."""

    sweepstake_id: str
    result: DrawResult
    winner_user_id: int
    prize_amount: Decimal
    house_fee: Decimal


def _now(now: Optional[datetime]) -> datetime:
    return as_utc(now) if now is not None else datetime.now(timezone.utc)


def _lock_sweepstake(session: Session, sweepstake_id: str) -> Sweepstake:
    sweepstake = Sweepstake.get(session, sweepstake_id, for_update=True)
    if sweepstake is None:
        raise SweepstakeNotFound(f"Sweepstake '{sweepstake_id}' was not found")
    # Re-read the participant list too; the cached collection may predate the lock.
    session.refresh(sweepstake, attribute_names=["participants"])
    return sweepstake


def create_sweepstake(
    session: Session,
    *,
    title: str,
    max_participants: int,
    entry_fee: Decimal,
    start_time: datetime,
    end_time: datetime,
    description: Optional[str] = None,
    created_by_user_id: Optional[int] = None,
    settings: DrawSettings = DEFAULT_SETTINGS,
) -> Sweepstake:
    """Create a SCHEDULED sweepstake.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    title : str
        Display title.
    max_participants : int
        Entry cap; between 2 and 10,000.
    entry_fee : Decimal
        Fee debited from every participant; must not be negative.
    start_time, end_time : datetime
        Entry window. ``end_time`` must be after ``start_time``.
    description : Optional[str]
        Free-form description.
    created_by_user_id : Optional[int]
        Creator recorded in the audit log; ``None`` for system-created draws.
    settings : DrawSettings
        Supplies the house fee fraction frozen onto the sweepstake.

    Returns
    -------
    Sweepstake
        The flushed sweepstake with a generated public id.
    """

    if not title or not title.strip():
        raise ValueError("title is required")
    if not MIN_PARTICIPANTS <= max_participants <= MAX_PARTICIPANTS:
        raise ValueError(
            f"max_participants must be between {MIN_PARTICIPANTS} and {MAX_PARTICIPANTS}"
        )
    fee = to_money(entry_fee)
    if fee < 0:
        raise ValueError("entry_fee must not be negative")
    if as_utc(end_time) <= as_utc(start_time):
        raise ValueError("end_time must be after start_time")

    sweepstake = Sweepstake(
        id=generate_public_id("swp", session, Sweepstake),
        title=title.strip(),
        description=description,
        max_participants=max_participants,
        entry_fee=fee,
        house_fee_fraction=Decimal(str(settings.house_fee_fraction)),
        start_time=as_utc(start_time),
        end_time=as_utc(end_time),
    )
    session.add(sweepstake)
    AuditLog.record(
        session,
        "SWEEPSTAKE_CREATED",
        subject_table="sweepstakes",
        subject_id=sweepstake.id,
        actor_user_id=created_by_user_id,
        details={
            "title": sweepstake.title,
            "max_participants": max_participants,
            "entry_fee": str(fee),
            "house_fee_fraction": str(sweepstake.house_fee_fraction),
        },
    )
    session.flush()
    logger.info("Sweepstake %s created (cap %d, fee %s)", sweepstake.id, max_participants, fee)
    return sweepstake


def join_sweepstake(
    session: Session,
    sweepstake_id: str,
    user_id: int,
    *,
    now: Optional[datetime] = None,
    settings: DrawSettings = DEFAULT_SETTINGS,
) -> JoinOutcome:
    """Enter ``user_id`` into a sweepstake, debiting the entry fee.

    Notes
    -----
    Runs, in order and inside the caller's transaction:

    1. Lock and re-read the sweepstake with its participants.
    2. Check eligibility: open status, not already entered, below the cap,
       not expired, sufficient balance.
    3. Debit the balance, insert the participant, and write the entry
       transaction.
    4. Promote SCHEDULED to ACTIVE once enough participants are in and the
       start time has passed; move to DRAWING (with ``end_time`` collapsed
       to now) when the cap is reached.
    5. Refresh the prize pool and append an audit entry.

    Nothing is broadcast from here; pass the outcome to
    :func:`announce_outcome` once the transaction has committed.

    Raises
    ------
    SweepstakeRejection
        One of its subclasses, naming the specific reason for refusal.
    """

    current = _now(now)
    sweepstake = _lock_sweepstake(session, sweepstake_id)

    if not sweepstake.status.accepts_entries:
        raise SweepstakeClosed("This sweepstake is no longer accepting participants")
    if sweepstake.participant_for_user(user_id) is not None:
        raise AlreadyJoined("You are already participating in this sweepstake")
    count = sweepstake.participant_count
    if count >= sweepstake.max_participants:
        raise CapacityReached("This sweepstake has reached its maximum number of participants")
    if current > as_utc(sweepstake.end_time):
        raise SweepstakeExpired("This sweepstake has already expired")

    user = User.get_for_update(session, user_id)
    if user is None:
        raise UserNotFound(f"User '{user_id}' was not found")
    fee = to_money(sweepstake.entry_fee)
    if to_money(user.balance) < fee:
        raise InsufficientBalance(f"Insufficient balance: this sweepstake requires {fee}")

    user.debit(fee)
    participant = SweepstakeParticipant(
        id=generate_public_id("prt", session, SweepstakeParticipant),
        sweepstake=sweepstake,
        user_id=user.id,
        entry_fee=fee,
        joined_at=current,
    )
    session.add(participant)
    session.add(
        Transaction(
            type=TransactionType.SWEEPSTAKE_ENTRY,
            user_id=user.id,
            sweepstake_id=sweepstake.id,
            amount=-fee,
            description=f"Entry into sweepstake: {sweepstake.title}",
        )
    )

    new_count = count + 1
    if (
        sweepstake.status == SweepstakeStatus.SCHEDULED
        and new_count >= settings.min_participants_to_activate
        and current >= as_utc(sweepstake.start_time)
    ):
        sweepstake.status = SweepstakeStatus.ACTIVE
        logger.info("Sweepstake %s activated on join", sweepstake.id)

    if new_count >= sweepstake.max_participants:
        sweepstake.status = SweepstakeStatus.DRAWING
        sweepstake.end_time = current
        logger.info("Sweepstake %s is full; queued for drawing", sweepstake.id)

    sweepstake.refresh_prize_pool()
    AuditLog.record(
        session,
        "SWEEPSTAKE_JOINED",
        subject_table="sweepstakes",
        subject_id=sweepstake.id,
        actor_user_id=user.id,
        details={
            "participant_id": participant.id,
            "entry_fee": str(fee),
            "participant_count": new_count,
        },
        occurred_at=current,
    )
    session.flush()
    return JoinOutcome(
        participant=participant,
        sweepstake=sweepstake,
        participant_count=new_count,
        status=sweepstake.status,
    )


def leave_sweepstake(
    session: Session,
    sweepstake_id: str,
    user_id: int,
    *,
    now: Optional[datetime] = None,
    settings: DrawSettings = DEFAULT_SETTINGS,
) -> LeaveOutcome:
    """Withdraw ``user_id`` from a sweepstake and refund the entry fee.

    Withdrawal is refused once the sweepstake is drawing, finished, or
    cancelled, and during the lockout window before ``end_time``. As with
    joins, broadcast the outcome with :func:`announce_outcome` after commit.
    """

    current = _now(now)
    sweepstake = _lock_sweepstake(session, sweepstake_id)

    participant = sweepstake.participant_for_user(user_id)
    if participant is None:
        raise NotParticipating("You are not participating in this sweepstake")
    if not sweepstake.status.accepts_entries:
        raise SweepstakeClosed(
            "You cannot leave a sweepstake that is being drawn or has finished"
        )
    time_left = as_utc(sweepstake.end_time) - current
    if time_left < timedelta(seconds=settings.leave_lockout_seconds):
        raise WithdrawalLocked(
            "You cannot leave a sweepstake this close to (or after) its end time"
        )

    user = User.get_for_update(session, user_id)
    if user is None:
        raise UserNotFound(f"User '{user_id}' was not found")

    refund = to_money(participant.entry_fee)
    sweepstake.participants.remove(participant)
    user.credit(refund)
    session.add(
        Transaction(
            type=TransactionType.SWEEPSTAKE_REFUND,
            user_id=user.id,
            sweepstake_id=sweepstake.id,
            amount=refund,
            description=f"Refund from sweepstake: {sweepstake.title}",
        )
    )

    remaining = sweepstake.participant_count
    if (
        remaining < settings.min_participants_to_activate
        and sweepstake.status == SweepstakeStatus.ACTIVE
    ):
        sweepstake.status = SweepstakeStatus.SCHEDULED
        logger.info("Sweepstake %s fell back to SCHEDULED", sweepstake.id)

    sweepstake.refresh_prize_pool()
    AuditLog.record(
        session,
        "SWEEPSTAKE_LEFT",
        subject_table="sweepstakes",
        subject_id=sweepstake.id,
        actor_user_id=user.id,
        details={
            "participant_id": participant.id,
            "refund_amount": str(refund),
            "remaining_participants": remaining,
        },
        occurred_at=current,
    )
    session.flush()
    return LeaveOutcome(
        sweepstake=sweepstake,
        refund_amount=refund,
        remaining_participants=remaining,
        status=sweepstake.status,
    )


def activate_sweepstake(
    session: Session,
    sweepstake_id: str,
    *,
    now: Optional[datetime] = None,
    settings: DrawSettings = DEFAULT_SETTINGS,
) -> bool:
    """Move a SCHEDULED sweepstake to ACTIVE when its start time has come.

    Returns ``True`` when the transition happened.
    """

    current = _now(now)
    sweepstake = _lock_sweepstake(session, sweepstake_id)
    if sweepstake.status != SweepstakeStatus.SCHEDULED:
        return False
    if current < as_utc(sweepstake.start_time):
        return False
    if sweepstake.participant_count < settings.min_participants_to_activate:
        return False

    sweepstake.status = SweepstakeStatus.ACTIVE
    AuditLog.record(
        session,
        "SWEEPSTAKE_ACTIVATED",
        subject_table="sweepstakes",
        subject_id=sweepstake.id,
        details={"participant_count": sweepstake.participant_count},
        occurred_at=current,
    )
    session.flush()
    logger.info("Sweepstake %s activated", sweepstake.id)
    return True


def cancel_sweepstake(
    session: Session,
    sweepstake_id: str,
    reason: str,
    *,
    now: Optional[datetime] = None,
) -> Sweepstake:
    """Cancel a sweepstake that has not been drawn, refunding every entry.

    SCHEDULED and ACTIVE sweepstakes can be cancelled. A DRAWING one only
    when nobody is left to draw; with participants it must be drawn.

    Raises
    ------
    AlreadyDrawn
        If a winner has already been recorded.
    SweepstakeClosed
        If the sweepstake is finished, cancelled, or DRAWING with
        participants.
    """

    current = _now(now)
    sweepstake = _lock_sweepstake(session, sweepstake_id)
    if sweepstake.is_drawn:
        raise AlreadyDrawn(sweepstake.id)
    if sweepstake.status.is_terminal:
        raise SweepstakeClosed(f"Sweepstake '{sweepstake.id}' is already {sweepstake.status.value}")
    if sweepstake.status == SweepstakeStatus.DRAWING and sweepstake.participant_count > 0:
        raise SweepstakeClosed(
            f"Sweepstake '{sweepstake.id}' is queued for drawing and cannot be cancelled"
        )

    refunded = Decimal("0.00")
    for participant in sweepstake.participants:
        user = User.get_for_update(session, participant.user_id)
        if user is None:
            raise UserNotFound(f"User '{participant.user_id}' was not found")
        amount = to_money(participant.entry_fee)
        user.credit(amount)
        refunded += amount
        session.add(
            Transaction(
                type=TransactionType.SWEEPSTAKE_REFUND,
                user_id=user.id,
                sweepstake_id=sweepstake.id,
                amount=amount,
                description=f"Refund from cancelled sweepstake: {sweepstake.title}",
            )
        )

    sweepstake.status = SweepstakeStatus.CANCELLED
    sweepstake.cancel_reason = reason
    sweepstake.prize_pool = Decimal("0.00")
    AuditLog.record(
        session,
        "SWEEPSTAKE_CANCELLED",
        subject_table="sweepstakes",
        subject_id=sweepstake.id,
        details={
            "reason": reason,
            "refunded_participants": sweepstake.participant_count,
            "refunded_amount": str(refunded),
        },
        occurred_at=current,
    )
    session.flush()
    logger.info("Sweepstake %s cancelled: %s", sweepstake.id, reason)
    return sweepstake


def draw_and_settle(
    session: Session,
    sweepstake_id: str,
    *,
    now: Optional[datetime] = None,
    engine: Optional[DrawEngine] = None,
) -> Settlement:
    """Draw the winner and settle the prize in the caller's transaction.

    The winner guard, the draw, and every write (winner fields, prize
    credit, prize and house-fee transactions, audit entry) share one
    transaction, so either all of them are committed or none.

    Parameters
    ----------
    session : Session
        Session whose transaction wraps the whole settlement.
    sweepstake_id : str
        Sweepstake to draw. Must be ACTIVE or DRAWING.
    now : Optional[datetime]
        Clock reading for the seed time bucket and timestamps.
    engine : Optional[DrawEngine]
        Draw engine; defaults to one built from the default settings.

    Returns
    -------
    Settlement
        Draw result and the amounts written.

    Raises
    ------
    AlreadyDrawn
        If the sweepstake already has a winner. Nothing is written.
    EmptyParticipantSet
        If there is nobody to draw. Nothing is written.
    SweepstakeNotFound, SweepstakeClosed
        If the sweepstake is missing or not in a drawable state.
    SettlementTransactionFailure
        If any settlement write fails; the caller must roll back.
    """

    current = _now(now)
    active_engine = engine or DrawEngine(bucket_size_ms=DEFAULT_SETTINGS.seed_bucket_ms)

    sweepstake = _lock_sweepstake(session, sweepstake_id)
    if sweepstake.is_drawn:
        raise AlreadyDrawn(sweepstake.id)
    if sweepstake.status not in (SweepstakeStatus.ACTIVE, SweepstakeStatus.DRAWING):
        raise SweepstakeClosed(
            f"Sweepstake '{sweepstake.id}' cannot be drawn while {sweepstake.status.value}"
        )

    # Pure computation on data read under the lock.
    result = active_engine.execute(
        sweepstake.id, sweepstake.participant_records(), now=current
    )

    try:
        sweepstake.record_draw(result, executed_at=current)
        prize = sweepstake.refresh_prize_pool()
        house_fee = to_money(sweepstake.collected_fees() - prize)

        winner = User.get_for_update(session, sweepstake.winner_user_id)
        if winner is None:
            raise SettlementTransactionFailure(
                sweepstake.id, f"winning user '{sweepstake.winner_user_id}' does not exist"
            )
        winner.credit(prize)
        session.add(
            Transaction(
                type=TransactionType.PRIZE_WIN,
                user_id=winner.id,
                sweepstake_id=sweepstake.id,
                amount=prize,
                description=f"Prize from sweepstake: {sweepstake.title}",
            )
        )
        if house_fee > 0:
            session.add(
                Transaction(
                    type=TransactionType.HOUSE_FEE,
                    user_id=None,
                    sweepstake_id=sweepstake.id,
                    amount=house_fee,
                    description=f"House fee from sweepstake: {sweepstake.title}",
                )
            )
        AuditLog.record(
            session,
            "SWEEPSTAKE_EXECUTED",
            subject_table="sweepstakes",
            subject_id=sweepstake.id,
            details={
                "winner_participant_id": result.winner_participant_id,
                "winner_user_id": winner.id,
                "prize_amount": str(prize),
                "house_fee": str(house_fee),
                "participant_count": len(result.participants),
                "algorithm": result.algorithm,
                "hash": result.hash,
            },
            occurred_at=current,
        )
        session.flush()
    except SettlementTransactionFailure:
        raise
    except (SQLAlchemyError, ValueError) as exc:
        raise SettlementTransactionFailure(sweepstake_id, str(exc)) from exc

    logger.info(
        "Sweepstake %s drawn: participant %s (user %s) wins %s",
        sweepstake.id,
        result.winner_participant_id,
        winner.id,
        prize,
    )
    return Settlement(
        sweepstake_id=sweepstake.id,
        result=result,
        winner_user_id=winner.id,
        prize_amount=prize,
        house_fee=house_fee,
    )


def announce_outcome(notifier: Notifier, outcome: Union[JoinOutcome, LeaveOutcome]) -> None:
    """Broadcast the state a join or leave left the sweepstake in.

    Call only after the transaction that produced ``outcome`` has
    committed. Failures are logged by :meth:`Notifier.safe_send`.
    """

    if isinstance(outcome, JoinOutcome):
        count = outcome.participant_count
    else:
        count = outcome.remaining_participants
    notifier.safe_send(
        "sweepstake_updated",
        sweepstake_id=outcome.sweepstake.id,
        status=outcome.status.value,
        participant_count=count,
    )


def audit_report_for(session: Session, sweepstake_id: str) -> Optional[AuditReport]:
    """Return the public audit report of a drawn sweepstake, or ``None``."""

    sweepstake = Sweepstake.get(session, sweepstake_id)
    if sweepstake is None:
        raise SweepstakeNotFound(f"Sweepstake '{sweepstake_id}' was not found")
    result = sweepstake.draw_result()
    if result is None:
        return None
    return generate_report(result, sweepstake.id)


__all__ = [
    "JoinOutcome",
    "LeaveOutcome",
    "Settlement",
    "activate_sweepstake",
    "announce_outcome",
    "audit_report_for",
    "cancel_sweepstake",
    "create_sweepstake",
    "draw_and_settle",
    "join_sweepstake",
    "leave_sweepstake",
]
