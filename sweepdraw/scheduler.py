"""Polling scheduler that activates, draws, and cancels sweepstakes."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from .config import DEFAULT_SETTINGS, DrawSettings
from .db.utils import as_utc
from .draw.engine import DrawEngine
from .errors import AlreadyDrawn, EmptyParticipantSet, SweepstakeRejection
from .models import Sweepstake, SweepstakeStatus
from .notifications import Notifier, NullNotifier
from .workflows import activate_sweepstake, cancel_sweepstake, draw_and_settle

logger = logging.getLogger(__name__)

NO_PARTICIPANTS_REASON = "No participants"
NEVER_ACTIVATED_REASON = "Not enough participants before end time"


@dataclass
class SweepSummary:
    """Sweepstake ids touched by one scheduler sweep."""

    activated: list[str] = field(default_factory=list)
    drawn: list[str] = field(default_factory=list)
    cancelled: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)


class DrawScheduler:
    """Drive sweepstakes through their time-based transitions.

    Every sweep (:meth:`tick`) does three things:

    * draws ACTIVE sweepstakes past ``end_time`` and every DRAWING one,
      each in its own transaction via :func:`draw_and_settle`;
    * cancels, with refunds, sweepstakes that reach their end without
      anyone to draw, and SCHEDULED ones that never gathered enough
      participants;
    * activates SCHEDULED sweepstakes whose start time has come.

    A failed draw is logged and retried no earlier than
    ``settings.retry_backoff_seconds`` later. The winner guard inside
    :func:`draw_and_settle` makes a retry after an ambiguous failure safe.

    Parameters
    ----------
    session_factory : sessionmaker
        Factory producing sessions bound to the application database.
    notifier : Optional[Notifier]
        Receives updates after each committed transition.
    settings : Optional[DrawSettings]
        Poll interval, retry backoff and activation threshold.
    engine : Optional[DrawEngine]
        Draw engine; defaults to one using ``settings.seed_bucket_ms``.
    clock : Optional[Callable[[], datetime]]
        Source of the current time; UTC ``now`` by default.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        notifier: Optional[Notifier] = None,
        settings: Optional[DrawSettings] = None,
        engine: Optional[DrawEngine] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.session_factory = session_factory
        self.notifier = notifier or NullNotifier()
        self.settings = settings or DEFAULT_SETTINGS
        self.engine = engine or DrawEngine(bucket_size_ms=self.settings.seed_bucket_ms)
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._retry_at: dict[str, datetime] = {}
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._tick_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def pending_retries(self) -> dict[str, datetime]:
        return dict(self._retry_at)

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def start(self) -> None:
        """Run one sweep immediately, then every poll interval, in a thread."""

        if self.is_running:
            logger.warning("Draw scheduler is already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="draw-scheduler", daemon=True
        )
        self._thread.start()
        logger.info(
            "Draw scheduler started (poll every %.0fs)", self.settings.poll_interval_seconds
        )

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop polling and drop pending retries."""

        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self._retry_at.clear()
        logger.info("Draw scheduler stopped")

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Draw scheduler sweep failed")
            self._stop_event.wait(self.settings.poll_interval_seconds)

    def tick(self, now: Optional[datetime] = None) -> SweepSummary:
        """Run a single sweep at ``now`` and report what happened."""

        current = as_utc(now) if now is not None else as_utc(self.clock())
        summary = SweepSummary()
        with self._tick_lock:
            due, stale, startable = self._find_candidates(current)
            for sweepstake_id in due:
                if self._deferred(sweepstake_id, current):
                    summary.deferred.append(sweepstake_id)
                    continue
                self._draw_one(sweepstake_id, current, summary)
            for sweepstake_id in stale:
                self._cancel_one(sweepstake_id, NEVER_ACTIVATED_REASON, current, summary)
            for sweepstake_id in startable:
                self._activate_one(sweepstake_id, current, summary)
        if summary.drawn or summary.cancelled or summary.failed:
            logger.info(
                "Sweep done: %d drawn, %d cancelled, %d failed, %d activated",
                len(summary.drawn),
                len(summary.cancelled),
                len(summary.failed),
                len(summary.activated),
            )
        return summary

    def _find_candidates(
        self, now: datetime
    ) -> tuple[list[str], list[str], list[str]]:
        with self.session_factory() as session:
            due = session.scalars(
                select(Sweepstake.id)
                .where(
                    (Sweepstake.status == SweepstakeStatus.DRAWING)
                    | (
                        (Sweepstake.status == SweepstakeStatus.ACTIVE)
                        & (Sweepstake.end_time <= now)
                    )
                )
                .where(Sweepstake.winner_participant_id.is_(None))
                .order_by(Sweepstake.end_time, Sweepstake.id)
            ).all()
            stale = session.scalars(
                select(Sweepstake.id)
                .where(Sweepstake.status == SweepstakeStatus.SCHEDULED)
                .where(Sweepstake.end_time <= now)
                .order_by(Sweepstake.end_time, Sweepstake.id)
            ).all()
            startable = session.scalars(
                select(Sweepstake.id)
                .where(Sweepstake.status == SweepstakeStatus.SCHEDULED)
                .where(Sweepstake.start_time <= now)
                .where(Sweepstake.end_time > now)
                .order_by(Sweepstake.start_time, Sweepstake.id)
            ).all()
        return list(due), list(stale), list(startable)

    def _deferred(self, sweepstake_id: str, now: datetime) -> bool:
        retry_at = self._retry_at.get(sweepstake_id)
        return retry_at is not None and now < retry_at

    def _schedule_retry(self, sweepstake_id: str, now: datetime) -> None:
        self._retry_at[sweepstake_id] = now + timedelta(
            seconds=self.settings.retry_backoff_seconds
        )

    def _draw_one(self, sweepstake_id: str, now: datetime, summary: SweepSummary) -> None:
        try:
            with self.session_factory.begin() as session:
                settlement = draw_and_settle(
                    session, sweepstake_id, now=now, engine=self.engine
                )
        except AlreadyDrawn:
            logger.warning("Sweepstake %s was already drawn; skipping", sweepstake_id)
            self._retry_at.pop(sweepstake_id, None)
            return
        except EmptyParticipantSet:
            self._retry_at.pop(sweepstake_id, None)
            self._cancel_one(sweepstake_id, NO_PARTICIPANTS_REASON, now, summary)
            return
        except SweepstakeRejection as exc:
            logger.info("Sweepstake %s not drawn: %s", sweepstake_id, exc.message)
            self._retry_at.pop(sweepstake_id, None)
            return
        except Exception:
            logger.exception("Draw of sweepstake %s failed; will retry", sweepstake_id)
            self._schedule_retry(sweepstake_id, now)
            summary.failed.append(sweepstake_id)
            return

        self._retry_at.pop(sweepstake_id, None)
        summary.drawn.append(sweepstake_id)
        self.notifier.safe_send(
            "sweepstake_updated",
            sweepstake_id=sweepstake_id,
            status=SweepstakeStatus.FINISHED.value,
            participant_count=len(settlement.result.participants),
        )
        self.notifier.safe_send(
            "sweepstake_finished",
            sweepstake_id=sweepstake_id,
            winner_user_id=settlement.winner_user_id,
            prize_amount=settlement.prize_amount,
        )

    def _cancel_one(
        self, sweepstake_id: str, reason: str, now: datetime, summary: SweepSummary
    ) -> None:
        try:
            with self.session_factory.begin() as session:
                sweepstake = cancel_sweepstake(session, sweepstake_id, reason, now=now)
                count = sweepstake.participant_count
        except (AlreadyDrawn, SweepstakeRejection) as exc:
            logger.info("Sweepstake %s not cancelled: %s", sweepstake_id, exc)
            return
        except Exception:
            logger.exception("Cancelling sweepstake %s failed", sweepstake_id)
            summary.failed.append(sweepstake_id)
            return

        summary.cancelled.append(sweepstake_id)
        self.notifier.safe_send(
            "sweepstake_updated",
            sweepstake_id=sweepstake_id,
            status=SweepstakeStatus.CANCELLED.value,
            participant_count=count,
        )

    def _activate_one(self, sweepstake_id: str, now: datetime, summary: SweepSummary) -> None:
        try:
            with self.session_factory.begin() as session:
                activated = activate_sweepstake(
                    session, sweepstake_id, now=now, settings=self.settings
                )
                count = Sweepstake.get(session, sweepstake_id).participant_count
        except Exception:
            logger.exception("Activating sweepstake %s failed", sweepstake_id)
            summary.failed.append(sweepstake_id)
            return

        if activated:
            summary.activated.append(sweepstake_id)
            self.notifier.safe_send(
                "sweepstake_updated",
                sweepstake_id=sweepstake_id,
                status=SweepstakeStatus.ACTIVE.value,
                participant_count=count,
            )


def run_forever(scheduler: DrawScheduler) -> None:
    """Start ``scheduler`` and block until interrupted."""

    scheduler.start()
    try:
        while scheduler.is_running:
            scheduler.join(1.0)
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        scheduler.stop()


__all__ = ["DrawScheduler", "SweepSummary", "run_forever"]
