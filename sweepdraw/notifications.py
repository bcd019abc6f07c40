"""Best-effort push of sweepstake events to the real-time broadcast service."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Mapping, Optional
from urllib.parse import urljoin

import requests

logger = logging.getLogger(__name__)


class Notifier:
    """Interface consumed by workflows and the scheduler.

    Implementations must not raise: a failed notification never rolls back
    a committed state change. :meth:`safe_send` enforces that for callers.
    """

    def sweepstake_updated(
        self, sweepstake_id: str, status: str, participant_count: int
    ) -> None:
        raise NotImplementedError

    def sweepstake_finished(
        self, sweepstake_id: str, winner_user_id: Optional[int], prize_amount: Decimal
    ) -> None:
        raise NotImplementedError

    def safe_send(self, event: str, **kwargs: Any) -> None:
        """Dispatch ``event`` and log, rather than propagate, any failure."""

        try:
            getattr(self, event)(**kwargs)
        except Exception:
            logger.exception("Notification %s failed for %s", event, kwargs.get("sweepstake_id"))


class NullNotifier(Notifier):
    def sweepstake_updated(self, sweepstake_id, status, participant_count) -> None:
        logger.debug("Sweepstake %s is now %s (%d participants)", sweepstake_id, status, participant_count)

    def sweepstake_finished(self, sweepstake_id, winner_user_id, prize_amount) -> None:
        logger.debug("Sweepstake %s finished; user %s won %s", sweepstake_id, winner_user_id, prize_amount)


class RecordingNotifier(Notifier):
    """Keeps every event in memory; handy in tests and dry runs."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def sweepstake_updated(self, sweepstake_id, status, participant_count) -> None:
        self.events.append(
            (
                "updated",
                {
                    "sweepstake_id": sweepstake_id,
                    "status": status,
                    "participant_count": participant_count,
                },
            )
        )

    def sweepstake_finished(self, sweepstake_id, winner_user_id, prize_amount) -> None:
        self.events.append(
            (
                "finished",
                {
                    "sweepstake_id": sweepstake_id,
                    "winner_user_id": winner_user_id,
                    "prize_amount": prize_amount,
                },
            )
        )


class HttpBroadcastNotifier(Notifier):
    """Posts JSON events to the broadcast service over HTTP."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url must not be empty")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {"Accept": "application/json", **(headers or {})}

    def _post(self, path: str, payload: dict[str, Any]) -> None:
        url = urljoin(self.base_url + "/", path.lstrip("/"))
        r = self.session.post(url, json=payload, headers=self.headers, timeout=self.timeout)
        r.raise_for_status()

    def sweepstake_updated(self, sweepstake_id, status, participant_count) -> None:
        self._post(
            f"/sweepstakes/{sweepstake_id}/updates",
            {
                "sweepstake_id": sweepstake_id,
                "status": status,
                "participants": participant_count,
            },
        )

    def sweepstake_finished(self, sweepstake_id, winner_user_id, prize_amount) -> None:
        self._post(
            f"/sweepstakes/{sweepstake_id}/result",
            {
                "sweepstake_id": sweepstake_id,
                "winner_user_id": winner_user_id,
                "prize": str(prize_amount),
            },
        )


def notifier_from_url(url: Optional[str]) -> Notifier:
    """Return an HTTP notifier for ``url``, or a no-op notifier when unset."""

    if url:
        return HttpBroadcastNotifier(url)
    return NullNotifier()


__all__ = [
    "HttpBroadcastNotifier",
    "Notifier",
    "NullNotifier",
    "RecordingNotifier",
    "notifier_from_url",
]
