"""Runtime settings for the draw engine and scheduler."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv


def _env_int(env: Mapping[str, str], name: str, default: int, *, minimum: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable '{name}' must be an integer") from exc
    if value < minimum:
        raise ValueError(f"Environment variable '{name}' must be >= {minimum}")
    return value


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable '{name}' must be a number") from exc


@dataclass(frozen=True)
class DrawSettings:
    """Tunable constants shared by the draw engine, workflows and scheduler.

    Attributes
    ----------
    seed_bucket_ms : int
        Width of the time bucket folded into every seed. Changing it does not
        affect already published proofs, which carry the bucket value used.
    poll_interval_seconds : float
        Delay between two scheduler sweeps. Bounds worst-case draw latency.
    retry_backoff_seconds : float
        Delay before a sweepstake whose draw failed is attempted again.
    house_fee_fraction : float
        Share of collected entry fees kept by the house (0.0-1.0).
    leave_lockout_seconds : int
        Participants cannot withdraw during this window before ``end_time``.
    min_participants_to_activate : int
        Participant count required for SCHEDULED -> ACTIVE.
    broadcast_url : Optional[str]
        Endpoint of the real-time broadcast service, if any.
    """

    seed_bucket_ms: int = 5 * 60 * 1000
    poll_interval_seconds: float = 30.0
    retry_backoff_seconds: float = 60.0
    house_fee_fraction: float = 0.05
    leave_lockout_seconds: int = 5 * 60
    min_participants_to_activate: int = 2
    broadcast_url: Optional[str] = None

    def __post_init__(self) -> None:
        if self.seed_bucket_ms <= 0:
            raise ValueError("seed_bucket_ms must be positive")
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds must not be negative")
        if not 0.0 <= self.house_fee_fraction <= 1.0:
            raise ValueError("house_fee_fraction must be between 0.0 and 1.0")
        if self.min_participants_to_activate < 1:
            raise ValueError("min_participants_to_activate must be at least 1")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "DrawSettings":
        """Build settings from environment variables (after loading ``.env``)."""

        if env is None:
            load_dotenv()
            env = os.environ
        defaults = cls()
        return cls(
            seed_bucket_ms=_env_int(
                env, "SEED_BUCKET_MS", defaults.seed_bucket_ms, minimum=1
            ),
            poll_interval_seconds=_env_float(
                env, "SCHEDULER_POLL_SECONDS", defaults.poll_interval_seconds
            ),
            retry_backoff_seconds=_env_float(
                env, "SCHEDULER_RETRY_SECONDS", defaults.retry_backoff_seconds
            ),
            house_fee_fraction=_env_float(
                env, "HOUSE_FEE_FRACTION", defaults.house_fee_fraction
            ),
            leave_lockout_seconds=_env_int(
                env, "LEAVE_LOCKOUT_SECONDS", defaults.leave_lockout_seconds, minimum=0
            ),
            min_participants_to_activate=_env_int(
                env,
                "MIN_PARTICIPANTS_TO_ACTIVATE",
                defaults.min_participants_to_activate,
                minimum=1,
            ),
            broadcast_url=env.get("BROADCAST_URL") or None,
        )


DEFAULT_SETTINGS = DrawSettings()

__all__ = ["DEFAULT_SETTINGS", "DrawSettings"]
