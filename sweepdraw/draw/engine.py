"""Draw executor: seed, commit, select, and prove."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
import logging
from typing import Any, Optional, Sequence

from ..db.utils import as_utc, dt_iso
from .commitment import (
    DEFAULT_SCHEME_REGISTRY,
    NOT_APPLICABLE,
    SINGLE_PARTICIPANT,
    SchemeRegistry,
)
from .seed import (
    DEFAULT_BUCKET_MS,
    ParticipantRecord,
    Timestamp,
    build_seed,
    sort_participants,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DrawProof:
    """Standalone, publishable record of how a winner was selected.

    Attributes
    ----------
    sweepstake_id : str
        Sweepstake the draw belongs to.
    participant_count : int
        Number of participants in the draw; also the reduction modulus.
    participant_ids : tuple[str, ...]
        Participant ids in the sorted order used for selection.
    seed : str
        Seed string that was hashed, or ``"N/A"``.
    hash : str
        SHA-256 hex digest of ``seed``, or ``"N/A"``.
    winner_index : int
        Position of the winner within ``participant_ids``.
    algorithm : str
        Commitment scheme tag.
    generated_at : str
        ISO-8601 UTC timestamp of proof generation.
    """

    sweepstake_id: str
    participant_count: int
    participant_ids: tuple[str, ...]
    seed: str
    hash: str
    winner_index: int
    algorithm: str
    generated_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "sweepstake_id": self.sweepstake_id,
            "participant_count": self.participant_count,
            "participant_ids": list(self.participant_ids),
            "seed": self.seed,
            "hash": self.hash,
            "winner_index": self.winner_index,
            "algorithm": self.algorithm,
            "generated_at": self.generated_at,
        }

    def to_json(self, *, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DrawProof":
        return cls(
            sweepstake_id=str(data["sweepstake_id"]),
            participant_count=int(data["participant_count"]),
            participant_ids=tuple(str(pid) for pid in data["participant_ids"]),
            seed=str(data["seed"]),
            hash=str(data["hash"]),
            winner_index=int(data["winner_index"]),
            algorithm=str(data["algorithm"]),
            generated_at=str(data["generated_at"]),
        )

    @classmethod
    def from_json(cls, text: str) -> "DrawProof":
        return cls.from_dict(json.loads(text))


@dataclass(frozen=True)
class DrawResult:
    """Outcome of one draw, including the participant snapshot it used.

    ``participants`` is sorted by ``participant_id``; ``winner_index``
    points into that ordering.
    """

    sweepstake_id: str
    winner_participant_id: str
    winner_user_id: str
    winner_index: int
    algorithm: str
    seed: str
    hash: str
    proof: DrawProof
    participants: tuple[ParticipantRecord, ...]
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def participant_count(self) -> int:
        return len(self.participants)

    def snapshot(self) -> list[dict[str, Any]]:
        """Return the participant snapshot as JSON-ready dictionaries."""
        return [p.to_dict() for p in self.participants]


class DrawEngine:
    """Runs draws with a given scheme registry and bucket width.

    The engine is pure: it performs no I/O and keeps no state between
    calls, so it may be shared freely.
    """

    def __init__(
        self,
        *,
        registry: Optional[SchemeRegistry] = None,
        bucket_size_ms: int = DEFAULT_BUCKET_MS,
    ) -> None:
        self._registry = registry or DEFAULT_SCHEME_REGISTRY
        self._bucket_size_ms = bucket_size_ms

    @property
    def registry(self) -> SchemeRegistry:
        return self._registry

    def execute(
        self,
        sweepstake_id: str,
        participants: Sequence[ParticipantRecord],
        *,
        now: Optional[Timestamp] = None,
    ) -> DrawResult:
        """Select a winner among ``participants``.

        Parameters
        ----------
        sweepstake_id : str
            Public identifier of the sweepstake.
        participants : Sequence[ParticipantRecord]
            Entries in any order.
        now : datetime | int, optional
            Clock reading for the seed time bucket and proof timestamp.

        Returns
        -------
        DrawResult
            Winner, seed, hash, and proof.

        Notes
        -----
        1. A single participant wins outright under ``SINGLE_PARTICIPANT``
           with sentinel seed and hash.
        2. Otherwise the seed is built over the sorted participants, hashed,
           and reduced modulo the participant count.
        3. The winner is read from the same sorted tuple the seed was built
           from.

        Raises
        ------
        EmptyParticipantSet
            If ``participants`` is empty.
        InvalidSeedField
            If an identifier cannot be embedded in a seed.
        """

        generated_at = _resolve_clock(now)

        if len(participants) == 1:
            ordered = sort_participants(participants)
            winner = ordered[0]
            proof = DrawProof(
                sweepstake_id=sweepstake_id,
                participant_count=1,
                participant_ids=(winner.participant_id,),
                seed=NOT_APPLICABLE,
                hash=NOT_APPLICABLE,
                winner_index=0,
                algorithm=SINGLE_PARTICIPANT,
                generated_at=dt_iso(generated_at),
            )
            logger.info(
                "Sweepstake %s has a single participant; %s wins by default",
                sweepstake_id,
                winner.participant_id,
            )
            return DrawResult(
                sweepstake_id=sweepstake_id,
                winner_participant_id=winner.participant_id,
                winner_user_id=winner.user_id,
                winner_index=0,
                algorithm=SINGLE_PARTICIPANT,
                seed=NOT_APPLICABLE,
                hash=NOT_APPLICABLE,
                proof=proof,
                participants=ordered,
                generated_at=generated_at,
            )

        scheme = self._registry.current
        seed = build_seed(
            sweepstake_id,
            participants,
            now=now if now is not None else generated_at,
            bucket_size_ms=self._bucket_size_ms,
        )
        seed_text = seed.text
        digest = scheme.commit(seed.to_bytes())
        winner_index = scheme.select_index(digest, len(seed.participants))
        winner = seed.participants[winner_index]

        proof = DrawProof(
            sweepstake_id=sweepstake_id,
            participant_count=len(seed.participants),
            participant_ids=tuple(seed.participant_ids),
            seed=seed_text,
            hash=digest,
            winner_index=winner_index,
            algorithm=scheme.key,
            generated_at=dt_iso(generated_at),
        )
        logger.debug(
            "Sweepstake %s drawn: hash=%s index=%d of %d",
            sweepstake_id,
            digest,
            winner_index,
            len(seed.participants),
        )
        return DrawResult(
            sweepstake_id=sweepstake_id,
            winner_participant_id=winner.participant_id,
            winner_user_id=winner.user_id,
            winner_index=winner_index,
            algorithm=scheme.key,
            seed=seed_text,
            hash=digest,
            proof=proof,
            participants=seed.participants,
            generated_at=generated_at,
        )


def _resolve_clock(now: Optional[Timestamp]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if isinstance(now, datetime):
        return as_utc(now)
    return datetime.fromtimestamp(now / 1000, tz=timezone.utc)


DEFAULT_ENGINE = DrawEngine()


def execute_draw(
    sweepstake_id: str,
    participants: Sequence[ParticipantRecord],
    *,
    now: Optional[Timestamp] = None,
) -> DrawResult:
    """Run a draw with the default engine. See :meth:`DrawEngine.execute`."""

    return DEFAULT_ENGINE.execute(sweepstake_id, participants, now=now)


__all__ = [
    "DEFAULT_ENGINE",
    "DrawEngine",
    "DrawProof",
    "DrawResult",
    "execute_draw",
]
