"""Public audit material for finished draws."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from ..db.utils import dt_iso
from .commitment import DEFAULT_SCHEME_REGISTRY, SchemeRegistry
from .engine import DrawResult
from .seed import ParticipantRecord, build_seed
from .verify import verify_result

VERIFICATION_STEPS: tuple[str, ...] = (
    "1. Rebuild the seed from the sweepstake id, the participants sorted by "
    "participant id (participant_id:user_id:joined_at_ms joined with '|'), and "
    "the time bucket recorded at the end of the published seed; it must equal "
    "the published seed.",
    "2. Compute the SHA-256 digest of the seed (UTF-8) and confirm it equals "
    "the published hash.",
    "3. Read the first 8 hex characters of the hash as an unsigned 32-bit "
    "integer, take it modulo the participant count, and confirm it equals the "
    "published winner index and that the participant at that sorted position "
    "is the published winner.",
    "4. Confirm every participant appears exactly once in the sorted list, so "
    "each entry had the same chance of selection.",
)

AUDIT_URL_TEMPLATE = "/audit/sweepstake/{sweepstake_id}"


@dataclass(frozen=True)
class AuditReport:
    """Publishable verification report for one draw.

    Holds only participant and user identifiers plus the draw material; no
    names, e-mails, or balances.
    """

    sweepstake_id: str
    generated_at: str
    algorithm: str
    participant_count: int
    winner_participant_id: str
    winner_user_id: str
    is_valid: bool
    seed: str
    hash: str
    proof: dict[str, Any]
    audit_url: str
    verification_steps: tuple[str, ...] = VERIFICATION_STEPS

    def to_dict(self) -> dict[str, Any]:
        return {
            "sweepstake_id": self.sweepstake_id,
            "generated_at": self.generated_at,
            "algorithm": self.algorithm,
            "participant_count": self.participant_count,
            "winner": {
                "participant_id": self.winner_participant_id,
                "user_id": self.winner_user_id,
            },
            "verification": {
                "is_valid": self.is_valid,
                "seed": self.seed,
                "hash": self.hash,
                "proof": dict(self.proof),
            },
            "audit_url": self.audit_url,
            "verification_steps": list(self.verification_steps),
        }


def generate_report(
    result: DrawResult,
    sweepstake_id: str,
    *,
    registry: Optional[SchemeRegistry] = None,
) -> AuditReport:
    """Verify ``result`` and wrap the outcome in an :class:`AuditReport`.

    Read-only; a failed verification is reported through ``is_valid`` rather
    than raised.
    """

    is_valid = verify_result(result, sweepstake_id, registry=registry)
    return AuditReport(
        sweepstake_id=sweepstake_id,
        generated_at=dt_iso(result.generated_at),
        algorithm=result.algorithm,
        participant_count=len(result.participants),
        winner_participant_id=result.winner_participant_id,
        winner_user_id=result.winner_user_id,
        is_valid=is_valid,
        seed=result.seed,
        hash=result.hash,
        proof=result.proof.to_dict(),
        audit_url=AUDIT_URL_TEMPLATE.format(sweepstake_id=sweepstake_id),
    )


def distribution_stats(
    sweepstake_id: str,
    participants: Sequence[ParticipantRecord],
    *,
    iterations: int = 1000,
    bucket_ms: int = 0,
    registry: Optional[SchemeRegistry] = None,
) -> dict[str, float]:
    """Return the share of simulated wins per participant, in percent.

    Each iteration re-runs the selection with the sweepstake id suffixed by
    the iteration number, which gives auditors a quick look at how evenly the
    reduction spreads wins. ``bucket_ms`` is fixed so the output is
    reproducible.
    """

    if iterations <= 0:
        raise ValueError("iterations must be positive")
    scheme = (registry or DEFAULT_SCHEME_REGISTRY).current

    wins = {p.participant_id: 0 for p in participants}
    for i in range(iterations):
        seed = build_seed(f"{sweepstake_id}{i}", participants, bucket_ms=bucket_ms)
        digest = scheme.commit(seed.to_bytes())
        index = scheme.select_index(digest, len(seed.participants))
        wins[seed.participants[index].participant_id] += 1

    return {pid: count / iterations * 100 for pid, count in wins.items()}


__all__ = [
    "AUDIT_URL_TEMPLATE",
    "AuditReport",
    "VERIFICATION_STEPS",
    "distribution_stats",
    "generate_report",
]
