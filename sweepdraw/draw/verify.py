"""Independent re-verification of published draws."""

from __future__ import annotations

import logging
from typing import Optional

from ..errors import DrawError
from .commitment import (
    DEFAULT_SCHEME_REGISTRY,
    NOT_APPLICABLE,
    SINGLE_PARTICIPANT,
    SchemeRegistry,
)
from .engine import DrawProof, DrawResult
from .seed import build_seed, parse_seed, sort_participants

logger = logging.getLogger(__name__)


def _verify_single_participant(result: DrawResult, sweepstake_id: str) -> bool:
    if len(result.participants) != 1:
        logger.warning(
            "Sweepstake %s: SINGLE_PARTICIPANT result lists %d participants",
            sweepstake_id,
            len(result.participants),
        )
        return False
    only = result.participants[0]
    return (
        result.seed == NOT_APPLICABLE
        and result.hash == NOT_APPLICABLE
        and result.winner_index == 0
        and getattr(only, "participant_id", None) == result.winner_participant_id
    )


def verify_result(
    result: DrawResult,
    sweepstake_id: str,
    *,
    registry: Optional[SchemeRegistry] = None,
) -> bool:
    """Recompute seed, hash, and winner of ``result`` and compare each step.

    The time bucket is read from the persisted seed string; the current
    clock is never consulted, so a draw verifies the same way at any later
    time.

    Parameters
    ----------
    result : DrawResult
        Result to check, including its participant snapshot.
    sweepstake_id : str
        Identifier the draw claims to belong to.
    registry : Optional[SchemeRegistry], default: None
        Registry used to resolve ``result.algorithm``.

    Returns
    -------
    bool
        ``True`` only when the seed, the hash, the winner index, and the
        winner id all match. Tampered or malformed input yields ``False``.
    """

    active_registry = registry or DEFAULT_SCHEME_REGISTRY

    if result.algorithm == SINGLE_PARTICIPANT:
        return _verify_single_participant(result, sweepstake_id)

    if result.algorithm not in active_registry:
        logger.warning(
            "Sweepstake %s: unknown algorithm %r", sweepstake_id, result.algorithm
        )
        return False
    scheme = active_registry.get(result.algorithm)

    try:
        published = parse_seed(result.seed)
        recreated = build_seed(
            sweepstake_id,
            result.participants,
            bucket_ms=published.bucket_ms,
        )
        # Selection indexes into the sorted order, same as the executor.
        ordered = sort_participants(result.participants)
        recreated_text = recreated.text
    except (DrawError, AttributeError, TypeError, ValueError) as exc:
        logger.warning("Sweepstake %s: seed could not be rebuilt: %s", sweepstake_id, exc)
        return False

    if recreated_text != result.seed:
        logger.warning("Sweepstake %s: seed mismatch", sweepstake_id)
        return False

    recreated_hash = scheme.commit(recreated.to_bytes())
    if recreated_hash != result.hash:
        logger.warning("Sweepstake %s: hash mismatch", sweepstake_id)
        return False

    expected_index = scheme.select_index(recreated_hash, len(ordered))
    if expected_index != result.winner_index:
        logger.warning(
            "Sweepstake %s: winner index mismatch (expected %d, got %d)",
            sweepstake_id,
            expected_index,
            result.winner_index,
        )
        return False

    if ordered[expected_index].participant_id != result.winner_participant_id:
        logger.warning("Sweepstake %s: winner mismatch", sweepstake_id)
        return False

    return True


def verify_proof(
    proof: DrawProof,
    *,
    registry: Optional[SchemeRegistry] = None,
) -> bool:
    """Verify a standalone published proof without any database access.

    The participant entries are recovered from the seed itself and must
    agree with the proof's sorted participant id list and count before the
    hash and index are recomputed.
    """

    active_registry = registry or DEFAULT_SCHEME_REGISTRY

    if proof.algorithm == SINGLE_PARTICIPANT:
        return (
            proof.participant_count == 1
            and len(proof.participant_ids) == 1
            and proof.seed == NOT_APPLICABLE
            and proof.hash == NOT_APPLICABLE
            and proof.winner_index == 0
        )

    if proof.algorithm not in active_registry:
        logger.warning("Proof for %s: unknown algorithm %r", proof.sweepstake_id, proof.algorithm)
        return False
    scheme = active_registry.get(proof.algorithm)

    try:
        seed = parse_seed(proof.seed)
    except (DrawError, AttributeError) as exc:
        logger.warning("Proof for %s: %s", proof.sweepstake_id, exc)
        return False

    if seed.sweepstake_id != proof.sweepstake_id:
        logger.warning("Proof for %s: seed names another sweepstake", proof.sweepstake_id)
        return False
    if tuple(seed.participant_ids) != tuple(proof.participant_ids):
        logger.warning("Proof for %s: participant list mismatch", proof.sweepstake_id)
        return False
    if proof.participant_count != len(seed.participants):
        logger.warning("Proof for %s: participant count mismatch", proof.sweepstake_id)
        return False

    if scheme.commit(proof.seed) != proof.hash:
        logger.warning("Proof for %s: hash mismatch", proof.sweepstake_id)
        return False

    if scheme.select_index(proof.hash, proof.participant_count) != proof.winner_index:
        logger.warning("Proof for %s: winner index mismatch", proof.sweepstake_id)
        return False

    return True


__all__ = ["verify_proof", "verify_result"]
