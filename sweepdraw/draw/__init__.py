"""Provably-fair draw engine: seed, commitment, selection, and verification."""

from .audit import AuditReport, distribution_stats, generate_report
from .commitment import (
    CommitmentScheme,
    DEFAULT_SCHEME_REGISTRY,
    NOT_APPLICABLE,
    SINGLE_PARTICIPANT,
    SchemeRegistry,
    hash_seed,
    reduce_to_index,
)
from .engine import DrawEngine, DrawProof, DrawResult, execute_draw
from .seed import DrawSeed, ParticipantRecord, build_seed, parse_seed, time_bucket
from .verify import verify_proof, verify_result

__all__ = [
    "AuditReport",
    "CommitmentScheme",
    "DEFAULT_SCHEME_REGISTRY",
    "DrawEngine",
    "DrawProof",
    "DrawResult",
    "DrawSeed",
    "NOT_APPLICABLE",
    "ParticipantRecord",
    "SINGLE_PARTICIPANT",
    "SchemeRegistry",
    "build_seed",
    "distribution_stats",
    "execute_draw",
    "generate_report",
    "hash_seed",
    "parse_seed",
    "reduce_to_index",
    "time_bucket",
    "verify_proof",
    "verify_result",
]
