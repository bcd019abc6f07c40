"""Independently verify a published draw proof.

Usage::

    python scripts/verify_proof.py proof.json [--sweepstake-id swp-...]

Only the proof document is needed; no database access happens.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from sweepdraw.draw.engine import DrawProof
from sweepdraw.draw.seed import parse_seed
from sweepdraw.draw.verify import verify_proof


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Verify a sweepstake draw proof.")
    parser.add_argument("proof", type=Path, help="Path to the proof JSON document")
    parser.add_argument(
        "--sweepstake-id",
        default=None,
        help="Expected sweepstake id; fails if the proof names another one",
    )
    args = parser.parse_args(argv)

    try:
        proof = DrawProof.from_json(args.proof.read_text(encoding="utf-8"))
    except (OSError, ValueError, KeyError, TypeError) as exc:
        print(f"Cannot read proof {args.proof}: {exc}", file=sys.stderr)
        return 2

    if args.sweepstake_id is not None and proof.sweepstake_id != args.sweepstake_id:
        print(
            f"FAILED: proof is for {proof.sweepstake_id}, expected {args.sweepstake_id}"
        )
        return 1

    ok = verify_proof(proof)
    summary = {
        "valid": ok,
        "sweepstake_id": proof.sweepstake_id,
        "algorithm": proof.algorithm,
        "participant_count": proof.participant_count,
        "winner_index": proof.winner_index,
        "hash": proof.hash,
    }
    if ok and proof.participant_count > 1:
        summary["bucket_ms"] = parse_seed(proof.seed).bucket_ms
        summary["winner_participant_id"] = proof.participant_ids[proof.winner_index]
    print(json.dumps(summary, indent=2))
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
