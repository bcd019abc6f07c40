"""Utility helpers for the models package."""

from __future__ import annotations

import secrets
import string
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Type

from sqlalchemy import select
from sqlalchemy.orm import Session

BASE62_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Coerce ``value`` to a :class:`Decimal` rounded to cents."""

    if isinstance(value, float):
        value = repr(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def generate_public_id(
    prefix: str,
    session: Optional[Session] = None,
    model: Optional[Type] = None,
    length: int = 16,
    max_attempts: int = 32,
) -> str:
    """Return a unique public identifier using base62 random characters.

    Identifiers end up inside draw seeds, so they only ever contain base62
    characters and ``-``. When a session and model are provided, the helper
    retries if the generated value is already present (or pending) as
    ``model.id``.
    """

    attempts = 0
    while attempts < max_attempts:
        suffix = "".join(secrets.choice(BASE62_ALPHABET) for _ in range(length))
        candidate = f"{prefix}-{suffix}"

        if session is not None and model is not None:
            collision = any(
                isinstance(obj, model) and getattr(obj, "id", None) == candidate
                for obj in session.new
            )
            if collision:
                attempts += 1
                continue

            exists = session.scalar(select(model.id).where(model.id == candidate))
            if exists is not None:
                attempts += 1
                continue

        return candidate

    raise RuntimeError(
        f"Unable to generate a unique '{prefix}' identifier after multiple attempts"
    )
