"""Commitment hashing and index reduction for draws."""

from __future__ import annotations

from dataclasses import dataclass
import hashlib
import re
from typing import Dict, Optional, Union

from ..errors import InvalidModulus

SINGLE_PARTICIPANT = "SINGLE_PARTICIPANT"
"""Algorithm tag for draws with one participant; no hashing is involved."""

NOT_APPLICABLE = "N/A"
"""Sentinel stored as seed and hash when no randomness was used."""

_HEX_DIGEST = re.compile(r"^[0-9a-f]{64}$")


def hash_seed(seed: Union[bytes, str]) -> str:
    """Return the lower-case SHA-256 hex digest of ``seed``.

    ``str`` seeds are encoded as UTF-8 first.
    """

    payload = seed.encode("utf-8") if isinstance(seed, str) else bytes(seed)
    return hashlib.sha256(payload).hexdigest()


def reduce_to_index(digest_hex: str, modulus: int, *, prefix_chars: int = 8) -> int:
    """Reduce a hex digest to an index in ``[0, modulus)``.

    The first ``prefix_chars`` hex characters are parsed as an unsigned
    integer and taken modulo ``modulus``. For counts that are not powers of
    two this carries a small modulo bias; the rule is fixed per scheme so
    that published proofs stay verifiable.

    Raises
    ------
    InvalidModulus
        If ``modulus`` is not positive.
    ValueError
        If ``digest_hex`` is not a 64 character lower-case hex string.
    """

    if isinstance(modulus, bool) or not isinstance(modulus, int) or modulus <= 0:
        raise InvalidModulus(f"modulus must be a positive integer, got {modulus!r}")
    if not isinstance(digest_hex, str) or not _HEX_DIGEST.match(digest_hex):
        raise ValueError("digest must be a 64 character lower-case hex string")
    return int(digest_hex[:prefix_chars], 16) % modulus


@dataclass(frozen=True)
class CommitmentScheme:
    """A versioned hash-and-reduce rule.

    Attributes
    ----------
    key : str
        Algorithm tag persisted with every draw.
    prefix_bits : int
        Number of leading digest bits fed into the modulo reduction.
    description : Optional[str]
        Human-readable summary used in audit material.
    """

    key: str
    prefix_bits: int
    description: Optional[str] = None

    @property
    def prefix_chars(self) -> int:
        return self.prefix_bits // 4

    def commit(self, seed: Union[bytes, str]) -> str:
        return hash_seed(seed)

    def select_index(self, digest_hex: str, participant_count: int) -> int:
        return reduce_to_index(digest_hex, participant_count, prefix_chars=self.prefix_chars)


class SchemeRegistry:
    """Mutable registry mapping algorithm tags to commitment schemes."""

    def __init__(self) -> None:
        self._schemes: Dict[str, CommitmentScheme] = {}
        self._current: Optional[str] = None

    def register(
        self,
        scheme: CommitmentScheme,
        *,
        replace: bool = False,
        current: bool = False,
    ) -> None:
        """Register ``scheme`` under its key.

        Parameters
        ----------
        scheme : CommitmentScheme
            Scheme to add to the registry.
        replace : bool, default: False
            When ``True`` an existing registration with the same key is
            overwritten. Otherwise a duplicate raises :class:`ValueError`.
        current : bool, default: False
            Mark the scheme as the one new draws use.
        """
        if scheme.prefix_bits <= 0 or scheme.prefix_bits % 4 or scheme.prefix_bits > 256:
            raise ValueError("prefix_bits must be a positive multiple of 4, at most 256")
        if not replace and scheme.key in self._schemes:
            raise ValueError(f"Scheme '{scheme.key}' is already registered")
        self._schemes[scheme.key] = scheme
        if current or self._current is None:
            self._current = scheme.key

    def get(self, key: str) -> CommitmentScheme:
        """Return the scheme registered under ``key``."""
        try:
            return self._schemes[key]
        except KeyError as exc:
            raise KeyError(f"Unknown commitment scheme '{key}'") from exc

    def __contains__(self, key: object) -> bool:
        return key in self._schemes

    @property
    def current(self) -> CommitmentScheme:
        if self._current is None:
            raise LookupError("No commitment scheme has been registered")
        return self._schemes[self._current]

    def available_schemes(self) -> Dict[str, CommitmentScheme]:
        """Return a copy of the registered schemes keyed by tag."""
        return dict(self._schemes)


DEFAULT_SCHEME_REGISTRY = SchemeRegistry()
DEFAULT_SCHEME_REGISTRY.register(
    CommitmentScheme(
        key="SHA256_PREFIX32_MOD_V1",
        prefix_bits=32,
        description=(
            "SHA-256 over the UTF-8 seed; the first 8 hex characters (32 bits) "
            "of the digest, read as an unsigned integer, modulo the participant "
            "count."
        ),
    ),
    current=True,
)
DEFAULT_SCHEME_REGISTRY.register(
    CommitmentScheme(
        key="SHA256_DETERMINISTIC",
        prefix_bits=32,
        description="Legacy tag for SHA256_PREFIX32_MOD_V1; identical rule.",
    )
)

__all__ = [
    "CommitmentScheme",
    "DEFAULT_SCHEME_REGISTRY",
    "NOT_APPLICABLE",
    "SINGLE_PARTICIPANT",
    "SchemeRegistry",
    "hash_seed",
    "reduce_to_index",
]
