"""Deterministic seed construction for sweepstake draws.

Seed layout::

    <sweepstake_id>:<entry>|<entry>|...:<bucket_ms>
    entry = <participant_id>:<user_id>:<joined_at_epoch_ms>

Entries are ordered by ``participant_id`` using plain ordinal string
comparison, so the seed never depends on the order rows came back from the
database. ``:`` and ``|`` are reserved; identifiers containing either are
rejected rather than escaped, which keeps every published seed splittable
back into its fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Optional, Sequence, Union

from ..db.utils import as_utc
from ..errors import EmptyParticipantSet, InvalidSeedField

FIELD_DELIMITER = ":"
ENTRY_DELIMITER = "|"
RESERVED_CHARACTERS = (FIELD_DELIMITER, ENTRY_DELIMITER)

DEFAULT_BUCKET_MS = 5 * 60 * 1000

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

Timestamp = Union[datetime, int]


def epoch_millis(value: Timestamp) -> int:
    """Return ``value`` as whole milliseconds since the Unix epoch.

    Integers are taken to already be epoch milliseconds. Naive datetimes are
    interpreted as UTC.
    """

    if isinstance(value, bool):
        raise TypeError("timestamp must be a datetime or integer milliseconds")
    if isinstance(value, int):
        return value
    if isinstance(value, datetime):
        return (as_utc(value) - _EPOCH) // timedelta(milliseconds=1)
    raise TypeError("timestamp must be a datetime or integer milliseconds")


def time_bucket(now: Timestamp, bucket_size_ms: int = DEFAULT_BUCKET_MS) -> int:
    """Round ``now`` down to the start of its bucket, in epoch milliseconds."""

    if bucket_size_ms <= 0:
        raise ValueError("bucket_size_ms must be positive")
    now_ms = epoch_millis(now)
    return (now_ms // bucket_size_ms) * bucket_size_ms


def _check_field(name: str, value: str) -> str:
    if not isinstance(value, str):
        raise InvalidSeedField(f"{name} must be a string")
    if not value:
        raise InvalidSeedField(f"{name} must not be empty")
    for reserved in RESERVED_CHARACTERS:
        if reserved in value:
            raise InvalidSeedField(
                f"{name} {value!r} contains the reserved seed delimiter {reserved!r}"
            )
    return value


@dataclass(frozen=True)
class ParticipantRecord:
    """The slice of a participant that feeds the draw.

    Attributes
    ----------
    participant_id : str
        Unique entry identifier within the sweepstake.
    user_id : str
        Owner of the entry.
    joined_at : datetime | int
        Entry time as a datetime or as epoch milliseconds.
    entry_fee : Optional[Decimal]
        Fee paid for the entry. Not part of the seed.
    """

    participant_id: str
    user_id: str
    joined_at: Timestamp
    entry_fee: Optional[Decimal] = field(default=None, compare=False)

    @property
    def joined_at_ms(self) -> int:
        return epoch_millis(self.joined_at)

    def canonical(self) -> str:
        """Return the ``participant_id:user_id:joined_at_ms`` seed entry."""

        try:
            joined_ms = self.joined_at_ms
        except TypeError as exc:
            raise InvalidSeedField(
                f"joined_at of {self.participant_id!r} is not a timestamp"
            ) from exc
        return FIELD_DELIMITER.join(
            (
                _check_field("participant_id", self.participant_id),
                _check_field("user_id", self.user_id),
                str(joined_ms),
            )
        )

    def to_dict(self) -> dict:
        return {
            "participant_id": self.participant_id,
            "user_id": self.user_id,
            "joined_at_ms": self.joined_at_ms,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ParticipantRecord":
        return cls(
            participant_id=str(data["participant_id"]),
            user_id=str(data["user_id"]),
            joined_at=int(data["joined_at_ms"]),
        )


def sort_participants(
    participants: Iterable[ParticipantRecord],
) -> tuple[ParticipantRecord, ...]:
    """Return participants ordered by ``participant_id``.

    Raises
    ------
    EmptyParticipantSet
        If ``participants`` is empty.
    InvalidSeedField
        If an entry is not a :class:`ParticipantRecord`, an id is not a
        string, or two participants share an id.
    """

    records = list(participants)
    for record in records:
        if not isinstance(record, ParticipantRecord):
            raise InvalidSeedField(f"{record!r} is not a participant record")
        if not isinstance(record.participant_id, str):
            raise InvalidSeedField("participant_id must be a string")
    ordered = tuple(sorted(records, key=lambda p: p.participant_id))
    if not ordered:
        raise EmptyParticipantSet("Cannot build a draw seed without participants")
    for previous, current in zip(ordered, ordered[1:]):
        if previous.participant_id == current.participant_id:
            raise InvalidSeedField(
                f"participant_id {current.participant_id!r} appears more than once"
            )
    return ordered


@dataclass(frozen=True)
class DrawSeed:
    """Deterministic input material of one draw.

    ``participants`` is already sorted; the draw engine indexes into this
    exact tuple when picking the winner.
    """

    sweepstake_id: str
    participants: tuple[ParticipantRecord, ...]
    bucket_ms: int

    @property
    def text(self) -> str:
        entries = ENTRY_DELIMITER.join(p.canonical() for p in self.participants)
        return FIELD_DELIMITER.join(
            (
                _check_field("sweepstake_id", self.sweepstake_id),
                entries,
                str(self.bucket_ms),
            )
        )

    @property
    def participant_ids(self) -> list[str]:
        return [p.participant_id for p in self.participants]

    def to_bytes(self) -> bytes:
        return self.text.encode("utf-8")

    def __str__(self) -> str:
        return self.text


def build_seed(
    sweepstake_id: str,
    participants: Sequence[ParticipantRecord],
    *,
    now: Optional[Timestamp] = None,
    bucket_size_ms: int = DEFAULT_BUCKET_MS,
    bucket_ms: Optional[int] = None,
) -> DrawSeed:
    """Build the seed for ``sweepstake_id`` from its participants.

    Parameters
    ----------
    sweepstake_id : str
        Public identifier of the sweepstake.
    participants : Sequence[ParticipantRecord]
        Participants in any order.
    now : datetime | int, optional
        Clock reading used for the time bucket. Defaults to the current UTC
        time. Ignored when ``bucket_ms`` is given.
    bucket_size_ms : int, default: 300000
        Width of the time bucket.
    bucket_ms : Optional[int], default: None
        Exact bucket value to embed. Verification passes the bucket recorded
        in the published seed so it never re-reads the clock.

    Returns
    -------
    DrawSeed
        Seed holding the sorted participants and the bucket value.

    Raises
    ------
    EmptyParticipantSet
        If ``participants`` is empty.
    InvalidSeedField
        If an identifier is empty, duplicated, or contains ``:`` or ``|``.
    """

    _check_field("sweepstake_id", sweepstake_id)
    ordered = sort_participants(participants)
    for participant in ordered:
        participant.canonical()

    if bucket_ms is None:
        clock = now if now is not None else datetime.now(timezone.utc)
        bucket_ms = time_bucket(clock, bucket_size_ms)

    return DrawSeed(sweepstake_id=sweepstake_id, participants=ordered, bucket_ms=bucket_ms)


def parse_seed(text: str) -> DrawSeed:
    """Split a published seed string back into its fields.

    Raises
    ------
    InvalidSeedField
        If ``text`` does not follow the seed layout.
    """

    try:
        head, bucket_text = text.rsplit(FIELD_DELIMITER, 1)
        sweepstake_id, entries_text = head.split(FIELD_DELIMITER, 1)
        bucket_ms = int(bucket_text)
    except ValueError as exc:
        raise InvalidSeedField(f"Malformed seed: {text!r}") from exc

    participants: list[ParticipantRecord] = []
    for entry in entries_text.split(ENTRY_DELIMITER):
        parts = entry.split(FIELD_DELIMITER)
        if len(parts) != 3:
            raise InvalidSeedField(f"Malformed seed entry: {entry!r}")
        participant_id, user_id, joined_text = parts
        try:
            joined_ms = int(joined_text)
        except ValueError as exc:
            raise InvalidSeedField(f"Malformed seed entry: {entry!r}") from exc
        participants.append(
            ParticipantRecord(
                participant_id=_check_field("participant_id", participant_id),
                user_id=_check_field("user_id", user_id),
                joined_at=joined_ms,
            )
        )

    seed = DrawSeed(
        sweepstake_id=_check_field("sweepstake_id", sweepstake_id),
        participants=tuple(participants),
        bucket_ms=bucket_ms,
    )
    if seed.participants != sort_participants(seed.participants):
        raise InvalidSeedField("Seed entries are not ordered by participant_id")
    return seed


__all__ = [
    "DEFAULT_BUCKET_MS",
    "DrawSeed",
    "ENTRY_DELIMITER",
    "FIELD_DELIMITER",
    "ParticipantRecord",
    "build_seed",
    "epoch_millis",
    "parse_seed",
    "sort_participants",
    "time_bucket",
]
