"""
Domain models for slots, intervals, bookings and rehearsal polls.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Tuple

from .clock import (
    MINUTES_PER_DAY,
    format_minutes,
    format_store_end,
    parse_date,
    parse_end_time,
    parse_time_of_day,
)
from .exceptions import InvalidInterval, OutOfDomain

SLOT_MINUTES = 30


@dataclass(frozen=True, order=True)
class Slot:
    """
    One atomic (date, time-of-day) scheduling unit.

    Ordering is chronological: by date, then by minute.
    """
    date: date
    minute: int

    def __post_init__(self):
        if not 0 <= self.minute < MINUTES_PER_DAY:
            raise OutOfDomain(f"Slot time must lie within the day, got minute {self.minute}")

    @classmethod
    def parse(cls, value: str) -> "Slot":
        """
        Parse a ``YYYY-MM-DD HH:mm`` slot identifier.

        Raises:
            ValueError: If the identifier is malformed
            OutOfDomain: If the time carries seconds or lies outside the day
        """
        parts = value.split()
        if len(parts) != 2:
            raise ValueError(f"Slot must look like 'YYYY-MM-DD HH:mm', got {value!r}")
        day = parse_date(parts[0])
        minute = parse_time_of_day(parts[1], allow_seconds=False)
        return cls(date=day, minute=minute)

    def __str__(self) -> str:
        return f"{self.date.isoformat()} {format_minutes(self.minute)}"


@dataclass(frozen=True)
class Interval:
    """
    Half-open time-of-day range ``[start, end)`` in minutes since midnight.

    Invariant: start must be before end, and both lie within the day
    (``end`` may be 1440, i.e. midnight).
    """
    start: int
    end: int

    def __post_init__(self):
        if self.start >= self.end:
            raise InvalidInterval(
                f"Start {_format_minutes_safe(self.start)} must be before end {_format_minutes_safe(self.end)}"
            )
        if self.start < 0 or self.end > MINUTES_PER_DAY:
            raise OutOfDomain(f"Interval {self.start}-{self.end} lies outside the day")

    @classmethod
    def from_strings(cls, start: str, end: str) -> "Interval":
        """Build an interval from ``HH:MM`` strings; ``end`` understands the midnight spellings."""
        return cls(start=parse_time_of_day(start), end=parse_end_time(end))

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return self.end - self.start

    def contains(self, minute: int) -> bool:
        """Check if a minute falls inside the half-open range."""
        return self.start <= minute < self.end

    def overlaps(self, other: "Interval") -> bool:
        """Check if this range overlaps with another."""
        return self.start < other.end and other.start < self.end

    def intersect(self, other: "Interval") -> "Interval | None":
        """
        Calculate the intersection of two ranges.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None
        return Interval(start=max(self.start, other.start), end=min(self.end, other.end))

    def __str__(self) -> str:
        return f"{format_minutes(self.start)} - {format_minutes(self.end)}"


def _format_minutes_safe(minutes: int) -> str:
    try:
        return format_minutes(minutes)
    except ValueError:
        return str(minutes)


@dataclass(frozen=True)
class DayWindow:
    """
    The bookable part of a day and the slot granularity.

    Defaults to the rehearsal room's 09:00-24:00 in 30 minute steps.
    """
    open_minute: int = 9 * 60
    close_minute: int = MINUTES_PER_DAY
    granularity: int = SLOT_MINUTES

    def __post_init__(self):
        if self.granularity <= 0 or MINUTES_PER_DAY % self.granularity:
            raise ValueError(f"Granularity must divide the day evenly, got {self.granularity}")
        if not 0 <= self.open_minute < self.close_minute <= MINUTES_PER_DAY:
            raise ValueError(
                f"Window must open before it closes, got {self.open_minute}-{self.close_minute}"
            )
        if not (self.is_aligned(self.open_minute) and self.is_aligned(self.close_minute)):
            raise ValueError("Window bounds must be aligned to the granularity")

    @property
    def interval(self) -> Interval:
        return Interval(start=self.open_minute, end=self.close_minute)

    def is_aligned(self, minute: int) -> bool:
        return minute % self.granularity == 0

    def round_up(self, minute: int) -> int:
        """Round a minute up to the next slot boundary."""
        return -(-minute // self.granularity) * self.granularity

    def start_options(self) -> List[int]:
        """All minutes at which a booking may start."""
        return list(range(self.open_minute, self.close_minute, self.granularity))


class BookingKind(str, Enum):
    """What a reservation of the room is for."""
    PERSONAL = "personal"
    ENSEMBLE = "ensemble"
    CONCERT = "concert"


@dataclass(frozen=True)
class Booking:
    """
    A persisted reservation of the room.

    Owned by the store; the engine only reads these.
    """
    id: str
    date: date
    interval: Interval
    owner: str = ""
    label: str = ""
    kind: BookingKind = BookingKind.PERSONAL

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Booking":
        """
        Build a booking from a store row.

        Expected keys: ``id``, ``date``, ``start_time``, ``end_time`` and
        optionally ``owner``, ``label`` and ``kind``.

        Raises:
            KeyError: If a required key is missing
            ValueError: If a date, time or kind cannot be parsed
        """
        interval = Interval.from_strings(record["start_time"], record["end_time"])
        return cls(
            id=str(record["id"]),
            date=parse_date(str(record["date"])),
            interval=interval,
            owner=record.get("owner") or "",
            label=record.get("label") or "",
            kind=BookingKind(record.get("kind") or BookingKind.PERSONAL.value),
        )

    def __str__(self) -> str:
        return f"{self.date.isoformat()} {self.interval} {self.label}".rstrip()


@dataclass(frozen=True)
class BookingProposal:
    """A booking the engine wants the store to persist."""
    date: date
    interval: Interval
    owner: str
    label: str
    kind: BookingKind = BookingKind.PERSONAL
    participant_ids: Tuple[str, ...] = ()

    def to_record(self, encode_midnight: bool = True) -> Dict[str, Any]:
        """
        Serialize the proposal into the store's row shape.

        An end of midnight is written as ``23:59:59`` when ``encode_midnight``
        is set, for time columns that cannot hold ``24:00:00``.
        """
        record: Dict[str, Any] = {
            "date": self.date.isoformat(),
            "start_time": format_minutes(self.interval.start),
            "end_time": format_store_end(self.interval.end, encode_midnight),
            "owner": self.owner,
            "label": self.label,
            "kind": self.kind.value,
        }
        if self.participant_ids:
            record["participant_ids"] = list(self.participant_ids)
        return record


@dataclass(frozen=True)
class ParticipantAvailability:
    """One member's free-time submission for a rehearsal poll."""
    participant_id: str
    slots: FrozenSet[Slot]
    parts: Tuple[str, ...] = ()

    @classmethod
    def from_submission(
        cls,
        participant_id: str,
        slots: Iterable[str],
        parts: Iterable[str] = (),
    ) -> "ParticipantAvailability":
        """Build a submission from ``YYYY-MM-DD HH:mm`` strings."""
        return cls(
            participant_id=participant_id,
            slots=frozenset(Slot.parse(s) for s in slots),
            parts=tuple(parts),
        )


@dataclass(frozen=True)
class PollSession:
    """
    An open rehearsal poll and the submissions collected so far.

    Passed explicitly to the intersector; resubmitting replaces a member's
    previous entry instead of merging with it.
    """
    poll_id: str
    title: str = ""
    location: str = ""
    submissions: Tuple[ParticipantAvailability, ...] = field(default_factory=tuple)

    @property
    def participant_ids(self) -> List[str]:
        return [s.participant_id for s in self.submissions]

    def submission_for(self, participant_id: str) -> ParticipantAvailability | None:
        for submission in self.submissions:
            if submission.participant_id == participant_id:
                return submission
        return None

    def with_submission(self, submission: ParticipantAvailability) -> "PollSession":
        """Return a new session with ``submission`` added or replacing the old one."""
        kept = tuple(
            s for s in self.submissions if s.participant_id != submission.participant_id
        )
        return replace(self, submissions=kept + (submission,))


@dataclass(frozen=True)
class CommonRange:
    """A merged range of slots every listed participant can attend."""
    date: date
    interval: Interval
    participant_ids: FrozenSet[str] = frozenset()

    def __str__(self) -> str:
        return (
            f"{self.date.isoformat()} | "
            f"{format_minutes(self.interval.start)} ~ {format_minutes(self.interval.end)}"
        )
