"""
Read-only occupancy view of one day of room bookings.
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from datetime import date
from typing import Any, Iterable, Iterator, List, Mapping

from .exceptions import InvariantViolation, OutOfRange
from .models import Booking, Interval


class SlotCalendar:
    """
    The bookings of a single date, queryable by time of day.

    The calendar trusts but verifies its input: bookings from another date
    raise ``OutOfRange`` and overlapping bookings raise ``InvariantViolation``.
    Nothing is repaired silently and nothing changes after construction.
    """

    def __init__(self, day: date, bookings: Iterable[Booking] = ()):
        self.day = day

        ordered = sorted(bookings, key=lambda b: (b.interval.start, b.interval.end))
        for booking in ordered:
            if booking.date != day:
                raise OutOfRange(
                    f"Booking {booking.id} is on {booking.date.isoformat()}, "
                    f"not on {day.isoformat()}"
                )

        for previous, current in zip(ordered, ordered[1:]):
            if previous.interval.overlaps(current.interval):
                raise InvariantViolation(
                    f"Bookings {previous.id} ({previous.interval}) and "
                    f"{current.id} ({current.interval}) overlap on {day.isoformat()}"
                )

        self._bookings: tuple[Booking, ...] = tuple(ordered)
        self._starts: List[int] = [b.interval.start for b in ordered]

    @classmethod
    def from_records(cls, day: date, records: Iterable[Mapping[str, Any]]) -> "SlotCalendar":
        """
        Build a calendar from store rows (``id``, ``date``, ``start_time``, ``end_time``, ...).

        Raises:
            KeyError: If a row misses a required column
            ValueError: If a row's date or times cannot be parsed
        """
        return cls(day, [Booking.from_record(record) for record in records])

    @property
    def bookings(self) -> tuple[Booking, ...]:
        return self._bookings

    def __iter__(self) -> Iterator[Booking]:
        return iter(self._bookings)

    def __len__(self) -> int:
        return len(self._bookings)

    def occupant_at(self, minute: int) -> Booking | None:
        """Return the booking whose half-open interval contains ``minute``, if any."""
        index = bisect_right(self._starts, minute) - 1
        if index < 0:
            return None

        candidate = self._bookings[index]
        return candidate if candidate.interval.contains(minute) else None

    def overlapping(self, interval: Interval, exclude_id: str | None = None) -> List[Booking]:
        """
        Return every booking overlapping ``interval``, in chronological order.

        ``exclude_id`` skips the booking being edited.
        """
        # Bookings are disjoint and sorted, so only the one starting before
        # interval.start can reach into it from the left.
        first = max(bisect_left(self._starts, interval.start) - 1, 0)
        last = bisect_left(self._starts, interval.end)

        return [
            booking
            for booking in self._bookings[first:last]
            if booking.interval.overlaps(interval) and booking.id != exclude_id
        ]

    def __repr__(self) -> str:
        return f"SlotCalendar({self.day.isoformat()}, {len(self._bookings)} bookings)"
