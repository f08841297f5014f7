"""
Admission checks for new bookings against a day's calendar.

The validator is the gatekeeper that keeps the room free of double bookings:
a proposal is admissible only if it lies on the slot grid inside the bookable
window and overlaps no existing booking.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple

from .clock import format_minutes
from .exceptions import InvalidInterval, NoAvailability, OutOfDomain
from .models import Booking, DayWindow, Interval
from .slot_calendar import SlotCalendar

logger = logging.getLogger(__name__)


class RejectionKind(str, Enum):
    """Why a proposed booking cannot be accepted."""
    INVALID_INTERVAL = "invalid_interval"
    OUT_OF_DOMAIN = "out_of_domain"
    NO_AVAILABILITY = "no_availability"


@dataclass(frozen=True)
class BookingVerdict:
    """
    Outcome of evaluating a proposed interval.

    ``rejection`` is None for an admissible interval; otherwise ``reason``
    explains the rejection and ``conflicts`` lists the bookings in the way.
    """
    interval: Interval | None
    rejection: RejectionKind | None = None
    reason: str = ""
    conflicts: Tuple[Booking, ...] = ()

    @property
    def admissible(self) -> bool:
        return self.rejection is None


class BookingValidator:
    """
    Decides whether bookings fit into a ``SlotCalendar``.

    All rejections are deterministic; nothing is retried here.
    """

    def __init__(self, window: DayWindow | None = None):
        self.window = window or DayWindow()

    def check_interval(self, interval: Interval) -> None:
        """
        Ensure an interval lies inside the bookable window and on the slot grid.

        Raises:
            OutOfDomain: If either bound is outside the window or misaligned
        """
        window = self.window
        if interval.start < window.open_minute or interval.end > window.close_minute:
            raise OutOfDomain(
                f"{interval} is outside bookable hours "
                f"{format_minutes(window.open_minute)}-{format_minutes(window.close_minute)}"
            )
        if not (window.is_aligned(interval.start) and window.is_aligned(interval.end)):
            raise OutOfDomain(
                f"{interval} is not aligned to {window.granularity} minute slots"
            )

    def check_start(self, start: int) -> None:
        """
        Ensure a booking may begin at ``start``.

        The closing boundary is a legal end but never a legal start.

        Raises:
            OutOfDomain: If ``start`` is outside ``[open, close)`` or misaligned
        """
        window = self.window
        if not window.open_minute <= start < window.close_minute:
            raise OutOfDomain(
                f"A booking cannot start at {_display(start)}; bookable hours are "
                f"{format_minutes(window.open_minute)}-{format_minutes(window.close_minute)}"
            )
        if not window.is_aligned(start):
            raise OutOfDomain(
                f"{format_minutes(start)} is not aligned to {window.granularity} minute slots"
            )

    def is_admissible(
        self,
        calendar: SlotCalendar,
        interval: Interval,
        exclude_id: str | None = None,
    ) -> bool:
        """
        Check that no booking other than ``exclude_id`` overlaps ``interval``.

        Raises:
            OutOfDomain: If the interval is outside the window or off the grid
        """
        self.check_interval(interval)
        return not calendar.overlapping(interval, exclude_id=exclude_id)

    def max_extension(
        self,
        calendar: SlotCalendar,
        start: int,
        exclude_id: str | None = None,
    ) -> int:
        """
        Find the furthest end for a booking starting at ``start``.

        Extends one slot at a time while the newly covered slot is free and
        stops at the first occupied slot or at closing time. Returns ``start``
        itself when the first slot is already taken; callers must treat that
        as ``NoAvailability`` rather than persisting an empty interval.

        Raises:
            OutOfDomain: If no booking may start at ``start``
        """
        self.check_start(start)

        step = self.window.granularity
        end = start
        while end < self.window.close_minute:
            if calendar.overlapping(Interval(end, end + step), exclude_id=exclude_id):
                break
            end += step

        return end

    def end_options(
        self,
        calendar: SlotCalendar,
        start: int,
        exclude_id: str | None = None,
    ) -> List[int]:
        """
        List every legal end for a booking starting at ``start``.

        Raises:
            OutOfDomain: If no booking may start at ``start``
            NoAvailability: If the slot at ``start`` is already occupied
        """
        end = self.max_extension(calendar, start, exclude_id=exclude_id)
        if end == start:
            occupant = calendar.occupant_at(start)
            raise NoAvailability(_occupied_reason(start, occupant))

        step = self.window.granularity
        return list(range(start + step, end + step, step))

    def free_windows(
        self,
        calendar: SlotCalendar,
        not_before: int | None = None,
    ) -> List[Interval]:
        """
        Calculate the free stretches of the day that are still bookable.

        Example:
        Window: 09:00 - 24:00
        Booked: [10:00-11:00, 13:00-14:00]
        Result: [09:00-10:00, 11:00-13:00, 14:00-24:00]

        Args:
            calendar: The day's bookings
            not_before: Earliest minute of interest (e.g. now); rounded up to the slot grid

        Returns:
            Grid-aligned free intervals in chronological order
        """
        window = self.window
        current_start = window.open_minute
        if not_before is not None:
            current_start = max(current_start, window.round_up(not_before))

        free: List[Interval] = []
        for booking in calendar:
            if current_start >= window.close_minute:
                break

            # A partly booked slot is not bookable, so widen to whole slots.
            busy_start = booking.interval.start - booking.interval.start % window.granularity
            busy_end = window.round_up(booking.interval.end)

            if current_start < busy_start:
                free.append(Interval(current_start, min(busy_start, window.close_minute)))

            current_start = max(current_start, busy_end)

        if current_start < window.close_minute:
            free.append(Interval(current_start, window.close_minute))

        return free

    def evaluate(
        self,
        calendar: SlotCalendar,
        start: int,
        end: int,
        exclude_id: str | None = None,
    ) -> BookingVerdict:
        """
        Evaluate a proposed ``[start, end)`` and report the outcome as a value.

        Never raises for a rejected proposal; callers branch on
        ``verdict.rejection``.
        """
        try:
            interval = Interval(start, end)
            self.check_interval(interval)
        except InvalidInterval as exc:
            return BookingVerdict(None, RejectionKind.INVALID_INTERVAL, str(exc))
        except OutOfDomain as exc:
            return BookingVerdict(None, RejectionKind.OUT_OF_DOMAIN, str(exc))

        conflicts = calendar.overlapping(interval, exclude_id=exclude_id)
        if not conflicts:
            return BookingVerdict(interval)

        if conflicts[0].interval.contains(interval.start):
            reason = _occupied_reason(interval.start, conflicts[0])
        else:
            reason = (
                f"{interval} overlaps "
                + ", ".join(f"{b.interval} ({b.label or b.id})" for b in conflicts)
            )
        logger.debug("Rejected %s on %s: %s", interval, calendar.day, reason)
        return BookingVerdict(interval, RejectionKind.NO_AVAILABILITY, reason, tuple(conflicts))


def _display(minute: int) -> str:
    try:
        return format_minutes(minute)
    except ValueError:
        return str(minute)


def _occupied_reason(start: int, occupant: Booking | None) -> str:
    if occupant is None:
        return f"No booking can start at {format_minutes(start)}"
    return (
        f"No booking can start at {format_minutes(start)}: "
        f"already taken by {occupant.label or occupant.id} ({occupant.interval})"
    )
