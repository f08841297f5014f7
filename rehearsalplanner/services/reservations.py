"""
Application services for booking the rehearsal room.

The service coordinates reading bookings through a store adapter and
delegates every admission decision to the domain-level ``BookingValidator``
and ``AvailabilityIntersector``. The store dependency is a simple protocol so
the JSON file store, the hosted REST store or a stub in tests can be plugged in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Protocol

from ..domain.availability import AvailabilityIntersector, IntersectionResult
from ..domain.booking_validator import BookingValidator, BookingVerdict, RejectionKind
from ..domain.exceptions import StoreConflictError
from ..domain.models import Booking, BookingProposal, CommonRange, Interval, PollSession
from ..domain.slot_calendar import SlotCalendar

logger = logging.getLogger(__name__)


class ReservationStoreProtocol(Protocol):
    """Protocol describing the store behaviour needed by the service."""

    def fetch_bookings(self, start_date: date, end_date: date | None = None) -> List[Booking]:
        """Return bookings dated within ``[start_date, end_date]`` (open-ended if None)."""

    def insert(self, proposal: BookingProposal) -> Booking:
        """Persist a proposal; raise ``StoreConflictError`` if the time was taken meanwhile."""

    def replace(self, booking_id: str, proposal: BookingProposal) -> Booking:
        """Overwrite booking ``booking_id`` with a proposal in one step; same conflict rules as ``insert``."""

    def delete(self, booking_id: str) -> None:
        """Remove a booking."""


@dataclass(frozen=True)
class ReservationResult:
    """Outcome of a booking attempt: the final verdict and, on success, the stored booking."""
    verdict: BookingVerdict
    booking: Booking | None = None
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.booking is not None


class ReservationService:
    """
    Orchestrates calendar retrieval, validation and persistence.

    The calendar a proposal is validated against is only a snapshot; if the
    store rejects the write because someone booked the slot meanwhile, the
    service re-fetches and validates again, up to ``max_attempts`` times.
    """

    def __init__(
        self,
        store: ReservationStoreProtocol,
        validator: BookingValidator,
        intersector: AvailabilityIntersector,
        max_attempts: int = 3,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._store = store
        self._validator = validator
        self._intersector = intersector
        self._max_attempts = max_attempts

    @property
    def validator(self) -> BookingValidator:
        return self._validator

    def calendar_for(self, day: date) -> SlotCalendar:
        """Fetch the bookings of ``day`` and build its calendar."""
        bookings = self._store.fetch_bookings(day, day)
        return SlotCalendar(day, [b for b in bookings if b.date == day])

    def free_windows(self, day: date, not_before: int | None = None) -> List[Interval]:
        """Free, still bookable windows of ``day``."""
        return self._validator.free_windows(self.calendar_for(day), not_before=not_before)

    def end_options(self, day: date, start: int, exclude_id: str | None = None) -> List[int]:
        """Every legal end time for a booking starting at ``start`` on ``day``."""
        return self._validator.end_options(self.calendar_for(day), start, exclude_id=exclude_id)

    def book(self, proposal: BookingProposal, exclude_id: str | None = None) -> ReservationResult:
        """
        Validate ``proposal`` against the current calendar and persist it.

        With ``exclude_id`` the proposal edits that booking: the old booking
        is ignored during validation and replaced in the store rather than
        kept next to the new one.

        Returns:
            ReservationResult whose verdict explains any rejection
        """
        verdict: BookingVerdict | None = None

        for attempt in range(1, self._max_attempts + 1):
            calendar = self.calendar_for(proposal.date)
            verdict = self._validator.evaluate(
                calendar,
                proposal.interval.start,
                proposal.interval.end,
                exclude_id=exclude_id,
            )
            if not verdict.admissible:
                return ReservationResult(verdict=verdict, attempts=attempt)

            try:
                if exclude_id is None:
                    booking = self._store.insert(proposal)
                else:
                    booking = self._store.replace(exclude_id, proposal)
            except StoreConflictError as exc:
                logger.warning(
                    "Store rejected %s on %s (attempt %d/%d): %s",
                    proposal.interval,
                    proposal.date,
                    attempt,
                    self._max_attempts,
                    exc,
                )
                continue

            logger.info("Booked %s %s for %s", booking.date, booking.interval, booking.owner)
            return ReservationResult(verdict=verdict, booking=booking, attempts=attempt)

        return ReservationResult(
            verdict=BookingVerdict(
                proposal.interval,
                RejectionKind.NO_AVAILABILITY,
                f"{proposal.interval} on {proposal.date.isoformat()} was taken by a concurrent booking",
            ),
            attempts=self._max_attempts,
        )

    def cancel(self, booking_id: str) -> None:
        """Delete a booking."""
        self._store.delete(booking_id)
        logger.info("Cancelled booking %s", booking_id)

    def upcoming(self, today: date, limit: int | None = 20) -> List[Booking]:
        """Bookings from ``today`` on, ordered by date and start time."""
        bookings = sorted(
            self._store.fetch_bookings(today),
            key=lambda b: (b.date, b.interval.start),
        )
        return bookings if limit is None else bookings[:limit]

    def common_ranges(self, session: PollSession) -> IntersectionResult:
        """Ranges every participant of the poll can attend."""
        return self._intersector.common_ranges(session)

    def confirm(
        self,
        session: PollSession,
        common_range: CommonRange,
        *,
        owner: str,
        label: str | None = None,
    ) -> ReservationResult:
        """
        Book a chosen common range for the whole poll roster.

        The range is validated against the authoritative calendar like any
        other booking, since the poll may predate other reservations.
        """
        proposal = self._intersector.confirm(
            common_range,
            session.submissions,
            owner=owner,
            label=label or session.title or session.poll_id,
        )
        return self.book(proposal)
