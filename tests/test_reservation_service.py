"""
Tests for the ReservationService orchestration layer.
"""

from datetime import date
from typing import Dict, List, Optional, Tuple

import pytest

from rehearsalplanner.domain.availability import AvailabilityIntersector
from rehearsalplanner.domain.booking_validator import BookingValidator, RejectionKind
from rehearsalplanner.domain.exceptions import NoAvailability, ReservationStoreError, StoreConflictError
from rehearsalplanner.domain.models import (
    Booking,
    BookingKind,
    BookingProposal,
    DayWindow,
    Interval,
    ParticipantAvailability,
    PollSession,
)
from rehearsalplanner.services.reservations import ReservationService

DAY = date(2025, 6, 1)


class StubReservationStore:
    """Minimal stub matching ReservationStoreProtocol."""

    def __init__(self, bookings: List[Booking], conflicts: int = 0, sneak_in: Optional[Booking] = None):
        self.bookings = list(bookings)
        self.conflicts = conflicts
        self.sneak_in = sneak_in
        self.fetches: List[Dict[str, object]] = []
        self.inserted: List[BookingProposal] = []
        self.replaced: List[Tuple[str, BookingProposal]] = []
        self.deleted: List[str] = []

    def fetch_bookings(self, start_date, end_date=None):
        self.fetches.append({"start": start_date, "end": end_date})
        return [
            b for b in self.bookings
            if b.date >= start_date and (end_date is None or b.date <= end_date)
        ]

    def _write(self, booking_id, proposal):
        if self.conflicts:
            self.conflicts -= 1
            if self.sneak_in is not None:
                # Another writer took the slot between read and write
                self.bookings.append(self.sneak_in)
                self.sneak_in = None
            raise StoreConflictError("slot taken")

        for existing in self.bookings:
            if existing.id != booking_id and existing.date == proposal.date and existing.interval.overlaps(proposal.interval):
                raise StoreConflictError(f"overlaps {existing.id}")

        self.bookings = [b for b in self.bookings if b.id != booking_id]
        booking = Booking(
            id=booking_id,
            date=proposal.date,
            interval=proposal.interval,
            owner=proposal.owner,
            label=proposal.label,
            kind=proposal.kind,
        )
        self.bookings.append(booking)
        return booking

    def insert(self, proposal):
        booking = self._write(f"new{len(self.inserted) + 1}", proposal)
        self.inserted.append(proposal)
        return booking

    def replace(self, booking_id, proposal):
        if not any(b.id == booking_id for b in self.bookings):
            raise ReservationStoreError(f"No reservation with id {booking_id}")
        booking = self._write(booking_id, proposal)
        self.replaced.append((booking_id, proposal))
        return booking

    def delete(self, booking_id):
        self.deleted.append(booking_id)


def _build_service(store: StubReservationStore, max_attempts: int = 3) -> ReservationService:
    return ReservationService(
        store=store,
        validator=BookingValidator(DayWindow()),
        intersector=AvailabilityIntersector(),
        max_attempts=max_attempts,
    )


def _booking(booking_id: str, start: str, end: str, day: date = DAY) -> Booking:
    return Booking(id=booking_id, date=day, interval=Interval.from_strings(start, end), label=booking_id)


def _proposal(start: str, end: str) -> BookingProposal:
    return BookingProposal(date=DAY, interval=Interval.from_strings(start, end), owner="alice", label="practice")


class TestBook:
    """Tests for ReservationService.book."""

    def test_books_free_interval(self):
        """A free interval is validated and inserted."""
        store = StubReservationStore([_booking("a", "10:00", "11:00")])
        service = _build_service(store)

        result = service.book(_proposal("11:00", "13:00"))

        assert result.ok
        assert result.booking.interval == Interval(660, 780)
        assert result.attempts == 1
        assert store.fetches == [{"start": DAY, "end": DAY}]

    def test_rejects_overlap_without_writing(self):
        """An overlapping proposal never reaches the store."""
        store = StubReservationStore([_booking("a", "10:00", "11:00")])
        service = _build_service(store)

        result = service.book(_proposal("10:30", "11:30"))

        assert not result.ok
        assert result.verdict.rejection is RejectionKind.NO_AVAILABILITY
        assert store.inserted == []

    def test_rejects_out_of_hours(self):
        """A proposal before opening is out of domain."""
        service = _build_service(StubReservationStore([]))

        result = service.book(_proposal("08:00", "09:30"))

        assert result.verdict.rejection is RejectionKind.OUT_OF_DOMAIN

    def test_retries_after_write_conflict(self):
        """A transient write conflict leads to re-validation and a second write."""
        store = StubReservationStore([], conflicts=1)
        service = _build_service(store)

        result = service.book(_proposal("11:00", "12:00"))

        assert result.ok
        assert result.attempts == 2
        assert len(store.fetches) == 2

    def test_conflict_with_concurrent_booking_is_no_availability(self):
        """After a conflicting write, re-validation sees the other booking."""
        store = StubReservationStore([], conflicts=1, sneak_in=_booking("other", "11:30", "12:30"))
        service = _build_service(store)

        result = service.book(_proposal("11:00", "12:00"))

        assert not result.ok
        assert result.verdict.rejection is RejectionKind.NO_AVAILABILITY
        assert [b.id for b in result.verdict.conflicts] == ["other"]
        assert result.attempts == 2

    def test_gives_up_after_max_attempts(self):
        """Persistent write conflicts end as NoAvailability."""
        store = StubReservationStore([], conflicts=10)
        service = _build_service(store, max_attempts=3)

        result = service.book(_proposal("11:00", "12:00"))

        assert not result.ok
        assert result.verdict.rejection is RejectionKind.NO_AVAILABILITY
        assert result.attempts == 3
        assert len(store.fetches) == 3

    def test_edit_excludes_own_booking(self):
        """Rebooking over one's own booking is allowed when excluded."""
        store = StubReservationStore([_booking("mine", "10:00", "11:00")])
        service = _build_service(store)

        result = service.book(_proposal("10:00", "12:00"), exclude_id="mine")

        assert result.ok
        assert result.booking.id == "mine"
        assert store.inserted == []
        assert [booking_id for booking_id, _ in store.replaced] == ["mine"]
        assert [(b.id, b.interval) for b in store.bookings] == [("mine", Interval(600, 720))]

    def test_edit_into_another_booking_is_rejected(self):
        """Excluding one's own booking does not excuse overlapping another."""
        store = StubReservationStore([_booking("mine", "10:00", "11:00"), _booking("other", "11:30", "12:30")])
        service = _build_service(store)

        result = service.book(_proposal("10:00", "12:00"), exclude_id="mine")

        assert result.verdict.rejection is RejectionKind.NO_AVAILABILITY
        assert store.replaced == []

    def test_invalid_attempt_count(self):
        """At least one attempt is required."""
        with pytest.raises(ValueError):
            _build_service(StubReservationStore([]), max_attempts=0)


class TestQueries:
    """Tests for the read-side helpers."""

    def test_calendar_ignores_other_days(self):
        """Only bookings of the requested date end up in its calendar."""
        store = StubReservationStore([_booking("a", "10:00", "11:00"), _booking("b", "10:00", "11:00", date(2025, 6, 2))])
        calendar = _build_service(store).calendar_for(DAY)

        assert [b.id for b in calendar] == ["a"]

    def test_free_windows(self):
        """Free windows come from the validator."""
        store = StubReservationStore([_booking("a", "10:00", "11:00"), _booking("b", "13:00", "14:00")])

        assert _build_service(store).free_windows(DAY) == [
            Interval(540, 600),
            Interval(660, 780),
            Interval(840, 1440),
        ]

    def test_end_options(self):
        """End options stop at the next booking."""
        store = StubReservationStore([_booking("b", "13:00", "14:00")])

        assert _build_service(store).end_options(DAY, 720) == [750, 780]

    def test_end_options_occupied(self):
        """An occupied start has no end options."""
        store = StubReservationStore([_booking("b", "13:00", "14:00")])

        with pytest.raises(NoAvailability):
            _build_service(store).end_options(DAY, 780)

    def test_upcoming_is_ordered_and_limited(self):
        """Upcoming bookings are sorted by date and start."""
        store = StubReservationStore(
            [
                _booking("late", "15:00", "16:00", date(2025, 6, 2)),
                _booking("past", "10:00", "11:00", date(2025, 5, 31)),
                _booking("second", "12:00", "13:00"),
                _booking("first", "09:00", "10:00"),
            ]
        )
        service = _build_service(store)

        assert [b.id for b in service.upcoming(DAY)] == ["first", "second", "late"]
        assert [b.id for b in service.upcoming(DAY, limit=1)] == ["first"]

    def test_cancel(self):
        """Cancel delegates to the store."""
        store = StubReservationStore([])
        _build_service(store).cancel("abc")

        assert store.deleted == ["abc"]


class TestConfirm:
    """Tests for confirming a poll result."""

    def _session(self) -> PollSession:
        session = PollSession(poll_id="june", title="June")
        for participant, slots in {
            "alice": ["2025-06-01 14:00", "2025-06-01 14:30", "2025-06-01 15:00"],
            "bob": ["2025-06-01 14:30", "2025-06-01 15:00", "2025-06-01 15:30"],
        }.items():
            session = session.with_submission(ParticipantAvailability.from_submission(participant, slots))
        return session

    def test_confirm_books_common_range(self):
        """The chosen range is booked for the whole roster."""
        store = StubReservationStore([])
        service = _build_service(store)
        session = self._session()
        result = service.common_ranges(session)

        outcome = service.confirm(session, result.ranges[0], owner="alice")

        assert outcome.ok
        assert outcome.booking.interval == Interval(870, 930)
        assert outcome.booking.kind is BookingKind.ENSEMBLE
        assert outcome.booking.label == "June"
        assert store.inserted[0].participant_ids == ("alice", "bob")

    def test_stale_poll_is_revalidated(self):
        """A range booked by someone else since the poll is rejected."""
        store = StubReservationStore([_booking("other", "15:00", "16:00")])
        service = _build_service(store)
        session = self._session()
        common = service.common_ranges(session).ranges[0]

        outcome = service.confirm(session, common, owner="alice", label="jam")

        assert not outcome.ok
        assert outcome.verdict.rejection is RejectionKind.NO_AVAILABILITY
        assert store.inserted == []
