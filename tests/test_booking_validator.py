"""
Tests for booking admission.
"""

import random
from datetime import date
from typing import List

import pytest

from rehearsalplanner.domain.booking_validator import BookingValidator, RejectionKind
from rehearsalplanner.domain.exceptions import NoAvailability, OutOfDomain
from rehearsalplanner.domain.models import Booking, DayWindow, Interval
from rehearsalplanner.domain.slot_calendar import SlotCalendar

DAY = date(2025, 6, 1)


def _booking(booking_id: str, start: str, end: str) -> Booking:
    return Booking(id=booking_id, date=DAY, interval=Interval.from_strings(start, end), label=booking_id)


def _random_calendar(rng: random.Random, window: DayWindow) -> SlotCalendar:
    """Build a calendar of random, non-overlapping, grid-aligned bookings."""
    bookings: List[Booking] = []
    minute = window.open_minute
    while minute < window.close_minute:
        minute += window.granularity * rng.randint(0, 4)
        length = window.granularity * rng.randint(1, 4)
        if minute + length > window.close_minute:
            break
        bookings.append(Booking(id=f"b{len(bookings)}", date=DAY, interval=Interval(minute, minute + length)))
        minute += length
    rng.shuffle(bookings)
    return SlotCalendar(DAY, bookings)


@pytest.fixture
def validator() -> BookingValidator:
    return BookingValidator(DayWindow())


@pytest.fixture
def calendar() -> SlotCalendar:
    return SlotCalendar(DAY, [_booking("a", "10:00", "11:00"), _booking("b", "13:00", "14:00")])


class TestIsAdmissible:
    """Tests for BookingValidator.is_admissible."""

    def test_free_interval(self, validator, calendar):
        """Test an interval between bookings."""
        assert validator.is_admissible(calendar, Interval(660, 780))

    def test_overlapping_interval(self, validator, calendar):
        """Test an interval that crosses a booking."""
        assert not validator.is_admissible(calendar, Interval(630, 690))
        assert not validator.is_admissible(calendar, Interval(540, 1440))

    def test_edit_excludes_own_booking(self, validator, calendar):
        """Test moving a booking within its own time."""
        assert validator.is_admissible(calendar, Interval(570, 660), exclude_id="a")
        assert not validator.is_admissible(calendar, Interval(570, 660), exclude_id="b")

    def test_outside_hours(self, validator, calendar):
        """Test that times before opening are out of domain."""
        with pytest.raises(OutOfDomain):
            validator.is_admissible(calendar, Interval(480, 540))

    def test_misaligned(self, validator, calendar):
        """Test that off-grid times are out of domain."""
        with pytest.raises(OutOfDomain):
            validator.is_admissible(calendar, Interval(665, 720))


class TestMaxExtension:
    """Tests for BookingValidator.max_extension."""

    def test_extends_until_next_booking(self, validator, calendar):
        """Test that an 11:00 start extends to 13:00."""
        assert validator.max_extension(calendar, 660) == 780

    def test_occupied_start_returns_start(self, validator, calendar):
        """Test that a 10:30 start cannot extend at all."""
        assert validator.max_extension(calendar, 630) == 630

    def test_extends_to_midnight(self, validator, calendar):
        """Test extension after the last booking reaches 24:00."""
        assert validator.max_extension(calendar, 840) == 1440

    def test_cannot_start_at_closing(self, validator, calendar):
        """Test that 24:00 is never a start."""
        with pytest.raises(OutOfDomain):
            validator.max_extension(calendar, 1440)

    def test_cannot_start_before_opening(self, validator, calendar):
        """Test that 08:30 is outside bookable hours."""
        with pytest.raises(OutOfDomain):
            validator.max_extension(calendar, 510)

    def test_partly_booked_slot_blocks(self, validator):
        """Test that a booking not on the grid still blocks its slot."""
        calendar = SlotCalendar(DAY, [_booking("odd", "11:15", "11:45")])

        assert validator.max_extension(calendar, 600) == 660

    def test_custom_closing_time(self):
        """Test a window that closes at 22:00."""
        validator = BookingValidator(DayWindow(open_minute=600, close_minute=1320))

        assert validator.max_extension(SlotCalendar(DAY), 1260) == 1320


class TestEndOptions:
    """Tests for BookingValidator.end_options."""

    def test_lists_every_end(self, validator, calendar):
        """Test the end-time choices for an 11:00 start."""
        assert validator.end_options(calendar, 660) == [690, 720, 750, 780]

    def test_last_slot_of_day(self, validator, calendar):
        """Test that 23:30 can only end at 24:00."""
        assert validator.end_options(calendar, 1410) == [1440]

    def test_occupied_start(self, validator, calendar):
        """Test that an occupied start raises NoAvailability."""
        with pytest.raises(NoAvailability, match="10:30"):
            validator.end_options(calendar, 630)


class TestFreeWindows:
    """Tests for BookingValidator.free_windows."""

    def test_whole_day(self, validator, calendar):
        """Test free windows around two bookings."""
        assert validator.free_windows(calendar) == [
            Interval(540, 600),
            Interval(660, 780),
            Interval(840, 1440),
        ]

    def test_not_before_is_rounded_up(self, validator, calendar):
        """Test that only future windows are returned."""
        assert validator.free_windows(calendar, not_before=665) == [
            Interval(690, 780),
            Interval(840, 1440),
        ]

    def test_after_closing(self, validator, calendar):
        """Test that nothing is free after closing time."""
        assert validator.free_windows(calendar, not_before=1435) == []

    def test_fully_booked(self, validator):
        """Test a day booked from opening to midnight."""
        calendar = SlotCalendar(DAY, [_booking("all", "09:00", "24:00")])

        assert validator.free_windows(calendar) == []

    def test_unaligned_booking_widens(self, validator):
        """Test that partly booked slots are not offered."""
        calendar = SlotCalendar(DAY, [_booking("odd", "10:10", "10:40")])

        assert validator.free_windows(calendar) == [Interval(540, 600), Interval(660, 1440)]


class TestEvaluate:
    """Tests for BookingValidator.evaluate verdicts."""

    def test_admissible(self, validator, calendar):
        """Test an accepted proposal."""
        verdict = validator.evaluate(calendar, 660, 780)

        assert verdict.admissible
        assert verdict.interval == Interval(660, 780)

    def test_occupied_start(self, validator, calendar):
        """Test the 10:30 scenario reports NoAvailability."""
        verdict = validator.evaluate(calendar, 630, 660)

        assert verdict.rejection is RejectionKind.NO_AVAILABILITY
        assert [b.id for b in verdict.conflicts] == ["a"]
        assert "10:30" in verdict.reason

    def test_overlap_later_in_interval(self, validator, calendar):
        """Test a proposal running into the next booking."""
        verdict = validator.evaluate(calendar, 720, 840)

        assert verdict.rejection is RejectionKind.NO_AVAILABILITY
        assert [b.id for b in verdict.conflicts] == ["b"]

    def test_invalid_interval(self, validator, calendar):
        """Test start >= end."""
        verdict = validator.evaluate(calendar, 780, 720)

        assert verdict.rejection is RejectionKind.INVALID_INTERVAL
        assert verdict.interval is None

    def test_out_of_domain(self, validator, calendar):
        """Test a proposal before opening."""
        verdict = validator.evaluate(calendar, 480, 570)

        assert verdict.rejection is RejectionKind.OUT_OF_DOMAIN

    def test_may_end_at_midnight(self, validator, calendar):
        """Test that 24:00 is a legal end."""
        assert validator.evaluate(calendar, 1380, 1440).admissible


@pytest.mark.parametrize("seed", range(25))
class TestProperties:
    """Randomized checks of the admission invariants."""

    def test_admissible_iff_no_overlap(self, seed):
        """An interval is admissible exactly when it overlaps no booking."""
        rng = random.Random(seed)
        window = DayWindow()
        validator = BookingValidator(window)
        calendar = _random_calendar(rng, window)
        starts = window.start_options()

        for _ in range(40):
            start = rng.choice(starts)
            end = rng.choice(range(start + window.granularity, window.close_minute + 1, window.granularity))
            candidate = Interval(start, end)

            expected = not any(b.interval.overlaps(candidate) for b in calendar.bookings)
            assert validator.is_admissible(calendar, candidate) == expected

    def test_max_extension_is_maximal(self, seed):
        """max_extension returns the largest admissible end, and nothing beyond is admissible."""
        rng = random.Random(seed)
        window = DayWindow()
        validator = BookingValidator(window)
        calendar = _random_calendar(rng, window)

        for start in window.start_options():
            end = validator.max_extension(calendar, start)

            if end == start:
                assert calendar.occupant_at(start) is not None
                continue

            assert validator.is_admissible(calendar, Interval(start, end))
            for longer in range(end + window.granularity, window.close_minute + 1, window.granularity):
                assert not validator.is_admissible(calendar, Interval(start, longer))
            if end < window.close_minute:
                assert calendar.occupant_at(end) is not None

    def test_free_windows_are_admissible_and_maximal(self, seed):
        """Every free window is bookable and bounded by bookings or the window edges."""
        rng = random.Random(seed)
        window = DayWindow()
        validator = BookingValidator(window)
        calendar = _random_calendar(rng, window)

        for free in validator.free_windows(calendar):
            assert validator.is_admissible(calendar, free)
            assert validator.max_extension(calendar, free.start) == free.end
