"""
Domain layer - Pure scheduling logic without external dependencies.
"""

from .availability import AvailabilityIntersector, IntersectionResult
from .booking_validator import BookingValidator, BookingVerdict, RejectionKind
from .models import (
    Booking,
    BookingKind,
    BookingProposal,
    CommonRange,
    DayWindow,
    Interval,
    ParticipantAvailability,
    PollSession,
    Slot,
)
from .slot_calendar import SlotCalendar

__all__ = [
    "AvailabilityIntersector",
    "Booking",
    "BookingKind",
    "BookingProposal",
    "BookingValidator",
    "BookingVerdict",
    "CommonRange",
    "DayWindow",
    "IntersectionResult",
    "Interval",
    "ParticipantAvailability",
    "PollSession",
    "RejectionKind",
    "Slot",
    "SlotCalendar",
]
