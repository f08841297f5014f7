"""
Domain-specific exception hierarchy for the rehearsal planner.
"""


class SchedulingError(Exception):
    """Base class for all application-level errors."""


class InvalidInterval(SchedulingError, ValueError):
    """Raised when an interval does not start strictly before it ends."""


class OutOfDomain(SchedulingError, ValueError):
    """Raised when a time of day lies outside the bookable window or off the slot grid."""


class NoAvailability(SchedulingError):
    """Raised when no booking can be placed at the requested time."""


class InvariantViolation(SchedulingError):
    """Raised when existing bookings for a day overlap each other."""


class OutOfRange(SchedulingError):
    """Raised when a booking belongs to a different date than its calendar."""


class ReservationStoreError(SchedulingError):
    """Raised when reservation data cannot be fetched, parsed or written."""


class StoreConflictError(ReservationStoreError):
    """Raised when the store rejects a write because the time is already taken."""
