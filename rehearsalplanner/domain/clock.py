"""
Conversions between store/display strings and minutes since midnight.

Inside the engine every time of day is an ``int`` of minutes; strings only
exist at the edges (store rows, poll files, the CLI).
"""

from datetime import date

from dateutil.parser import isoparser

from .exceptions import OutOfDomain

MINUTES_PER_DAY = 1440

# Some stores cannot hold 24:00:00 in a time column, so a booking that runs
# until midnight is written as one second before it.
STORE_MIDNIGHT = "23:59:59"

_iso = isoparser()


def parse_date(value: str) -> date:
    """Parse an ISO 8601 calendar date (``YYYY-MM-DD``)."""
    try:
        return _iso.parse_isodate(value.strip())
    except (ValueError, AttributeError) as exc:
        raise ValueError(f"Invalid date: {value!r}") from exc


def parse_time_of_day(value: str, allow_seconds: bool = True) -> int:
    """
    Parse ``HH:MM`` or ``HH:MM:SS`` into minutes since midnight.

    Seconds are truncated unless ``allow_seconds`` is false, in which case a
    nonzero seconds field is out of domain. ``24:00`` is accepted and returns
    1440. Shortened forms such as ``14`` or ``1400`` are rejected.

    Raises:
        ValueError: If the string is not a 24-hour ``HH:MM[:SS]`` time
        OutOfDomain: If seconds are given where only whole minutes are allowed
    """
    text = value.strip() if isinstance(value, str) else ""
    if text in ("24:00", "24:00:00"):
        return MINUTES_PER_DAY

    if len(text) < 5 or text[2] != ":":
        raise ValueError(f"Invalid time of day: {value!r}")

    try:
        parsed = _iso.parse_isotime(text)
    except ValueError as exc:
        raise ValueError(f"Invalid time of day: {value!r}") from exc

    if not allow_seconds and (parsed.second or parsed.microsecond):
        raise OutOfDomain(f"{value!r} is not on a whole minute")

    return parsed.hour * 60 + parsed.minute


def parse_end_time(value: str) -> int:
    """
    Parse the end of an interval, folding the midnight spellings into 1440.

    ``23:59:59`` (the store quirk) and ``00:00`` both mean the end of the day.
    """
    text = value.strip() if isinstance(value, str) else value
    if text == STORE_MIDNIGHT:
        return MINUTES_PER_DAY

    minutes = parse_time_of_day(text)
    return MINUTES_PER_DAY if minutes == 0 else minutes


def format_minutes(minutes: int) -> str:
    """Format minutes since midnight as zero-padded ``HH:MM`` (1440 -> ``24:00``)."""
    if not 0 <= minutes <= MINUTES_PER_DAY:
        raise ValueError(f"Minutes out of range: {minutes}")
    hours, mins = divmod(minutes, 60)
    return f"{hours:02d}:{mins:02d}"


def format_store_end(minutes: int, encode_midnight: bool = True) -> str:
    """Format an interval end for persistence."""
    if minutes == MINUTES_PER_DAY and encode_midnight:
        return STORE_MIDNIGHT
    return format_minutes(minutes)
