"""
Common-availability calculation for rehearsal polls.

This is pure domain logic: it takes the members' slot submissions and finds
the ranges every one of them can attend.

Algorithm:
1. Intersect all participants' slot sets
2. Sort the common slots chronologically
3. Fuse same-date slots that follow each other by exactly one granularity
   step into ranges, in a single pass
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Sequence, Tuple

from .clock import MINUTES_PER_DAY
from .exceptions import OutOfDomain
from .models import (
    SLOT_MINUTES,
    BookingKind,
    BookingProposal,
    CommonRange,
    Interval,
    ParticipantAvailability,
    PollSession,
    Slot,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntersectionResult:
    """
    Ranges every participant of a poll can attend.

    An empty result is a normal outcome (no common time exists), not an error.
    """
    ranges: Tuple[CommonRange, ...] = ()
    participant_ids: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        return not self.ranges

    def __iter__(self):
        return iter(self.ranges)

    def __len__(self) -> int:
        return len(self.ranges)


class AvailabilityIntersector:
    """
    Computes the merged time ranges common to all poll participants.

    Every call is a full recomputation over the submissions it is given.
    """

    def __init__(self, granularity: int = SLOT_MINUTES):
        if granularity <= 0 or MINUTES_PER_DAY % granularity:
            raise ValueError(f"Granularity must divide the day evenly, got {granularity}")
        self.granularity = granularity

    def check_alignment(self, slots: Iterable[Slot]) -> None:
        """
        Reject slots that do not sit on the granularity grid.

        Raises:
            OutOfDomain: For the first misaligned slot found
        """
        for slot in slots:
            if slot.minute % self.granularity:
                raise OutOfDomain(
                    f"Slot {slot} is not aligned to {self.granularity} minute steps"
                )

    def intersect(self, availabilities: Sequence[ParticipantAvailability]) -> FrozenSet[Slot]:
        """
        Return the slots present in every participant's submission.

        With no participants nothing is common; with one participant the
        result is that participant's own slots.

        Raises:
            OutOfDomain: If any submission holds a misaligned slot
        """
        if not availabilities:
            return frozenset()

        for availability in availabilities:
            self.check_alignment(availability.slots)

        common = set(availabilities[0].slots)
        for availability in availabilities[1:]:
            common &= availability.slots

            # Early exit if no common time
            if not common:
                break

        return frozenset(common)

    def merge(
        self,
        slots: Iterable[Slot],
        participant_ids: Iterable[str] = (),
    ) -> List[CommonRange]:
        """
        Fuse slots into contiguous ranges.

        Example (30 minute slots):
        Slots: [14:00, 14:30, 15:30]
        Result: [14:00~15:00, 15:30~16:00]

        Raises:
            OutOfDomain: If any slot is misaligned
        """
        ordered = sorted(slots)
        self.check_alignment(ordered)
        ids = frozenset(participant_ids)

        if not ordered:
            return []

        ranges: List[CommonRange] = []
        start = previous = ordered[0]

        for current in ordered[1:]:
            continuous = (
                current.date == previous.date
                and current.minute - previous.minute == self.granularity
            )
            if not continuous:
                ranges.append(self._close_range(start, previous, ids))
                start = current
            previous = current

        ranges.append(self._close_range(start, previous, ids))
        return ranges

    def merge_ranges(self, ranges: Iterable[CommonRange]) -> List[CommonRange]:
        """
        Merge overlapping or adjacent ranges of the same date.

        ``merge`` output never contains such neighbours, so applying this to it
        returns the same list.
        """
        ordered = sorted(ranges, key=lambda r: (r.date, r.interval.start, r.interval.end))
        if not ordered:
            return []

        merged: List[CommonRange] = [ordered[0]]
        for current in ordered[1:]:
            last = merged[-1]
            if current.date == last.date and current.interval.start <= last.interval.end:
                merged[-1] = CommonRange(
                    date=last.date,
                    interval=Interval(last.interval.start, max(last.interval.end, current.interval.end)),
                    participant_ids=last.participant_ids & current.participant_ids,
                )
            else:
                merged.append(current)

        return merged

    def common_ranges(self, session: PollSession) -> IntersectionResult:
        """
        Compute the ranges every participant of ``session`` can attend.

        Raises:
            OutOfDomain: If any submission holds a misaligned slot
        """
        participant_ids = frozenset(session.participant_ids)
        common = self.intersect(session.submissions)
        ranges = self.merge(common, participant_ids)

        logger.debug(
            "Poll %s: %d participants, %d common slots, %d ranges",
            session.poll_id,
            len(participant_ids),
            len(common),
            len(ranges),
        )
        return IntersectionResult(ranges=tuple(ranges), participant_ids=participant_ids)

    def confirm(
        self,
        common_range: CommonRange,
        participants: Sequence[ParticipantAvailability],
        *,
        owner: str,
        label: str,
    ) -> BookingProposal:
        """
        Turn a chosen range into a booking proposal for the whole roster.

        The proposal still has to pass ``BookingValidator`` against the current
        calendar: the poll may be stale relative to bookings made meanwhile.
        """
        roster = tuple(sorted({p.participant_id for p in participants}))
        return BookingProposal(
            date=common_range.date,
            interval=common_range.interval,
            owner=owner,
            label=label,
            kind=BookingKind.ENSEMBLE,
            participant_ids=roster,
        )

    def _close_range(self, first: Slot, last: Slot, participant_ids: FrozenSet[str]) -> CommonRange:
        end = last.minute + self.granularity
        return CommonRange(
            date=first.date,
            interval=Interval(first.minute, end),
            participant_ids=participant_ids,
        )
