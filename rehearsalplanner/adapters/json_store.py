"""
File-backed reservation store for local use and tests.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import date
from pathlib import Path
from typing import Any, Dict, List

from ..domain.clock import parse_date
from ..domain.exceptions import ReservationStoreError, StoreConflictError
from ..domain.models import Booking, BookingProposal, Interval

logger = logging.getLogger(__name__)


class JsonReservationStore:
    """
    Store that keeps reservation rows in a JSON file.

    Rows use the same shape as the hosted table (``id``, ``date``,
    ``start_time``, ``end_time``, ``owner``, ``label``, ``kind``). Like the
    hosted table's exclusion constraint, ``insert`` refuses a row that
    overlaps an existing one on the same date. Rows it cannot read raise
    ``ReservationStoreError`` instead of being skipped.
    """

    def __init__(self, path: Path, encode_midnight: bool = True):
        """
        Initialize the store.

        Args:
            path: JSON file holding a list of rows; created on first write
            encode_midnight: Write a midnight end as ``23:59:59``
        """
        self.path = Path(path)
        self.encode_midnight = encode_midnight

    def _load_rows(self) -> List[Dict[str, Any]]:
        """Load all rows from the JSON file."""
        if not self.path.exists():
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                rows = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise ReservationStoreError(f"Could not read reservations from {self.path}: {exc}") from exc

        if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
            raise ReservationStoreError(f"{self.path} must contain a list of reservation objects")
        return rows

    def _save_rows(self, rows: List[Dict[str, Any]]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(rows, f, ensure_ascii=False, indent=2)
        except OSError as exc:
            raise ReservationStoreError(f"Could not write reservations to {self.path}: {exc}") from exc

        logger.debug("Saved %d reservation rows to %s", len(rows), self.path)

    def _read_row(self, row: Dict[str, Any]) -> Booking:
        """
        Parse one stored row.

        A row that cannot be read still occupies the room as far as anyone
        knows, so it is an error rather than a row to skip.
        """
        try:
            return Booking.from_record(row)
        except (KeyError, TypeError, ValueError) as e:
            raise ReservationStoreError(
                f"Unreadable reservation row {row.get('id')!r} in {self.path}: {e}"
            ) from e

    def _row_date(self, row: Dict[str, Any]) -> date:
        try:
            return parse_date(str(row["date"]))
        except (KeyError, ValueError) as e:
            raise ReservationStoreError(
                f"Reservation row {row.get('id')!r} in {self.path} has no valid date"
            ) from e

    def _check_conflicts(self, rows: List[Dict[str, Any]], proposal: BookingProposal) -> None:
        """
        Refuse a proposal overlapping any stored row on its date.

        Only the row's date and times are read, so a row with an unknown
        ``kind`` or missing owner still blocks its time.
        """
        for row in rows:
            if self._row_date(row) != proposal.date:
                continue

            try:
                interval = Interval.from_strings(row["start_time"], row["end_time"])
            except (KeyError, TypeError, ValueError) as e:
                raise ReservationStoreError(
                    f"Reservation row {row.get('id')!r} on {proposal.date.isoformat()} has unreadable times"
                ) from e

            if interval.overlaps(proposal.interval):
                raise StoreConflictError(
                    f"{proposal.date.isoformat()} {proposal.interval} overlaps booking {row.get('id')}"
                )

    def fetch_bookings(self, start_date: date, end_date: date | None = None) -> List[Booking]:
        """
        Load bookings dated within the requested range.

        Args:
            start_date: First date of the range
            end_date: Last date of the range (inclusive); open-ended if None

        Returns:
            Bookings ordered by date and start time

        Raises:
            ReservationStoreError: If the file or a row in the range cannot be read
        """
        bookings: List[Booking] = []
        for row in self._load_rows():
            row_date = self._row_date(row)
            if row_date < start_date or (end_date is not None and row_date > end_date):
                continue
            bookings.append(self._read_row(row))

        return sorted(bookings, key=lambda b: (b.date, b.interval.start))

    def insert(self, proposal: BookingProposal) -> Booking:
        """
        Append a proposal as a new row.

        Raises:
            StoreConflictError: If the proposal overlaps a stored booking
        """
        rows = self._load_rows()
        self._check_conflicts(rows, proposal)

        row = {"id": str(uuid.uuid4()), **proposal.to_record(self.encode_midnight)}
        rows.append(row)
        self._save_rows(rows)

        return Booking.from_record(row)

    def replace(self, booking_id: str, proposal: BookingProposal) -> Booking:
        """
        Overwrite an existing row with a proposal, keeping its id.

        The old row is removed and the new one written in a single save, and
        the old row does not count as a conflict for its own replacement.

        Raises:
            ReservationStoreError: If no row has that id
            StoreConflictError: If the proposal overlaps another stored booking
        """
        rows = self._load_rows()
        remaining = [row for row in rows if str(row.get("id")) != booking_id]

        if len(remaining) == len(rows):
            raise ReservationStoreError(f"No reservation with id {booking_id}")

        self._check_conflicts(remaining, proposal)

        row = {"id": booking_id, **proposal.to_record(self.encode_midnight)}
        remaining.append(row)
        self._save_rows(remaining)

        return Booking.from_record(row)

    def delete(self, booking_id: str) -> None:
        """
        Remove a row by id.

        Raises:
            ReservationStoreError: If no row has that id
        """
        rows = self._load_rows()
        remaining = [row for row in rows if str(row.get("id")) != booking_id]

        if len(remaining) == len(rows):
            raise ReservationStoreError(f"No reservation with id {booking_id}")

        self._save_rows(remaining)
