"""
Reservation store backed by a hosted PostgREST table.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List

import requests

from ..domain.exceptions import ReservationStoreError, StoreConflictError
from ..domain.models import Booking, BookingProposal

logger = logging.getLogger(__name__)


class RestReservationStore:
    """
    Client for a reservations table exposed through a PostgREST API.

    The hosted table names its columns ``user_name`` and ``purpose``; rows are
    translated to and from the ``owner``/``label`` shape used by the domain.
    The table is expected to carry an exclusion constraint on overlapping
    ``(date, start_time, end_time)``, which surfaces as HTTP 409.
    """

    COLUMN_MAP = {"owner": "user_name", "label": "purpose"}

    def __init__(
        self,
        base_url: str,
        api_key: str,
        table: str = "reservations",
        timeout: float = 10.0,
        encode_midnight: bool = True,
        session: requests.Session | None = None,
    ):
        """
        Initialize the REST store.

        Args:
            base_url: Project URL, e.g. ``https://xyz.supabase.co``
            api_key: API key sent as ``apikey`` and bearer token
            table: Name of the reservations table
            timeout: Request timeout in seconds
            encode_midnight: Write a midnight end as ``23:59:59``
            session: Optional pre-configured ``requests.Session``
        """
        self.endpoint = f"{base_url.rstrip('/')}/rest/v1/{table}"
        self.timeout = timeout
        self.encode_midnight = encode_midnight
        self.session = session or requests.Session()
        self.headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def fetch_bookings(self, start_date: date, end_date: date | None = None) -> List[Booking]:
        """
        Fetch bookings dated within the requested range.

        Raises:
            ReservationStoreError: If the API call fails or a row cannot be read
        """
        params: List[tuple[str, str]] = [
            ("select", "*"),
            ("date", f"gte.{start_date.isoformat()}"),
            ("order", "date.asc,start_time.asc"),
        ]
        if end_date is not None:
            params.append(("date", f"lte.{end_date.isoformat()}"))

        try:
            response = self.session.get(
                self.endpoint,
                headers=self.headers,
                params=params,
                timeout=self.timeout,
            )
            response.raise_for_status()
            rows = response.json()
        except requests.exceptions.RequestException as e:
            raise ReservationStoreError(f"Failed to fetch reservations: {e}") from e
        except ValueError as e:
            raise ReservationStoreError(f"Reservation response is not JSON: {e}") from e

        if not isinstance(rows, list):
            rows = [rows]
        logger.debug("Fetched %d reservation rows from %s", len(rows), self.endpoint)
        return self._parse_rows(rows)

    def insert(self, proposal: BookingProposal) -> Booking:
        """
        Insert a proposal and return the stored row.

        Raises:
            StoreConflictError: If the table rejects the row as overlapping
            ReservationStoreError: For any other failure
        """
        payload = self._to_row(proposal.to_record(self.encode_midnight))
        headers = {**self.headers, "Prefer": "return=representation"}

        try:
            response = self.session.post(
                self.endpoint,
                headers=headers,
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise ReservationStoreError(f"Failed to insert reservation: {e}") from e

        if response.status_code == 409:
            raise StoreConflictError(
                f"{proposal.date.isoformat()} {proposal.interval} conflicts with a stored reservation"
            )

        try:
            response.raise_for_status()
            rows = response.json()
        except requests.exceptions.RequestException as e:
            raise ReservationStoreError(f"Failed to insert reservation: {e}") from e
        except ValueError as e:
            raise ReservationStoreError(f"Insert response is not JSON: {e}") from e

        bookings = self._parse_rows(rows if isinstance(rows, list) else [rows])
        if not bookings:
            raise ReservationStoreError("Insert response did not contain the stored reservation")
        return bookings[0]

    def replace(self, booking_id: str, proposal: BookingProposal) -> Booking:
        """
        Update an existing row in place with a proposal's values.

        Raises:
            StoreConflictError: If the table rejects the new times as overlapping
            ReservationStoreError: If no row has that id, or for any other failure
        """
        payload = self._to_row(proposal.to_record(self.encode_midnight))
        headers = {**self.headers, "Prefer": "return=representation"}

        try:
            response = self.session.patch(
                self.endpoint,
                headers=headers,
                params={"id": f"eq.{booking_id}"},
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise ReservationStoreError(f"Failed to update reservation {booking_id}: {e}") from e

        if response.status_code == 409:
            raise StoreConflictError(
                f"{proposal.date.isoformat()} {proposal.interval} conflicts with a stored reservation"
            )

        try:
            response.raise_for_status()
            rows = response.json()
        except requests.exceptions.RequestException as e:
            raise ReservationStoreError(f"Failed to update reservation {booking_id}: {e}") from e
        except ValueError as e:
            raise ReservationStoreError(f"Update response is not JSON: {e}") from e

        bookings = self._parse_rows(rows if isinstance(rows, list) else [rows])
        if not bookings:
            raise ReservationStoreError(f"No reservation with id {booking_id}")
        return bookings[0]

    def delete(self, booking_id: str) -> None:
        """
        Delete a booking by id.

        Raises:
            ReservationStoreError: If the API call fails
        """
        try:
            response = self.session.delete(
                self.endpoint,
                headers=self.headers,
                params={"id": f"eq.{booking_id}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise ReservationStoreError(f"Failed to delete reservation {booking_id}: {e}") from e

    def _to_row(self, record: Dict[str, Any]) -> Dict[str, Any]:
        return {self.COLUMN_MAP.get(key, key): value for key, value in record.items()}

    def _parse_rows(self, rows: List[Dict[str, Any]]) -> List[Booking]:
        """
        Parse table rows into bookings.

        Row format:
        {
            "id": "6c1f...", "date": "2025-06-01",
            "start_time": "10:00:00", "end_time": "23:59:59",
            "user_name": "...", "purpose": "...", "kind": "personal"
        }
        """
        reverse = {column: key for key, column in self.COLUMN_MAP.items()}
        bookings: List[Booking] = []

        for row in rows:
            try:
                record = {reverse.get(key, key): value for key, value in row.items()}
                bookings.append(Booking.from_record(record))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                # An unreadable row still occupies its time; never drop it
                raise ReservationStoreError(f"Unreadable reservation row {row!r}: {e}") from e

        return bookings
