"""
Adapters layer - Reservation stores and poll files.
"""

from .json_store import JsonReservationStore
from .poll_files import load_poll, save_poll
from .rest_store import RestReservationStore

__all__ = ["JsonReservationStore", "RestReservationStore", "load_poll", "save_poll"]
