"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .reservations import ReservationResult, ReservationService, ReservationStoreProtocol

__all__ = ["ReservationResult", "ReservationService", "ReservationStoreProtocol"]
