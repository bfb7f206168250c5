"""Exception hierarchy raised by the booking core."""
from __future__ import annotations


class BookingError(Exception):
    """Base class for every error the booking core raises."""

    retryable = False


class InvalidArgument(BookingError, ValueError):
    """A caller passed a malformed room id, duration or date."""


class RepositoryUnavailable(BookingError):
    """Reservations could not be fetched; availability is unknown.

    Callers should retry a bounded number of times and then report that
    availability could not be determined. It must never be read as either
    "free" or "taken".
    """

    retryable = True


class RoomNotFound(BookingError):
    def __init__(self, room_id: str) -> None:
        super().__init__(f"Room {room_id} not found or inactive")
        self.room_id = room_id


class ReservationNotFound(BookingError):
    def __init__(self, reservation_id: str) -> None:
        super().__init__(f"Reservation {reservation_id} not found")
        self.reservation_id = reservation_id


class ReservationConflict(BookingError):
    """Raised by the write path when the requested interval is already taken."""

    def __init__(self, room_id: str, conflicting_ids: list[str]) -> None:
        super().__init__(f"Room {room_id} is already booked for that slot")
        self.room_id = room_id
        self.conflicting_ids = conflicting_ids


class InvalidStatusTransition(BookingError):
    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"Cannot change reservation status from {current} to {requested}")
        self.current = current
        self.requested = requested
