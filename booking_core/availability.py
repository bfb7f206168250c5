"""Room availability: the overlap test, the checker and the slot generator.

Every caller that needs to know whether a room is free goes through
:class:`AvailabilityChecker` or :class:`SlotGenerator`; both share the single
half-open :func:`overlaps` test, so touching bookings (one ending exactly when
the next starts) never conflict.

Neither class swallows repository errors. A failed fetch raises
:class:`~booking_core.errors.RepositoryUnavailable`, which callers must report as
"could not verify availability" rather than guess free or taken.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Iterator, List, Optional, Sequence

from .errors import InvalidArgument
from .models import ACTIVE_STATUSES, Reservation
from .repository import ReservationRepository
from .rooms import OperatingHours, default_hours

logger = logging.getLogger(__name__)

HoursLookup = Callable[[str], OperatingHours]


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval test: ``[a_start, a_end)`` and ``[b_start, b_end)`` share an instant."""
    return a_start < b_end and b_start < a_end


def validate_room_id(room_id: str) -> str:
    if not isinstance(room_id, str) or not room_id.strip():
        raise InvalidArgument("room_id must be a non-empty string")
    return room_id


def validate_duration(minutes: int, name: str = "duration_minutes") -> int:
    # bool is an int subclass; True minutes is never meant.
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        raise InvalidArgument(f"{name} must be an integer number of minutes")
    if minutes <= 0:
        raise InvalidArgument(f"{name} must be positive, got {minutes}")
    return minutes


def validate_instant(value: datetime, name: str = "start") -> datetime:
    if not isinstance(value, datetime):
        raise InvalidArgument(f"{name} must be a datetime")
    if value.tzinfo is not None:
        raise InvalidArgument(f"{name} must be a naive local datetime")
    return value


def validate_day(value: date) -> date:
    if isinstance(value, datetime) or not isinstance(value, date):
        raise InvalidArgument("date must be a calendar date without a time component")
    return value


def active_reservations(
    reservations: Iterable[Reservation], exclude_reservation_id: Optional[str] = None
) -> List[Reservation]:
    """Drop cancelled/completed reservations and the one being edited."""
    return [
        reservation
        for reservation in reservations
        if reservation.status in ACTIVE_STATUSES
        and (exclude_reservation_id is None or reservation.id != exclude_reservation_id)
    ]


class AvailabilityChecker:
    """Decide whether a candidate booking collides with an active reservation."""

    def __init__(self, repository: ReservationRepository) -> None:
        self._repository = repository

    def find_conflicts(
        self,
        room_id: str,
        candidate_start: datetime,
        duration_minutes: int,
        exclude_reservation_id: Optional[str] = None,
    ) -> List[Reservation]:
        validate_room_id(room_id)
        validate_instant(candidate_start, "candidate_start")
        validate_duration(duration_minutes)

        candidate_end = candidate_start + timedelta(minutes=duration_minutes)
        fetched = self._repository.fetch_reservations_for_room_on_day(room_id, candidate_start.date())
        conflicts = [
            reservation
            for reservation in active_reservations(fetched, exclude_reservation_id)
            if overlaps(candidate_start, candidate_end, reservation.start_time, reservation.end_time)
        ]
        if conflicts:
            logger.debug(
                "room=%s %s+%smin conflicts with %s",
                room_id,
                candidate_start.isoformat(),
                duration_minutes,
                [reservation.id for reservation in conflicts],
            )
        return conflicts

    def is_available(
        self,
        room_id: str,
        candidate_start: datetime,
        duration_minutes: int,
        exclude_reservation_id: Optional[str] = None,
    ) -> bool:
        """``False`` is a normal answer ("taken"), not an error."""
        return not self.find_conflicts(room_id, candidate_start, duration_minutes, exclude_reservation_id)


def slot_grid(opening: datetime, closing: datetime, slot_minutes: int, allow_overrun: bool) -> Iterator[datetime]:
    """Start instants from ``opening`` every ``slot_minutes`` while before ``closing``.

    Unless ``allow_overrun`` is set, a slot whose window would end after
    ``closing`` is not produced.
    """
    step = timedelta(minutes=slot_minutes)
    current = opening
    while current < closing:
        if not allow_overrun and current + step > closing:
            return
        yield current
        current += step


class SlotGenerator:
    """Produce the bookable start instants of a room for one day."""

    def __init__(
        self,
        repository: ReservationRepository,
        hours_lookup: Optional[HoursLookup] = None,
        allow_overrun: bool = False,
    ) -> None:
        self._repository = repository
        self._hours_lookup = hours_lookup or (lambda _room_id: default_hours())
        self._allow_overrun = allow_overrun

    def available_slots(self, room_id: str, day: date, slot_duration_minutes: int) -> List[datetime]:
        validate_room_id(room_id)
        validate_day(day)
        validate_duration(slot_duration_minutes, "slot_duration_minutes")

        opening, closing = self._hours_lookup(room_id).window(day)
        blocking: Sequence[Reservation] = active_reservations(
            self._repository.fetch_reservations_for_room_on_day(room_id, day)
        )
        step = timedelta(minutes=slot_duration_minutes)
        return [
            slot
            for slot in slot_grid(opening, closing, slot_duration_minutes, self._allow_overrun)
            if not any(
                overlaps(slot, slot + step, reservation.start_time, reservation.end_time)
                for reservation in blocking
            )
        ]
