"""Write path for reservations.

Checking availability and then inserting is only safe if no other writer for
the same room runs in between. :class:`RoomWriteCoordinator` serializes every
write per ``room_id`` inside this process, and :class:`ReservationBooker`
re-runs the overlap check against its own session while holding that lock and
commits before releasing it. Separate processes writing to the same database
are not coordinated; such deployments need a storage-level exclusion
constraint as well.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime, timedelta
from threading import Lock
from typing import Dict, Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .availability import AvailabilityChecker, validate_duration, validate_instant, validate_room_id
from .errors import (
    InvalidArgument,
    InvalidStatusTransition,
    RepositoryUnavailable,
    ReservationConflict,
    ReservationNotFound,
)
from .events import publish_reservation_event
from .models import Reservation, ReservationStatus
from .repository import SqlReservationRepository
from .rooms import RoomDirectory, hours_for

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset({ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED}),
    ReservationStatus.CONFIRMED: frozenset({ReservationStatus.CANCELLED, ReservationStatus.COMPLETED}),
    ReservationStatus.CANCELLED: frozenset(),
    ReservationStatus.COMPLETED: frozenset(),
}


class RoomWriteCoordinator:
    """Hands out one lock per room so writes to a room never interleave."""

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: Dict[str, Lock] = defaultdict(Lock)

    def lock_for(self, room_id: str) -> Lock:
        with self._guard:
            return self._locks[room_id]

    @contextmanager
    def hold(self, *room_ids: str) -> Iterator[None]:
        # Sorted acquisition keeps a move between two rooms deadlock free.
        locks = [self.lock_for(room_id) for room_id in sorted(set(room_ids))]
        for lock in locks:
            lock.acquire()
        try:
            yield
        finally:
            for lock in reversed(locks):
                lock.release()


coordinator = RoomWriteCoordinator()


class ReservationBooker:
    def __init__(self, db: Session, room_coordinator: RoomWriteCoordinator = coordinator) -> None:
        self._db = db
        self._coordinator = room_coordinator
        self._repository = SqlReservationRepository(db)
        self._rooms = RoomDirectory(db)
        self._checker = AvailabilityChecker(self._repository)

    def get(self, reservation_id: str) -> Reservation:
        reservation = self._repository.get(reservation_id)
        if reservation is None:
            raise ReservationNotFound(reservation_id)
        return reservation

    @contextmanager
    def _locked(self, reservation_id: str, *extra_rooms: str) -> Iterator[Reservation]:
        """Yield ``reservation`` freshly read while its room (and ``extra_rooms``) are locked."""
        while True:
            reservation = self.get(reservation_id)
            room_id = reservation.room_id
            with self._coordinator.hold(room_id, *extra_rooms):
                self._db.refresh(reservation)
                # Moved to another room before the lock was taken; lock that one instead.
                if reservation.room_id == room_id:
                    yield reservation
                    return

    def _validate_slot(self, room_id: str, start: datetime, duration_minutes: int) -> None:
        validate_room_id(room_id)
        validate_instant(start, "start_time")
        validate_duration(duration_minutes)
        hours = hours_for(self._rooms.get_active_room(room_id))
        reservation_end = start + timedelta(minutes=duration_minutes)
        if not hours.contains(start, reservation_end):
            raise InvalidArgument(
                f"Reservation must fall within operating hours "
                f"{hours.opening_hour:02d}:00-{hours.closing_hour:02d}:00"
            )

    def _ensure_free(
        self, room_id: str, start: datetime, duration_minutes: int, exclude_reservation_id: Optional[str] = None
    ) -> None:
        conflicts = self._checker.find_conflicts(room_id, start, duration_minutes, exclude_reservation_id)
        if conflicts:
            raise ReservationConflict(room_id, [reservation.id for reservation in conflicts])

    def _commit(self) -> None:
        try:
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.warning("Reservation write failed: %s", exc)
            raise RepositoryUnavailable("Could not save reservation") from exc

    def create(
        self,
        user_id: str,
        room_id: str,
        start_time: datetime,
        duration_minutes: int,
        notes: Optional[str] = None,
    ) -> Reservation:
        self._validate_slot(room_id, start_time, duration_minutes)
        with self._coordinator.hold(room_id):
            self._ensure_free(room_id, start_time, duration_minutes)
            reservation = Reservation(
                user_id=user_id,
                room_id=room_id,
                start_time=start_time,
                duration_minutes=duration_minutes,
                notes=notes,
                status=ReservationStatus.PENDING,
            )
            self._db.add(reservation)
            self._commit()
        self._db.refresh(reservation)
        logger.info("Created reservation %s room=%s start=%s", reservation.id, room_id, start_time.isoformat())
        publish_reservation_event("booking_created", reservation)
        return reservation

    def reschedule(
        self,
        reservation_id: str,
        room_id: Optional[str] = None,
        start_time: Optional[datetime] = None,
        duration_minutes: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Reservation:
        extra_rooms = (room_id,) if room_id is not None else ()
        with self._locked(reservation_id, *extra_rooms) as reservation:
            if not reservation.is_active:
                raise InvalidArgument(
                    f"Reservation {reservation_id} is {reservation.status.value} and cannot be changed"
                )
            new_room = room_id if room_id is not None else reservation.room_id
            new_start = start_time if start_time is not None else reservation.start_time
            new_duration = duration_minutes if duration_minutes is not None else reservation.duration_minutes
            self._validate_slot(new_room, new_start, new_duration)
            self._ensure_free(new_room, new_start, new_duration, exclude_reservation_id=reservation.id)

            reservation.room_id = new_room
            reservation.start_time = new_start
            reservation.duration_minutes = new_duration
            if notes is not None:
                reservation.notes = notes
            reservation.updated_at = datetime.now()
            self._commit()
        self._db.refresh(reservation)
        logger.info("Rescheduled reservation %s room=%s start=%s", reservation.id, new_room, new_start.isoformat())
        return reservation

    def change_status(self, reservation_id: str, status: ReservationStatus) -> Reservation:
        with self._locked(reservation_id) as reservation:
            if status == reservation.status:
                return reservation
            if status not in ALLOWED_TRANSITIONS[reservation.status]:
                raise InvalidStatusTransition(reservation.status.value, status.value)
            reservation.status = status
            reservation.updated_at = datetime.now()
            self._commit()
        self._db.refresh(reservation)
        logger.info("Reservation %s is now %s", reservation.id, status.value)
        if status == ReservationStatus.CANCELLED:
            publish_reservation_event("booking_cancelled", reservation)
        return reservation

    def cancel(self, reservation_id: str) -> Reservation:
        return self.change_status(reservation_id, ReservationStatus.CANCELLED)
