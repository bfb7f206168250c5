"""Reservation data access consumed by the availability engine."""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import List, Protocol, Sequence

from circuitbreaker import CircuitBreakerError, circuit
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import get_settings
from .errors import RepositoryUnavailable
from .models import Reservation

logger = logging.getLogger(__name__)
settings = get_settings()


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Return the half-open ``[00:00, next day 00:00)`` window for ``day``."""

    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


class ReservationRepository(Protocol):
    def fetch_reservations_for_room_on_day(self, room_id: str, day: date) -> Sequence[Reservation]:
        """Return every reservation of any status starting on ``day`` for ``room_id``."""
        ...


@circuit(
    failure_threshold=settings.repository_failure_threshold,
    recovery_timeout=settings.repository_recovery_timeout,
    expected_exception=RepositoryUnavailable,
)
def _query_day(db: Session, room_id: str, day: date) -> List[Reservation]:
    start, end = day_bounds(day)
    try:
        return (
            db.query(Reservation)
            .filter(
                Reservation.room_id == room_id,
                Reservation.start_time >= start,
                Reservation.start_time < end,
            )
            .order_by(Reservation.start_time)
            .all()
        )
    except SQLAlchemyError as exc:
        logger.warning("Reservation fetch failed for room=%s day=%s: %s", room_id, day, exc)
        raise RepositoryUnavailable(f"Could not load reservations for room {room_id}") from exc


class SqlReservationRepository:
    """SQLAlchemy backed repository sharing the caller's session."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def fetch_reservations_for_room_on_day(self, room_id: str, day: date) -> List[Reservation]:
        try:
            return _query_day(self._db, room_id, day)
        except CircuitBreakerError as exc:
            logger.warning("Reservation store circuit open, failing fast for room=%s", room_id)
            raise RepositoryUnavailable("Reservation store temporarily unavailable") from exc

    def get(self, reservation_id: str) -> Reservation | None:
        try:
            return self._db.query(Reservation).filter(Reservation.id == reservation_id).first()
        except SQLAlchemyError as exc:
            raise RepositoryUnavailable(f"Could not load reservation {reservation_id}") from exc
