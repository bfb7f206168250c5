"""Room Directory: active-room lookup and per-room operating hours."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import get_settings
from .errors import InvalidArgument, RepositoryUnavailable, RoomNotFound
from .models import Room

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperatingHours:
    opening_hour: int
    closing_hour: int

    def __post_init__(self) -> None:
        if not 0 <= self.opening_hour < self.closing_hour <= 24:
            raise InvalidArgument(
                f"Invalid operating hours {self.opening_hour}:00-{self.closing_hour}:00"
            )

    def window(self, day: date) -> tuple[datetime, datetime]:
        """Opening and closing instants of ``day``; closing hour 24 means next midnight."""
        midnight = datetime.combine(day, time.min)
        return midnight + timedelta(hours=self.opening_hour), midnight + timedelta(hours=self.closing_hour)

    def contains(self, start: datetime, end: datetime) -> bool:
        opening, closing = self.window(start.date())
        return opening <= start and end <= closing


def default_hours() -> OperatingHours:
    settings = get_settings()
    return OperatingHours(settings.default_opening_hour, settings.default_closing_hour)


class RoomDirectory:
    def __init__(self, db: Session) -> None:
        self._db = db

    def _load(self, room_id: str) -> Room | None:
        try:
            return self._db.query(Room).filter(Room.id == room_id).first()
        except SQLAlchemyError as exc:
            logger.warning("Room lookup failed for room=%s: %s", room_id, exc)
            raise RepositoryUnavailable(f"Could not load room {room_id}") from exc

    def get_active_room(self, room_id: str) -> Room:
        room = self._load(room_id)
        if room is None or not room.is_active:
            raise RoomNotFound(room_id)
        return room

    def operating_hours(self, room_id: str) -> OperatingHours:
        """Hours of an active room, read from its row on every call.

        Rooms are edited by another service, so nothing is cached here; an
        unknown or inactive room raises :class:`RoomNotFound`.
        """
        return hours_for(self.get_active_room(room_id))


def hours_for(room: Room) -> OperatingHours:
    """Room override per bound, else the configured default."""
    fallback = default_hours()
    return OperatingHours(
        room.opening_hour if room.opening_hour is not None else fallback.opening_hour,
        room.closing_hour if room.closing_hour is not None else fallback.closing_hour,
    )
