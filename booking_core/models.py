"""SQLAlchemy models shared across all services."""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum as SqlEnum, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


def _new_id() -> str:
    return uuid.uuid4().hex


class RoleEnum(str, Enum):
    ADMIN = "admin"
    FACILITY_MANAGER = "facility_manager"
    REGULAR = "regular"


class RoomType(str, Enum):
    QUIET_ROOM = "quiet_room"
    CONFERENCE_ROOM = "conference_room"
    STUDY_ROOM = "study_room"


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


# Only these statuses occupy a room.
ACTIVE_STATUSES = frozenset({ReservationStatus.PENDING, ReservationStatus.CONFIRMED})


class Room(Base):
    __tablename__ = "rooms"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100), unique=True)
    room_type: Mapped[RoomType] = mapped_column(SqlEnum(RoomType), default=RoomType.STUDY_ROOM)
    location: Mapped[str] = mapped_column(String(255), index=True)
    capacity: Mapped[int] = mapped_column(Integer, default=1)
    features: Mapped[list[str]] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    opening_hour: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=None)
    closing_hour: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=None)

    reservations: Mapped[List["Reservation"]] = relationship(back_populates="room")


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (CheckConstraint("duration_minutes > 0", name="ck_reservation_positive_duration"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    room_id: Mapped[str] = mapped_column(ForeignKey("rooms.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        SqlEnum(ReservationStatus), default=ReservationStatus.PENDING, index=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)

    room: Mapped[Room] = relationship(back_populates="reservations")

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration_minutes)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES
