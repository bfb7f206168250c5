"""Pydantic schemas exposed by the HTTP services."""
from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from .models import ReservationStatus, RoleEnum, RoomType


class Identity(BaseModel):
    """Caller identity decoded from the bearer token of one request."""

    user_id: str
    role: RoleEnum = RoleEnum.REGULAR

    @property
    def is_staff(self) -> bool:
        return self.role in {RoleEnum.ADMIN, RoleEnum.FACILITY_MANAGER}


class RoomBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    room_type: RoomType = RoomType.STUDY_ROOM
    location: str = Field(..., min_length=1, max_length=255)
    capacity: int = Field(1, ge=1)
    features: List[str] = Field(default_factory=list)
    is_active: bool = True
    opening_hour: Optional[int] = Field(None, ge=0, le=23)
    closing_hour: Optional[int] = Field(None, ge=1, le=24)

    @model_validator(mode="after")
    def _check_hours(self):
        if self.opening_hour is not None and self.closing_hour is not None:
            if self.opening_hour >= self.closing_hour:
                raise ValueError("opening_hour must be before closing_hour")
        return self


class RoomCreate(RoomBase):
    id: Optional[str] = Field(None, min_length=1, max_length=64)


class RoomUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    room_type: Optional[RoomType] = None
    location: Optional[str] = None
    capacity: Optional[int] = Field(None, ge=1)
    features: Optional[List[str]] = None
    is_active: Optional[bool] = None
    opening_hour: Optional[int] = Field(None, ge=0, le=23)
    closing_hour: Optional[int] = Field(None, ge=1, le=24)


class RoomRead(RoomBase):
    id: str

    model_config = {"from_attributes": True}


class ReservationCreate(BaseModel):
    room_id: str = Field(..., min_length=1)
    start_time: datetime
    duration_minutes: int = Field(..., gt=0)
    notes: Optional[str] = Field(None, max_length=1000)


class ReservationUpdate(BaseModel):
    room_id: Optional[str] = Field(None, min_length=1)
    start_time: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(None, gt=0)
    notes: Optional[str] = Field(None, max_length=1000)


class ReservationStatusUpdate(BaseModel):
    status: ReservationStatus


class ReservationRead(BaseModel):
    id: str
    room_id: str
    user_id: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    status: ReservationStatus
    notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AvailabilityRead(BaseModel):
    room_id: str
    start_time: datetime
    duration_minutes: int
    available: bool


class SlotsRead(BaseModel):
    room_id: str
    date: date
    slot_duration_minutes: int
    slots: List[datetime]


class BookingStats(BaseModel):
    counts: Dict[str, int]


class CampusRoomStats(BaseModel):
    room_count: int
    total_capacity: int


class BookingWindow(str, Enum):
    UPCOMING = "upcoming"
    PAST = "past"
    TODAY = "today"
