"""Reusable FastAPI dependencies for identity and core services."""
from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from .auth import identity_from_token
from .availability import AvailabilityChecker, SlotGenerator
from .booking import ReservationBooker
from .config import get_settings
from .database import get_db
from .models import RoleEnum
from .repository import ReservationRepository, SqlReservationRepository
from .rooms import RoomDirectory
from .schemas import Identity

oauth_scheme = OAuth2PasswordBearer(tokenUrl="/token")


def get_identity(token: str = Depends(oauth_scheme)) -> Identity:
    return identity_from_token(token)


def allow_roles(*roles: RoleEnum) -> Callable[[Identity], Identity]:
    def dependency(identity: Identity = Depends(get_identity)) -> Identity:
        if identity.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return identity

    return dependency


require_staff = allow_roles(RoleEnum.ADMIN, RoleEnum.FACILITY_MANAGER)


def get_reservation_repository(db: Session = Depends(get_db)) -> ReservationRepository:
    return SqlReservationRepository(db)


def get_room_directory(db: Session = Depends(get_db)) -> RoomDirectory:
    return RoomDirectory(db)


def get_availability_checker(
    repository: ReservationRepository = Depends(get_reservation_repository),
) -> AvailabilityChecker:
    return AvailabilityChecker(repository)


def get_slot_generator(
    repository: ReservationRepository = Depends(get_reservation_repository),
    rooms: RoomDirectory = Depends(get_room_directory),
) -> SlotGenerator:
    return SlotGenerator(repository, rooms.operating_hours, allow_overrun=get_settings().slot_allow_overrun)


def get_booker(db: Session = Depends(get_db)) -> ReservationBooker:
    return ReservationBooker(db)
