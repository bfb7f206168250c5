import os
from datetime import date, datetime
from typing import Generator, Iterable, List

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("RATE_LIMITING_ENABLED", "false")
os.environ.setdefault("EVENTS_ENABLED", "false")

from booking_core.config import reset_settings_cache  # noqa: E402

reset_settings_cache()

from booking_core.auth import token_for  # noqa: E402
from booking_core.database import Base, SessionLocal, engine  # noqa: E402
from booking_core.errors import RepositoryUnavailable  # noqa: E402
from booking_core.models import Reservation, ReservationStatus, RoleEnum, Room  # noqa: E402
from booking_core.repository import day_bounds  # noqa: E402
from services.bookings.app import app as bookings_app  # noqa: E402
from services.rooms.app import app as rooms_app, room_list_cache  # noqa: E402


class InMemoryReservationRepository:
    """Reservation store used by the pure availability tests."""

    def __init__(self, reservations: Iterable[Reservation] = ()) -> None:
        self.reservations: List[Reservation] = list(reservations)
        self.calls = 0

    def add(self, reservation: Reservation) -> Reservation:
        self.reservations.append(reservation)
        return reservation

    def fetch_reservations_for_room_on_day(self, room_id: str, day: date) -> List[Reservation]:
        self.calls += 1
        start, end = day_bounds(day)
        return [r for r in self.reservations if r.room_id == room_id and start <= r.start_time < end]


class FailingReservationRepository:
    def fetch_reservations_for_room_on_day(self, room_id: str, day: date) -> List[Reservation]:
        raise RepositoryUnavailable("backend down")


def make_reservation(
    reservation_id: str,
    start: datetime,
    duration_minutes: int = 60,
    status: ReservationStatus = ReservationStatus.CONFIRMED,
    room_id: str = "R1",
) -> Reservation:
    return Reservation(
        id=reservation_id,
        room_id=room_id,
        user_id="u1",
        start_time=start,
        duration_minutes=duration_minutes,
        status=status,
    )


def auth_header(user_id: str = "user-1", role: RoleEnum = RoleEnum.REGULAR) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(user_id, role)}"}


@pytest.fixture(autouse=True, scope="function")
def _create_test_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    room_list_cache.clear()
    yield
    room_list_cache.clear()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def room(db_session) -> Room:
    room = Room(id="R1", name="Quiet Room 1", location="Main Campus", capacity=4, features=["wifi"])
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture()
def rooms_client() -> Generator[TestClient, None, None]:
    with TestClient(rooms_app) as client:
        yield client


@pytest.fixture()
def bookings_client() -> Generator[TestClient, None, None]:
    with TestClient(bookings_app) as client:
        yield client
