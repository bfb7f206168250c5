"""Unit tests for the reservation write path."""
import threading
from datetime import datetime

import pytest

from booking_core.booking import ReservationBooker, RoomWriteCoordinator
from booking_core.database import SessionLocal
from booking_core.errors import (
    InvalidArgument,
    InvalidStatusTransition,
    ReservationConflict,
    ReservationNotFound,
    RoomNotFound,
)
from booking_core.models import Reservation, ReservationStatus

MONDAY_10 = datetime(2025, 12, 1, 10)


class TestCreate:
    def test_create_pending_reservation(self, db_session, room):
        reservation = ReservationBooker(db_session).create("user-1", room.id, MONDAY_10, 60, notes="Standup")

        assert reservation.status == ReservationStatus.PENDING
        assert reservation.end_time == datetime(2025, 12, 1, 11)
        assert reservation.notes == "Standup"

    def test_conflicting_create_rejected(self, db_session, room):
        booker = ReservationBooker(db_session)
        first = booker.create("user-1", room.id, MONDAY_10, 60)

        with pytest.raises(ReservationConflict) as exc_info:
            booker.create("user-2", room.id, datetime(2025, 12, 1, 10, 45), 30)

        assert exc_info.value.conflicting_ids == [first.id]

    def test_back_to_back_allowed(self, db_session, room):
        booker = ReservationBooker(db_session)
        booker.create("user-1", room.id, MONDAY_10, 60)

        assert booker.create("user-2", room.id, datetime(2025, 12, 1, 11), 30).status == ReservationStatus.PENDING

    def test_outside_operating_hours_rejected(self, db_session, room):
        with pytest.raises(InvalidArgument):
            ReservationBooker(db_session).create("user-1", room.id, datetime(2025, 12, 1, 21, 30), 60)

    def test_unknown_room_rejected(self, db_session):
        with pytest.raises(RoomNotFound):
            ReservationBooker(db_session).create("user-1", "nope", MONDAY_10, 60)

    def test_non_positive_duration_rejected(self, db_session, room):
        with pytest.raises(InvalidArgument):
            ReservationBooker(db_session).create("user-1", room.id, MONDAY_10, 0)

    def test_concurrent_creates_never_double_book(self, room):
        results: list[str] = []
        barrier = threading.Barrier(4)

        def attempt(user_id: str) -> None:
            session = SessionLocal()
            try:
                barrier.wait()
                ReservationBooker(session).create(user_id, room.id, MONDAY_10, 60)
                results.append("created")
            except ReservationConflict:
                results.append("conflict")
            finally:
                session.close()

        threads = [threading.Thread(target=attempt, args=(f"user-{i}",)) for i in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(results) == ["conflict", "conflict", "conflict", "created"]


class TestReschedule:
    def test_reschedule_to_own_slot(self, db_session, room):
        booker = ReservationBooker(db_session)
        reservation = booker.create("user-1", room.id, MONDAY_10, 60)

        updated = booker.reschedule(reservation.id, duration_minutes=90)

        assert updated.duration_minutes == 90
        assert updated.updated_at is not None

    def test_reschedule_into_conflict(self, db_session, room):
        booker = ReservationBooker(db_session)
        reservation = booker.create("user-1", room.id, MONDAY_10, 60)
        booker.create("user-2", room.id, datetime(2025, 12, 1, 12), 60)

        with pytest.raises(ReservationConflict):
            booker.reschedule(reservation.id, start_time=datetime(2025, 12, 1, 11, 30))

    def test_cancelled_reservation_cannot_be_rescheduled(self, db_session, room):
        booker = ReservationBooker(db_session)
        reservation = booker.create("user-1", room.id, MONDAY_10, 60)
        booker.cancel(reservation.id)

        with pytest.raises(InvalidArgument):
            booker.reschedule(reservation.id, start_time=datetime(2025, 12, 1, 14))

    def test_missing_reservation(self, db_session):
        with pytest.raises(ReservationNotFound):
            ReservationBooker(db_session).reschedule("missing", duration_minutes=30)


class TestStatusTransitions:
    def test_confirm_then_complete(self, db_session, room):
        booker = ReservationBooker(db_session)
        reservation = booker.create("user-1", room.id, MONDAY_10, 60)

        assert booker.change_status(reservation.id, ReservationStatus.CONFIRMED).status == ReservationStatus.CONFIRMED
        assert booker.change_status(reservation.id, ReservationStatus.COMPLETED).status == ReservationStatus.COMPLETED

    def test_cancel_frees_the_slot(self, db_session, room):
        booker = ReservationBooker(db_session)
        reservation = booker.create("user-1", room.id, MONDAY_10, 60)
        booker.cancel(reservation.id)

        assert booker.create("user-2", room.id, MONDAY_10, 60).status == ReservationStatus.PENDING

    @pytest.mark.parametrize(
        "path",
        [
            [ReservationStatus.COMPLETED],
            [ReservationStatus.CANCELLED, ReservationStatus.CONFIRMED],
            [ReservationStatus.CONFIRMED, ReservationStatus.PENDING],
        ],
    )
    def test_invalid_transitions(self, db_session, room, path):
        booker = ReservationBooker(db_session)
        reservation = booker.create("user-1", room.id, MONDAY_10, 60)

        with pytest.raises(InvalidStatusTransition):
            for status in path:
                booker.change_status(reservation.id, status)

    def test_transition_checked_against_latest_status(self, db_session, room):
        booker = ReservationBooker(db_session)
        reservation = booker.create("user-1", room.id, MONDAY_10, 60)
        booker.change_status(reservation.id, ReservationStatus.CONFIRMED)

        other_session = SessionLocal()
        try:
            ReservationBooker(other_session).cancel(reservation.id)
        finally:
            other_session.close()

        # This session still holds the confirmed copy in its identity map.
        assert reservation.status == ReservationStatus.CONFIRMED
        with pytest.raises(InvalidStatusTransition):
            booker.change_status(reservation.id, ReservationStatus.COMPLETED)
        assert booker.get(reservation.id).status == ReservationStatus.CANCELLED

    def test_reschedule_rejects_reservation_cancelled_elsewhere(self, db_session, room):
        booker = ReservationBooker(db_session)
        reservation = booker.create("user-1", room.id, MONDAY_10, 60)

        other_session = SessionLocal()
        try:
            ReservationBooker(other_session).cancel(reservation.id)
        finally:
            other_session.close()

        with pytest.raises(InvalidArgument):
            booker.reschedule(reservation.id, duration_minutes=30)

    def test_same_status_is_noop(self, db_session, room):
        booker = ReservationBooker(db_session)
        reservation = booker.create("user-1", room.id, MONDAY_10, 60)

        assert booker.change_status(reservation.id, ReservationStatus.PENDING).updated_at is None


class TestRoomWriteCoordinator:
    def test_same_room_shares_lock(self):
        coordinator = RoomWriteCoordinator()

        assert coordinator.lock_for("R1") is coordinator.lock_for("R1")
        assert coordinator.lock_for("R1") is not coordinator.lock_for("R2")

    def test_hold_releases_locks(self):
        coordinator = RoomWriteCoordinator()

        with coordinator.hold("R2", "R1", "R1"):
            assert coordinator.lock_for("R1").locked()
            assert coordinator.lock_for("R2").locked()

        assert not coordinator.lock_for("R1").locked()
        assert not coordinator.lock_for("R2").locked()


def test_reservation_end_time_property():
    reservation = Reservation(start_time=MONDAY_10, duration_minutes=45)

    assert reservation.end_time == datetime(2025, 12, 1, 10, 45)
