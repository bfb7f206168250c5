from datetime import date, datetime
from typing import List, Optional

from fastapi import Depends, HTTPException, Query, Request, status
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import func
from sqlalchemy.orm import Query as OrmQuery, Session

from booking_core.app_factory import create_service_app, limiter
from booking_core.availability import AvailabilityChecker, SlotGenerator
from booking_core.booking import ReservationBooker
from booking_core.database import get_db
from booking_core.dependencies import (
    get_availability_checker,
    get_booker,
    get_identity,
    get_room_directory,
    get_slot_generator,
    require_staff,
)
from booking_core.errors import InvalidArgument
from booking_core.models import Reservation, Room
from booking_core.repository import day_bounds
from booking_core.rooms import RoomDirectory
from booking_core.schemas import (
    AvailabilityRead,
    BookingStats,
    BookingWindow,
    Identity,
    ReservationCreate,
    ReservationRead,
    ReservationStatusUpdate,
    ReservationUpdate,
    SlotsRead,
)

app = create_service_app("Bookings Service", "bookings")
Instrumentator().instrument(app).expose(app)


def _owned_or_staff(reservation: Reservation, identity: Identity) -> Reservation:
    if not identity.is_staff and reservation.user_id != identity.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return reservation


def _filter_bookings(
    query: OrmQuery,
    location: Optional[str],
    from_time: Optional[datetime],
    to_time: Optional[datetime],
    when: Optional[BookingWindow],
) -> List[Reservation]:
    """Apply the listing filters; ``from``/``to`` bound the start time as ``[from, to)``."""
    if from_time and to_time and from_time >= to_time:
        raise InvalidArgument("'from' must be before 'to'")
    if location:
        query = query.join(Room, Room.id == Reservation.room_id).filter(Room.location == location)
    if from_time:
        query = query.filter(Reservation.start_time >= from_time)
    if to_time:
        query = query.filter(Reservation.start_time < to_time)

    now = datetime.now()
    if when == BookingWindow.UPCOMING:
        return query.filter(Reservation.start_time >= now).order_by(Reservation.start_time).all()
    if when == BookingWindow.PAST:
        query = query.filter(Reservation.start_time < now)
    elif when == BookingWindow.TODAY:
        start, end = day_bounds(now.date())
        query = query.filter(Reservation.start_time >= start, Reservation.start_time < end)
    return query.order_by(Reservation.start_time.desc()).all()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "bookings"}


@app.get("/bookings", response_model=List[ReservationRead])
@limiter.limit("30/minute")
def list_bookings(
    request: Request,
    room_id: Optional[str] = None,
    location: Optional[str] = None,
    from_time: Optional[datetime] = Query(None, alias="from"),
    to_time: Optional[datetime] = Query(None, alias="to"),
    when: Optional[BookingWindow] = None,
    _: Identity = Depends(require_staff),
    db: Session = Depends(get_db),
) -> List[Reservation]:
    query = db.query(Reservation)
    if room_id:
        query = query.filter(Reservation.room_id == room_id)
    return _filter_bookings(query, location, from_time, to_time, when)


@app.get("/bookings/me", response_model=List[ReservationRead])
@limiter.limit("60/minute")
def list_my_bookings(
    request: Request,
    location: Optional[str] = None,
    from_time: Optional[datetime] = Query(None, alias="from"),
    to_time: Optional[datetime] = Query(None, alias="to"),
    when: Optional[BookingWindow] = None,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> List[Reservation]:
    query = db.query(Reservation).filter(Reservation.user_id == identity.user_id)
    return _filter_bookings(query, location, from_time, to_time, when)


@app.get("/bookings/availability", response_model=AvailabilityRead)
@limiter.limit("40/minute")
def check_availability(
    request: Request,
    room_id: str = Query(..., min_length=1),
    start_time: datetime = Query(...),
    duration_minutes: int = Query(..., gt=0),
    exclude_reservation_id: Optional[str] = None,
    _: Identity = Depends(get_identity),
    rooms: RoomDirectory = Depends(get_room_directory),
    checker: AvailabilityChecker = Depends(get_availability_checker),
) -> AvailabilityRead:
    rooms.get_active_room(room_id)
    available = checker.is_available(room_id, start_time, duration_minutes, exclude_reservation_id)
    return AvailabilityRead(
        room_id=room_id,
        start_time=start_time,
        duration_minutes=duration_minutes,
        available=available,
    )


@app.get("/rooms/{room_id}/slots", response_model=SlotsRead)
@limiter.limit("40/minute")
def room_slots(
    request: Request,
    room_id: str,
    day: date = Query(..., alias="date"),
    slot_duration_minutes: int = Query(60, gt=0),
    _: Identity = Depends(get_identity),
    rooms: RoomDirectory = Depends(get_room_directory),
    generator: SlotGenerator = Depends(get_slot_generator),
) -> SlotsRead:
    rooms.get_active_room(room_id)
    slots = generator.available_slots(room_id, day, slot_duration_minutes)
    return SlotsRead(room_id=room_id, date=day, slot_duration_minutes=slot_duration_minutes, slots=slots)


@app.post("/bookings", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def create_booking(
    request: Request,
    booking_in: ReservationCreate,
    identity: Identity = Depends(get_identity),
    booker: ReservationBooker = Depends(get_booker),
) -> Reservation:
    return booker.create(
        user_id=identity.user_id,
        room_id=booking_in.room_id,
        start_time=booking_in.start_time,
        duration_minutes=booking_in.duration_minutes,
        notes=booking_in.notes,
    )


@app.get("/bookings/{reservation_id}", response_model=ReservationRead)
@limiter.limit("60/minute")
def get_booking(
    request: Request,
    reservation_id: str,
    identity: Identity = Depends(get_identity),
    booker: ReservationBooker = Depends(get_booker),
) -> Reservation:
    return _owned_or_staff(booker.get(reservation_id), identity)


@app.put("/bookings/{reservation_id}", response_model=ReservationRead)
@limiter.limit("20/minute")
def update_booking(
    request: Request,
    reservation_id: str,
    booking_update: ReservationUpdate,
    identity: Identity = Depends(get_identity),
    booker: ReservationBooker = Depends(get_booker),
) -> Reservation:
    _owned_or_staff(booker.get(reservation_id), identity)
    return booker.reschedule(reservation_id, **booking_update.model_dump(exclude_unset=True))


@app.patch("/bookings/{reservation_id}/status", response_model=ReservationRead)
@limiter.limit("20/minute")
def update_booking_status(
    request: Request,
    reservation_id: str,
    status_update: ReservationStatusUpdate,
    _: Identity = Depends(require_staff),
    booker: ReservationBooker = Depends(get_booker),
) -> Reservation:
    return booker.change_status(reservation_id, status_update.status)


@app.delete("/bookings/{reservation_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("20/minute")
def cancel_booking(
    request: Request,
    reservation_id: str,
    identity: Identity = Depends(get_identity),
    booker: ReservationBooker = Depends(get_booker),
) -> None:
    _owned_or_staff(booker.get(reservation_id), identity)
    booker.cancel(reservation_id)


@app.get("/analytics/bookings/status", response_model=BookingStats)
@limiter.limit("30/minute")
def bookings_by_status(
    request: Request,
    _: Identity = Depends(require_staff),
    db: Session = Depends(get_db),
) -> BookingStats:
    rows = db.query(Reservation.status, func.count(Reservation.id)).group_by(Reservation.status).all()
    return BookingStats(counts={booking_status.value: count for booking_status, count in rows})


@app.get("/analytics/bookings/location", response_model=BookingStats)
@limiter.limit("30/minute")
def bookings_by_location(
    request: Request,
    _: Identity = Depends(require_staff),
    db: Session = Depends(get_db),
) -> BookingStats:
    rows = (
        db.query(Room.location, func.count(Reservation.id))
        .join(Reservation, Reservation.room_id == Room.id)
        .group_by(Room.location)
        .all()
    )
    return BookingStats(counts={location: count for location, count in rows})


@app.get("/analytics/bookings/room-type", response_model=BookingStats)
@limiter.limit("30/minute")
def bookings_by_room_type(
    request: Request,
    _: Identity = Depends(require_staff),
    db: Session = Depends(get_db),
) -> BookingStats:
    rows = (
        db.query(Room.room_type, func.count(Reservation.id))
        .join(Reservation, Reservation.room_id == Room.id)
        .group_by(Room.room_type)
        .all()
    )
    return BookingStats(counts={room_type.value: count for room_type, count in rows})
