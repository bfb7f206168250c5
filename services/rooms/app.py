from threading import Lock
from typing import Dict, List, Optional

from cachetools import TTLCache
from fastapi import Depends, HTTPException, Query, Request, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from booking_core.app_factory import create_service_app, limiter
from booking_core.config import get_settings
from booking_core.database import get_db
from booking_core.dependencies import require_staff
from booking_core.models import Room, RoomType
from booking_core.rooms import OperatingHours, RoomDirectory, default_hours
from booking_core.schemas import CampusRoomStats, Identity, RoomCreate, RoomRead, RoomUpdate

settings = get_settings()
app = create_service_app("Rooms Service", "rooms")

# Listings are only written by this service, which clears the cache on every room write.
# Booking rules never read from it; they load hours from the room row.
room_list_cache: TTLCache[str, List[RoomRead]] = TTLCache(maxsize=128, ttl=settings.room_cache_ttl)
_room_list_lock = Lock()


def _invalidate_room_listings() -> None:
    with _room_list_lock:
        room_list_cache.clear()


def _check_hours(opening: Optional[int], closing: Optional[int]) -> None:
    fallback = default_hours()
    OperatingHours(
        opening if opening is not None else fallback.opening_hour,
        closing if closing is not None else fallback.closing_hour,
    )


def _get_room_or_404(db: Session, room_id: str) -> Room:
    room = db.query(Room).filter(Room.id == room_id).first()
    if not room:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return room


def _commit_room(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Room already exists") from exc
    _invalidate_room_listings()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "rooms"}


@app.post("/rooms", response_model=RoomRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def add_room(
    request: Request,
    room_in: RoomCreate,
    _: Identity = Depends(require_staff),
    db: Session = Depends(get_db),
) -> Room:
    _check_hours(room_in.opening_hour, room_in.closing_hour)
    room = Room(**room_in.model_dump(exclude_none=True))
    db.add(room)
    _commit_room(db)
    db.refresh(room)
    return room


@app.get("/rooms", response_model=List[RoomRead])
@limiter.limit("60/minute")
def list_rooms(
    request: Request,
    location: Optional[str] = None,
    room_type: Optional[RoomType] = None,
    capacity: Optional[int] = Query(None, ge=1),
    features: Optional[List[str]] = Query(default=None),
    db: Session = Depends(get_db),
) -> List[RoomRead]:
    cache_key = f"room-list:{location}:{room_type}:{capacity}:{','.join(sorted(features or []))}"
    with _room_list_lock:
        cached = room_list_cache.get(cache_key)
    if cached is not None:
        return cached

    query = db.query(Room).filter(Room.is_active.is_(True))
    if location:
        query = query.filter(Room.location == location)
    if room_type:
        query = query.filter(Room.room_type == room_type)
    if capacity:
        query = query.filter(Room.capacity >= capacity)
    rooms = query.order_by(Room.name).all()
    if features:
        wanted = set(features)
        rooms = [room for room in rooms if wanted.issubset(room.features or [])]

    listing = [RoomRead.model_validate(room) for room in rooms]
    with _room_list_lock:
        room_list_cache[cache_key] = listing
    return listing


@app.get("/rooms/{room_id}", response_model=RoomRead)
@limiter.limit("60/minute")
def get_room(request: Request, room_id: str, db: Session = Depends(get_db)) -> Room:
    return _get_room_or_404(db, room_id)


@app.get("/rooms/{room_id}/hours")
@limiter.limit("60/minute")
def room_hours(request: Request, room_id: str, db: Session = Depends(get_db)) -> dict[str, int | str]:
    hours = RoomDirectory(db).operating_hours(room_id)
    return {"room_id": room_id, "opening_hour": hours.opening_hour, "closing_hour": hours.closing_hour}


@app.put("/rooms/{room_id}", response_model=RoomRead)
@limiter.limit("15/minute")
def update_room(
    request: Request,
    room_id: str,
    room_update: RoomUpdate,
    _: Identity = Depends(require_staff),
    db: Session = Depends(get_db),
) -> Room:
    room = _get_room_or_404(db, room_id)
    update_data = room_update.model_dump(exclude_unset=True)
    _check_hours(update_data.get("opening_hour", room.opening_hour), update_data.get("closing_hour", room.closing_hour))

    for key, value in update_data.items():
        setattr(room, key, value)
    _commit_room(db)
    db.refresh(room)
    return room


@app.delete("/rooms/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("15/minute")
def delete_room(
    request: Request,
    room_id: str,
    _: Identity = Depends(require_staff),
    db: Session = Depends(get_db),
) -> None:
    """Deactivate the room; its reservation history is kept."""
    room = _get_room_or_404(db, room_id)
    room.is_active = False
    _commit_room(db)


@app.get("/analytics/rooms/campus", response_model=Dict[str, CampusRoomStats])
@limiter.limit("30/minute")
def rooms_by_campus(
    request: Request,
    _: Identity = Depends(require_staff),
    db: Session = Depends(get_db),
) -> Dict[str, CampusRoomStats]:
    rows = (
        db.query(Room.location, func.count(Room.id), func.coalesce(func.sum(Room.capacity), 0))
        .filter(Room.is_active.is_(True))
        .group_by(Room.location)
        .all()
    )
    return {
        location: CampusRoomStats(room_count=room_count, total_capacity=total_capacity)
        for location, room_count, total_capacity in rows
    }
