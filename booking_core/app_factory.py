"""Shared FastAPI wiring: CORS, rate limiting, audit logging and error mapping."""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from .config import get_settings
from .database import Base, engine
from .errors import (
    BookingError,
    InvalidArgument,
    InvalidStatusTransition,
    RepositoryUnavailable,
    ReservationConflict,
    ReservationNotFound,
    RoomNotFound,
)
from .logging_middleware import add_audit_middleware

settings = get_settings()
limiter = Limiter(key_func=get_remote_address, default_limits=[settings.default_rate_limit], enabled=settings.rate_limiting_enabled)

RETRY_AFTER_SECONDS = 5

_STATUS_BY_ERROR = (
    (InvalidArgument, status.HTTP_400_BAD_REQUEST),
    (RoomNotFound, status.HTTP_404_NOT_FOUND),
    (ReservationNotFound, status.HTTP_404_NOT_FOUND),
    (ReservationConflict, status.HTTP_409_CONFLICT),
    (InvalidStatusTransition, status.HTTP_409_CONFLICT),
    (RepositoryUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def rate_limit_handler(_: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(status_code=429, content={"detail": f"Rate limit exceeded: {exc.detail}"})


def booking_error_handler(_: Request, exc: BookingError) -> JSONResponse:
    status_code = next(
        (code for error_type, code in _STATUS_BY_ERROR if isinstance(exc, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    content = {"detail": str(exc), "retryable": exc.retryable}
    headers = None
    if isinstance(exc, ReservationConflict):
        content["conflicting_ids"] = exc.conflicting_ids
    if isinstance(exc, RepositoryUnavailable):
        content["detail"] = f"Could not verify availability, try again: {exc}"
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)}
    return JSONResponse(status_code=status_code, content=content, headers=headers)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_service_app(title: str, service_name: str) -> FastAPI:
    fastapi_app = FastAPI(title=title, version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    fastapi_app.state.limiter = limiter
    fastapi_app.add_middleware(SlowAPIMiddleware)
    fastapi_app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    fastapi_app.add_exception_handler(BookingError, booking_error_handler)
    add_audit_middleware(fastapi_app, service_name)
    return fastapi_app
