"""Engine, session factory and declarative base."""
from typing import Any, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import get_settings

settings = get_settings()


def _connect_args(url: str, timeout_seconds: float) -> Dict[str, Any]:
    # Bound every statement so a stuck backend surfaces as an error instead of a hang.
    if url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": timeout_seconds}
    if url.startswith("postgresql"):
        return {
            "connect_timeout": max(1, int(timeout_seconds)),
            "options": f"-c statement_timeout={int(timeout_seconds * 1000)}",
        }
    return {}


class Base(DeclarativeBase):
    pass


engine = create_engine(
    settings.database_url,
    connect_args=_connect_args(settings.database_url, settings.repository_timeout_seconds),
    pool_pre_ping=True,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
