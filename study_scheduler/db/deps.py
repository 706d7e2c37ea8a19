"""FastAPI dependency yielding a database session per request."""
from __future__ import annotations

from typing import Iterator

from sqlalchemy.orm import Session

from study_scheduler.db.session import SessionLocal


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
