"""
Database engine, session factory and declarative base.

Every request gets its own ``Session`` through the ``get_db`` dependency.
Services commit explicitly; ``get_db`` only guarantees the session is
closed (and any unfinished transaction rolled back) when the request ends.
"""

from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.config import get_settings

settings = get_settings()

_connect_args: dict = {}
if settings.DATABASE_URL.startswith("sqlite"):
    # SQLite connections are shared with FastAPI's threadpool workers.
    _connect_args["check_same_thread"] = False

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    connect_args=_connect_args,
)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

Base = declarative_base()


def get_db() -> Iterator[Session]:
    """Yield a SQLAlchemy session scoped to a single request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
