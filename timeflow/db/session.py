"""SQLAlchemy session helpers for the hosted Postgres database."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import JSON, String, create_engine
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import declarative_base, sessionmaker

from ..core.config import settings

# SQLite connections are shared by FastAPI worker threads during local development.
CONNECT_ARGS = {"check_same_thread": False} if settings.DB_URL.startswith("sqlite") else {}

engine = create_engine(settings.DB_URL, connect_args=CONNECT_ARGS, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# Postgres stores these natively; SQLite (dev and tests) falls back to JSON text.
JsonDocument = JSON().with_variant(JSONB(), "postgresql")
StringList = JSON().with_variant(ARRAY(String()), "postgresql")


def get_db():
    """FastAPI dependency that yields a session and guarantees cleanup."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_session_factory():
    """Session factory for work that outlives the request, such as SSE streams."""

    return SessionLocal
