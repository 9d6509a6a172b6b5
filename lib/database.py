# =============================================================================
# lib/database.py - SQLAlchemy Engine and Sessions
# =============================================================================
# Owns the process-wide engine and session factory.
#
# Route handlers receive a session via the get_db() dependency; scripts use
# the db_session() context manager.
#
# Usage:
#   from lib.database import db_session
#   with db_session() as db:
#       realm = RealmService.find_realm(db, 1)
# =============================================================================

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import settings

logger = logging.getLogger(__name__)


_ENGINE: Engine | None = None
_SESSIONMAKER: sessionmaker[Session] | None = None


def normalize_database_url(raw: str) -> str:
    """
    Normalize DATABASE_URL for SQLAlchemy's psycopg driver.

    Hosted Postgres providers usually hand out postgres:// or
    postgresql:// URLs; SQLAlchemy needs the driver spelled out.
    """
    raw = (raw or "").strip()
    if raw.startswith("postgres://"):
        return raw.replace("postgres://", "postgresql+psycopg://", 1)
    if raw.startswith("postgresql://"):
        return raw.replace("postgresql://", "postgresql+psycopg://", 1)
    return raw


def _build_engine(database_url: str) -> Engine:
    url = normalize_database_url(database_url)
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        # In-memory databases only exist on the connection that created them
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=False, **kwargs)
    return create_engine(url, echo=False, pool_pre_ping=True)


def get_engine() -> Engine:
    global _ENGINE
    if _ENGINE is None:
        _ENGINE = _build_engine(settings.DATABASE_URL)
        logger.info(f"Database engine created for {_ENGINE.url.render_as_string(hide_password=True)}")
    return _ENGINE


def get_sessionmaker() -> sessionmaker[Session]:
    global _SESSIONMAKER
    if _SESSIONMAKER is None:
        _SESSIONMAKER = sessionmaker(bind=get_engine(), expire_on_commit=False)
    return _SESSIONMAKER


def reset_engine_for_tests(database_url: str) -> Engine:
    """
    Replace the global engine/sessionmaker.

    Used by pytest to point the app at a throwaway SQLite database.
    """
    global _ENGINE, _SESSIONMAKER
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = _build_engine(database_url)
    _SESSIONMAKER = sessionmaker(bind=_ENGINE, expire_on_commit=False)
    return _ENGINE


def init_db() -> None:
    """Create all tables that don't exist yet."""
    from core.models import Base

    Base.metadata.create_all(get_engine())


def close_db() -> None:
    global _ENGINE, _SESSIONMAKER
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = None
    _SESSIONMAKER = None


def ping() -> None:
    """
    Round-trip a trivial query.

    Raises:
        sqlalchemy.exc.SQLAlchemyError: If the database is unreachable
    """
    with get_engine().connect() as conn:
        conn.execute(text("SELECT 1"))


@contextmanager
def db_session() -> Iterator[Session]:
    """Session scope for scripts; rolls back on error."""
    session = get_sessionmaker()()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Iterator[Session]:
    """
    FastAPI dependency yielding one session per request.

    FastAPI caches dependencies per request, so every pipeline stage and
    the handler share the same session.
    """
    with db_session() as session:
        yield session
