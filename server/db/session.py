"""
Engine and session plumbing for the card database.

One engine is cached per process and rebuilt when the configured
database_url changes. `sqlite://` (the in-memory database the API tests
use) is pinned to a single connection, so its tables and rows exist
exactly as long as the cached engine does.
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session as DBSession, sessionmaker
from sqlalchemy.pool import StaticPool

from flashcards.config import Settings
from server.db.models import Base

logger = logging.getLogger("flashcards.server")

MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")

_engine = None
_engine_url = None
_SessionLocal = None


def _make_engine(url: str) -> Engine:
    if url in MEMORY_URLS:
        # Every pooled connection would otherwise open its own empty database
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    if url.startswith("sqlite"):
        # Session handlers run on the threadpool, not the thread that opened the connection
        database = make_url(url).database
        if database:
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url)


def get_engine(settings: Settings) -> Engine:
    global _engine, _engine_url, _SessionLocal
    url = settings.database_url
    if _engine is not None and _engine_url != url:
        logger.info("Database URL changed; rebuilding engine")
        _engine.dispose()
        _engine = None
        _SessionLocal = None
    if _engine is None:
        _engine = _make_engine(url)
        _engine_url = url
    return _engine


def get_session_factory(settings: Settings) -> sessionmaker:
    global _SessionLocal
    engine = get_engine(settings)
    if _SessionLocal is None:
        # Rows are converted to Card models after commit, so keep them loaded
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    return _SessionLocal


@contextmanager
def get_db(settings: Settings) -> Generator[DBSession, None, None]:
    """One unit of work: commits on success, rolls back and re-raises on error."""
    factory = get_session_factory(settings)
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def reset_engine() -> None:
    """
    Dispose the cached engine and session factory.

    Test fixtures call this around each test: with `sqlite://` disposing
    the engine drops the whole in-memory database, so the next init_db()
    starts from empty card and study_sessions tables.
    """
    global _engine, _engine_url, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _engine_url = None
    _SessionLocal = None


def init_db(settings: Settings) -> None:
    """Create the cards and study_sessions tables if missing."""
    engine = get_engine(settings)
    Base.metadata.create_all(bind=engine)
    logger.debug("Database ready at %s", engine.url.render_as_string(hide_password=True))
