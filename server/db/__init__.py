"""Database layer: SQLAlchemy models and session."""

from server.db.models import Base, CardRow, StudySessionRow
from server.db.session import get_db, init_db, reset_engine

__all__ = [
    "Base",
    "CardRow",
    "StudySessionRow",
    "get_db",
    "init_db",
    "reset_engine",
]
