"""
db.py
=====
Database tables and engine wiring.

Two tables back the game:
  cases          one row per authored case; the full Case is kept as JSON.
  game_sessions  one row per (player, case) playthrough; the Progress is
                 kept as JSON next to an integer version used as an
                 optimistic-concurrency guard.

Any SQLAlchemy URL works; SQLite is the default.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    create_engine,
    event,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from errors import PersistenceError

logger = logging.getLogger("crime_scene.db")

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CaseRow(Base):
    """
    Authored case.

    Attributes:
        id:          Case identifier used in URLs (e.g. "blackwood-study").
        title:       Summary fields duplicated out of the payload for listing.
        payload:     The complete Case as camelCase JSON.
        created_at:  Insertion time; case listing is ordered by it.
    """
    __tablename__ = "cases"

    id          = Column(String(128), primary_key=True)
    title       = Column(String(256), nullable=False)
    synopsis    = Column(Text, nullable=False, default="")
    case_number = Column(String(32), nullable=False, default="000")
    payload     = Column(JSON, nullable=False)
    created_at  = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class GameSessionRow(Base):
    """
    One playthrough of a case.

    Attributes:
        session_id:       UUID string.
        user_id:          Optional player identifier.
        case_id:          The case being investigated.
        state:            The Progress as camelCase JSON, minus the
                          store-owned version and timestamps.
        version:          Incremented on every write.
        is_solved:        Set once an accusation has been judged.
        final_accusation: The judged accusation and its outcome.
    """
    __tablename__ = "game_sessions"

    session_id       = Column(String(36), primary_key=True)
    user_id          = Column(String(128), nullable=True)
    case_id          = Column(String(128), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    state            = Column(JSON, nullable=False)
    version          = Column(Integer, nullable=False, default=1)
    is_solved        = Column(Boolean, nullable=False, default=False)
    final_accusation = Column(JSON, nullable=True)
    created_at       = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at       = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_game_sessions_case_id", "case_id"),
        Index("idx_game_sessions_user_case", "user_id", "case_id"),
    )


class Database:
    """Owns the engine and hands out transactional sessions."""

    def __init__(self, url: str) -> None:
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        self.url = url
        self.engine = create_engine(url, connect_args=connect_args, future=True)
        if url.startswith("sqlite"):
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)

    def create_all(self) -> None:
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"schema creation failed: {exc}") from exc
        logger.info("Database schema ready at %s", self.engine.url.render_as_string(hide_password=True))

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        Yield a session that commits on success and rolls back on failure.

        SQLAlchemy errors leave as PersistenceError; everything else
        propagates unchanged.
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise PersistenceError(f"database operation failed: {exc}") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()


def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()
