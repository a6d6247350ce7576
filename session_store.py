"""
session_store.py
================
Create, read, update and delete a session's mutable progress.

Writes are full replacements of the Progress document guarded by an
integer version: ``save_progress`` only succeeds when the caller's
``progress.version`` matches the stored one. Callers hand in a complete,
already-merged Progress; the store never merges.

Logging
-------
Logger name: ``crime_scene.session_store``. Only ids and counts are logged,
never progress contents.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import delete, select, update

from config import GAME_CONFIG
from db import Database, GameSessionRow, utcnow
from errors import ConflictError, NotFoundError, ValidationError
from models import Location, Progress, SessionRecord

logger = logging.getLogger("crime_scene.session_store")

# Store-owned fields, kept in columns rather than inside the JSON state.
_STORE_FIELDS = {"version", "created_at", "updated_at"}


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _dump_state(progress: Progress) -> dict:
    return progress.model_dump(mode="json", by_alias=True, exclude=_STORE_FIELDS)


def _progress_from_row(row: GameSessionRow) -> Progress:
    progress = Progress.model_validate(row.state)
    return progress.model_copy(update={
        "version": row.version,
        "created_at": _as_utc(row.created_at),
        "updated_at": _as_utc(row.updated_at),
    })


def _record_from_row(row: GameSessionRow) -> SessionRecord:
    return SessionRecord(
        session_id=row.session_id,
        case_id=row.case_id,
        user_id=row.user_id,
        progress=_progress_from_row(row),
        is_solved=bool(row.is_solved),
        final_accusation=row.final_accusation,
    )


def initial_progress(start_location_id: str, location_graph: List[Location]) -> Progress:
    """
    Build the progress of a brand-new session.

    Raises:
        ValidationError: ``start_location_id`` is not in ``location_graph``.
    """
    if not any(loc.id == start_location_id for loc in location_graph):
        raise ValidationError(f"start location {start_location_id!r} is not part of the case")
    return Progress(
        current_location=start_location_id,
        known_locations=[start_location_id],
        long_term_summary=GAME_CONFIG.default_long_term_summary,
    )


class SessionStore:
    """Session persistence on top of the ``game_sessions`` table."""

    def __init__(self, database: Database) -> None:
        self.database = database

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    def create_session(
        self,
        case_id: str,
        start_location_id: str,
        location_graph: List[Location],
        user_id: Optional[str] = None,
    ) -> SessionRecord:
        progress   = initial_progress(start_location_id, location_graph)
        session_id = str(uuid.uuid4())
        now        = utcnow()
        with self.database.session_scope() as session:
            row = GameSessionRow(
                session_id=session_id,
                user_id=user_id,
                case_id=case_id,
                state=_dump_state(progress),
                version=1,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.flush()
            record = _record_from_row(row)
        logger.info("Created session %s for case %s", session_id, case_id)
        return record

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        with self.database.session_scope() as session:
            row = session.get(GameSessionRow, session_id)
            return _record_from_row(row) if row is not None else None

    def read_progress(self, session_id: str) -> Optional[Progress]:
        with self.database.session_scope() as session:
            row = session.get(GameSessionRow, session_id)
            return _progress_from_row(row) if row is not None else None

    def find_latest_session(
        self,
        case_id: str,
        user_id: Optional[str] = None,
        include_solved: bool = False,
    ) -> Optional[SessionRecord]:
        """
        Return the newest session for this case and player.

        A ``user_id`` of None matches anonymous sessions only.

        Solved sessions are skipped unless ``include_solved`` is set, so a
        finished playthrough is never resumed.
        """
        stmt = select(GameSessionRow).where(GameSessionRow.case_id == case_id)
        if user_id is not None:
            stmt = stmt.where(GameSessionRow.user_id == user_id)
        else:
            stmt = stmt.where(GameSessionRow.user_id.is_(None))
        if not include_solved:
            stmt = stmt.where(GameSessionRow.is_solved.is_(False))
        stmt = stmt.order_by(GameSessionRow.created_at.desc()).limit(1)
        with self.database.session_scope() as session:
            row = session.execute(stmt).scalars().first()
            return _record_from_row(row) if row is not None else None

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def save_progress(self, session_id: str, progress: Progress) -> Progress:
        """
        Replace the stored progress if ``progress.version`` is current.

        Returns:
            The stored progress with its new version and ``updated_at``.

        Raises:
            NotFoundError:    The session does not exist.
            ConflictError:    The session was written since ``progress`` was read.
            PersistenceError: The database failed.
        """
        now = utcnow()
        with self.database.session_scope() as session:
            result = session.execute(
                update(GameSessionRow)
                .where(
                    GameSessionRow.session_id == session_id,
                    GameSessionRow.version == progress.version,
                )
                .values(
                    state=_dump_state(progress),
                    version=GameSessionRow.version + 1,
                    updated_at=now,
                )
            )
            if result.rowcount == 0:
                row = session.get(GameSessionRow, session_id)
                if row is None:
                    raise NotFoundError(f"session {session_id} not found", public_message="Session not found")
                raise ConflictError(
                    f"session {session_id} is at version {row.version}, write was based on {progress.version}"
                )
            row = session.get(GameSessionRow, session_id)
            session.refresh(row)
            saved = _progress_from_row(row)
        logger.debug("Saved session %s at version %d", session_id, saved.version)
        return saved

    def mark_solved(self, session_id: str, accusation: dict) -> None:
        with self.database.session_scope() as session:
            row = session.get(GameSessionRow, session_id)
            if row is None:
                raise NotFoundError(f"session {session_id} not found", public_message="Session not found")
            row.is_solved        = True
            row.final_accusation = accusation
            row.updated_at       = utcnow()
            row.version          = row.version + 1
        logger.info("Session %s marked solved", session_id)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_session(self, session_id: str) -> int:
        """Delete a session. Returns 0 when it was already gone."""
        with self.database.session_scope() as session:
            result = session.execute(
                delete(GameSessionRow).where(GameSessionRow.session_id == session_id)
            )
            deleted = result.rowcount or 0
        logger.info("Deleted session %s (rows=%d)", session_id, deleted)
        return deleted
