"""Relational bookkeeping for sessions and their event log."""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import sessionmaker

from sessionguard.constants import SessionStatus
from sessionguard.database import Base, SessionLocal
from sessionguard.models import Session, SessionEvent
from sessionguard.utils.exceptions import NotFoundError
from sessionguard.utils.logger import logger


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class BookkeepingStore:
    """Session rows and the append-only session_events log."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    def ensure_schema(self) -> None:
        """Create the sessions/session_events tables if they are missing."""
        engine = self._session_factory.kw["bind"]
        Base.metadata.create_all(bind=engine, checkfirst=True)

    def insert_session(self, session_id: str, room_name: str) -> bool:
        """
        Insert an active session row.

        Returns:
            True if a row was created, False if the session already existed
        """
        db = self._session_factory()
        try:
            existing = db.get(Session, session_id)
            if existing:
                logger.info(f"Session {session_id} already exists; insert skipped")
                return False

            db.add(Session(id=session_id, room_name=room_name, status=SessionStatus.ACTIVE))
            db.commit()
            logger.info(f"Inserted session {session_id} for room {room_name}")
            return True
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def update_session_end(self, session_id: str, egress_id: Optional[str] = None) -> None:
        """Mark a session ended now, recording the egress id."""
        db = self._session_factory()
        try:
            session = db.get(Session, session_id)
            if not session:
                raise NotFoundError(f"Session not found: {session_id}")

            session.ended_at = utc_now()
            session.status = SessionStatus.ENDED
            session.egress_id = egress_id
            db.commit()
            logger.info(f"Session {session_id} marked ended (egress {egress_id})")
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def insert_session_event(self, session_id: str, kind: str, payload: Dict[str, Any]) -> int:
        """
        Append an event row for a session.

        Returns:
            The new event id
        """
        db = self._session_factory()
        try:
            if not db.get(Session, session_id):
                raise NotFoundError(f"Session not found: {session_id}")

            event = SessionEvent(session_id=session_id, event_type=kind, payload=payload)
            db.add(event)
            db.commit()
            return event.id
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Return a session row with per-kind event counts, or None."""
        db = self._session_factory()
        try:
            session = db.get(Session, session_id)
            if not session:
                return None

            counts = dict(
                db.query(SessionEvent.event_type, func.count(SessionEvent.id))
                .filter(SessionEvent.session_id == session_id)
                .group_by(SessionEvent.event_type)
                .all()
            )
            return {
                "session_id": session.id,
                "room_name": session.room_name,
                "status": session.status,
                "started_at": session.started_at,
                "ended_at": session.ended_at,
                "egress_id": session.egress_id,
                "event_counts": counts,
            }
        finally:
            db.close()


bookkeeping_store = BookkeepingStore()
