"""Session management endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError

from sessionguard.api.dependencies import get_bookkeeping
from sessionguard.schemas.session import (
    SessionStartRequest,
    SessionStartResponse,
    SessionStatusResponse,
)
from sessionguard.services.bookkeeping import BookkeepingStore
from sessionguard.services.processing import start_session as start_session_record
from sessionguard.utils.exceptions import handle_database_error, not_found_error
from sessionguard.utils.logger import logger

router = APIRouter(prefix="/api", tags=["sessions"])


@router.post("/sessions/start", response_model=SessionStartResponse)
async def start_session(
    request: SessionStartRequest,
    bookkeeping: BookkeepingStore = Depends(get_bookkeeping),
) -> SessionStartResponse:
    """
    Register a session that has just started in a room.

    Starting the same session twice is accepted; the second call leaves the
    existing row untouched.

    Args:
        request: Session id and room name
        bookkeeping: Bookkeeping store

    Returns:
        Session start response
    """
    try:
        created = await start_session_record(request.sessionId, request.roomName, bookkeeping)
    except SQLAlchemyError as e:
        logger.error(f"Failed to start session {request.sessionId}: {e}", exc_info=True)
        raise handle_database_error(e, "start_session")

    return SessionStartResponse(
        success=True,
        message="Session started" if created else "Session already started",
        session_id=request.sessionId,
    )


@router.get("/sessions/{session_id}", response_model=SessionStatusResponse)
async def get_session_status(
    session_id: str,
    bookkeeping: BookkeepingStore = Depends(get_bookkeeping),
) -> SessionStatusResponse:
    """
    Get a session's status and how many events of each kind it has.
    """
    try:
        bookkeeping.ensure_schema()
        session = bookkeeping.get_session(session_id)
    except SQLAlchemyError as e:
        logger.error(f"Failed to get session {session_id}: {e}", exc_info=True)
        raise handle_database_error(e, "get_session")

    if not session:
        raise not_found_error("Session", session_id)

    return SessionStatusResponse(**session)


