"""Realtime safety endpoints: event sink and still-frame moderation."""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from sessionguard.api.dependencies import get_bookkeeping, get_moderation, get_storage
from sessionguard.schemas.safety import (
    ModerationRequest,
    ModerationResponse,
    SafetyEvent,
    SafetyEventResponse,
    SafetySource,
)
from sessionguard.services.bookkeeping import BookkeepingStore
from sessionguard.services.moderation import ModerationService
from sessionguard.services.processing import store_safety_event
from sessionguard.services.storage import StorageService
from sessionguard.utils.exceptions import (
    ModerationError,
    NotFoundError,
    StorageError,
    ValidationError,
    handle_database_error,
    not_found_error,
    upstream_error,
    validation_error,
)
from sessionguard.utils.logger import logger

router = APIRouter(prefix="/api", tags=["safety"])


@router.post("/safety-event", response_model=SafetyEventResponse)
async def post_safety_event(
    event: SafetyEvent,
    storage: StorageService = Depends(get_storage),
    bookkeeping: BookkeepingStore = Depends(get_bookkeeping),
) -> SafetyEventResponse:
    """
    Persist a realtime safety event.

    Events posted here always come from the in-browser monitor, so the
    source is forced to ``realtime``.
    """
    event = event.model_copy(update={"source": SafetySource.REALTIME})
    try:
        key = await store_safety_event(event, storage, bookkeeping)
    except NotFoundError:
        raise not_found_error("Session", event.sessionId)
    except StorageError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to store safety event: {e}",
        )
    except SQLAlchemyError as e:
        logger.error(f"Failed to record safety event for {event.sessionId}: {e}", exc_info=True)
        raise handle_database_error(e, "store_safety_event")

    return SafetyEventResponse(ok=True, key=key)


@router.post("/safety/detect-moderation", response_model=ModerationResponse)
async def detect_moderation(
    request: ModerationRequest,
    moderation: ModerationService = Depends(get_moderation),
) -> ModerationResponse:
    """
    Moderate one still frame for nudity and rude gestures.
    """
    try:
        flags = await moderation.detect_moderation(request.image)
    except ValidationError as e:
        raise validation_error(str(e))
    except ModerationError as e:
        raise upstream_error(str(e))

    return ModerationResponse(flags=flags)
