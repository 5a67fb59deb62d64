"""Recording analysis endpoints."""
from typing import Awaitable, Callable

from fastapi import APIRouter, Depends, HTTPException, status

from sessionguard.api.dependencies import get_analysis_queue
from sessionguard.schemas.analysis import EgressRecordingRequest, EgressRecordingResponse
from sessionguard.utils.exceptions import validation_error
from sessionguard.utils.logger import logger
from sessionguard.utils.url import derive_object_key

router = APIRouter(prefix="/api", tags=["recordings"])


@router.post("/recordings/process", response_model=EgressRecordingResponse)
async def process_recording(
    request: EgressRecordingRequest,
    enqueue: Callable[[dict], Awaitable[bool]] = Depends(get_analysis_queue),
) -> EgressRecordingResponse:
    """
    Queue analysis of a finalized composite recording.

    The request is rejected before anything is queued when no object key can
    be derived from ``fileLocation``/``fileName``.
    """
    if not derive_object_key(request.fileLocation, request.fileName):
        raise validation_error("Could not determine S3 key for egress recording")

    queued = await enqueue(request.model_dump())
    if not queued:
        logger.error(f"Analysis job for session {request.sessionId} was not queued")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to queue recording analysis. Please try again.",
        )

    return EgressRecordingResponse(
        success=True,
        message="Recording analysis queued",
        job_queued=True,
    )
