"""ARQ background tasks for post-recording analysis."""
from typing import Any, Dict

from pydantic import ValidationError as PydanticValidationError

from sessionguard.schemas.analysis import EgressRecordingRequest
from sessionguard.services.processing import AnalysisPipeline
from sessionguard.utils.exceptions import AppException
from sessionguard.utils.logger import logger


async def process_egress_recording(ctx: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Analyse a finalized composite recording.

    Args:
        ctx: ARQ context; may carry a prebuilt ``pipeline``
        payload: EgressRecordingRequest fields

    Returns:
        Dict with success status and details
    """
    try:
        request = EgressRecordingRequest.model_validate(payload)
    except PydanticValidationError as e:
        logger.error(f"Rejected egress payload: {e}")
        return {"success": False, "error": f"Invalid payload: {e}"}

    pipeline = ctx.get("pipeline") or AnalysisPipeline()

    try:
        analysis = await pipeline.process(request)
    except AppException as e:
        # Session stays active; the job may be retried
        logger.error(f"Analysis failed for session {request.sessionId}: {e}", exc_info=True)
        return {"success": False, "session_id": request.sessionId, "error": str(e)}

    return {
        "success": True,
        "session_id": analysis.sessionId,
        "has_transcript": analysis.transcript is not None,
        "quality_score": analysis.quality.score if analysis.quality else None,
        "engagement_score": analysis.engagement.score if analysis.engagement else None,
        "combined_score": analysis.combinedScore,
    }
