"""Recording analysis queue utilities."""
from typing import Any, Dict

from arq import create_pool

from sessionguard.utils.logger import logger
from sessionguard.workers.redis_config import redis_settings


async def queue_recording_analysis(payload: Dict[str, Any]) -> bool:
    """
    Queue an analysis job for a finalized recording.

    Args:
        payload: EgressRecordingRequest fields

    Returns:
        True if job was queued successfully, False otherwise
    """
    session_id = payload.get("sessionId")
    try:
        redis = await create_pool(redis_settings)
        await redis.enqueue_job("process_egress_recording", payload)
        await redis.close()
        logger.info(f"Queued recording analysis for session {session_id}")
        return True
    except Exception as e:
        logger.error(f"Failed to queue recording analysis for session {session_id}: {e}", exc_info=True)
        return False
