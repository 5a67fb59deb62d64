"""ARQ worker configuration."""
from sessionguard.services.processing import AnalysisPipeline
from sessionguard.utils.logger import logger
from sessionguard.workers.redis_config import redis_settings

# Import the actual task functions
from sessionguard.workers.tasks import process_egress_recording


async def startup(ctx):
    """Worker startup hook."""
    logger.info("ARQ worker starting up...")
    ctx["pipeline"] = AnalysisPipeline()
    ctx["startup_complete"] = True


async def shutdown(ctx):
    """Worker shutdown hook."""
    logger.info("ARQ worker shutting down...")


class WorkerSettings:
    """ARQ worker settings."""

    functions = [
        process_egress_recording,
    ]

    on_startup = startup
    on_shutdown = shutdown

    redis_settings = redis_settings

    # Job configuration
    max_jobs = 2  # Each job holds a full recording on local disk
    job_timeout = 1800  # Transcription of long sessions is slow
    keep_result = 3600  # Keep results for 1 hour
    retry_jobs = True
    max_tries = 3
