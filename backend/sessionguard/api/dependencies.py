"""FastAPI dependency providers for the shared service singletons."""
from sessionguard.services.bookkeeping import BookkeepingStore, bookkeeping_store
from sessionguard.services.moderation import ModerationService, moderation_service
from sessionguard.services.storage import StorageService, storage_service
from sessionguard.utils.analysis_queue import queue_recording_analysis


def get_bookkeeping() -> BookkeepingStore:
    return bookkeeping_store


def get_storage() -> StorageService:
    return storage_service


def get_moderation() -> ModerationService:
    return moderation_service


def get_analysis_queue():
    """Callable that enqueues an analysis job and reports whether it was queued."""
    return queue_recording_analysis
