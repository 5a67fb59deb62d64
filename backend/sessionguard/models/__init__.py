"""Models package."""
from sessionguard.models.session import Session
from sessionguard.models.event import SessionEvent

__all__ = ["Session", "SessionEvent"]
