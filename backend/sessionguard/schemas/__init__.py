"""Pydantic schemas for request/response validation and stored artifacts."""
from sessionguard.schemas.analysis import (
    EngagementMetrics,
    QualityMetrics,
    SessionAnalysis,
    TranscriptResult,
    TranscriptSegment,
)
from sessionguard.schemas.safety import SafetyEvent, SafetyFlag, SafetyFlagKind
from sessionguard.schemas.session import SessionStartRequest, SessionStartResponse

__all__ = [
    "EngagementMetrics",
    "QualityMetrics",
    "SessionAnalysis",
    "TranscriptResult",
    "TranscriptSegment",
    "SafetyEvent",
    "SafetyFlag",
    "SafetyFlagKind",
    "SessionStartRequest",
    "SessionStartResponse",
]
