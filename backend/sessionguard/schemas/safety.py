"""Schemas for realtime safety flags and events."""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class SafetyFlagKind(str, Enum):
    """Recognized safety flag kinds."""
    NUDITY = "nudity"
    PROFANITY = "profanity"
    FACE_LIVENESS = "face_liveness"
    VOICE_LIVENESS = "voice_liveness"
    # Reserved
    SUSPICIOUS_BEHAVIOR = "suspicious_behavior"
    AI_BOT = "ai_bot"
    OFFENSIVE = "offensive"
    HARASSMENT = "harassment"
    VIOLENCE = "violence"


class SafetySource(str, Enum):
    """Where a safety event was produced."""
    REALTIME = "realtime"
    POST = "post"


# Detail keys carried by face/voice liveness flags
LIVENESS_SCORE_DETAIL = "livenessScore"
LIVENESS_THRESHOLD_DETAIL = "livenessThreshold"


class SafetyFlag(BaseModel):
    """
    A scored safety check; fired is always score >= threshold.

    For every kind, a higher score is worse. Liveness flags therefore carry
    the violation score ``1 - liveness`` against ``1 - 0.6``; the raw
    liveness score and its threshold are in ``details`` under
    ``livenessScore`` and ``livenessThreshold`` (see ``liveness_score``).
    """
    kind: SafetyFlagKind
    score: float = Field(..., ge=0, le=1)
    threshold: float = Field(..., ge=0, le=1)
    fired: bool
    details: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def _fired_matches_score(self) -> "SafetyFlag":
        if self.fired != (self.score >= self.threshold):
            raise ValueError(
                f"fired={self.fired} disagrees with score {self.score} and threshold {self.threshold}"
            )
        return self

    @property
    def liveness_score(self) -> Optional[float]:
        """Raw liveness score of a face/voice liveness flag, else None."""
        if not self.details or LIVENESS_SCORE_DETAIL not in self.details:
            return None
        return float(self.details[LIVENESS_SCORE_DETAIL])

    @classmethod
    def evaluate(
        cls,
        kind: SafetyFlagKind,
        score: float,
        threshold: float,
        details: Optional[Dict[str, Any]] = None,
    ) -> "SafetyFlag":
        """Build a flag whose fired state is derived from the score."""
        score = min(1.0, max(0.0, float(score)))
        return cls(kind=kind, score=score, threshold=threshold, fired=score >= threshold, details=details)


class SafetyEvent(BaseModel):
    """A batch of flags raised at one instant; at least one must have fired."""
    sessionId: str = Field(..., min_length=1)
    timestamp: str = Field(..., description="ISO-8601 timestamp")
    flags: List[SafetyFlag]
    source: SafetySource = SafetySource.REALTIME

    @model_validator(mode="after")
    def _has_fired_flag(self) -> "SafetyEvent":
        if not self.flags:
            raise ValueError("A safety event needs at least one flag")
        if not any(flag.fired for flag in self.flags):
            raise ValueError("A safety event needs at least one fired flag")
        return self


class SafetyEventResponse(BaseModel):
    """Response schema for /api/safety-event."""
    ok: bool
    key: Optional[str] = None


class ModerationRequest(BaseModel):
    """Request schema for /api/safety/detect-moderation."""
    image: str = Field(..., description="data:image/...;base64,... URL")


class ModerationResponse(BaseModel):
    """Response schema for /api/safety/detect-moderation."""
    flags: List[SafetyFlag] = Field(default_factory=list)
