"""Schemas for post-session analysis artifacts."""
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, model_validator


class Level(str, Enum):
    """Qualitative low/medium/high estimate with an explicit unknown."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    UNKNOWN = "unknown"


class Prosody(str, Enum):
    """Voice prosody estimate with an explicit unknown."""
    FLAT = "flat"
    VARIABLE = "variable"
    UNKNOWN = "unknown"


class TranscriptSegment(BaseModel):
    """A timed piece of the transcript, in seconds."""
    start: float = Field(..., ge=0)
    end: float = Field(..., ge=0)
    text: str = ""

    @model_validator(mode="after")
    def _end_not_before_start(self) -> "TranscriptSegment":
        if self.end < self.start:
            raise ValueError(f"Segment end {self.end} is before start {self.start}")
        return self


class TranscriptResult(BaseModel):
    """Speech-to-text output for a session."""
    text: str = ""
    segments: List[TranscriptSegment] = Field(default_factory=list)
    language: Optional[str] = None
    raw: Optional[Any] = None


class MetricFlag(BaseModel):
    """A single thresholded metric check."""
    metric: str
    value: Optional[Union[int, float, str]] = None
    threshold: Optional[Union[int, float, str]] = None
    fired: bool


class Resolution(BaseModel):
    """Video frame size in pixels."""
    width: int
    height: int


class QualityMetrics(BaseModel):
    """Objective media-quality report."""
    resolution: Optional[Resolution] = None
    fps: Optional[float] = None
    durationSec: Optional[float] = None
    videoBitrateKbps: Optional[float] = None
    audioBitrateKbps: Optional[float] = None
    audioMeanVolumeDb: Optional[float] = None
    audioMaxVolumeDb: Optional[float] = None
    audioSnrEstimateDb: Optional[float] = None
    flags: List[MetricFlag] = Field(default_factory=list)
    score: int = Field(..., ge=0, le=100)


class EngagementMetrics(BaseModel):
    """Conversational-engagement report derived from the transcript."""
    totalTalkTimeSec: Optional[float] = None
    turns: Optional[int] = None
    avgTurnSec: Optional[float] = None
    longPauses: Optional[int] = None
    overlaps: Optional[int] = None
    gazeEstimate: Level = Level.UNKNOWN
    frontFacePresence: Level = Level.UNKNOWN
    voiceProsody: Prosody = Prosody.UNKNOWN
    unnaturalConversation: Level = Level.UNKNOWN
    flags: List[MetricFlag] = Field(default_factory=list)
    score: int = Field(..., ge=0, le=100)
    modelNotes: Optional[str] = None


class RecordingDescriptor(BaseModel):
    """Where the recording came from and where it was processed locally."""
    sourceKey: str
    localVideoPath: str
    localAudioPath: str


class SessionAnalysis(BaseModel):
    """The aggregate written once per session by the analysis pipeline."""
    sessionId: str
    roomName: str
    egressId: Optional[str] = None
    recording: RecordingDescriptor
    transcript: Optional[TranscriptResult] = None
    quality: Optional[QualityMetrics] = None
    engagement: Optional[EngagementMetrics] = None
    combinedScore: Optional[int] = None


class CombinedScore(BaseModel):
    """Body of the combined-score artifact."""
    combinedScore: int
    notes: str = ""


class JudgeVerdict(BaseModel):
    """Parsed LLM judge output; engagement/quality are partial overrides."""
    engagement: Optional[Dict[str, Any]] = None
    quality: Optional[Dict[str, Any]] = None
    combinedScore: Optional[float] = Field(None, ge=0, le=100)
    notes: Optional[str] = None


class EgressRecordingRequest(BaseModel):
    """Request schema for processing a finalized composite recording."""
    sessionId: str = Field(..., min_length=1, description="Session ID")
    roomName: str = Field("", description="Room the recording belongs to")
    egressId: Optional[str] = Field(None, description="Recording job ID")
    fileLocation: Optional[str] = Field(None, description="s3:// URI or S3 HTTPS URL")
    fileName: Optional[str] = Field(None, description="Object key fallback")


class EgressRecordingResponse(BaseModel):
    """Response schema for /api/recordings/process."""
    success: bool
    message: str
    job_queued: bool = False
