"""Application-wide constants."""

# Session status values
class SessionStatus:
    """Session status constants."""
    ACTIVE = "active"
    ENDED = "ended"


# Session event kinds
class EventKind:
    """Session event type constants."""
    SAFETY = "safety"
    ANALYSIS = "analysis"


# Score weights per fired flag
QUALITY_FLAG_WEIGHT = 12
ENGAGEMENT_FLAG_WEIGHT = 15

# Reference noise floor used by the SNR estimate (dBFS)
NOISE_FLOOR_DBFS = -60.0

# Extracted audio format
AUDIO_SAMPLE_RATE = 16000

# LLM judge prompt limits
JUDGE_MAX_TRANSCRIPT_CHARS = 12000
JUDGE_MAX_SEGMENTS = 200
JUDGE_TEMPERATURE = 0.2
JUDGE_FAILURE_NOTE = "Gemini analysis failed; used derived metrics only."

# Image moderation
MODERATION_FLAG_THRESHOLD = 0.6
