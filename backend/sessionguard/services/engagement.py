"""Conversational-engagement metrics derived from a transcript."""
from typing import Optional

from sessionguard.constants import ENGAGEMENT_FLAG_WEIGHT
from sessionguard.schemas.analysis import EngagementMetrics, MetricFlag, TranscriptResult
from sessionguard.services.quality import score_from_flags

LONG_PAUSE_SEC = 2.0
MIN_AVG_TURN_SEC = 1.0
MAX_LONG_PAUSES = 3


def compute_engagement(transcript: Optional[TranscriptResult]) -> EngagementMetrics:
    """
    Derive talk-time, turn and pause statistics from transcript segments.

    A missing transcript yields a sentinel report: numeric fields None,
    qualitative axes unknown, no flags, score 0. Qualitative axes always
    start as unknown; the LLM judge may refine them later.
    """
    if transcript is None:
        return EngagementMetrics(score=0)

    segments = transcript.segments
    total_talk_time = sum(max(0.0, seg.end - seg.start) for seg in segments)
    turns = len(segments)
    avg_turn = total_talk_time / turns if turns > 0 else 0.0
    long_pauses = sum(
        1
        for prev, seg in zip(segments, segments[1:])
        if seg.start - prev.end > LONG_PAUSE_SEC
    )

    flags = [
        # Reported threshold is the target turn length; it fires below 1s
        MetricFlag(metric="avg_turn_sec", value=avg_turn, threshold=3,
                   fired=avg_turn < MIN_AVG_TURN_SEC),
        MetricFlag(metric="long_pauses", value=long_pauses, threshold=MAX_LONG_PAUSES,
                   fired=long_pauses > MAX_LONG_PAUSES),
    ]

    return EngagementMetrics(
        totalTalkTimeSec=total_talk_time,
        turns=turns,
        avgTurnSec=avg_turn,
        longPauses=long_pauses,
        # TODO: detect overlapping speech once segments carry speaker labels
        overlaps=0,
        flags=flags,
        score=score_from_flags(flags, ENGAGEMENT_FLAG_WEIGHT),
    )
