import pytest

from sessionguard.schemas.analysis import Level, Prosody, TranscriptResult, TranscriptSegment
from sessionguard.services.engagement import compute_engagement


def _transcript(spans) -> TranscriptResult:
    return TranscriptResult(
        text=" ".join("word" for _ in spans),
        segments=[TranscriptSegment(start=s, end=e, text="word") for s, e in spans],
    )


def test_engagement_over_fixed_transcript() -> None:
    metrics = compute_engagement(_transcript([(0, 1), (3, 4), (4.5, 5), (10, 12)]))

    assert metrics.totalTalkTimeSec == pytest.approx(4.5)
    assert metrics.turns == 4
    assert metrics.avgTurnSec == pytest.approx(1.125)
    # Gaps: 2 (not > 2), 0.5, 5
    assert metrics.longPauses == 1
    assert metrics.overlaps == 0
    assert [f.fired for f in metrics.flags] == [False, False]
    assert metrics.score == 100


def test_null_transcript_yields_sentinel() -> None:
    metrics = compute_engagement(None)

    assert metrics.totalTalkTimeSec is None
    assert metrics.turns is None
    assert metrics.avgTurnSec is None
    assert metrics.longPauses is None
    assert metrics.overlaps is None
    assert metrics.gazeEstimate == Level.UNKNOWN
    assert metrics.frontFacePresence == Level.UNKNOWN
    assert metrics.voiceProsody == Prosody.UNKNOWN
    assert metrics.unnaturalConversation == Level.UNKNOWN
    assert metrics.flags == []
    assert metrics.score == 0


def test_empty_transcript_flags_short_turns() -> None:
    metrics = compute_engagement(TranscriptResult(text="", segments=[]))

    assert metrics.totalTalkTimeSec == 0
    assert metrics.turns == 0
    assert metrics.avgTurnSec == 0
    flags = {f.metric: f for f in metrics.flags}
    assert flags["avg_turn_sec"].fired is True
    assert flags["avg_turn_sec"].threshold == 3
    assert metrics.score == 85


def test_choppy_transcript_fires_both_flags() -> None:
    spans = [(i * 5.0, i * 5.0 + 0.5) for i in range(6)]

    metrics = compute_engagement(_transcript(spans))

    assert metrics.longPauses == 5
    assert all(f.fired for f in metrics.flags)
    assert metrics.score == 70


def test_talk_time_matches_segment_sum() -> None:
    spans = [(0.0, 0.4), (0.4, 0.4), (1.0, 3.25)]

    metrics = compute_engagement(_transcript(spans))

    assert metrics.totalTalkTimeSec == pytest.approx(sum(e - s for s, e in spans))
