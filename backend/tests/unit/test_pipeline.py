import os

import pytest

from sessionguard.constants import JUDGE_FAILURE_NOTE, SessionStatus
from sessionguard.schemas.analysis import (
    EgressRecordingRequest,
    JudgeVerdict,
    Level,
    TranscriptResult,
    TranscriptSegment,
)
from sessionguard.schemas.safety import SafetyEvent, SafetyFlag, SafetyFlagKind
from sessionguard.services.processing import AnalysisPipeline, start_session, store_safety_event
from sessionguard.services.quality import score_quality
from sessionguard.services.transcoder import LoudnessReport, ProbeReport
from sessionguard.utils.exceptions import (
    JudgeError,
    NotFoundError,
    StorageError,
    TranscriptionError,
    ValidationError,
)

SOURCE_KEY = "sessions/abc/raw-1.mp4"


class FakeTranscriber:
    def __init__(self, error=None):
        self.error = error
        self.paths = []

    async def transcribe(self, audio_path):
        self.paths.append(audio_path)
        if self.error:
            raise self.error
        return TranscriptResult(
            text="hello there how are you",
            segments=[
                TranscriptSegment(start=0.0, end=1.5, text="hello there"),
                TranscriptSegment(start=2.0, end=3.5, text="how are you"),
            ],
            language="en",
        )


class FakeJudge:
    def __init__(self, verdict=None, error=None):
        self.verdict = verdict or JudgeVerdict(
            engagement={"gazeEstimate": "high", "score": 90},
            quality={"score": 80},
            combinedScore=84.6,
            notes="steady and clear",
        )
        self.error = error
        self.calls = []

    async def analyze(self, transcript, quality, engagement):
        self.calls.append((transcript, quality, engagement))
        if self.error:
            raise self.error
        return self.verdict


async def fake_quality(video_path):
    return score_quality(
        ProbeReport(width=1280, height=720, fps=30.0, duration_sec=4.0),
        LoudnessReport(mean_dbfs=-20.0, max_dbfs=-3.0),
    )


async def failing_quality(video_path):
    raise RuntimeError("ffprobe crashed")


async def fake_extract_audio(video_path, audio_path):
    with open(audio_path, "wb") as f:
        f.write(b"RIFF-audio")


@pytest.fixture
def request_payload() -> EgressRecordingRequest:
    return EgressRecordingRequest(
        sessionId="abc",
        roomName="room-abc",
        egressId="EG_1",
        fileLocation="s3://recordings/" + SOURCE_KEY,
    )


@pytest.fixture
def seeded(store, fake_storage):
    store.insert_session("abc", "room-abc")
    fake_storage.objects[SOURCE_KEY] = b"mp4-bytes"
    return store, fake_storage


def _pipeline(store, storage, tmp_path, transcriber=None, judge=None, quality_analyzer=fake_quality):
    return AnalysisPipeline(
        storage=storage,
        bookkeeping=store,
        transcriber=transcriber or FakeTranscriber(),
        judge=judge or FakeJudge(),
        quality_analyzer=quality_analyzer,
        audio_extractor=fake_extract_audio,
        temp_dir=str(tmp_path),
    )


async def test_full_run_writes_every_artifact(seeded, request_payload, tmp_path) -> None:
    store, storage = seeded

    analysis = await _pipeline(store, storage, tmp_path).process(request_payload)

    prefix = "sessions/abc/"
    written = {key for key in storage.objects if key != SOURCE_KEY}
    assert written == {
        prefix + name
        for name in (
            "recording.mp4", "audio.wav", "transcript.json", "transcript.txt",
            "quality.json", "engagement.json", "combined-score.json", "analysis.json",
        )
    }
    assert storage.objects[prefix + "recording.mp4"] == b"mp4-bytes"
    assert storage.content_types[prefix + "audio.wav"] == "audio/wav"
    assert storage.objects[prefix + "transcript.txt"] == b"hello there how are you"
    assert storage.content_types[prefix + "transcript.txt"] == "text/plain"
    assert storage.json(prefix + "combined-score.json") == {
        "combinedScore": 85,
        "notes": "steady and clear",
    }

    assert analysis.combinedScore == 85
    assert analysis.engagement.gazeEstimate == Level.HIGH
    assert analysis.engagement.score == 90
    assert analysis.engagement.modelNotes == "steady and clear"
    assert analysis.engagement.turns == 2
    assert analysis.quality.score == 80
    assert analysis.recording.sourceKey == SOURCE_KEY
    assert storage.json(prefix + "analysis.json") == analysis.model_dump(mode="json")

    session = store.get_session("abc")
    assert session["status"] == SessionStatus.ENDED
    assert session["egress_id"] == "EG_1"
    assert session["event_counts"] == {"analysis": 1}


async def test_transcription_failure_is_absorbed(seeded, request_payload, tmp_path) -> None:
    store, storage = seeded
    transcriber = FakeTranscriber(error=TranscriptionError("503"))

    analysis = await _pipeline(store, storage, tmp_path, transcriber=transcriber).process(request_payload)

    assert analysis.transcript is None
    assert analysis.engagement.totalTalkTimeSec is None
    assert isinstance(analysis.quality.score, int)
    assert isinstance(analysis.combinedScore, int)
    assert "sessions/abc/analysis.json" in storage.objects
    assert "sessions/abc/transcript.json" not in storage.objects
    assert "sessions/abc/transcript.txt" not in storage.objects


async def test_quality_failure_is_absorbed(seeded, request_payload, tmp_path) -> None:
    store, storage = seeded

    analysis = await _pipeline(store, storage, tmp_path, quality_analyzer=failing_quality).process(request_payload)

    assert analysis.quality is None
    assert "sessions/abc/quality.json" not in storage.objects
    assert store.get_session("abc")["status"] == SessionStatus.ENDED


async def test_judge_failure_keeps_derived_metrics(seeded, request_payload, tmp_path) -> None:
    store, storage = seeded
    judge = FakeJudge(error=JudgeError("Gemini analysis failed: 500"))

    analysis = await _pipeline(store, storage, tmp_path, judge=judge).process(request_payload)

    assert analysis.combinedScore is None
    assert analysis.engagement.modelNotes == JUDGE_FAILURE_NOTE
    assert analysis.engagement.gazeEstimate == Level.UNKNOWN
    assert analysis.quality.score == 100
    assert "sessions/abc/combined-score.json" not in storage.objects
    assert "sessions/abc/analysis.json" in storage.objects


async def test_optional_artifact_upload_failure_is_absorbed(seeded, request_payload, tmp_path) -> None:
    store, storage = seeded
    storage.fail_keys.add("sessions/abc/quality.json")

    analysis = await _pipeline(store, storage, tmp_path).process(request_payload)

    assert analysis.quality is not None
    assert "sessions/abc/analysis.json" in storage.objects


async def test_missing_object_key_is_fatal_before_any_write(store, fake_storage, tmp_path) -> None:
    store.insert_session("abc", "room-abc")
    request = EgressRecordingRequest(sessionId="abc", roomName="room-abc")

    with pytest.raises(ValidationError):
        await _pipeline(store, fake_storage, tmp_path).process(request)

    assert fake_storage.objects == {}
    assert store.get_session("abc")["status"] == SessionStatus.ACTIVE


async def test_download_failure_is_fatal_and_cleans_up(store, fake_storage, request_payload, tmp_path) -> None:
    store.insert_session("abc", "room-abc")

    with pytest.raises(StorageError):
        await _pipeline(store, fake_storage, tmp_path).process(request_payload)

    assert os.listdir(tmp_path) == []
    assert store.get_session("abc")["event_counts"] == {}


async def test_analysis_upload_failure_is_fatal(seeded, request_payload, tmp_path) -> None:
    store, storage = seeded
    storage.fail_keys.add("sessions/abc/analysis.json")

    with pytest.raises(StorageError):
        await _pipeline(store, storage, tmp_path).process(request_payload)

    session = store.get_session("abc")
    assert session["status"] == SessionStatus.ACTIVE
    assert session["event_counts"] == {}


async def test_temp_files_removed_after_success(seeded, request_payload, tmp_path) -> None:
    store, storage = seeded

    await _pipeline(store, storage, tmp_path).process(request_payload)

    assert os.listdir(tmp_path) == []


async def test_every_key_is_under_session_prefix(seeded, request_payload, tmp_path) -> None:
    store, storage = seeded

    await _pipeline(store, storage, tmp_path).process(request_payload)

    assert all(key.startswith("sessions/abc/") for key in storage.objects)


async def test_repeat_run_writes_identical_bytes(seeded, request_payload, tmp_path) -> None:
    store, storage = seeded
    pipeline = _pipeline(store, storage, tmp_path)

    await pipeline.process(request_payload)
    first = dict(storage.objects)
    await pipeline.process(request_payload)

    assert storage.objects == first
    assert store.get_session("abc")["event_counts"] == {"analysis": 2}


async def test_start_session_is_idempotent(store) -> None:
    assert await start_session("s-9", "room-9", store) is True
    assert await start_session("s-9", "room-9", store) is False


async def test_store_safety_event(store, fake_storage) -> None:
    store.insert_session("abc", "room-abc")
    event = SafetyEvent(
        sessionId="abc",
        timestamp="2024-05-01T10:00:00.000Z",
        flags=[SafetyFlag.evaluate(SafetyFlagKind.NUDITY, 0.93, 0.6, details={"label": "Nudity"})],
    )

    key = await store_safety_event(event, fake_storage, store)

    assert key == "sessions/abc/safety/2024-05-01T10:00:00.000Z.json"
    body = fake_storage.json(key)
    assert body["source"] == "realtime"
    assert body["flags"][0]["kind"] == "nudity"
    assert body["flags"][0]["fired"] is True
    assert store.get_session("abc")["event_counts"] == {"safety": 1}


async def test_safety_event_for_unknown_session_writes_nothing(store, fake_storage) -> None:
    event = SafetyEvent(
        sessionId="ghost",
        timestamp="2026-01-01T00:00:00.000Z",
        flags=[SafetyFlag.evaluate(SafetyFlagKind.NUDITY, 0.9, 0.6)],
    )

    with pytest.raises(NotFoundError):
        await store_safety_event(event, fake_storage, store)

    assert fake_storage.objects == {}
