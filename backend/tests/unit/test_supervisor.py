import asyncio

import numpy as np
import pytest

from sessionguard.monitor.client import MonitorClientError
from sessionguard.monitor.supervisor import (
    FACE_KICK_REASON,
    FACE_WARNING,
    VOICE_WARNING,
    SafetyMonitor,
    start_safety_monitor,
)
from sessionguard.schemas.safety import SafetyFlag, SafetyFlagKind

NEVER = 3_600_000  # keep the background timer out of the way


class FakeVideo:
    def __init__(self, has_audio=False, ready_state=2):
        self.has_audio = has_audio
        self.ready_state = ready_state
        self.width = 640
        self.height = 480
        self.encoded = []

    def grab_frame(self):
        return np.zeros((self.height, self.width, 3), dtype=np.uint8)

    def encode_jpeg(self, frame, quality):
        self.encoded.append(quality)
        return b"\xff\xd8jpeg"

    def to_rgb(self, frame):
        return frame.copy()


class FakeClient:
    def __init__(self, moderation_flags=None, moderation_error=None):
        self.moderation_flags = moderation_flags or []
        self.moderation_error = moderation_error
        self.images = []
        self.events = []

    async def detect_moderation(self, data_url):
        self.images.append(data_url)
        if self.moderation_error:
            raise self.moderation_error
        return list(self.moderation_flags)

    async def send_safety_event(self, event):
        self.events.append(event)


class GatedClient(FakeClient):
    """Moderation blocks until the test opens the gate."""

    def __init__(self):
        super().__init__()
        self.gate = None
        self.entered = asyncio.Event()
        self.cancelled = False

    async def detect_moderation(self, data_url):
        self.images.append(data_url)
        if self.gate is None:
            return []
        self.entered.set()
        try:
            await self.gate.wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return []


class FakeWorker:
    def __init__(self, on_result):
        self.on_result = on_result
        self.posts = []
        self.terminated = False

    def post(self, *args):
        self.posts.append(args)

    def terminate(self):
        self.terminated = True


class FakeCapture:
    def __init__(self, on_samples):
        self.on_samples = on_samples
        self.started = False
        self.closed = False

    def start(self):
        self.started = True

    def close(self):
        self.closed = True


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def harness():
    created = {"face": [], "voice": [], "capture": []}
    calls = {"flags": [], "warnings": [], "kicks": []}
    clock = Clock()

    def build(video=None, client=None, interval_ms=NEVER):
        def face_factory(cb):
            worker = FakeWorker(cb)
            created["face"].append(worker)
            return worker

        def voice_factory(cb):
            worker = FakeWorker(cb)
            created["voice"].append(worker)
            return worker

        def capture_factory(on_samples):
            capture = FakeCapture(on_samples)
            created["capture"].append(capture)
            return capture

        return SafetyMonitor(
            "sess-1",
            video or FakeVideo(),
            interval_ms=interval_ms,
            on_flag=calls["flags"].append,
            on_warning=calls["warnings"].append,
            on_kick=calls["kicks"].append,
            client=client or FakeClient(),
            face_worker_factory=face_factory,
            voice_worker_factory=voice_factory,
            audio_capture_factory=capture_factory,
            clock=clock,
        )

    return build, clock, calls, created


async def _tick_until(monitor, clock, seconds, step=2.0):
    results = []
    t = 0.0
    while t <= seconds:
        clock.now = t
        results.append(await monitor.tick())
        t += step
    return results


async def test_missing_face_warns_then_kicks(harness) -> None:
    build, clock, calls, created = harness
    client = FakeClient()
    monitor = build(client=client)
    await monitor.start()

    await _tick_until(monitor, clock, 30)
    monitor.stop()

    assert calls["warnings"] == [FACE_WARNING]
    assert calls["kicks"] == [FACE_KICK_REASON]
    assert "20s" in calls["kicks"][0]
    # Warned ticks at 12..20 s each report a fired face_liveness flag
    assert len(client.events) == 5
    for event in client.events:
        assert event.sessionId == "sess-1"
        assert any(f.fired for f in event.flags)
        assert [f.kind for f in event.flags] == [SafetyFlagKind.FACE_LIVENESS]
    assert len(calls["flags"]) == 5


async def test_voice_defaults_to_live_without_audio(harness) -> None:
    build, clock, calls, created = harness
    monitor = build(video=FakeVideo(has_audio=False))
    await monitor.start()
    monitor._on_face_result({"type": "RESULT", "detected": True, "score": 0.9})

    await _tick_until(monitor, clock, 30)
    monitor.stop()

    assert monitor.voice_score == 1.0
    assert calls["warnings"] == []
    assert calls["kicks"] == []
    assert created["capture"] == []


async def test_low_voice_score_warns(harness) -> None:
    build, clock, calls, created = harness
    monitor = build(video=FakeVideo(has_audio=True))
    await monitor.start()
    monitor._on_face_result({"type": "RESULT", "detected": True, "score": 0.9})
    monitor._on_voice_result({"type": "RESULT", "score": 0.2, "isReal": False})

    await _tick_until(monitor, clock, 12)
    monitor.stop()

    assert created["capture"][0].started is True
    assert created["capture"][0].on_samples == created["voice"][0].post
    assert calls["warnings"] == [VOICE_WARNING]
    assert calls["kicks"] == []


async def test_tick_moderates_and_posts_frame(harness) -> None:
    build, clock, calls, created = harness
    nudity = SafetyFlag.evaluate(SafetyFlagKind.NUDITY, 0.9, 0.6)
    client = FakeClient(moderation_flags=[nudity])
    video = FakeVideo()
    monitor = build(video=video, client=client)
    await monitor.start()
    monitor._on_face_result({"type": "RESULT", "detected": True, "score": 0.9})

    flags = await monitor.tick()
    monitor.stop()

    assert flags == [nudity]
    assert client.images[0].startswith("data:image/jpeg;base64,")
    assert video.encoded == [80]
    frame, timestamp = created["face"][0].posts[0]
    assert frame.shape == (480, 640, 3)
    assert len(client.events) == 1
    assert calls["flags"] == [[nudity]]


async def test_unfired_flags_are_not_sent(harness) -> None:
    build, clock, calls, created = harness
    client = FakeClient(moderation_flags=[SafetyFlag.evaluate(SafetyFlagKind.NUDITY, 0.2, 0.6)])
    monitor = build(client=client)
    await monitor.start()
    monitor._on_face_result({"type": "RESULT", "detected": True, "score": 0.9})

    await monitor.tick()
    monitor.stop()

    assert client.events == []
    assert calls["flags"] == []


async def test_moderation_failure_is_swallowed(harness) -> None:
    build, clock, calls, created = harness
    client = FakeClient(moderation_error=MonitorClientError("connection refused"))
    monitor = build(client=client)
    await monitor.start()

    flags = await monitor.tick()
    monitor.stop()

    assert flags == []
    assert len(created["face"][0].posts) == 1


async def test_tick_skipped_until_video_ready(harness) -> None:
    build, clock, calls, created = harness
    video = FakeVideo(ready_state=1)
    client = FakeClient()
    monitor = build(video=video, client=client)
    await monitor.start()

    assert await monitor.tick() is None
    monitor.stop()

    assert client.images == []
    assert created["face"][0].posts == []


async def test_overlapping_tick_is_dropped(harness) -> None:
    build, clock, calls, created = harness
    monitor = build()
    await monitor.start()
    monitor._running = True

    assert await monitor.tick() is None
    monitor.stop()


async def test_stop_releases_everything(harness) -> None:
    build, clock, calls, created = harness
    monitor = build(video=FakeVideo(has_audio=True))
    await monitor.start()

    monitor.stop()

    assert monitor.active is False
    assert created["face"][0].terminated is True
    assert created["voice"][0].terminated is True
    assert created["capture"][0].closed is True
    assert await monitor.tick() is None


async def test_start_safety_monitor_returns_stop(harness) -> None:
    build, clock, calls, created = harness
    face_workers = []

    def face_factory(cb):
        worker = FakeWorker(cb)
        face_workers.append(worker)
        return worker

    stop = await start_safety_monitor(
        "sess-2",
        FakeVideo(),
        interval_ms=NEVER,
        client=FakeClient(),
        face_worker_factory=face_factory,
        voice_worker_factory=FakeWorker,
    )
    stop()

    assert face_workers[0].terminated is True


async def test_stop_during_tick_discards_its_results(harness) -> None:
    build, clock, calls, created = harness
    client = GatedClient()
    monitor = build(client=client)
    await monitor.start()
    await _tick_until(monitor, clock, 20)
    assert calls["warnings"] == [FACE_WARNING]
    events_before = len(client.events)

    client.gate = asyncio.Event()
    clock.now = 30.0
    pending = asyncio.create_task(monitor.tick())
    await client.entered.wait()
    monitor.stop()
    client.gate.set()

    assert await pending is None
    assert calls["kicks"] == []
    assert len(client.events) == events_before
    assert len(created["face"][0].posts) == 11


async def test_interval_skips_while_tick_runs(harness) -> None:
    build, clock, calls, created = harness
    client = GatedClient()
    client.gate = asyncio.Event()
    monitor = build(client=client, interval_ms=10)
    await monitor.start()

    await asyncio.wait_for(client.entered.wait(), timeout=2)
    await asyncio.sleep(0.1)
    # Intervals that fired during the blocked tick were dropped
    assert len(client.images) == 1

    monitor.stop()
    await asyncio.sleep(0.01)

    assert client.cancelled is True
    assert calls["kicks"] == []
    assert created["face"][0].posts == []
