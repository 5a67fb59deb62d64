"""Periodic realtime safety monitor."""
import asyncio
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sessionguard.monitor.audio_capture import AudioCapture
from sessionguard.monitor.client import MonitorClient, MonitorClientError
from sessionguard.monitor.config import monitor_settings
from sessionguard.monitor.face_worker import FaceLivenessWorker
from sessionguard.monitor.logger import logger
from sessionguard.monitor.media import HAVE_CURRENT_DATA, VideoSource, to_data_url
from sessionguard.monitor.violations import ViolationTracker
from sessionguard.monitor.voice_worker import VoiceLivenessWorker
from sessionguard.schemas.safety import SafetyEvent, SafetyFlag, SafetyFlagKind

FACE_WARNING = "We can't see your face. Please stay in front of the camera."
VOICE_WARNING = "We can't verify a live voice. Please speak naturally into your microphone."
FACE_KICK_REASON = "No live face detected for 20s"
VOICE_KICK_REASON = "No live voice detected for 20s"


def iso_timestamp() -> str:
    """UTC ISO-8601 with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SafetyMonitor:
    """
    Samples the local camera/microphone every interval and reports violations.

    Each tick moderates a still frame on the server, hands the same frame
    to the face worker, and advances the face and voice violation machines
    from the latest worker scores. A tick that is still running when the
    next interval fires causes that interval to be skipped. Stopping
    cancels a tick in flight and discards anything it would have reported.
    """

    def __init__(
        self,
        session_id: str,
        video: VideoSource,
        interval_ms: Optional[int] = None,
        on_flag: Optional[Callable[[List[SafetyFlag]], None]] = None,
        on_kick: Optional[Callable[[str], None]] = None,
        on_warning: Optional[Callable[[str], None]] = None,
        client: Optional[MonitorClient] = None,
        face_worker_factory: Optional[Callable[[Callable], Any]] = None,
        voice_worker_factory: Optional[Callable[[Callable], Any]] = None,
        audio_capture_factory: Optional[Callable[[Callable], Any]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session_id = session_id
        self.video = video
        self.interval = (interval_ms or monitor_settings.interval_ms) / 1000
        self.on_flag = on_flag
        self.on_kick = on_kick
        self.on_warning = on_warning
        self.client = client or MonitorClient()
        self._face_worker_factory = face_worker_factory or (
            lambda cb: FaceLivenessWorker(cb, monitor_settings.face_model_path)
        )
        self._voice_worker_factory = voice_worker_factory or (
            lambda cb: VoiceLivenessWorker(cb, monitor_settings.voice_model_name)
        )
        self._audio_capture_factory = audio_capture_factory or AudioCapture
        self._clock = clock

        # Written from worker threads, read by the tick
        self._lock = threading.Lock()
        self.face_score = 0.0
        self.has_face = False
        self.voice_score = 1.0

        self.face_tracker = ViolationTracker(SafetyFlagKind.FACE_LIVENESS)
        self.voice_tracker = ViolationTracker(SafetyFlagKind.VOICE_LIVENESS)

        self._active = False
        self._running = False
        self._timer: Optional[asyncio.Task] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._face_worker = None
        self._voice_worker = None
        self._audio = None

    @property
    def active(self) -> bool:
        return self._active

    def _on_face_result(self, result: Dict[str, Any]) -> None:
        if result.get("type") != "RESULT":
            return
        with self._lock:
            self.face_score = float(result.get("score", 0.0))
            self.has_face = bool(result.get("detected", False))

    def _on_voice_result(self, result: Dict[str, Any]) -> None:
        if result.get("type") != "RESULT":
            return
        with self._lock:
            self.voice_score = float(result.get("score", 1.0))

    async def start(self) -> None:
        """Spawn workers, open audio capture if there is audio, and start ticking."""
        if self._active:
            return
        self._active = True
        self._face_worker = self._face_worker_factory(self._on_face_result)
        self._voice_worker = self._voice_worker_factory(self._on_voice_result)

        if self.video.has_audio:
            try:
                self._audio = self._audio_capture_factory(self._voice_worker.post)
                self._audio.start()
            except Exception as e:
                logger.error(f"[MONITOR] Audio capture unavailable: {e}", exc_info=True)
                self._audio = None
        else:
            logger.info("[MONITOR] No audio track; voice liveness stays at its default")

        self._timer = asyncio.get_running_loop().create_task(self._schedule())
        logger.info(f"[MONITOR] Started for session {self.session_id} every {self.interval:.1f}s")

    def stop(self) -> None:
        """Stop ticking and release workers and audio capture."""
        if not self._active:
            return
        self._active = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._tick_task is not None:
            # Results of a tick in flight are discarded
            self._tick_task.cancel()
            self._tick_task = None
        if self._face_worker is not None:
            self._face_worker.terminate()
        if self._voice_worker is not None:
            self._voice_worker.terminate()
        if self._audio is not None:
            self._audio.close()
            self._audio = None
        logger.info(f"[MONITOR] Stopped for session {self.session_id}")

    async def _schedule(self) -> None:
        while self._active:
            await asyncio.sleep(self.interval)
            if not self._active:
                break
            if self._running or self._tick_task is not None:
                logger.debug("[MONITOR] Previous tick still running; skipping")
                continue
            self._tick_task = asyncio.get_running_loop().create_task(self._guarded_tick())
            self._tick_task.add_done_callback(self._tick_finished)

    def _tick_finished(self, task: asyncio.Task) -> None:
        if self._tick_task is task:
            self._tick_task = None

    async def _guarded_tick(self) -> None:
        try:
            await self.tick()
        except Exception as e:
            logger.error(f"[MONITOR] Tick failed: {e}", exc_info=True)

    async def tick(self) -> Optional[List[SafetyFlag]]:
        """
        Run one tick.

        Returns:
            The flags collected this tick, or None when the tick was skipped
            or aborted by a kick
        """
        if not self._active or self.video.ready_state < HAVE_CURRENT_DATA:
            return None
        if self._running:
            return None
        self._running = True
        try:
            return await self._tick()
        finally:
            self._running = False

    async def _tick(self) -> Optional[List[SafetyFlag]]:
        flags: List[SafetyFlag] = []

        # Capture and encoding block; keep them off the event loop
        frame = await asyncio.to_thread(self.video.grab_frame)
        if frame is not None:
            try:
                jpeg = await asyncio.to_thread(self.video.encode_jpeg, frame, monitor_settings.jpeg_quality)
                flags.extend(await self.client.detect_moderation(to_data_url(jpeg)))
            except MonitorClientError as e:
                logger.warning(f"[MONITOR] Moderation unavailable: {e}")

            rgb = await asyncio.to_thread(self.video.to_rgb, frame)
            frame = None
            if not self._active:
                return None
            self._face_worker.post(rgb, time.time())

        if not self._active:
            return None

        now = self._clock()
        with self._lock:
            face_score = self.face_score
            voice_score = self.voice_score

        checks = (
            (self.face_tracker, face_score, FACE_WARNING, FACE_KICK_REASON),
            (self.voice_tracker, voice_score, VOICE_WARNING, VOICE_KICK_REASON),
        )
        for tracker, score, warning, kick_reason in checks:
            outcome = tracker.evaluate(score, now)
            if outcome.warn:
                logger.warning(f"[MONITOR] {warning}")
                if self.on_warning:
                    self.on_warning(warning)
            if outcome.flag is not None:
                flags.append(outcome.flag)
            if outcome.kick:
                logger.warning(f"[MONITOR] Kick: {kick_reason}")
                if self.on_kick:
                    self.on_kick(kick_reason)
                return None

        if any(flag.fired for flag in flags) and self._active:
            event = SafetyEvent(sessionId=self.session_id, timestamp=iso_timestamp(), flags=flags)
            try:
                await self.client.send_safety_event(event)
            except MonitorClientError as e:
                logger.error(f"[MONITOR] Failed to send safety event: {e}")
            if self.on_flag and self._active:
                self.on_flag(flags)

        return flags


async def start_safety_monitor(
    session_id: str,
    video: VideoSource,
    interval_ms: Optional[int] = None,
    on_flag: Optional[Callable[[List[SafetyFlag]], None]] = None,
    on_kick: Optional[Callable[[str], None]] = None,
    on_warning: Optional[Callable[[str], None]] = None,
    **kwargs,
) -> Callable[[], None]:
    """Start a monitor and return its stop function."""
    monitor = SafetyMonitor(
        session_id,
        video,
        interval_ms=interval_ms,
        on_flag=on_flag,
        on_kick=on_kick,
        on_warning=on_warning,
        **kwargs,
    )
    await monitor.start()
    return monitor.stop
