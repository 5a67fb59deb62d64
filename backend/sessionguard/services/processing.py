"""Post-recording analysis pipeline and session/safety bookkeeping entry points."""
import inspect
import os
import tempfile
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

from sessionguard.constants import EventKind, JUDGE_FAILURE_NOTE
from sessionguard.schemas.analysis import (
    CombinedScore,
    EgressRecordingRequest,
    EngagementMetrics,
    QualityMetrics,
    RecordingDescriptor,
    SessionAnalysis,
    TranscriptResult,
)
from sessionguard.schemas.safety import SafetyEvent
from sessionguard.services import transcoder
from sessionguard.services.bookkeeping import BookkeepingStore, bookkeeping_store
from sessionguard.services.engagement import compute_engagement
from sessionguard.services.judge import GeminiJudge, merge_partial
from sessionguard.services.quality import compute_quality_metrics
from sessionguard.services.storage import StorageService, storage_service
from sessionguard.services.transcription import TranscriptionService
from sessionguard.utils.exceptions import NotFoundError, ValidationError
from sessionguard.utils.logger import logger
from sessionguard.utils.url import derive_object_key, session_prefix

T = TypeVar("T")


@dataclass
class StepResult(Generic[T]):
    """Outcome of one isolated pipeline step."""
    success: bool
    value: Optional[T] = None
    error: Optional[str] = None


@dataclass
class JudgeOutcome:
    """Derived reports after the judge's values have been merged in."""
    engagement: Optional[EngagementMetrics]
    quality: Optional[QualityMetrics]
    combined_score: Optional[int]
    notes: str


def local_path(session_id: str, filename: str, temp_dir: Optional[str] = None) -> str:
    """Temporary working path ``{tmp}/{sessionId}-{filename}``."""
    return os.path.join(temp_dir or tempfile.gettempdir(), f"{session_id}-{filename}")


async def start_session(
    session_id: str,
    room_name: str,
    bookkeeping: Optional[BookkeepingStore] = None,
) -> bool:
    """Record a newly started session. Returns False if it already existed."""
    store = bookkeeping or bookkeeping_store
    store.ensure_schema()
    return store.insert_session(session_id, room_name)


async def store_safety_event(
    event: SafetyEvent,
    storage: Optional[StorageService] = None,
    bookkeeping: Optional[BookkeepingStore] = None,
) -> str:
    """
    Persist a safety event to the object store and the event log.

    Returns:
        The object key the event was written to

    Raises:
        NotFoundError: If the session is unknown; nothing is uploaded
    """
    store = bookkeeping or bookkeeping_store
    objects = storage or storage_service

    store.ensure_schema()
    if store.get_session(event.sessionId) is None:
        raise NotFoundError(f"Session not found: {event.sessionId}")

    payload = event.model_dump(mode="json")
    key = f"{session_prefix(event.sessionId)}/safety/{event.timestamp}.json"
    await objects.put_json(key, payload)
    store.insert_session_event(event.sessionId, EventKind.SAFETY, payload)
    logger.info(
        f"Stored safety event for session {event.sessionId}: "
        f"{[flag.kind.value for flag in event.flags if flag.fired]}"
    )
    return key


class AnalysisPipeline:
    """
    Turns a finalized session recording into the analysis bundle.

    Transcription, quality, engagement and the LLM judge are isolated: a
    failure in any of them nulls that part of the analysis and the run
    continues. Schema, download, audio extraction, the recording/audio
    uploads, analysis.json, the analysis event and the session end update
    are fatal.
    """

    def __init__(
        self,
        storage: Optional[StorageService] = None,
        bookkeeping: Optional[BookkeepingStore] = None,
        transcriber: Optional[TranscriptionService] = None,
        judge: Optional[GeminiJudge] = None,
        quality_analyzer: Callable[[str], Any] = compute_quality_metrics,
        audio_extractor: Callable[[str, str], Any] = transcoder.extract_audio,
        temp_dir: Optional[str] = None,
    ):
        self.storage = storage or storage_service
        self.bookkeeping = bookkeeping or bookkeeping_store
        self.transcriber = transcriber or TranscriptionService()
        self.judge = judge or GeminiJudge()
        self.quality_analyzer = quality_analyzer
        self.audio_extractor = audio_extractor
        self.temp_dir = temp_dir

    async def _attempt(self, step: str, session_id: str, func: Callable, *args) -> StepResult:
        """Run a non-fatal step, turning any exception into a failed StepResult."""
        try:
            value = func(*args)
            if inspect.isawaitable(value):
                value = await value
            return StepResult(success=True, value=value)
        except Exception as e:
            logger.error(f"[PIPELINE] {step} failed for session {session_id}: {e}", exc_info=True)
            return StepResult(success=False, error=str(e))

    async def _judge(
        self,
        transcript: Optional[TranscriptResult],
        quality: Optional[QualityMetrics],
        engagement: Optional[EngagementMetrics],
    ) -> JudgeOutcome:
        verdict = await self.judge.analyze(transcript, quality, engagement)
        notes = verdict.notes or ""
        if engagement is not None:
            engagement = merge_partial(engagement, verdict.engagement or {}, modelNotes=notes)
        if quality is not None:
            quality = merge_partial(quality, verdict.quality or {})
        combined_score = int(round(verdict.combinedScore)) if verdict.combinedScore is not None else None
        return JudgeOutcome(engagement, quality, combined_score, notes)

    async def _write_transcript_text(self, session_id: str, key: str, text: str, path: str) -> None:
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
        await self.storage.put_file(key, path, "text/plain")

    def _cleanup(self, paths) -> None:
        for path in paths:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"[PIPELINE] Could not remove temp file {path}: {e}")

    async def process(self, request: EgressRecordingRequest) -> SessionAnalysis:
        """
        Run the full analysis for one finalized recording.

        Args:
            request: Session id, room, egress id and recording location

        Returns:
            The SessionAnalysis that was written to analysis.json

        Raises:
            ValidationError: If no object key can be derived from the request
            StorageError, TranscoderError, NotFoundError: On fatal step failures
        """
        session_id = request.sessionId
        logger.info(f"[PIPELINE] Processing recording for session {session_id}")

        # 1. Schema
        self.bookkeeping.ensure_schema()

        # 2. Object key
        source_key = derive_object_key(request.fileLocation, request.fileName)
        if not source_key:
            raise ValidationError("Could not determine S3 key for egress recording")

        video_path = local_path(session_id, "recording.mp4", self.temp_dir)
        audio_path = local_path(session_id, "audio.wav", self.temp_dir)
        transcript_path = local_path(session_id, "transcript.txt", self.temp_dir)

        try:
            # 3-4. Download and extract audio
            await self.storage.get_to_file(source_key, video_path)
            await self.audio_extractor(video_path, audio_path)

            # 5-7. Independent analyzers
            transcript_result = await self._attempt(
                "transcription", session_id, self.transcriber.transcribe, audio_path
            )
            transcript: Optional[TranscriptResult] = transcript_result.value

            quality_result = await self._attempt(
                "quality", session_id, self.quality_analyzer, video_path
            )
            quality: Optional[QualityMetrics] = quality_result.value

            engagement_result = await self._attempt(
                "engagement", session_id, compute_engagement, transcript
            )
            engagement: Optional[EngagementMetrics] = engagement_result.value

            # 8. LLM judge; its values win over derived ones
            combined_score: Optional[int] = None
            judge_notes = ""
            judge_result = await self._attempt(
                "judge", session_id, self._judge, transcript, quality, engagement
            )
            if judge_result.success:
                outcome: JudgeOutcome = judge_result.value
                engagement = outcome.engagement
                quality = outcome.quality
                combined_score = outcome.combined_score
                judge_notes = outcome.notes
            elif engagement is not None:
                engagement = engagement.model_copy(update={"modelNotes": JUDGE_FAILURE_NOTE})

            analysis = SessionAnalysis(
                sessionId=session_id,
                roomName=request.roomName,
                egressId=request.egressId,
                recording=RecordingDescriptor(
                    sourceKey=source_key,
                    localVideoPath=video_path,
                    localAudioPath=audio_path,
                ),
                transcript=transcript,
                quality=quality,
                engagement=engagement,
                combinedScore=combined_score,
            )

            # 9. Raw media
            prefix = session_prefix(session_id)
            await self.storage.put_file(f"{prefix}/recording.mp4", video_path, "video/mp4")
            await self.storage.put_file(f"{prefix}/audio.wav", audio_path, "audio/wav")

            # 10-13. Optional artifacts
            if transcript is not None:
                await self._attempt(
                    "transcript.json upload", session_id, self.storage.put_json,
                    f"{prefix}/transcript.json", transcript.model_dump(mode="json"),
                )
                await self._attempt(
                    "transcript.txt upload", session_id, self._write_transcript_text,
                    session_id, f"{prefix}/transcript.txt", transcript.text, transcript_path,
                )
            if quality is not None:
                await self._attempt(
                    "quality.json upload", session_id, self.storage.put_json,
                    f"{prefix}/quality.json", quality.model_dump(mode="json"),
                )
            if engagement is not None:
                await self._attempt(
                    "engagement.json upload", session_id, self.storage.put_json,
                    f"{prefix}/engagement.json", engagement.model_dump(mode="json"),
                )
            if combined_score is not None:
                await self._attempt(
                    "combined-score.json upload", session_id, self.storage.put_json,
                    f"{prefix}/combined-score.json",
                    CombinedScore(combinedScore=combined_score, notes=judge_notes).model_dump(mode="json"),
                )

            # 14-16. Aggregate, event log, session end
            payload = analysis.model_dump(mode="json")
            await self.storage.put_json(f"{prefix}/analysis.json", payload)
            self.bookkeeping.insert_session_event(session_id, EventKind.ANALYSIS, payload)
            self.bookkeeping.update_session_end(session_id, request.egressId)

            logger.info(
                f"[PIPELINE] Session {session_id} analysed: "
                f"transcript={'yes' if transcript else 'no'}, "
                f"quality={quality.score if quality else None}, "
                f"engagement={engagement.score if engagement else None}, "
                f"combined={combined_score}"
            )
            return analysis

        finally:
            # 17. Temp files
            self._cleanup([video_path, audio_path, transcript_path])
