"""Speech-to-text client for the Hugging Face inference endpoint."""
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from sessionguard.config import settings
from sessionguard.schemas.analysis import TranscriptResult, TranscriptSegment
from sessionguard.utils.exceptions import TranscriptionError
from sessionguard.utils.logger import logger


def map_response(payload: Dict[str, Any]) -> TranscriptResult:
    """
    Convert the endpoint's ``{text, chunks, language}`` JSON into a TranscriptResult.

    Each chunk carries ``timestamp: [start, end]``; a missing or earlier end is
    clamped to start.
    """
    segments = []
    for chunk in payload.get("chunks") or []:
        timestamp = chunk.get("timestamp") or []
        start = timestamp[0] if len(timestamp) > 0 and timestamp[0] is not None else 0
        end = timestamp[1] if len(timestamp) > 1 and timestamp[1] is not None else start
        end = max(end, start)
        segments.append(TranscriptSegment(start=start, end=end, text=chunk.get("text") or ""))

    return TranscriptResult(
        text=payload.get("text") or "",
        segments=segments,
        language=payload.get("language"),
        raw=payload,
    )


class TranscriptionService:
    """Posts raw WAV audio to a speech-to-text model and maps its chunks."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token or settings.huggingface_access_token
        self.model = model or settings.transcription_model
        self.url = f"{settings.transcription_base_url.rstrip('/')}/{self.model}"
        self._transport = transport

        if not self.access_token:
            raise ValueError("Access token required. Set HUGGINGFACE_ACCESS_TOKEN environment variable.")

    async def transcribe(self, audio_path: str) -> TranscriptResult:
        """
        Transcribe a WAV file.

        Args:
            audio_path: Local path to the extracted audio

        Returns:
            TranscriptResult (an empty transcript is a valid result)

        Raises:
            TranscriptionError: On transport failure, non-success status or bad JSON
        """
        path = Path(audio_path)
        if not path.exists():
            raise FileNotFoundError(f"Audio file not found: {path}")

        data = path.read_bytes()
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "audio/wav",
        }

        logger.info(f"[TRANSCRIBE] Sending {len(data)} bytes to {self.model}")
        timeout = httpx.Timeout(settings.transcription_timeout_seconds, connect=10.0)

        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.post(self.url, content=data, headers=headers)
        except httpx.HTTPError as e:
            raise TranscriptionError(f"Transcription request failed: {e}") from e

        if response.status_code >= 400:
            logger.error(f"[TRANSCRIBE] Error response: {response.status_code} - {response.text[:500]}")
            raise TranscriptionError(f"Transcription failed: {response.status_code} {response.text}")

        try:
            payload = response.json()
        except ValueError as e:
            raise TranscriptionError(f"Invalid transcription JSON response: {e}") from e

        if not isinstance(payload, dict):
            raise TranscriptionError(f"Unexpected transcription response format: {payload!r}")

        result = map_response(payload)
        logger.info(f"[TRANSCRIBE] Received {len(result.text)} chars, {len(result.segments)} segments")
        return result
