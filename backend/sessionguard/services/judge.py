"""Holistic session scoring with Gemini as an LLM judge."""
import json
import re
from typing import Any, Dict, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from sessionguard.config import settings
from sessionguard.constants import (
    JUDGE_MAX_SEGMENTS,
    JUDGE_MAX_TRANSCRIPT_CHARS,
    JUDGE_TEMPERATURE,
)
from sessionguard.schemas.analysis import (
    EngagementMetrics,
    JudgeVerdict,
    QualityMetrics,
    TranscriptResult,
)
from sessionguard.utils.exceptions import JudgeError
from sessionguard.utils.logger import logger

M = TypeVar("M", bound=BaseModel)

SYSTEM_PROMPT = "You are an evaluator for a single-user recorded video session.\nReturn JSON only."

INSTRUCTIONS = {
    "engagement": [
        "Estimate gaze/eye contact, front face presence, voice prosody, unnatural conversation "
        "using transcript cues and derived metadata.",
        "Return scores 0-100 and flags for low quality.",
    ],
    "quality": [
        "Assess video resolution, fps, artifacts/noise/motion blur using derivedQuality hints.",
        "Assess audio SNR, volume consistency, clipping using derivedQuality.",
    ],
    "output": {
        "engagement": {
            "gazeEstimate": "low|medium|high",
            "frontFacePresence": "low|medium|high",
            "voiceProsody": "flat|variable",
            "unnaturalConversation": "low|medium|high",
            "score": "number 0-100",
            "flags": "array",
        },
        "quality": {
            "score": "number 0-100",
            "flags": "array",
        },
        "combinedScore": "number 0-100",
        "notes": "string",
    },
}


def build_prompt(
    transcript: Optional[TranscriptResult],
    quality: Optional[QualityMetrics],
    engagement: Optional[EngagementMetrics],
) -> Dict[str, Any]:
    """Assemble the judge prompt from derived artifacts, truncating the transcript."""
    return {
        "system": SYSTEM_PROMPT,
        "user": {
            "transcript": transcript.text[:JUDGE_MAX_TRANSCRIPT_CHARS] if transcript else "",
            "transcriptSegments": [
                segment.model_dump(mode="json")
                for segment in (transcript.segments[:JUDGE_MAX_SEGMENTS] if transcript else [])
            ],
            "derivedQuality": quality.model_dump(mode="json") if quality else None,
            "derivedEngagement": engagement.model_dump(mode="json") if engagement else None,
            "instructions": INSTRUCTIONS,
        },
    }


def merge_partial(base: M, partial: Dict[str, Any], **overrides: Any) -> M:
    """
    Overlay judge-supplied fields on a derived report.

    Judge values win. A field whose value does not validate against the
    report schema is skipped and the derived value kept.
    """
    model: Type[M] = type(base)
    merged = base.model_dump()
    for field, value in (partial or {}).items():
        if field not in model.model_fields:
            continue
        candidate = {**merged, field: value}
        try:
            model.model_validate(candidate)
        except PydanticValidationError:
            logger.warning(f"[JUDGE] Ignoring invalid {model.__name__}.{field}: {value!r}")
            continue
        merged = candidate
    merged.update(overrides)
    return model.model_validate(merged)


class GeminiJudge:
    """Asks Gemini for qualitative engagement estimates and a combined score."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or settings.gemini_api_key
        self.model = model or settings.gemini_model
        self.base_url = f"{settings.gemini_base_url.rstrip('/')}/{self.model}:generateContent"
        self._transport = transport

        if not self.api_key:
            raise ValueError("API key required. Set GEMINI_API_KEY environment variable.")

        logger.info(f"[JUDGE] Initialized with model: {self.model}")

    def _parse_json_from_text(self, text: str) -> Dict[str, Any]:
        """Extract the JSON object from model response text."""
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            # Tolerate prose or code fences around the object
            json_match = re.search(r"\{.*\}", text, re.DOTALL)
            if not json_match:
                raise JudgeError(f"Failed to parse Gemini output: {text[:200]}")
            try:
                parsed = json.loads(json_match.group())
            except json.JSONDecodeError as e:
                raise JudgeError(f"Failed to parse Gemini output: {text[:200]}") from e

        if not isinstance(parsed, dict):
            raise JudgeError(f"Gemini output is not an object: {text[:200]}")
        return parsed

    async def analyze(
        self,
        transcript: Optional[TranscriptResult],
        quality: Optional[QualityMetrics],
        engagement: Optional[EngagementMetrics],
    ) -> JudgeVerdict:
        """
        Run the judge over the derived artifacts.

        Returns:
            JudgeVerdict with partial engagement/quality overrides, combinedScore and notes

        Raises:
            JudgeError: On HTTP failure or unparseable output
        """
        prompt = build_prompt(transcript, quality, engagement)
        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [{"text": json.dumps(prompt)}],
                }
            ],
            "generationConfig": {
                "temperature": JUDGE_TEMPERATURE,
                "responseMimeType": "application/json",
            },
        }

        logger.info(f"[JUDGE] Sending request to {self.model}")
        timeout = httpx.Timeout(settings.gemini_timeout_seconds, connect=10.0)

        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.post(
                    self.base_url,
                    params={"key": self.api_key},
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
        except httpx.HTTPError as e:
            raise JudgeError(f"Gemini request failed: {e}") from e

        logger.info(f"[JUDGE] Response status: {response.status_code}")
        if response.status_code != 200:
            logger.error(f"[JUDGE] Error response: {response.text[:500]}")
            raise JudgeError(f"Gemini analysis failed: {response.status_code} {response.text}")

        try:
            result = response.json()
        except ValueError as e:
            raise JudgeError(f"Invalid Gemini JSON response: {e}") from e

        try:
            raw_text = result["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raw_text = "{}"

        parsed = self._parse_json_from_text(raw_text)
        try:
            verdict = JudgeVerdict.model_validate(parsed)
        except PydanticValidationError as e:
            raise JudgeError(f"Unexpected Gemini output shape: {e}") from e

        logger.info(f"[JUDGE] Combined score: {verdict.combinedScore}")
        return verdict
