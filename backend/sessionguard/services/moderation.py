"""Still-frame image moderation backed by AWS Rekognition."""
import asyncio
import base64
import binascii
import re
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from sessionguard.config import settings
from sessionguard.constants import MODERATION_FLAG_THRESHOLD
from sessionguard.schemas.safety import SafetyFlag, SafetyFlagKind
from sessionguard.utils.exceptions import ModerationError, ValidationError
from sessionguard.utils.logger import logger

_DATA_URL_RE = re.compile(r"^data:(image/[A-Za-z0-9.+-]+);base64,", re.IGNORECASE)

NUDITY_LABELS = {"Explicit Nudity", "Nudity", "Suggestive", "Explicit"}
RUDE_GESTURE_LABELS = {"Rude Gestures", "Middle Finger"}


def decode_image_data_url(image: str) -> bytes:
    """
    Decode a ``data:image/<subtype>;base64,<payload>`` URL.

    Raises:
        ValidationError: If the prefix is not an image media type or the payload is not base64
    """
    match = _DATA_URL_RE.match(image or "")
    if not match:
        raise ValidationError("Image must be a data URL with an image/* media type")

    payload = image[match.end():]
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Image payload is not valid base64: {e}") from e

    if not data:
        raise ValidationError("Image payload is empty")
    return data


def _find_label(labels: List[Dict[str, Any]], names: set) -> Optional[Dict[str, Any]]:
    for label in labels:
        if label.get("Name") in names or label.get("ParentName") in names:
            return label
    return None


def labels_to_flags(labels: List[Dict[str, Any]]) -> List[SafetyFlag]:
    """Map Rekognition moderation labels to nudity/profanity flags."""
    flags = []

    nudity_label = _find_label(labels, NUDITY_LABELS)
    if nudity_label:
        flags.append(SafetyFlag.evaluate(
            SafetyFlagKind.NUDITY,
            (nudity_label.get("Confidence") or 0) / 100,
            MODERATION_FLAG_THRESHOLD,
            details={"label": nudity_label.get("Name")},
        ))

    gesture_label = _find_label(labels, RUDE_GESTURE_LABELS)
    if gesture_label:
        flags.append(SafetyFlag.evaluate(
            SafetyFlagKind.PROFANITY,
            (gesture_label.get("Confidence") or 0) / 100,
            MODERATION_FLAG_THRESHOLD,
            details={"label": gesture_label.get("Name")},
        ))

    return flags


class ModerationService:
    """Runs DetectModerationLabels over a still frame."""

    def __init__(self, client=None):
        self._client = client or boto3.client(
            "rekognition",
            region_name=settings.aws_region,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
        )

    async def detect_moderation(self, image: str) -> List[SafetyFlag]:
        """
        Moderate a data-URL encoded frame.

        Raises:
            ValidationError: Malformed image data URL
            ModerationError: Rekognition call failed
        """
        data = decode_image_data_url(image)
        try:
            response = await asyncio.to_thread(
                self._client.detect_moderation_labels,
                Image={"Bytes": data},
                MinConfidence=settings.moderation_min_confidence,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Rekognition error: {e}", exc_info=True)
            raise ModerationError(f"Failed to process image: {e}") from e

        flags = labels_to_flags(response.get("ModerationLabels") or [])
        if flags:
            logger.info(f"Moderation flags: {[flag.kind.value for flag in flags]}")
        return flags


moderation_service = ModerationService()
