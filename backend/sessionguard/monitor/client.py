"""HTTP client for the server-side safety endpoints."""
from typing import List, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from sessionguard.monitor.config import monitor_settings
from sessionguard.schemas.safety import ModerationResponse, SafetyEvent, SafetyFlag


class MonitorClientError(Exception):
    """Raised when a call to the server fails or returns an unusable body."""
    pass


class MonitorClient:
    """Posts frames for moderation and persists safety events."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or monitor_settings.api_base_url).rstrip("/")
        self.timeout = timeout or monitor_settings.http_timeout_seconds
        self._transport = transport

    async def _post(self, path: str, payload: dict) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.base_url}{path}", json=payload)
        except httpx.HTTPError as e:
            raise MonitorClientError(f"POST {path} failed: {e}") from e

        if response.status_code != 200:
            raise MonitorClientError(f"POST {path} returned {response.status_code}: {response.text[:200]}")
        return response

    async def detect_moderation(self, data_url: str) -> List[SafetyFlag]:
        """Moderate one JPEG data URL; returns the flags the server produced."""
        response = await self._post("/api/safety/detect-moderation", {"image": data_url})
        try:
            return ModerationResponse.model_validate(response.json()).flags
        except (ValueError, PydanticValidationError) as e:
            raise MonitorClientError(f"Unexpected moderation response: {e}") from e

    async def send_safety_event(self, event: SafetyEvent) -> None:
        await self._post("/api/safety-event", event.model_dump(mode="json"))
