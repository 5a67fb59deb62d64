import json

import httpx
import pytest

from sessionguard.monitor.client import MonitorClient, MonitorClientError
from sessionguard.schemas.safety import SafetyEvent, SafetyFlag, SafetyFlagKind


def _client(handler) -> MonitorClient:
    return MonitorClient(base_url="http://api.test/", transport=httpx.MockTransport(handler))


async def test_detect_moderation_parses_flags() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={
            "flags": [{"kind": "nudity", "score": 0.8, "threshold": 0.6, "fired": True}],
        })

    flags = await _client(handler).detect_moderation("data:image/jpeg;base64,AAAA")

    assert seen[0].url.path == "/api/safety/detect-moderation"
    assert json.loads(seen[0].content) == {"image": "data:image/jpeg;base64,AAAA"}
    assert flags[0].kind == SafetyFlagKind.NUDITY


async def test_send_safety_event_posts_json() -> None:
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True, "key": "k"})

    event = SafetyEvent(
        sessionId="s1",
        timestamp="2024-05-01T10:00:00.000Z",
        flags=[SafetyFlag.evaluate(SafetyFlagKind.FACE_LIVENESS, 1.0, 0.4)],
    )
    await _client(handler).send_safety_event(event)

    assert bodies[0]["sessionId"] == "s1"
    assert bodies[0]["source"] == "realtime"
    assert bodies[0]["flags"][0]["fired"] is True


async def test_error_status_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, json={"detail": "Rekognition down"})

    with pytest.raises(MonitorClientError, match="502"):
        await _client(handler).detect_moderation("data:image/jpeg;base64,AAAA")


async def test_transport_error_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(MonitorClientError):
        await _client(handler).detect_moderation("data:image/jpeg;base64,AAAA")
