"""Unit tests for the Twilio media stream bridge."""
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import WebSocketDisconnect
from starlette.websockets import WebSocketState

from intake_agent.services.telephony_bridge import TelephonyBridge


def _websocket(frames):
    websocket = MagicMock()
    websocket.receive_text = AsyncMock(side_effect=[*frames, WebSocketDisconnect(code=1000)])
    websocket.send_text = AsyncMock()
    websocket.close = AsyncMock()
    websocket.application_state = WebSocketState.CONNECTED
    return websocket


START_FRAME = json.dumps({
    "event": "start",
    "start": {
        "streamSid": "MZ123",
        "callSid": "CA999",
        "customParameters": {"callerPhone": "+15551234567", "callerState": "AZ"},
    },
})


@pytest.mark.unit
class TestTelephonyBridge:
    """Test carrier framing."""

    @pytest.mark.asyncio
    async def test_events_until_disconnect(self):
        """Test that frames are parsed and the start frame is remembered."""
        websocket = _websocket([
            json.dumps({"event": "connected"}),
            START_FRAME,
            json.dumps({"event": "media", "media": {"payload": "AAAA"}}),
        ])
        bridge = TelephonyBridge(websocket, "CA1")

        events = [event async for event in bridge.events()]

        assert [event["event"] for event in events] == ["connected", "start", "media"]
        assert bridge.stream_sid == "MZ123"
        assert bridge.call_sid == "CA999"
        assert bridge.custom_parameters["callerState"] == "AZ"

    @pytest.mark.asyncio
    async def test_malformed_frames_skipped(self):
        """Test that non-JSON frames do not end the stream."""
        websocket = _websocket(["garbage", json.dumps({"event": "stop"})])
        bridge = TelephonyBridge(websocket, "CA1")

        events = [event async for event in bridge.events()]

        assert events == [{"event": "stop"}]

    @pytest.mark.asyncio
    async def test_malformed_start_skipped(self):
        """Test that a start frame with a bad body is dropped and a later one is used."""
        websocket = _websocket([
            json.dumps({"event": "start", "start": "oops"}),
            json.dumps({"event": "start", "start": {"streamSid": "MZ1", "customParameters": "oops"}}),
            START_FRAME,
        ])
        bridge = TelephonyBridge(websocket, "CA1")
        seen = []

        async for event in bridge.events():
            seen.append((event["start"]["streamSid"], dict(bridge.custom_parameters)))

        assert seen[0] == ("MZ1", {})
        assert seen[1][0] == "MZ123"
        assert seen[1][1]["callerPhone"] == "+15551234567"
        assert bridge.call_sid == "CA999"

    @pytest.mark.asyncio
    async def test_audio_dropped_before_start(self):
        """Test that audio cannot be sent until the stream id is known."""
        websocket = _websocket([])
        bridge = TelephonyBridge(websocket, "CA1")

        assert await bridge.send_audio("AAAA") is False
        assert bridge.dropped_frames == 1
        websocket.send_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_audio_and_clear(self):
        """Test outbound media and clear frames."""
        websocket = _websocket([])
        bridge = TelephonyBridge(websocket, "CA1")
        bridge.stream_sid = "MZ123"

        assert await bridge.send_audio("AAAA") is True
        assert await bridge.clear() is True

        media, clear = [json.loads(call.args[0]) for call in websocket.send_text.await_args_list]
        assert media == {"event": "media", "streamSid": "MZ123", "media": {"payload": "AAAA"}}
        assert clear == {"event": "clear", "streamSid": "MZ123"}

    @pytest.mark.asyncio
    async def test_send_after_disconnect(self):
        """Test that a dead socket makes sends return False."""
        websocket = _websocket([])
        websocket.send_text.side_effect = RuntimeError("closed")
        bridge = TelephonyBridge(websocket, "CA1")
        bridge.stream_sid = "MZ123"

        assert await bridge.send_audio("AAAA") is False

    @pytest.mark.asyncio
    async def test_close_once(self):
        """Test that close is idempotent and stops sends."""
        websocket = _websocket([])
        bridge = TelephonyBridge(websocket, "CA1")
        bridge.stream_sid = "MZ123"

        await bridge.close()
        await bridge.close()

        websocket.close.assert_awaited_once_with(code=1000, reason="")
        assert await bridge.send_audio("AAAA") is False
