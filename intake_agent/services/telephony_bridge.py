"""Twilio Media Streams framing over a FastAPI websocket.

Inbound frames are JSON objects with an ``event`` of ``connected``,
``start``, ``media``, ``mark`` or ``stop``. Outbound audio and control
frames must carry the ``streamSid`` announced in ``start``.
"""
import json
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from intake_agent.utils.logger import get_logger
from intake_agent.utils.metrics import websocket_errors

logger = get_logger(__name__)


class TelephonyBridge:
    """Carrier side of one call."""

    def __init__(self, websocket: WebSocket, call_sid: str):
        self.websocket = websocket
        self.call_sid = call_sid
        self.stream_sid: Optional[str] = None
        self.custom_parameters: Dict[str, str] = {}
        self.dropped_frames = 0
        self.closed = False

    async def accept(self) -> None:
        await self.websocket.accept()

    async def events(self) -> AsyncIterator[Dict[str, Any]]:
        """Yield parsed carrier events until the socket closes.

        Malformed frames are skipped. ``start`` events also update
        ``stream_sid`` and ``custom_parameters``.
        """
        while not self.closed:
            try:
                message = await self.websocket.receive_text()
            except WebSocketDisconnect:
                break
            except RuntimeError:
                # Receiving after the socket was closed from our side
                break

            try:
                event = json.loads(message)
            except ValueError:
                websocket_errors.labels(error_type="malformed_frame").inc()
                logger.debug(f"Non-JSON media stream frame for call {self.call_sid}")
                continue
            if not isinstance(event, dict):
                continue

            if event.get("event") == "start":
                start = event.get("start") or {}
                if not isinstance(start, dict):
                    websocket_errors.labels(error_type="malformed_frame").inc()
                    logger.warning(f"Start frame without a start object for call {self.call_sid}")
                    continue
                parameters = start.get("customParameters")
                self.stream_sid = start.get("streamSid") or event.get("streamSid")
                self.custom_parameters = parameters if isinstance(parameters, dict) else {}
                self.call_sid = start.get("callSid") or self.call_sid

            yield event

    async def send_audio(self, payload: str) -> bool:
        """Relay base64 audio to the caller. Dropped until the stream id is known."""
        if not self.stream_sid:
            self.dropped_frames += 1
            return False
        return await self._send({
            "event": "media",
            "streamSid": self.stream_sid,
            "media": {"payload": payload},
        })

    async def clear(self) -> bool:
        """Discard audio Twilio has buffered for playback."""
        if not self.stream_sid:
            return False
        return await self._send({"event": "clear", "streamSid": self.stream_sid})

    async def _send(self, frame: Dict[str, Any]) -> bool:
        if self.closed:
            return False
        try:
            await self.websocket.send_text(json.dumps(frame))
        except (WebSocketDisconnect, RuntimeError) as e:
            websocket_errors.labels(error_type="send_failed").inc()
            logger.debug(f"Media stream send failed for call {self.call_sid}: {e}")
            return False
        return True

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed:
            return
        self.closed = True
        if self.websocket.application_state == WebSocketState.CONNECTED:
            try:
                await self.websocket.close(code=code, reason=reason)
            except RuntimeError as e:
                logger.debug(f"Media stream already closed for call {self.call_sid}: {e}")
