"""Streaming client for the OpenAI Realtime speech API.

One ``RealtimeClient`` owns one websocket for one call. Backend events are
translated into callbacks for the orchestrator:

- ``on_audio(payload)``: base64 mu-law audio for the caller
- ``on_transcript(role, text)``: a completed utterance
- ``on_function_call(name, args)``: a structured event; its return value
  is sent back to the backend as the tool output
- ``on_interruption()``: the caller barged in, queued audio must go
- ``on_error(exc)`` and ``on_close()``

The client also runs the silence timer that re-prompts a quiet caller.
"""
import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from intake_agent.config.constants import AudioConfig, RealtimeConfig, SilenceConfig
from intake_agent.config.prompts import INTAKE_TOOLS, build_system_prompt
from intake_agent.config.settings import Settings, get_settings
from intake_agent.core.models import Speaker
from intake_agent.utils.logger import get_logger
from intake_agent.utils.metrics import barge_ins, realtime_errors, silence_reprompts
from intake_agent.utils.structured_logging import log_call_event, log_error

logger = get_logger(__name__)


class RealtimeError(Exception):
    """Error event reported by the speech backend."""

    def __init__(self, message: str, error_type: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message)
        self.error_type = error_type
        self.code = code


class RealtimeConnectionError(RealtimeError):
    """The websocket to the speech backend could not be opened."""


class RealtimeClient:
    """Speech backend session for one call."""

    def __init__(
        self,
        call_id: str,
        *,
        on_audio: Callable[[str], Awaitable[None]],
        on_transcript: Callable[[Speaker, str], Awaitable[None]],
        on_function_call: Callable[[str, Dict[str, Any]], Awaitable[Any]],
        on_interruption: Callable[[], Awaitable[None]],
        on_error: Optional[Callable[[Exception], Awaitable[None]]] = None,
        on_close: Optional[Callable[[], Awaitable[None]]] = None,
        settings: Optional[Settings] = None,
        connector=connect,
        tools: Optional[List[dict]] = None,
        silence_prompts: Optional[List[str]] = None,
    ):
        settings = settings or get_settings()
        self.call_id = call_id
        self.on_audio = on_audio
        self.on_transcript = on_transcript
        self.on_function_call = on_function_call
        self.on_interruption = on_interruption
        self.on_error = on_error
        self.on_close = on_close

        self.url = settings.realtime_url
        self.api_key = settings.get_openai_api_key()
        self.voice = settings.openai_voice
        self.temperature = settings.realtime_temperature
        self.max_output_tokens = settings.realtime_max_output_tokens
        self.instructions = build_system_prompt(settings.firm_name)
        self.tools = INTAKE_TOOLS if tools is None else tools

        self.silence_first_timeout = settings.silence_first_timeout_sec
        self.silence_reprompt_timeout = settings.silence_reprompt_timeout_sec
        self.silence_max_reprompts = settings.silence_max_reprompts
        self.silence_prompts = silence_prompts or SilenceConfig.PROMPTS

        self._connector = connector
        self._ws = None
        self._reader: Optional[asyncio.Task] = None
        self._silence_task: Optional[asyncio.Task] = None
        self._closing = False

        self.session_configured = False
        self.greeting_sent = False
        self.response_active = False
        self.caller_speaking = False
        self.concluding = False
        self.reprompt_count = 0
        self._assistant_transcript: List[str] = []

        self._handlers = {
            "session.created": self._on_session_created,
            "session.updated": self._on_session_updated,
            "response.created": self._on_response_created,
            "response.audio.delta": self._on_audio_delta,
            "response.audio.done": self._on_audio_done,
            "response.audio_transcript.delta": self._on_assistant_transcript_delta,
            "response.audio_transcript.done": self._on_assistant_transcript_done,
            "conversation.item.input_audio_transcription.completed": self._on_caller_transcript,
            "response.function_call_arguments.done": self._on_function_call,
            "input_audio_buffer.speech_started": self._on_speech_started,
            "input_audio_buffer.speech_stopped": self._on_speech_stopped,
            "response.done": self._on_response_done,
            "error": self._on_error_event,
        }

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and not self._closing

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the websocket, send the session configuration and start reading.

        Raises:
            RealtimeConnectionError: If the backend cannot be reached
        """
        try:
            self._ws = await self._connector(
                self.url,
                additional_headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "OpenAI-Beta": RealtimeConfig.OPENAI_BETA_HEADER,
                },
                ping_interval=RealtimeConfig.PING_INTERVAL_SEC,
                ping_timeout=RealtimeConfig.PING_TIMEOUT_SEC,
                close_timeout=RealtimeConfig.CLOSE_TIMEOUT_SEC,
                open_timeout=RealtimeConfig.OPEN_TIMEOUT_SEC,
            )
        except (OSError, InvalidURI, InvalidHandshake, asyncio.TimeoutError) as e:
            realtime_errors.labels(error_type="connect").inc()
            raise RealtimeConnectionError(f"Could not connect to speech backend: {e}") from e

        log_call_event(logger, "realtime_connected", self.call_id)
        await self.send_event(self.session_config())
        self._reader = asyncio.create_task(self._receive_loop())

    def session_config(self) -> Dict[str, Any]:
        return {
            "type": "session.update",
            "session": {
                "modalities": RealtimeConfig.MODALITIES,
                "instructions": self.instructions,
                "voice": self.voice,
                "input_audio_format": AudioConfig.AUDIO_FORMAT,
                "output_audio_format": AudioConfig.AUDIO_FORMAT,
                "input_audio_transcription": {"model": RealtimeConfig.TRANSCRIPTION_MODEL},
                "turn_detection": {
                    "type": "server_vad",
                    "threshold": RealtimeConfig.VAD_THRESHOLD,
                    "prefix_padding_ms": RealtimeConfig.VAD_PREFIX_PADDING_MS,
                    "silence_duration_ms": RealtimeConfig.VAD_SILENCE_DURATION_MS,
                },
                "tools": self.tools,
                "tool_choice": "auto",
                "temperature": self.temperature,
                "max_response_output_tokens": self.max_output_tokens,
            },
        }

    async def _receive_loop(self) -> None:
        try:
            async for message in self._ws:
                await self.handle_message(message)
        except ConnectionClosed as e:
            if not self._closing:
                log_call_event(logger, "realtime_connection_lost", self.call_id, code=e.rcvd.code if e.rcvd else None)
        finally:
            self._cancel_silence_timer()
            if not self._closing:
                self._closing = True
                if self.on_close:
                    await self.on_close()

    async def close(self) -> None:
        """Close the websocket and stop the reader and silence timer."""
        if self._closing and self._ws is None:
            return
        self._closing = True
        self._cancel_silence_timer()

        if self._ws is not None:
            try:
                await self._ws.close()
            except ConnectionClosed:
                pass
            self._ws = None

        if self._reader is not None and self._reader is not asyncio.current_task():
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        log_call_event(logger, "realtime_closed", self.call_id)

    async def send_event(self, event: Dict[str, Any]) -> bool:
        """Send one client event. Returns False when the socket is gone."""
        if self._ws is None or self._closing:
            return False
        try:
            await self._ws.send(json.dumps(event))
        except ConnectionClosed:
            logger.debug(f"Dropped {event.get('type')} for call {self.call_id}: connection closed")
            return False
        return True

    # ------------------------------------------------------------------
    # Client-side operations
    # ------------------------------------------------------------------

    async def send_audio(self, payload: str) -> None:
        """Append a base64 audio chunk from the caller."""
        await self.send_event({"type": "input_audio_buffer.append", "audio": payload})

    async def commit_audio(self) -> None:
        await self.send_event({"type": "input_audio_buffer.commit"})

    async def send_text(self, text: str, role: str = "user") -> None:
        """Inject a text item and ask for a response."""
        await self.send_event({
            "type": "conversation.item.create",
            "item": {
                "type": "message",
                "role": role,
                "content": [{"type": "input_text", "text": text}],
            },
        })
        await self.request_response()

    async def request_response(self) -> None:
        await self.send_event({
            "type": "response.create",
            "response": {"modalities": RealtimeConfig.MODALITIES},
        })

    async def cancel_response(self) -> None:
        """Stop the current response and have the caller's queued audio flushed."""
        await self.send_event({"type": "response.cancel"})
        self.response_active = False
        await self.on_interruption()

    def mark_concluding(self) -> None:
        """Goodbye has been said; never re-prompt again on this call."""
        self.concluding = True
        self._cancel_silence_timer()

    # ------------------------------------------------------------------
    # Backend events
    # ------------------------------------------------------------------

    async def handle_message(self, raw) -> None:
        """Dispatch one backend event. Errors are logged, never raised."""
        try:
            event = json.loads(raw)
        except (TypeError, ValueError):
            realtime_errors.labels(error_type="malformed_event").inc()
            logger.warning(f"Malformed realtime event for call {self.call_id}")
            return
        if not isinstance(event, dict):
            realtime_errors.labels(error_type="malformed_event").inc()
            logger.warning(f"Realtime event is not an object for call {self.call_id}")
            return

        handler = self._handlers.get(event.get("type"))
        if handler is None:
            return
        try:
            await handler(event)
        except Exception as e:
            realtime_errors.labels(error_type="handler").inc()
            log_error(logger, e, f"Realtime event {event.get('type')} failed", call_id=self.call_id)

    async def _on_session_created(self, event: Dict[str, Any]) -> None:
        log_call_event(logger, "realtime_session_created", self.call_id)

    async def _on_session_updated(self, event: Dict[str, Any]) -> None:
        self.session_configured = True
        if self.greeting_sent:
            return
        self.greeting_sent = True
        log_call_event(logger, "greeting_triggered", self.call_id)
        await self.send_text(RealtimeConfig.GREETING_TRIGGER)

    async def _on_response_created(self, event: Dict[str, Any]) -> None:
        self.response_active = True
        self._cancel_silence_timer()

    async def _on_audio_delta(self, event: Dict[str, Any]) -> None:
        delta = event.get("delta")
        if delta:
            await self.on_audio(delta)

    async def _on_audio_done(self, event: Dict[str, Any]) -> None:
        logger.debug(f"Audio response complete for call {self.call_id}")

    async def _on_assistant_transcript_delta(self, event: Dict[str, Any]) -> None:
        delta = event.get("delta")
        if delta:
            self._assistant_transcript.append(delta)

    async def _on_assistant_transcript_done(self, event: Dict[str, Any]) -> None:
        text = "".join(self._assistant_transcript) or event.get("transcript") or ""
        self._assistant_transcript = []
        if text.strip():
            await self.on_transcript(Speaker.ASSISTANT, text)

    async def _on_caller_transcript(self, event: Dict[str, Any]) -> None:
        text = event.get("transcript") or ""
        if text.strip():
            await self.on_transcript(Speaker.USER, text)

    async def _on_function_call(self, event: Dict[str, Any]) -> None:
        name = event.get("name", "")
        call_id = event.get("call_id")
        try:
            args = json.loads(event.get("arguments") or "{}")
            if not isinstance(args, dict):
                raise ValueError("function arguments must be a JSON object")
            result = await self.on_function_call(name, args)
        except Exception as e:
            log_error(logger, e, f"Function call {name} failed", call_id=self.call_id)
            result = RealtimeConfig.FUNCTION_FAILED_OUTPUT

        await self.send_event({
            "type": "conversation.item.create",
            "item": {
                "type": "function_call_output",
                "call_id": call_id,
                "output": json.dumps(result, default=str),
            },
        })
        await self.send_event({"type": "response.create"})

    async def _on_speech_started(self, event: Dict[str, Any]) -> None:
        self._cancel_silence_timer()
        self.caller_speaking = True
        self.reprompt_count = 0
        if self.response_active:
            barge_ins.inc()
            log_call_event(logger, "barge_in", self.call_id)
            await self.cancel_response()

    async def _on_speech_stopped(self, event: Dict[str, Any]) -> None:
        self.caller_speaking = False
        logger.debug(f"Caller speech stopped for call {self.call_id}")

    async def _on_response_done(self, event: Dict[str, Any]) -> None:
        self.response_active = False
        self.arm_silence_timer()

    async def _on_error_event(self, event: Dict[str, Any]) -> None:
        error = event.get("error") or {}
        realtime_errors.labels(error_type=error.get("type") or "unknown").inc()
        exc = RealtimeError(
            error.get("message") or "Unknown realtime error",
            error_type=error.get("type"),
            code=error.get("code"),
        )
        log_call_event(
            logger, "realtime_error", self.call_id,
            error_type=exc.error_type, code=exc.code, message=str(exc),
        )
        self.response_active = False
        if self.on_error:
            await self.on_error(exc)

    # ------------------------------------------------------------------
    # Silence recovery
    # ------------------------------------------------------------------

    def arm_silence_timer(self) -> bool:
        """Start waiting for the caller after a finished response.

        The first wait after a caller turn is longer than the waits between
        re-prompts. Returns False when re-prompting is over for this call.
        """
        if self.concluding or self._closing or self.caller_speaking:
            return False
        if self.reprompt_count >= self.silence_max_reprompts:
            return False
        self._cancel_silence_timer()
        delay = self.silence_first_timeout if self.reprompt_count == 0 else self.silence_reprompt_timeout
        self._silence_task = asyncio.create_task(self._silence_after(delay))
        return True

    def _cancel_silence_timer(self) -> None:
        task = self._silence_task
        self._silence_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _silence_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        await self.fire_silence_reprompt()

    async def fire_silence_reprompt(self) -> bool:
        """Nudge a silent caller. Returns False if the call is concluding or capped."""
        if self.concluding or self.reprompt_count >= self.silence_max_reprompts:
            return False
        prompt = self.silence_prompts[min(self.reprompt_count, len(self.silence_prompts) - 1)]
        self.reprompt_count += 1
        silence_reprompts.inc()
        log_call_event(logger, "silence_reprompt", self.call_id, count=self.reprompt_count)
        await self.send_text(prompt, role="system")
        return True
