"""Per-call orchestration between Twilio, the speech backend and the intake.

``CallOrchestrator`` reads carrier events from a ``TelephonyBridge``,
creates the ``IntakeSession`` and ``RealtimeClient`` once the stream
starts, routes audio both ways and finalizes the intake before tearing
anything down. Either side disconnecting closes the other.
"""
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from intake_agent.config.constants import LoggingConfig
from intake_agent.config.settings import Settings
from intake_agent.core.intake_repository_base import IntakeRepositoryBase
from intake_agent.core.intake_session import IntakeSession
from intake_agent.core.models import CallerInfo, IntakeResult, Speaker
from intake_agent.core.operations import Operation
from intake_agent.core.post_finalize import build_default_effects
from intake_agent.core.scoring_engine import ScoringThresholds
from intake_agent.core.shutdown import register_call, unregister_call
from intake_agent.services.realtime_client import RealtimeClient, RealtimeConnectionError
from intake_agent.services.telephony_bridge import TelephonyBridge
from intake_agent.utils.logger import get_logger
from intake_agent.utils.metrics import active_calls, call_duration, total_calls, websocket_errors
from intake_agent.utils.structured_logging import log_call_event, log_error, log_transcript

logger = get_logger(__name__)


@dataclass
class CallServices:
    """Process-wide collaborators shared by every call."""
    settings: Settings
    repository: IntakeRepositoryBase
    scoring_strategy: Any
    email_service: Any
    sms_service: Any
    realtime_factory: Callable[..., RealtimeClient] = RealtimeClient
    realtime_options: Dict[str, Any] = field(default_factory=dict)

    def create_session(self, call_id: str, caller: CallerInfo) -> IntakeSession:
        effects = build_default_effects(
            self.repository,
            self.email_service,
            self.sms_service,
            self.settings.enable_sms_followup,
        )
        return IntakeSession(
            call_id,
            caller,
            scoring_strategy=self.scoring_strategy,
            effects=effects,
            repository=self.repository,
            email_service=self.email_service,
            sms_enabled=self.settings.enable_sms_followup,
            thresholds=ScoringThresholds.from_settings(self.settings),
        )


def caller_from_parameters(parameters: Dict[str, str]) -> CallerInfo:
    """Caller ID passed through ``<Parameter>`` elements of the stream TwiML."""
    return CallerInfo(
        caller_phone=parameters.get("callerPhone") or None,
        caller_city=parameters.get("callerCity") or None,
        caller_state=parameters.get("callerState") or None,
    )


class CallOrchestrator:
    """Owns the session and speech client for one call."""

    def __init__(self, bridge: TelephonyBridge, services: CallServices):
        self.bridge = bridge
        self.services = services
        self.call_sid = bridge.call_sid
        self.session: Optional[IntakeSession] = None
        self.realtime: Optional[RealtimeClient] = None
        self.result: Optional[IntakeResult] = None
        self.started_at = time.monotonic()
        self.status = "error"
        self.media_frames = 0

    async def run(self) -> Optional[IntakeResult]:
        """Drive the call until the carrier stops the stream or a side drops."""
        active_calls.inc()
        register_call(self)
        try:
            async for event in self.bridge.events():
                try:
                    if not await self._dispatch(event):
                        break
                except Exception as e:
                    # A call that failed to start has nothing to continue
                    if event.get("event") == "start":
                        raise
                    websocket_errors.labels(error_type="event_failed").inc()
                    log_error(logger, e, f"Handling {event.get('event')} event failed", call_id=self.call_sid)
            else:
                if self.status == "error":
                    self.status = "disconnected"
        except Exception as e:
            websocket_errors.labels(error_type="media_stream_error").inc()
            log_error(logger, e, "Media stream failed", call_id=self.call_sid)
            self.status = "error"
        finally:
            await self._teardown()
            unregister_call(self)
            active_calls.dec()
            total_calls.labels(status=self.status).inc()
            elapsed = time.monotonic() - self.started_at
            call_duration.observe(elapsed)
            log_call_event(
                logger, "call_completed", self.call_sid,
                status=self.status, duration=f"{elapsed:.1f}s",
            )
        return self.result

    async def _dispatch(self, event: Dict[str, Any]) -> bool:
        """Handle one carrier event. Returns False when the call should end."""
        kind = event.get("event")
        if kind == "connected":
            log_call_event(logger, "media_stream_connected", self.call_sid)
        elif kind == "start":
            return await self._on_start()
        elif kind == "media":
            await self._on_media(event)
        elif kind == "mark":
            mark = event.get("mark")
            name = mark.get("name") if isinstance(mark, dict) else None
            logger.debug(f"Playback mark {name} for call {self.call_sid}")
        elif kind == "stop":
            log_call_event(logger, "media_stream_stopped", self.call_sid)
            self.status = "completed"
            return False
        return True

    async def _on_start(self) -> bool:
        self.call_sid = self.bridge.call_sid
        caller = caller_from_parameters(self.bridge.custom_parameters)
        log_call_event(logger, "media_stream_started", self.call_sid, stream_sid=self.bridge.stream_sid)

        self.session = self.services.create_session(self.call_sid, caller)
        self.realtime = self.services.realtime_factory(
            self.call_sid,
            on_audio=self.bridge.send_audio,
            on_transcript=self._on_transcript,
            on_function_call=self._on_function_call,
            on_interruption=self._on_interruption,
            on_error=self._on_realtime_error,
            on_close=self._on_realtime_close,
            settings=self.services.settings,
            **self.services.realtime_options,
        )
        try:
            await self.realtime.connect()
        except RealtimeConnectionError as e:
            log_error(logger, e, "Speech backend unavailable", call_id=self.call_sid)
            self.status = "backend_unavailable"
            # No conversation happened; the TwiML after <Connect> takes a voicemail
            self.session = None
            return False
        return True

    async def _on_media(self, event: Dict[str, Any]) -> None:
        self.media_frames += 1
        if self.media_frames % LoggingConfig.AUDIO_FRAME_LOG_COUNT == 0:
            logger.debug(f"Relayed {self.media_frames} caller audio frames for call {self.call_sid}")
        media = event.get("media")
        if not isinstance(media, dict):
            websocket_errors.labels(error_type="malformed_media").inc()
            logger.warning(f"Media event without a media object for call {self.call_sid}")
            return
        payload = media.get("payload")
        if payload and self.realtime is not None and self.realtime.is_connected:
            await self.realtime.send_audio(payload)

    async def _on_transcript(self, role: Speaker, text: str) -> None:
        log_transcript(logger, role.value, text, self.call_sid)
        self.session.add_transcript(role, text)

    async def _on_function_call(self, name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        result = await self.session.handle_structured_event(name, args)
        if name == Operation.END_CALL.value and result.get("call_ended"):
            self.realtime.mark_concluding()
        return result

    async def _on_interruption(self) -> None:
        await self.bridge.clear()

    async def _on_realtime_error(self, error: Exception) -> None:
        log_call_event(logger, "realtime_error_forwarded", self.call_sid, error=str(error))

    async def _on_realtime_close(self) -> None:
        log_call_event(logger, "realtime_disconnected", self.call_sid)
        if self.status != "completed":
            self.status = "backend_disconnected"
        await self.bridge.close()

    async def _teardown(self) -> None:
        """Finalize first, then close the speech client and the carrier socket."""
        if self.session is not None and self.result is None:
            try:
                self.result = await self.session.finalize(
                    call_duration=int(time.monotonic() - self.started_at)
                )
            except Exception as e:
                log_error(logger, e, "Finalize failed", call_id=self.call_sid)

        if self.realtime is not None:
            try:
                await self.realtime.close()
            except Exception as e:
                log_error(logger, e, "Closing speech backend failed", call_id=self.call_sid)

        await self.bridge.close()
