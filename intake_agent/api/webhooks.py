"""Twilio webhook handlers for the intake line.

This module handles incoming Twilio webhooks: call answer, call status,
recording callbacks and the fallback used when the primary webhook fails.
"""
from fastapi import Request, Response, HTTPException
from twilio.request_validator import RequestValidator
from twilio.twiml.voice_response import Connect, VoiceResponse

from intake_agent.config.constants import VoiceConfig
from intake_agent.config.settings import get_settings
from intake_agent.core.shutdown import is_shutting_down
from intake_agent.utils.logger import get_logger
from intake_agent.utils.metrics import twilio_webhooks
from intake_agent.utils.phi_redactor import mask_phone

logger = get_logger(__name__)


def _public_host(request: Request) -> str:
    settings = get_settings()
    configured_host = settings.public_host.strip()
    header_host = request.headers.get("x-forwarded-host") or request.headers.get("host")
    return configured_host or header_host or request.url.hostname


async def validate_twilio_request(request: Request) -> bool:
    """Validate Twilio webhook signature in production.

    Args:
        request: FastAPI Request object

    Returns:
        True if valid or validation is skipped (non-production), False otherwise
    """
    settings = get_settings()
    if not settings.is_production:
        return True
    try:
        validator = RequestValidator(settings.get_twilio_auth_token())
        scheme = request.headers.get("x-forwarded-proto", "https")
        expected_url = f"{scheme}://{_public_host(request)}{request.url.path}"
        form = await request.form()
        signature = request.headers.get("x-twilio-signature", "")
        return bool(validator.validate(expected_url, dict(form), signature))
    except Exception as e:
        logger.warning(f"Twilio signature validation error: {e}")
        return False


async def _validated_form(request: Request, webhook_type: str):
    twilio_webhooks.labels(webhook_type=webhook_type, status='received').inc()
    if not await validate_twilio_request(request):
        logger.warning(f"Twilio signature validation failed for /voice/{webhook_type}")
        twilio_webhooks.labels(webhook_type=webhook_type, status='auth_failed').inc()
        raise HTTPException(status_code=403, detail="Forbidden")
    return await request.form()


def _twiml(response: VoiceResponse) -> Response:
    return Response(content=str(response), media_type="application/xml")


def voicemail_twiml(response: VoiceResponse = None) -> VoiceResponse:
    """Apology plus a voicemail recording, used whenever the assistant is unavailable."""
    response = response or VoiceResponse()
    response.say(VoiceConfig.UNAVAILABLE_MESSAGE, voice=VoiceConfig.SAY_VOICE)
    response.record(
        max_length=VoiceConfig.VOICEMAIL_MAX_LENGTH_SEC,
        action="/voice/recording",
        transcribe=True,
    )
    return response


async def handle_incoming_call(request: Request) -> Response:
    """Answer an inbound call and connect it to the media stream.

    Caller ID travels to the stream as ``<Parameter>`` elements. If the
    stream ends without the caller hanging up (the speech backend was
    unreachable) Twilio continues with the voicemail verbs.

    Raises:
        HTTPException: If Twilio signature validation fails
    """
    form_data = await _validated_form(request, 'answer')
    call_sid = form_data.get("CallSid", "")
    from_number = form_data.get("From", "")

    logger.info(f"Incoming call: {call_sid} from {mask_phone(from_number)}")

    response = VoiceResponse()
    if is_shutting_down():
        logger.warning(f"Sending call {call_sid} to voicemail - system is shutting down")
        return _twiml(voicemail_twiml(response))

    stream_url = f"wss://{_public_host(request)}/voice/stream/{call_sid}"
    response.say(VoiceConfig.HOLD_MESSAGE, voice=VoiceConfig.SAY_VOICE)
    response.pause(length=1)

    connect = Connect()
    stream = connect.stream(url=stream_url)
    stream.parameter(name="callId", value=call_sid)
    stream.parameter(name="callerPhone", value=from_number)
    stream.parameter(name="callerCity", value=form_data.get("FromCity", "") or form_data.get("CallerCity", ""))
    stream.parameter(name="callerState", value=form_data.get("FromState", "") or form_data.get("CallerState", ""))
    response.append(connect)
    voicemail_twiml(response)

    repository = getattr(request.app.state, "repository", None)
    if repository is not None:
        try:
            await repository.attach_call_metadata(
                call_sid,
                from_number=from_number,
                to_number=form_data.get("To", ""),
                status=form_data.get("CallStatus", "ringing"),
            )
        except Exception as e:
            logger.error(f"Failed to store call metadata for {call_sid}: {e}")

    logger.debug(f"Using stream URL {stream_url} for call {call_sid}")
    return _twiml(response)


async def handle_call_status(request: Request) -> Response:
    """Record Twilio's call status callback (duration, final status)."""
    form_data = await _validated_form(request, 'status')
    call_sid = form_data.get("CallSid", "")
    status = form_data.get("CallStatus", "")
    duration = form_data.get("CallDuration")

    logger.info(f"Call status for {call_sid}: {status} (duration={duration})")

    fields = {"status": status}
    if duration and duration.isdigit():
        fields["duration_seconds"] = int(duration)

    repository = getattr(request.app.state, "repository", None)
    if repository is not None:
        try:
            await repository.attach_call_metadata(call_sid, **fields)
        except Exception as e:
            logger.error(f"Failed to store call status for {call_sid}: {e}")

    return Response(status_code=204)


async def handle_recording(request: Request) -> Response:
    """Attach a finished recording to the call and hang up."""
    form_data = await _validated_form(request, 'recording')
    call_sid = form_data.get("CallSid", "")
    recording_url = form_data.get("RecordingUrl", "")

    logger.info(f"Recording received for call {call_sid}")

    repository = getattr(request.app.state, "repository", None)
    if repository is not None and recording_url:
        try:
            await repository.attach_call_metadata(
                call_sid,
                recording_url=recording_url,
                recording_sid=form_data.get("RecordingSid", ""),
            )
        except Exception as e:
            logger.error(f"Failed to store recording for {call_sid}: {e}")

    response = VoiceResponse()
    response.say(VoiceConfig.RECORDING_THANKS, voice=VoiceConfig.SAY_VOICE)
    response.hangup()
    return _twiml(response)


async def handle_fallback(request: Request) -> Response:
    """Fallback URL configured on the Twilio number; takes a voicemail."""
    form_data = await _validated_form(request, 'fallback')
    logger.error(
        f"Twilio fallback triggered for call {form_data.get('CallSid', '')}: "
        f"error={form_data.get('ErrorCode', '')}"
    )
    return _twiml(voicemail_twiml())
