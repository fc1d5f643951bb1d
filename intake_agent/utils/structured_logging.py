"""Structured logging helpers for call events.

Every event is logged with its name as the message and the call
identifier plus event fields in ``extra`` so log shippers can index them.
Free text that may contain caller identifiers goes through the redactor.
"""
import logging
from typing import Any, Dict, Optional

from intake_agent.config.constants import LoggingConfig
from intake_agent.utils.phi_redactor import redact_phi as redact_text


def log_call_event(
    logger: logging.Logger,
    event: str,
    call_id: str,
    level: int = logging.INFO,
    **extra_fields: Any
) -> None:
    """Log a call-related event with structured data.

    Args:
        logger: Logger instance to use
        event: Event name (e.g., "intake_finalized", "sms_skipped")
        call_id: Call identifier
        level: Log level
        **extra_fields: Additional fields to include in the log
    """
    fields = " ".join(f"{key}={value}" for key, value in extra_fields.items())
    logger.log(
        level,
        f"{event} call={call_id} {fields}".rstrip(),
        extra={
            "event": event,
            "call_id": call_id,
            "fields": extra_fields,
        }
    )


def log_transcript(
    logger: logging.Logger,
    role: str,
    text: str,
    call_id: str,
    redact_phi: bool = True,
) -> None:
    """Log a completed transcript segment with identifiers redacted."""
    if redact_phi:
        text = redact_text(text, "partial")

    logger.info(
        f"transcript call={call_id} role={role}: {text[:LoggingConfig.MAX_LOG_TEXT_LENGTH]}",
        extra={
            "event": "transcript",
            "call_id": call_id,
            "role": role,
        }
    )


def log_error(
    logger: logging.Logger,
    error: Exception,
    context: str,
    call_id: Optional[str] = None,
    **extra_fields: Any
) -> None:
    """Log an error with context and traceback.

    Args:
        logger: Logger instance
        error: Exception that occurred
        context: Description of what was happening when the error occurred
        call_id: Optional call identifier
        **extra_fields: Additional fields
    """
    extra: Dict[str, Any] = {
        "event": "error",
        "error_type": type(error).__name__,
        "error_message": str(error),
        "context": context,
        **extra_fields
    }

    if call_id:
        extra["call_id"] = call_id

    logger.error(
        f"{context}: {error}" + (f" (call {call_id})" if call_id else ""),
        extra=extra,
        exc_info=True
    )
