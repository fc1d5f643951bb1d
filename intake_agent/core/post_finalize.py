"""Side effects run once an intake has been finalized.

Each effect is independent: a failure is logged and counted and the
remaining effects still run. Nothing here can change the IntakeResult.
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from intake_agent.config.constants import IntakeConfig
from intake_agent.core.intake_repository_base import IntakeRepositoryBase
from intake_agent.core.models import CallerInfo, IntakeRecord, IntakeResult
from intake_agent.utils.logger import get_logger
from intake_agent.utils.metrics import track_effect, track_sms_decision
from intake_agent.utils.phi_redactor import mask_phone
from intake_agent.utils.structured_logging import log_call_event, log_error

logger = get_logger(__name__)

SUCCESS = "success"
SKIPPED = "skipped"
FAILED = "error"

SMS_SENT = "sent"
SMS_NO_CONSENT = "no_consent"
SMS_NO_PHONE = "no_phone"
SMS_DISABLED = "sms_disabled"


class PostFinalizeEffect(ABC):
    """One follow-up action for a finalized intake."""

    name: str = "effect"

    @abstractmethod
    async def apply(self, result: IntakeResult) -> str:
        """Run the effect.

        Returns:
            ``success`` or ``skipped``; failures raise
        """


class PersistIntakeEffect(PostFinalizeEffect):
    name = "persist_intake"

    def __init__(self, repository: IntakeRepositoryBase):
        self.repository = repository

    async def apply(self, result: IntakeResult) -> str:
        await self.repository.save_intake(result)
        return SUCCESS


class StaffNotificationEffect(PostFinalizeEffect):
    """Email the scored intake to staff. Callback-only calls were already emailed."""

    name = "staff_email"

    def __init__(self, email_service):
        self.email_service = email_service

    async def apply(self, result: IntakeResult) -> str:
        if result.is_callback:
            return SKIPPED
        if not await self.email_service.send_intake_notification(result):
            raise RuntimeError("staff intake notification was not delivered")
        return SUCCESS


class ClientConfirmationEffect(PostFinalizeEffect):
    name = "client_email"

    def __init__(self, email_service):
        self.email_service = email_service

    async def apply(self, result: IntakeResult) -> str:
        if result.is_callback or not result.record.demographics.email:
            return SKIPPED
        if not await self.email_service.send_client_confirmation(result):
            raise RuntimeError("client confirmation email was not delivered")
        return SUCCESS


def sms_destination(record: IntakeRecord, caller: CallerInfo) -> Optional[str]:
    """Phone the caller consented on, else the one they gave, else caller ID."""
    return (
        record.sms_consent.phone_number
        or record.demographics.phone
        or caller.caller_phone
    )


def sms_decision(record: IntakeRecord, caller: CallerInfo, sms_enabled: bool) -> str:
    """Why an SMS will or will not be sent for this intake.

    Returns:
        ``sent`` or the first failing condition: ``no_consent``,
        ``no_phone``, ``sms_disabled``
    """
    if not record.sms_consent.consent_given:
        return SMS_NO_CONSENT
    if not sms_destination(record, caller):
        return SMS_NO_PHONE
    if not sms_enabled:
        return SMS_DISABLED
    return SMS_SENT


class SmsConfirmationEffect(PostFinalizeEffect):
    """Text the reference number to callers who explicitly opted in."""

    name = "sms"

    def __init__(self, sms_service, sms_enabled: bool):
        self.sms_service = sms_service
        self.sms_enabled = sms_enabled

    async def apply(self, result: IntakeResult) -> str:
        decision = sms_decision(result.record, result.caller, self.sms_enabled)
        track_sms_decision(decision)

        if decision != SMS_SENT:
            log_call_event(logger, "sms_skipped", result.call_id, reason=decision)
            return SKIPPED

        phone = sms_destination(result.record, result.caller)
        await self.sms_service.send_confirmation(
            phone,
            result.record.demographics.first_name,
            result.intake_id,
            result.scoring.callback_timeframe or IntakeConfig.DEFAULT_SMS_TIMEFRAME,
        )
        log_call_event(
            logger, "sms_sent", result.call_id,
            phone=mask_phone(phone),
            consent_timestamp=result.record.sms_consent.consent_timestamp,
        )
        return SUCCESS


def build_default_effects(
    repository: IntakeRepositoryBase,
    email_service,
    sms_service,
    sms_enabled: bool,
) -> List[PostFinalizeEffect]:
    """Effects in the order they run: persist, staff email, caller email, SMS."""
    return [
        PersistIntakeEffect(repository),
        StaffNotificationEffect(email_service),
        ClientConfirmationEffect(email_service),
        SmsConfirmationEffect(sms_service, sms_enabled),
    ]


async def run_effects(result: IntakeResult, effects: Sequence[PostFinalizeEffect]) -> Dict[str, str]:
    """Run every effect, isolating failures.

    Returns:
        Mapping of effect name to ``success``, ``skipped`` or ``error``
    """
    outcomes = {}
    for effect in effects:
        try:
            status = await effect.apply(result)
        except Exception as e:
            log_error(logger, e, f"Post-finalize effect {effect.name} failed", call_id=result.call_id)
            status = FAILED
        outcomes[effect.name] = status
        track_effect(effect.name, status)
    return outcomes
