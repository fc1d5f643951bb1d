"""Follow-up text messages via Twilio Programmable Messaging.

The Twilio REST client is synchronous, so sends run in a worker thread to
keep the event loop free for live calls.
"""
import asyncio
from typing import Optional

from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from intake_agent.config.settings import Settings, get_settings
from intake_agent.core.validators import InputValidator
from intake_agent.utils.logger import get_logger
from intake_agent.utils.metrics import sms_sent
from intake_agent.utils.phi_redactor import mask_phone

logger = get_logger(__name__)


class SmsDeliveryError(Exception):
    """Raised when Twilio rejects or fails to accept a message."""


CONFIRMATION_TEMPLATE = (
    "Hi {first_name}, thank you for calling {firm_name} about your disability case.\n\n"
    "Your reference number is: {intake_id}\n\n"
    "An attorney will review your information and contact you within {timeframe}.\n\n"
    "Questions? Reply to this message or call {firm_phone}.\n\n"
    "- {firm_name} Team"
)


def format_e164(phone: str) -> str:
    """Format a US number as E.164; other input is returned with a leading +.

    Raises:
        ValueError: If the number has too few digits to be dialable
    """
    is_valid, formatted = InputValidator.validate_phone_number(phone)
    if not is_valid:
        raise ValueError(f"Invalid phone number: {mask_phone(phone)}")
    return formatted


class SmsService:
    """Sends confirmation texts to callers who opted in."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[Client] = None):
        settings = settings or get_settings()
        self.firm_name = settings.firm_name
        self.firm_phone = settings.firm_phone or settings.twilio_phone_number
        self.from_number = settings.twilio_phone_number
        self.messaging_service_sid = settings.twilio_messaging_service_sid
        self._client = client
        self._account_sid = settings.twilio_account_sid
        self._auth_token = settings.get_twilio_auth_token()

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = Client(self._account_sid, self._auth_token)
        return self._client

    def build_confirmation(self, first_name: Optional[str], intake_id: str, timeframe: str) -> str:
        return CONFIRMATION_TEMPLATE.format(
            first_name=first_name or "there",
            firm_name=self.firm_name,
            intake_id=intake_id,
            timeframe=timeframe,
            firm_phone=self.firm_phone,
        )

    async def send_confirmation(
        self,
        to_phone: str,
        first_name: Optional[str],
        intake_id: str,
        timeframe: str
    ) -> str:
        """Send the post-intake confirmation text.

        Returns:
            Twilio message SID

        Raises:
            SmsDeliveryError: If the number is invalid or Twilio fails
        """
        body = self.build_confirmation(first_name, intake_id, timeframe)
        return await self.send_sms(to_phone, body)

    async def send_sms(self, to_phone: str, body: str) -> str:
        try:
            to_number = format_e164(to_phone)
        except ValueError as e:
            sms_sent.labels(status='error').inc()
            raise SmsDeliveryError(str(e)) from e

        kwargs = {"body": body, "to": to_number}
        if self.messaging_service_sid:
            kwargs["messaging_service_sid"] = self.messaging_service_sid
        else:
            kwargs["from_"] = self.from_number

        try:
            message = await asyncio.to_thread(self.client.messages.create, **kwargs)
        except TwilioException as e:
            sms_sent.labels(status='error').inc()
            logger.error(f"SMS send failed to {mask_phone(to_number)}: {e}")
            raise SmsDeliveryError(str(e)) from e

        sms_sent.labels(status='success').inc()
        logger.info(f"SMS sent to {mask_phone(to_number)}: {message.sid}")
        return message.sid
