"""Unit tests for the SMS service."""
from unittest.mock import MagicMock

import pytest
from twilio.base.exceptions import TwilioException

from intake_agent.services.sms_service import SmsDeliveryError, SmsService, format_e164


@pytest.mark.unit
class TestSmsService:
    """Test confirmation texts through a mocked Twilio client."""

    @pytest.fixture
    def twilio_client(self):
        client = MagicMock()
        client.messages.create.return_value = MagicMock(sid="SM0123456789")
        return client

    @pytest.fixture
    def sms_service(self, mock_settings, twilio_client):
        return SmsService(mock_settings, client=twilio_client)

    def test_format_e164(self):
        """Test US number formatting."""
        assert format_e164("(555) 123-4567") == "+15551234567"
        with pytest.raises(ValueError):
            format_e164("12345")

    def test_confirmation_body(self, sms_service):
        """Test the confirmation text content."""
        body = sms_service.build_confirmation("Maria", "INT_1", "24 hours")

        assert body.startswith("Hi Maria, thank you for calling Halcyon Disability Law")
        assert "Your reference number is: INT_1" in body
        assert "within 24 hours" in body

    def test_confirmation_body_without_name(self, sms_service):
        """Test the greeting when no first name was recorded."""
        assert sms_service.build_confirmation(None, "INT_1", "48 hours").startswith("Hi there,")

    @pytest.mark.asyncio
    async def test_send_confirmation(self, sms_service, twilio_client):
        """Test sending through Twilio from the configured number."""
        sid = await sms_service.send_confirmation("555-123-4567", "Maria", "INT_1", "24 hours")

        assert sid == "SM0123456789"
        kwargs = twilio_client.messages.create.call_args.kwargs
        assert kwargs["to"] == "+15551234567"
        assert kwargs["from_"] == "+15555555555"
        assert "INT_1" in kwargs["body"]

    @pytest.mark.asyncio
    async def test_messaging_service_preferred(self, mock_settings, twilio_client):
        """Test that a messaging service SID replaces the from number."""
        mock_settings.twilio_messaging_service_sid = "MG123"
        service = SmsService(mock_settings, client=twilio_client)

        await service.send_sms("+15551234567", "hello")

        kwargs = twilio_client.messages.create.call_args.kwargs
        assert kwargs["messaging_service_sid"] == "MG123"
        assert "from_" not in kwargs

    @pytest.mark.asyncio
    async def test_invalid_number_not_sent(self, sms_service, twilio_client):
        """Test that an undialable number raises without calling Twilio."""
        with pytest.raises(SmsDeliveryError):
            await sms_service.send_sms("123", "hello")

        twilio_client.messages.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_twilio_error_raised(self, sms_service, twilio_client):
        """Test that Twilio failures surface as SmsDeliveryError."""
        twilio_client.messages.create.side_effect = TwilioException("rejected")

        with pytest.raises(SmsDeliveryError):
            await sms_service.send_sms("+15551234567", "hello")
