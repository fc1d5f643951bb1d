"""Pytest configuration and shared fixtures."""
import os

os.environ.setdefault("APP_ENV", "testing")

import pytest
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock

from intake_agent.core.intake_repository_memory import InMemoryIntakeRepository
from intake_agent.core.intake_session import IntakeSession
from intake_agent.core.models import CallerInfo
from intake_agent.core.post_finalize import build_default_effects
from intake_agent.services.scoring_strategy import LocalScoringStrategy

FIXED_NOW = datetime(2025, 6, 10, 15, 30, tzinfo=timezone.utc)


@pytest.fixture
def mock_settings():
    """Mock settings for testing with valid format values."""
    from intake_agent.config.settings import Settings

    settings = Settings(
        # Twilio - must start with AC and be 30+ chars
        twilio_account_sid="AC" + "a" * 32,
        twilio_auth_token="a" * 32,  # SecretStr, 30+ chars
        twilio_phone_number="+15555555555",
        openai_api_key="sk-" + "a" * 48,
        app_env="testing",
        smtp_email="test@example.com",
        smtp_password="test_password_123456",
        notification_emails_str="intake@example.com",
        enable_sms_followup=True,
    )
    return settings


@pytest.fixture
def test_call_sid():
    """Test call SID."""
    return "CA1234567890abcdef"


@pytest.fixture
def caller():
    """Caller ID as Twilio reports it."""
    return CallerInfo(caller_phone="+15551234567", caller_city="Phoenix", caller_state="AZ")


@pytest.fixture
def fixed_clock():
    """Clock frozen at a known instant so dates and ages are stable."""
    return lambda: FIXED_NOW


@pytest.fixture
def today():
    return FIXED_NOW.date()


@pytest.fixture
def repository():
    """Fresh in-memory repository for each test."""
    return InMemoryIntakeRepository()


@pytest.fixture
def mock_email_service():
    """Email service whose sends always succeed."""
    service = MagicMock()
    service.send_intake_notification = AsyncMock(return_value=True)
    service.send_client_confirmation = AsyncMock(return_value=True)
    service.send_callback_notification = AsyncMock(return_value=True)
    return service


@pytest.fixture
def mock_sms_service():
    """SMS service that returns a fake message SID."""
    service = MagicMock()
    service.send_confirmation = AsyncMock(return_value="SM123")
    return service


@pytest.fixture
def make_session(test_call_sid, caller, repository, mock_email_service, mock_sms_service, fixed_clock):
    """Factory for intake sessions wired to the default effects."""

    def _make(sms_enabled=True, scoring_strategy=None, effects=None, caller_info=caller):
        if effects is None:
            effects = build_default_effects(repository, mock_email_service, mock_sms_service, sms_enabled)
        return IntakeSession(
            test_call_sid,
            caller_info,
            scoring_strategy=scoring_strategy or LocalScoringStrategy(),
            effects=effects,
            repository=repository,
            email_service=mock_email_service,
            sms_enabled=sms_enabled,
            clock=fixed_clock,
        )

    return _make


@pytest.fixture
def birth_date_for():
    """Date of birth that makes a caller exactly ``age`` on the fixed clock."""

    def _dob(age: int) -> date:
        return FIXED_NOW.date().replace(year=FIXED_NOW.year - age)

    return _dob
