"""Unit tests for configuration settings."""
import pytest
from unittest.mock import patch
import os

import pydantic

from intake_agent.config.settings import Settings, get_redis_url


# Valid test values that pass validators
VALID_TWILIO_SID = "AC" + "a" * 32  # Must start with AC, 30+ chars
VALID_AUTH_TOKEN = "a" * 32  # 30+ chars
VALID_PHONE = "+15555555555"
VALID_OPENAI_KEY = "sk-" + "a" * 48  # 20+ chars

VALID_ENV = {
    'TWILIO_ACCOUNT_SID': VALID_TWILIO_SID,
    'TWILIO_AUTH_TOKEN': VALID_AUTH_TOKEN,
    'TWILIO_PHONE_NUMBER': VALID_PHONE,
    'OPENAI_API_KEY': VALID_OPENAI_KEY,
}


@pytest.mark.unit
class TestSettings:
    """Test configuration settings."""

    def test_settings_loaded_from_env(self):
        """Test that settings are loaded from environment variables."""
        with patch.dict(os.environ, VALID_ENV):
            settings = Settings()

            assert settings.twilio_account_sid == VALID_TWILIO_SID
            # SecretStr values need getter methods
            assert settings.get_twilio_auth_token() == VALID_AUTH_TOKEN
            assert settings.twilio_phone_number == VALID_PHONE
            assert settings.get_openai_api_key() == VALID_OPENAI_KEY

    def test_default_values(self):
        """Test default configuration values."""
        with patch.dict(os.environ, VALID_ENV, clear=True):
            settings = Settings()

            assert settings.app_env == "development"
            assert settings.log_level == "INFO"
            assert settings.smtp_host == "smtp.gmail.com"
            assert settings.smtp_port == 587
            assert settings.enable_sms_followup is True
            assert settings.use_redis is False
            assert settings.remote_scoring_enabled is False
            assert settings.remote_scoring_fallback_to_local is True
            assert settings.silence_first_timeout_sec == 12.0
            assert settings.silence_reprompt_timeout_sec == 8.0
            assert settings.silence_max_reprompts == 2

    def test_notification_emails_parsing(self):
        """Test parsing comma-separated notification emails."""
        with patch.dict(os.environ, {
            **VALID_ENV,
            'NOTIFICATION_EMAILS_STR': 'test1@example.com, test2@example.com,'
        }):
            settings = Settings()

            assert settings.notification_emails == ['test1@example.com', 'test2@example.com']

    def test_empty_notification_emails(self):
        """Test empty notification emails list."""
        with patch.dict(os.environ, {**VALID_ENV, 'NOTIFICATION_EMAILS_STR': ''}):
            settings = Settings()

            assert settings.notification_emails == []

    def test_phone_number_normalized(self):
        """Test that phone numbers are normalized to E.164."""
        settings = Settings(twilio_phone_number="1 (555) 555-5555", firm_phone="")

        assert settings.twilio_phone_number == "+15555555555"
        assert settings.firm_phone == ""

    def test_invalid_phone_number_rejected(self):
        """Test that a malformed phone number fails validation."""
        with pytest.raises(pydantic.ValidationError):
            Settings(twilio_phone_number="555-1234")

    def test_app_env_variations(self):
        """Test different app environment values."""
        for env in ['development', 'staging', 'testing', 'test']:
            with patch.dict(os.environ, {**VALID_ENV, 'APP_ENV': env}):
                settings = Settings()
                assert settings.app_env == env

    def test_production_requires_real_credentials(self):
        """Test that production rejects an invalid Twilio SID."""
        with patch.dict(os.environ, {
            **VALID_ENV,
            'TWILIO_ACCOUNT_SID': 'invalid_sid',  # Doesn't start with AC
            'APP_ENV': 'production'
        }):
            with pytest.raises(pydantic.ValidationError):
                Settings()

    def test_development_is_lenient(self):
        """Test that missing credentials are accepted outside production."""
        with patch.dict(os.environ, {'APP_ENV': 'development'}, clear=True):
            settings = Settings()

            assert settings.twilio_account_sid == ""
            assert settings.get_openai_api_key() == ""

    def test_is_production_property(self):
        """Test is_production property."""
        with patch.dict(os.environ, {**VALID_ENV, 'APP_ENV': 'production'}):
            settings = Settings()
            assert settings.is_production is True
            assert settings.is_testing is False

    def test_is_testing_property(self):
        """Test is_testing property."""
        with patch.dict(os.environ, {**VALID_ENV, 'APP_ENV': 'testing'}):
            settings = Settings()
            assert settings.is_testing is True
            assert settings.is_production is False

    def test_threshold_order_enforced(self):
        """Test that score thresholds must ascend."""
        with pytest.raises(pydantic.ValidationError):
            Settings(score_threshold_high=40, score_threshold_medium=45)

    def test_remote_scoring_needs_api_key(self):
        """Test that remote scoring stays off without an API key."""
        settings = Settings(remote_scoring_enabled=True)
        assert settings.is_remote_scoring_enabled is False

        settings = Settings(remote_scoring_enabled=True, remote_scoring_api_key="key-123")
        assert settings.is_remote_scoring_enabled is True

    def test_remote_scoring_url_trailing_slash_stripped(self):
        """Test that the remote scoring URL has no trailing slash."""
        settings = Settings(remote_scoring_url="https://intake.example.com/")
        assert settings.remote_scoring_url == "https://intake.example.com"

    def test_realtime_url_includes_model(self):
        """Test the full speech backend URL."""
        settings = Settings(openai_realtime_model="test-model")
        assert settings.realtime_url == "wss://api.openai.com/v1/realtime?model=test-model"

    def test_redis_url_built_from_parts(self):
        """Test building a Redis URL when none is configured."""
        settings = Settings(redis_host="cache", redis_port=6380, redis_db=2, redis_password="pw")
        assert get_redis_url(settings) == "redis://:pw@cache:6380/2"

        settings = Settings(redis_url="redis://explicit:6379/0")
        assert get_redis_url(settings) == "redis://explicit:6379/0"

    def test_secret_str_values_not_exposed(self):
        """Test that SecretStr values are not exposed in repr."""
        with patch.dict(os.environ, VALID_ENV):
            settings = Settings()
            settings_repr = repr(settings)

            # Secret values should be masked
            assert VALID_AUTH_TOKEN not in settings_repr
            assert VALID_OPENAI_KEY not in settings_repr
