"""Configuration management for the intake line."""
import re
from typing import Optional
from pydantic import Field, field_validator, model_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Twilio - required in production, lenient elsewhere
    twilio_account_sid: str = Field(default="", description="Twilio Account SID (starts with AC)")
    twilio_auth_token: SecretStr = Field(default="", description="Twilio Auth Token")
    twilio_phone_number: str = Field(default="", description="Primary Twilio phone number")
    twilio_messaging_service_sid: str = ""  # Preferred sender for SMS when set

    # Speech AI backend
    openai_api_key: SecretStr = Field(default="", description="OpenAI API key")
    openai_realtime_model: str = "gpt-4o-realtime-preview-2024-12-17"
    openai_realtime_url: str = "wss://api.openai.com/v1/realtime"
    openai_voice: str = "alloy"
    realtime_temperature: float = Field(default=0.4, ge=0.0, le=2.0)
    realtime_max_output_tokens: int = Field(default=512, ge=1, le=4096)

    # Silence recovery
    silence_first_timeout_sec: float = Field(default=12.0, gt=0)
    silence_reprompt_timeout_sec: float = Field(default=8.0, gt=0)
    silence_max_reprompts: int = Field(default=2, ge=0, le=10)

    # Firm
    firm_name: str = "Halcyon Disability Law"
    firm_phone: str = ""

    # Scoring thresholds (ascending tiers: not_recommended < 10 <= weak < 25 <= caution < 45 <= recommended < 70)
    score_threshold_high: int = Field(default=70, ge=0, le=100)
    score_threshold_medium: int = Field(default=45, ge=0, le=100)
    score_threshold_low: int = Field(default=25, ge=0, le=100)
    score_threshold_minimum: int = Field(default=10, ge=0, le=100)
    callback_hours_high: int = Field(default=24, ge=1)
    callback_hours_medium: int = Field(default=48, ge=1)
    callback_hours_low: int = Field(default=120, ge=1)

    # Remote scoring delegation
    remote_scoring_enabled: bool = False
    remote_scoring_url: str = "http://localhost:3000"
    remote_scoring_api_key: SecretStr = Field(default="")
    remote_scoring_timeout_ms: int = Field(default=30000, ge=100, le=120000)
    remote_scoring_fallback_to_local: bool = True

    # Notifications
    enable_sms_followup: bool = True
    enable_email_notifications: bool = True

    # Email - Optional in dev, required in production
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = Field(default=587, ge=1, le=65535)
    smtp_email: str = ""
    smtp_password: SecretStr = Field(default="")

    # Redis Configuration
    redis_host: str = "localhost"
    redis_port: int = Field(default=6379, ge=1, le=65535)
    redis_db: int = Field(default=0, ge=0, le=15)
    redis_password: SecretStr = Field(default="")
    redis_ssl: bool = False
    redis_url: str = ""  # Optional: full Redis URL (overrides individual settings)
    use_redis: bool = False  # Enable Redis-backed intake storage
    intake_ttl_seconds: int = Field(default=60 * 60 * 24 * 30, ge=60)

    # Application
    app_env: str = Field(default="development", pattern=r"^(development|staging|production|testing|test)$")
    log_level: str = Field(default="INFO", pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    public_host: str = ""  # Optional explicit public host for Twilio callbacks

    # Notification Recipients (comma-separated in env)
    notification_emails_str: str = ""
    test_notification_email: str = ""  # Staff recipient override outside production

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------

    @field_validator("app_env", mode="before")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        """Normalize app_env to lowercase."""
        return v.lower() if isinstance(v, str) else v

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize log_level to uppercase."""
        return v.upper() if isinstance(v, str) else v

    @field_validator("twilio_phone_number", "firm_phone")
    @classmethod
    def validate_phone_number(cls, v: str) -> str:
        """Normalize phone numbers to E.164 when they look like one."""
        if not v:
            return v
        cleaned = re.sub(r"[\s\-\(\)\.]+", "", v)
        if not cleaned.startswith("+"):
            cleaned = "+" + cleaned
        if not re.match(r"^\+\d{10,15}$", cleaned):
            raise ValueError("Phone number must be E.164 format (e.g., +15551234567)")
        return cleaned

    @field_validator("smtp_email")
    @classmethod
    def validate_smtp_email(cls, v: str) -> str:
        """Validate SMTP email format."""
        if not v:
            return v
        if not re.match(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$", v):
            raise ValueError("Invalid email format")
        return v

    @field_validator("remote_scoring_url")
    @classmethod
    def validate_remote_scoring_url(cls, v: str) -> str:
        """Strip trailing slashes so paths can be appended."""
        return v.rstrip("/")

    @model_validator(mode="after")
    def check_production_requirements(self) -> "Settings":
        """Require real credentials in production."""
        if self.app_env != "production":
            return self

        if len(self.twilio_account_sid) < 30 or not self.twilio_account_sid.startswith("AC"):
            raise ValueError("Twilio Account SID must start with 'AC' and be at least 30 characters")
        if len(self.get_twilio_auth_token()) < 30:
            raise ValueError("Twilio auth token must be at least 30 characters")
        if len(self.get_openai_api_key()) < 20:
            raise ValueError("OpenAI API key must be at least 20 characters")
        return self

    @model_validator(mode="after")
    def check_threshold_order(self) -> "Settings":
        """Scoring thresholds must be strictly ascending."""
        ordered = [
            self.score_threshold_minimum,
            self.score_threshold_low,
            self.score_threshold_medium,
            self.score_threshold_high,
        ]
        if ordered != sorted(set(ordered)):
            raise ValueError("Score thresholds must be strictly ascending: minimum < low < medium < high")
        return self

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def notification_emails(self) -> list[str]:
        """Parse comma-separated email string into list."""
        if not self.notification_emails_str:
            return []
        return [email.strip() for email in self.notification_emails_str.split(",") if email.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_testing(self) -> bool:
        """Check if running in test environment."""
        return self.app_env in ("testing", "test")

    @property
    def is_remote_scoring_enabled(self) -> bool:
        """Remote scoring needs both the flag and an API key."""
        return self.remote_scoring_enabled and bool(self.get_remote_scoring_api_key())

    @property
    def realtime_url(self) -> str:
        """Full speech-AI websocket URL including the model."""
        return f"{self.openai_realtime_url}?model={self.openai_realtime_model}"

    # -------------------------------------------------------------------------
    # Secret Accessors (for services that need the raw value)
    # -------------------------------------------------------------------------

    def get_twilio_auth_token(self) -> str:
        """Get Twilio auth token as string."""
        return self.twilio_auth_token.get_secret_value() if self.twilio_auth_token else ""

    def get_openai_api_key(self) -> str:
        """Get OpenAI API key as string."""
        return self.openai_api_key.get_secret_value() if self.openai_api_key else ""

    def get_smtp_password(self) -> str:
        """Get SMTP password as string."""
        return self.smtp_password.get_secret_value() if self.smtp_password else ""

    def get_redis_password(self) -> str:
        """Get Redis password as string."""
        return self.redis_password.get_secret_value() if self.redis_password else ""

    def get_remote_scoring_api_key(self) -> str:
        """Get remote scoring API key as string."""
        return self.remote_scoring_api_key.get_secret_value() if self.remote_scoring_api_key else ""


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def get_redis_url(settings: Optional[Settings] = None) -> str:
    """Build a redis:// URL from discrete settings when no URL is configured."""
    settings = settings or get_settings()
    if settings.redis_url:
        return settings.redis_url
    scheme = "rediss" if settings.redis_ssl else "redis"
    password = settings.get_redis_password()
    auth = f":{password}@" if password else ""
    return f"{scheme}://{auth}{settings.redis_host}:{settings.redis_port}/{settings.redis_db}"
