"""Configuration constants for the intake line.

This module centralizes all magic numbers and configuration values
used throughout the application for better maintainability.
"""

# ============================================================================
# AUDIO CONFIGURATION
# ============================================================================

class AudioConfig:
    """Telephony audio settings negotiated with the speech AI backend."""

    AUDIO_FORMAT = "g711_ulaw"
    """Twilio media streams carry 8kHz mu-law; the backend is told to use the same"""


# ============================================================================
# REALTIME (SPEECH AI) CONFIGURATION
# ============================================================================

class RealtimeConfig:
    """Speech AI session configuration."""

    OPENAI_BETA_HEADER = "realtime=v1"
    """Value of the OpenAI-Beta header required by the realtime endpoint"""

    MODALITIES = ["text", "audio"]
    """Response modalities requested from the backend"""

    TRANSCRIPTION_MODEL = "whisper-1"
    """Model used by the backend to transcribe caller audio"""

    # Server VAD
    VAD_THRESHOLD = 0.5
    """Voice activity detection sensitivity (0-1)"""

    VAD_PREFIX_PADDING_MS = 300
    """Audio kept before detected speech start"""

    VAD_SILENCE_DURATION_MS = 300
    """Silence that ends a caller turn"""

    # Connection
    PING_INTERVAL_SEC = 20
    """Websocket keepalive ping interval"""

    PING_TIMEOUT_SEC = 10
    """Time to wait for a pong before the connection is considered dead"""

    CLOSE_TIMEOUT_SEC = 10
    """Time to wait for the closing handshake"""

    OPEN_TIMEOUT_SEC = 10
    """Time allowed for the websocket handshake"""

    GREETING_TRIGGER = (
        "[SYSTEM: Call connected. Greet the caller now following STEP 1 of your instructions.]"
    )
    """User-attributed item that prompts the opening greeting"""

    FUNCTION_FAILED_OUTPUT = {"error": "Function execution failed"}
    """Tool output sent back when a function call handler raises"""


# ============================================================================
# SILENCE RECOVERY
# ============================================================================

class SilenceConfig:
    """Re-prompt texts used when the caller goes quiet."""

    PROMPTS = [
        "[SYSTEM: The caller has been silent. Gently check whether they are still on the line, "
        "for example: 'Are you still there? Take your time.']",
        "[SYSTEM: The caller is still silent. Briefly let them know you are here whenever they are "
        "ready, and repeat your last question in simpler words.]",
    ]
    """Ordered prompts; once exhausted the last one keeps being used"""


# ============================================================================
# INTAKE SESSION
# ============================================================================

class IntakeConfig:
    """Intake session rules."""

    APPEAL_URGENCY_DAYS = 45
    """Days since denial after which the 60-day appeal window is treated as urgent"""

    APPEAL_WINDOW_DAYS = 60
    """SSA appeal deadline from the denial date"""

    ADVANCED_AGE = 55
    """Age at which grid rules strongly favor the claimant"""

    CLOSELY_APPROACHING_AGE = 50
    """Age at which grid rules start to favor the claimant"""

    POLYPHARMACY_COUNT = 5
    """Medication count considered polypharmacy"""

    MULTIPLE_CONDITIONS_COUNT = 3
    """Condition count that warrants combined-effect guidance"""

    HIGH_APPROVAL_CONDITIONS = ["cancer", "multiple sclerosis", "ms", "als", "copd", "heart failure", "chf"]
    """Conditions that trigger the high approval guidance"""

    OPIOID_MEDICATIONS = ["oxycodone", "morphine", "fentanyl", "hydrocodone", "percocet", "vicodin"]
    """Medications that indicate significant chronic pain"""

    CALLBACK_URGENT_TIMEFRAME = "within 24 hours"
    """Promised callback for urgent callback requests"""

    CALLBACK_NORMAL_TIMEFRAME = "within 1-2 business days"
    """Promised callback for normal callback requests"""

    DEFAULT_SMS_TIMEFRAME = "48 hours"
    """Callback timeframe quoted in SMS when no scoring exists"""


# ============================================================================
# EMAIL CONFIGURATION
# ============================================================================

class EmailConfig:
    """Email service configuration."""

    # Retry Settings
    MAX_RETRY_ATTEMPTS = 3
    """Maximum email send retry attempts"""

    RETRY_BASE_DELAY_SEC = 2
    """Base delay for linear backoff (seconds)"""

    # SMTP Settings
    SMTP_TIMEOUT_SEC = 30
    """SMTP connection timeout"""


# ============================================================================
# API TIMEOUTS
# ============================================================================

class APITimeouts:
    """Timeout configuration for external API calls."""

    REMOTE_SCORING_HEALTH_TIMEOUT_SEC = 5
    """Timeout for the remote scoring health probe"""

    DEFAULT_TIMEOUT_SEC = 30
    """Total timeout for HTTP requests"""

    REMOTE_SCORING_USER_AGENT = "Halcyon-Voice-Receptionist/1.0"
    """User-Agent sent to the remote scoring service"""


# ============================================================================
# VOICE WEBHOOK CONFIGURATION
# ============================================================================

class VoiceConfig:
    """TwiML returned to Twilio."""

    SAY_VOICE = "Google.en-US-Neural2-F"
    """Voice used for <Say> verbs"""

    HOLD_MESSAGE = "Please wait while I connect you to our intake assistant."
    """Played before the media stream connects"""

    UNAVAILABLE_MESSAGE = (
        "We apologize, but we are experiencing technical difficulties. "
        "Please call back in a few minutes or leave a message after the tone."
    )
    """Played when the assistant cannot take the call"""

    VOICEMAIL_MAX_LENGTH_SEC = 120
    """Longest voicemail recorded on the fallback path"""

    RECORDING_THANKS = "Thank you. Your message has been recorded. Goodbye."
    """Played after a voicemail is recorded"""


# ============================================================================
# WEBSOCKET CONFIGURATION
# ============================================================================

class WebSocketConfig:
    """Carrier WebSocket handling configuration."""

    GRACEFUL_SHUTDOWN_TIMEOUT_SEC = 30
    """Maximum time to wait for active calls to finish"""

    SHUTDOWN_CHECK_INTERVAL_SEC = 0.5
    """Interval for checking shutdown status"""


# ============================================================================
# HEALTH CHECK CONFIGURATION
# ============================================================================

class HealthCheckConfig:
    """Health check settings."""

    DEPENDENCY_CHECK_TIMEOUT_SEC = 5
    """Timeout for individual dependency health checks"""


# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

class LoggingConfig:
    """Logging configuration."""

    MAX_LOG_TEXT_LENGTH = 100
    """Maximum transcript text length for log previews"""

    AUDIO_FRAME_LOG_COUNT = 500
    """Log every Nth audio frame to reduce spam"""

    LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(call_id)s] %(message)s"
    """Line format; records without a call carry '-' as call_id"""

    LOG_FILE = "logs/intake_line.log"
    """Debug log kept in development only"""


# ============================================================================
# RATE LIMITING CONFIGURATION
# ============================================================================

class RateLimitConfig:
    """Rate limiting settings."""

    CALLS_PER_MINUTE = 10
    """Maximum calls per minute per IP for /voice/answer"""

    STATUS_PER_MINUTE = 60
    """Maximum status/recording callbacks per minute per IP"""


# ============================================================================
# CIRCUIT BREAKER CONFIGURATION
# ============================================================================

class CircuitBreakerConfig:
    """Circuit breaker thresholds."""

    FAIL_MAX = 5
    """Consecutive failures before the circuit opens"""

    RESET_TIMEOUT_SEC = 60
    """Seconds the circuit stays open before a trial call"""


# ============================================================================
# METRICS CONFIGURATION
# ============================================================================

class MetricsConfig:
    """Metrics and monitoring configuration."""

    # Histogram Buckets
    LATENCY_BUCKETS = [0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
    """Histogram buckets for latency metrics (seconds)"""

    CALL_DURATION_BUCKETS = [30, 60, 120, 180, 300, 600, 900, 1200]
    """Histogram buckets for call duration (seconds)"""

    SCORE_BUCKETS = [10, 25, 45, 70, 90, 100]
    """Histogram buckets for viability scores"""
