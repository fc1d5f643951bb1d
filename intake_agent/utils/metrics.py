"""Prometheus metrics for the intake line.

This module defines and exports all Prometheus metrics used throughout
the application for monitoring and observability.

Metrics Categories:
- Call Metrics: Track call lifecycle and outcomes
- Intake Metrics: Track structured events, scoring and follow-up effects
- Conversation Metrics: Track silence recovery and barge-ins
- External Services: Track remote scoring, Twilio and email
"""

from prometheus_client import Counter, Histogram, Gauge, Info
from intake_agent.config.constants import MetricsConfig

# =============================================================================
# Application Info
# =============================================================================

app_info = Info('intakeline_app', 'Intake line application information')
app_info.info({
    'version': '1.0.0',
    'description': 'Disability intake voice line'
})

# =============================================================================
# Call Metrics
# =============================================================================

# Active calls gauge
active_calls = Gauge(
    'intakeline_active_calls',
    'Number of currently active phone calls'
)

# Total calls counter
total_calls = Counter(
    'intakeline_calls_total',
    'Total number of calls handled',
    ['status']  # Labels: completed, callback, connect_failed, error
)

# Call duration histogram
call_duration = Histogram(
    'intakeline_call_duration_seconds',
    'Duration of phone calls in seconds',
    buckets=MetricsConfig.CALL_DURATION_BUCKETS
)

# Call outcomes as recorded at finalize
call_outcomes = Counter(
    'intakeline_call_outcomes_total',
    'Call outcomes recorded at finalization',
    ['outcome']
)

# =============================================================================
# Intake Metrics
# =============================================================================

# Structured events emitted by the speech model
function_calls = Counter(
    'intakeline_function_calls_total',
    'Structured events handled by the intake session',
    ['name', 'status']  # status: success, error, unknown, rejected
)

# Scoring results
scoring_results = Counter(
    'intakeline_scoring_total',
    'Intakes scored, by engine and tier',
    ['source', 'recommendation']
)

score_distribution = Histogram(
    'intakeline_score',
    'Distribution of final case scores',
    buckets=MetricsConfig.SCORE_BUCKETS
)

# Urgent flags
urgent_flags = Counter(
    'intakeline_urgent_flags_total',
    'Calls flagged urgent',
    ['crisis']  # true/false
)

# Post-finalize side effects
post_finalize_effects = Counter(
    'intakeline_post_finalize_effects_total',
    'Post-finalize side effects by outcome',
    ['effect', 'status']  # status: success, error, skipped
)

# SMS send decisions
sms_decisions = Counter(
    'intakeline_sms_decisions_total',
    'SMS confirmation decisions',
    ['reason']  # sent, no_consent, no_phone, sms_disabled, error
)

# =============================================================================
# Conversation Metrics
# =============================================================================

silence_reprompts = Counter(
    'intakeline_silence_reprompts_total',
    'Re-prompts injected after caller silence'
)

barge_ins = Counter(
    'intakeline_barge_ins_total',
    'Assistant responses cancelled because the caller started speaking'
)

realtime_errors = Counter(
    'intakeline_realtime_errors_total',
    'Error events reported by the speech backend',
    ['error_type']
)

# =============================================================================
# External Service Metrics
# =============================================================================

remote_scoring_requests = Counter(
    'intakeline_remote_scoring_requests_total',
    'Total remote scoring requests',
    ['status']  # success, error, fallback
)

remote_scoring_latency = Histogram(
    'intakeline_remote_scoring_latency_seconds',
    'Remote scoring request latency',
    buckets=MetricsConfig.LATENCY_BUCKETS
)

# Twilio metrics
twilio_webhooks = Counter(
    'intakeline_twilio_webhooks_total',
    'Total Twilio webhook calls',
    ['webhook_type', 'status']  # webhook_type: answer, status, recording, fallback
)

sms_sent = Counter(
    'intakeline_sms_sent_total',
    'Total SMS messages sent',
    ['status']  # success, error
)

# SMTP/Email metrics
email_sent = Counter(
    'intakeline_emails_sent_total',
    'Total emails sent',
    ['status']  # success, error
)

email_latency = Histogram(
    'intakeline_email_send_latency_seconds',
    'Email sending latency',
    buckets=MetricsConfig.LATENCY_BUCKETS
)

# Persistence
repository_operations = Counter(
    'intakeline_repository_operations_total',
    'Intake repository operations',
    ['operation', 'backend']  # backend: redis, memory
)

# =============================================================================
# Circuit Breakers & Errors
# =============================================================================

circuit_breaker_state = Gauge(
    'intakeline_circuit_breaker_open',
    'Circuit breaker state (1=open, 0=closed or half-open)',
    ['service']
)

circuit_breaker_trips = Counter(
    'intakeline_circuit_breaker_trips_total',
    'Number of times a circuit breaker opened',
    ['service']
)

# WebSocket errors
websocket_errors = Counter(
    'intakeline_websocket_errors_total',
    'Total WebSocket errors',
    ['error_type']
)

# =============================================================================
# Helper Functions
# =============================================================================

def track_function_call(name: str, status: str) -> None:
    """Count a structured event handled by the intake session."""
    function_calls.labels(name=name, status=status).inc()


def track_scoring(source: str, recommendation: str, score: int) -> None:
    """Track a scoring result.

    Args:
        source: Engine that produced the score (local, remote)
        recommendation: Recommendation tier
        score: Final score 0..100
    """
    scoring_results.labels(source=source, recommendation=recommendation).inc()
    score_distribution.observe(score)


def track_remote_scoring(duration: float, success: bool) -> None:
    """Track a remote scoring request.

    Args:
        duration: Request duration in seconds
        success: Whether the request succeeded
    """
    remote_scoring_requests.labels(status='success' if success else 'error').inc()
    remote_scoring_latency.observe(duration)


def track_effect(effect: str, status: str) -> None:
    """Count a post-finalize side effect outcome."""
    post_finalize_effects.labels(effect=effect, status=status).inc()


def track_sms_decision(reason: str) -> None:
    """Count an SMS confirmation decision (sent or the reason it was skipped)."""
    sms_decisions.labels(reason=reason).inc()
