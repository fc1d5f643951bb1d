"""Client for the remote case-assessment API.

The firm's intake web application runs its own scoring engine. When it is
configured, finished voice intakes are posted to it so every channel is
scored the same way; the result is mapped back onto a ScoringResult.
One attempt per intake, bounded by a timeout and a circuit breaker.
"""
import asyncio
import time
from typing import Any, Dict, List, Optional

import aiohttp
from pybreaker import CircuitBreaker, CircuitBreakerError

from intake_agent.config.constants import APITimeouts
from intake_agent.config.settings import Settings, get_settings
from intake_agent.core.models import (
    CallerInfo,
    CallFlags,
    IntakeRecord,
    Recommendation,
    ScoringResult,
    ScoringSource,
)
from intake_agent.core.scoring_engine import round_half_up
from intake_agent.utils.circuit_breaker import remote_scoring_breaker, with_circuit_breaker
from intake_agent.utils.http_client import get_fallback_session
from intake_agent.utils.logger import get_logger
from intake_agent.utils.metrics import track_remote_scoring

logger = get_logger(__name__)


class RemoteScoringError(Exception):
    """Base class for remote assessment failures."""


class RemoteScoringAuthError(RemoteScoringError):
    """401: the API key was rejected."""


class RemoteScoringValidationError(RemoteScoringError):
    """400: the payload was rejected."""


class RemoteScoringRateLimitError(RemoteScoringError):
    """429: too many requests."""


class RemoteScoringAPIError(RemoteScoringError):
    """Any other non-2xx response or an unusable body."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RemoteScoringTimeoutError(RemoteScoringError):
    """The request did not finish within the configured timeout."""


class RemoteScoringConnectionError(RemoteScoringError):
    """The service could not be reached, or its circuit is open."""


RECOMMENDATION_MAP = {
    "Highly Recommended": Recommendation.HIGHLY_RECOMMENDED,
    "Strong Referral": Recommendation.HIGHLY_RECOMMENDED,
    "Recommended": Recommendation.RECOMMENDED,
    "Moderate Referral": Recommendation.RECOMMENDED,
    "Conditional Referral": Recommendation.CONSIDER_CAUTION,
    "Consider with Caution": Recommendation.CONSIDER_CAUTION,
    "Weak Referral": Recommendation.WEAK_CASE,
    "Weak Case": Recommendation.WEAK_CASE,
    "Not Recommended": Recommendation.NOT_RECOMMENDED,
}

LIKELIHOOD_MAP = {
    "Very High": "80%+",
    "High": "60-80%",
    "Moderate": "40-60%",
    "Low": "20-40%",
    "Very Low": "<20%",
}
DEFAULT_LIKELIHOOD = "40-60%"

CONCERN_MARKERS = ("concern", "weak", "challenge", "risk", "negative")

CASE_STAGE_MAP = {
    "never_applied": "not_applied",
    "waiting": "pending",
}


def callback_timeframe_for(score: float) -> str:
    if score >= 70:
        return "24 hours"
    if score >= 45:
        return "48 hours"
    if score >= 25:
        return "3-5 days"
    return "5-7 days"


def _limitations_summary(record: IntakeRecord) -> List[str]:
    fl = record.functional_limitations
    limitations = []
    if fl.sitting_minutes is not None and fl.sitting_minutes <= 60:
        limitations.append(f"Cannot sit more than {fl.sitting_minutes:g} minutes")
    if fl.standing_minutes is not None and fl.standing_minutes <= 30:
        limitations.append(f"Cannot stand more than {fl.standing_minutes:g} minutes")
    if fl.walking_blocks is not None and fl.walking_blocks <= 2:
        limitations.append(f"Can only walk {fl.walking_blocks:g} block(s)")
    if fl.lifting_pounds is not None and fl.lifting_pounds <= 20:
        limitations.append(f"Can only lift {fl.lifting_pounds:g} pounds")
    if fl.concentration_issues:
        limitations.append("Severe concentration problems")
    if fl.memory_issues:
        limitations.append("Memory issues")
    if fl.social_difficulties:
        limitations.append("Difficulty with social interactions")
    if fl.expected_absences is not None and fl.expected_absences >= 2:
        limitations.append(f"Would miss {fl.expected_absences:g}+ days per month")
    if fl.needs_to_lie_down:
        limitations.append("Needs to lie down during the day")
    if fl.assistive_devices:
        limitations.append(f"Uses assistive devices: {', '.join(fl.assistive_devices)}")
    return limitations


def transform_record(record: IntakeRecord) -> Dict[str, Any]:
    """Shape an intake record the way the assessment API expects."""
    demographics = record.demographics
    medical = record.medical
    fl = record.functional_limitations
    work = record.work_history
    application = record.application

    name = demographics.full_name or None
    dob = demographics.date_of_birth.isoformat() if demographics.date_of_birth else None
    status = application.status.value if application.status else None
    heaviest = work.heaviest_lifting.value if work.heaviest_lifting else None
    limitations = _limitations_summary(record)

    data = {
        "name": name,
        "clientName": name,
        "email": str(demographics.email) if demographics.email else None,
        "dob": dob,
        "dateOfBirth": dob,
        "age": demographics.age,
        "phone": demographics.phone,
        "education": record.education.level.value if record.education.level else None,
        "selectedConditions": list(medical.conditions),
        "conditions": list(medical.conditions),
        "medications": list(medical.medications),
        "functionalLimitations": limitations or None,
        "workHistory": [
            {"title": job.title, "years": job.years, "physicalLevel": heaviest}
            for job in work.jobs
        ],
        "lastWorked": work.last_work_date,
        "workStatus": "working" if work.currently_working else "not_working",
        "cannotWork": not work.currently_working,
        "alreadyApplied": "yes" if application.has_applied else "no",
        "caseStage": CASE_STAGE_MAP.get(status, status),
        "practiceArea": "SSD",
        "voiceExtendedData": {
            "severity": medical.severity.value if medical.severity else None,
            "durationMonths": medical.duration_months,
            "treatments": list(medical.treatments),
            "hospitalizations": medical.hospitalizations,
            "sideEffects": list(medical.side_effects),
            "denialDate": application.denial_date.isoformat() if application.denial_date else None,
            "hearingDate": application.hearing_date.isoformat() if application.hearing_date else None,
            "heaviestLifting": heaviest,
            "sittingMinutes": fl.sitting_minutes,
            "standingMinutes": fl.standing_minutes,
            "walkingBlocks": fl.walking_blocks,
            "liftingPounds": fl.lifting_pounds,
            "concentrationIssues": fl.concentration_issues,
            "memoryIssues": fl.memory_issues,
            "socialDifficulties": fl.social_difficulties,
            "expectedAbsences": fl.expected_absences,
            "needsToLieDown": fl.needs_to_lie_down,
            "assistiveDevices": list(fl.assistive_devices),
        },
    }
    return data


def map_response(response: Dict[str, Any]) -> ScoringResult:
    """Map an assessment API response onto a ScoringResult.

    Raises:
        RemoteScoringAPIError: If the response carries no usable score
    """
    try:
        raw_score = float(response["score"])
    except (KeyError, TypeError, ValueError) as e:
        raise RemoteScoringAPIError(f"Assessment response has no usable score: {e}") from e

    viability = response.get("viabilityRating") or "Moderate"
    strengths, concerns = [], []
    for factor in response.get("keyFactors") or []:
        lowered = str(factor).lower()
        if any(marker in lowered for marker in CONCERN_MARKERS):
            concerns.append(factor)
        else:
            strengths.append(factor)

    return ScoringResult(
        total_score=max(0, min(100, round_half_up(raw_score))),
        recommendation=RECOMMENDATION_MAP.get(
            response.get("recommendation"), Recommendation.CONSIDER_CAUTION
        ),
        viability_rating=viability,
        approval_likelihood=LIKELIHOOD_MAP.get(viability, DEFAULT_LIKELIHOOD),
        case_strengths=tuple(strengths),
        case_concerns=tuple(concerns),
        callback_timeframe=callback_timeframe_for(raw_score),
        source=ScoringSource.REMOTE,
    )


class RemoteScoringClient:
    """Posts finished intakes to the assessment API."""

    ASSESSMENT_PATH = "/api/intake-assessment"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[aiohttp.ClientSession] = None,
        breaker: CircuitBreaker = remote_scoring_breaker,
    ):
        settings = settings or get_settings()
        self.base_url = settings.remote_scoring_url.rstrip("/")
        self.api_key = settings.get_remote_scoring_api_key()
        self.timeout_sec = settings.remote_scoring_timeout_ms / 1000
        self.enabled = settings.is_remote_scoring_enabled
        self.session = session
        self.breaker = breaker

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}{self.ASSESSMENT_PATH}"

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
            "User-Agent": APITimeouts.REMOTE_SCORING_USER_AGENT,
        }

    def build_request(
        self,
        call_id: str,
        intake_id: str,
        record: IntakeRecord,
        caller: CallerInfo,
        flags: CallFlags,
        call_duration: Optional[int] = None,
    ) -> Dict[str, Any]:
        return {
            "action": "assess",
            "source": "voice",
            "voiceMetadata": {
                "callId": call_id,
                "intakeId": intake_id,
                "callerPhone": caller.caller_phone,
                "callerCity": caller.caller_city,
                "callerState": caller.caller_state,
                "callDuration": call_duration,
                "smsConsentGiven": record.sms_consent.consent_given,
                "isUrgent": flags.urgent,
                "urgentReason": flags.urgent_reason,
                "transcript": [
                    {
                        "role": entry.role.value,
                        "text": entry.text,
                        "timestamp": entry.timestamp.isoformat(),
                    }
                    for entry in record.transcript
                ],
            },
            "data": transform_record(record),
        }

    async def assess(
        self,
        call_id: str,
        intake_id: str,
        record: IntakeRecord,
        caller: CallerInfo,
        flags: CallFlags,
        call_duration: Optional[int] = None,
    ) -> ScoringResult:
        """Submit an intake and return the mapped score.

        Raises:
            RemoteScoringError: On any failure; never retried here
        """
        if not self.enabled:
            raise RemoteScoringError("Remote scoring is not enabled")

        payload = self.build_request(call_id, intake_id, record, caller, flags, call_duration)
        logger.info(
            f"Remote assessment request call={call_id} intake={intake_id} "
            f"conditions={len(record.medical.conditions)}"
        )

        started = time.monotonic()
        try:
            body = await with_circuit_breaker(self.breaker, self._post, payload)
            result = map_response(body)
        except CircuitBreakerError as e:
            track_remote_scoring(time.monotonic() - started, success=False)
            raise RemoteScoringConnectionError(f"Remote scoring circuit open: {e}") from e
        except RemoteScoringError:
            track_remote_scoring(time.monotonic() - started, success=False)
            raise

        track_remote_scoring(time.monotonic() - started, success=True)
        logger.info(
            f"Remote assessment success call={call_id} score={result.total_score} "
            f"recommendation={result.recommendation.value}"
        )
        return result

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        timeout = aiohttp.ClientTimeout(total=self.timeout_sec)
        try:
            session = await self._get_session()
            async with session.post(
                self.endpoint,
                json=payload,
                headers=self._headers(),
                timeout=timeout,
            ) as response:
                if response.status >= 300:
                    text = await response.text()
                    raise self._error_for(response.status, response.reason, text)
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise RemoteScoringAPIError(
                        f"Assessment response is not JSON: {e}", response.status
                    ) from e
        except asyncio.TimeoutError as e:
            logger.error(f"Remote scoring timed out after {self.timeout_sec}s")
            raise RemoteScoringTimeoutError(
                f"Remote scoring request timed out after {int(self.timeout_sec * 1000)}ms"
            ) from e
        except aiohttp.ClientError as e:
            logger.error(f"Remote scoring connection failed: {e}")
            raise RemoteScoringConnectionError(str(e)) from e

    @staticmethod
    def _error_for(status: int, reason: Optional[str], body: str) -> RemoteScoringError:
        logger.error(f"Remote scoring error status={status} body={body[:500]}")
        if status == 401:
            return RemoteScoringAuthError("Remote scoring authentication failed - check API key")
        if status == 400:
            return RemoteScoringValidationError(f"Remote scoring validation error: {body}")
        if status == 429:
            return RemoteScoringRateLimitError("Remote scoring rate limit exceeded")
        return RemoteScoringAPIError(f"Remote scoring API error: {status} - {reason}", status)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is not None:
            return self.session
        return await get_fallback_session()

    async def health_check(self) -> Dict[str, Any]:
        """GET the assessment endpoint with ``?action=health``."""
        timeout = aiohttp.ClientTimeout(total=APITimeouts.REMOTE_SCORING_HEALTH_TIMEOUT_SEC)
        started = time.monotonic()
        try:
            session = await self._get_session()
            async with session.get(
                self.endpoint,
                params={"action": "health"},
                headers=self._headers(),
                timeout=timeout,
            ) as response:
                latency_ms = round((time.monotonic() - started) * 1000, 2)
                if response.status != 200:
                    return {"healthy": False, "status": response.status, "latency_ms": latency_ms}
                body = await response.json(content_type=None)
                return {"healthy": True, "latency_ms": latency_ms, "version": body.get("version")}
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            return {"healthy": False, "error": str(e)}
