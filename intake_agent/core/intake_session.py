"""Per-call intake state machine.

The speech model drives the conversation and reports facts through
structured events (function calls). ``IntakeSession`` validates each
event, updates its slice of the ``IntakeRecord`` and answers with a short
acknowledgment, optionally with guidance the model can use in its next
turn. ``finalize`` scores the record, builds the ``IntakeResult`` and runs
the post-finalize effects exactly once.

Lifecycle: collecting -> finalizing -> finalized, or failed when scoring
raises during finalize.
"""
import re
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import ValidationError

from intake_agent.config.constants import IntakeConfig
from intake_agent.core.intake_repository_base import IntakeRepositoryBase
from intake_agent.core.models import (
    ApplicationStage,
    ApplicationStatus,
    CallbackRequest,
    CallerInfo,
    CallFlags,
    CallOutcome,
    Demographics,
    EducationLevel,
    FunctionalLimitations,
    IntakeRecord,
    IntakeResult,
    ScoringResult,
    SessionState,
    Speaker,
    TranscriptEntry,
    WorkDemand,
    WorkHistory,
    generate_id,
    utc_now,
)
from intake_agent.core.operations import Operation, OperationPayload, parse_operation, parse_payload
from intake_agent.core.post_finalize import PostFinalizeEffect, SMS_SENT, run_effects, sms_decision
from intake_agent.core.scoring_engine import ScoringThresholds, calculate_score
from intake_agent.core.validators import InputValidator
from intake_agent.utils.logger import get_logger
from intake_agent.utils.phi_redactor import redact_phi_dict
from intake_agent.utils.metrics import (
    call_outcomes,
    track_function_call,
    track_scoring,
    urgent_flags,
)
from intake_agent.utils.structured_logging import log_call_event, log_error

logger = get_logger(__name__)

UNSKILLED_JOB_KEYWORDS = ("warehouse", "factory", "labor", "construction", "cleaning", "cashier")

CRISIS_INSTRUCTION = (
    "If the caller is in crisis, provide the 988 Suicide and Crisis Lifeline number "
    "and encourage them to call or text 988 right away."
)
TRANSFER_INSTRUCTION = (
    "Acknowledge their request and let them know you're transferring them to a team member."
)


class FinalizeInProgressError(RuntimeError):
    """finalize() was awaited again while the first call is still running."""


class FinalizeFailedError(RuntimeError):
    """finalize() was awaited again after scoring failed."""


def _mentions(text: str, keywords: Sequence[str]) -> bool:
    lowered = text.lower()
    return any(re.search(rf"\b{re.escape(keyword)}\b", lowered) for keyword in keywords)


class IntakeSession:
    """Owns the intake record for exactly one call.

    Args:
        call_id: Carrier call identifier
        caller: Caller ID metadata captured when the call was answered
        scoring_strategy: Strategy used at finalize
        effects: Post-finalize effects, run in order after scoring
        repository: Storage for callback messages taken mid-call
        email_service: Sends the staff email for callback messages
        sms_enabled: Whether follow-up SMS is switched on for this deployment
        thresholds: Tier cut-offs for the local score computed mid-call
        clock: Source of the current UTC time
    """

    def __init__(
        self,
        call_id: str,
        caller: Optional[CallerInfo] = None,
        *,
        scoring_strategy,
        effects: Sequence[PostFinalizeEffect] = (),
        repository: Optional[IntakeRepositoryBase] = None,
        email_service=None,
        sms_enabled: bool = False,
        thresholds: Optional[ScoringThresholds] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.call_id = call_id
        self.intake_id = generate_id("INT")
        self.caller = caller or CallerInfo()
        self.scoring_strategy = scoring_strategy
        self.effects = list(effects)
        self.repository = repository
        self.email_service = email_service
        self.sms_enabled = sms_enabled
        self.thresholds = thresholds or ScoringThresholds()
        self._clock = clock

        self.record = IntakeRecord()
        self.record.demographics.phone = self.caller.caller_phone
        self.record.demographics.city = self.caller.caller_city
        self.record.demographics.state = self.caller.caller_state

        self.flags = CallFlags()
        self.outcome = CallOutcome.IN_PROGRESS
        self.state = SessionState.COLLECTING
        self.scoring: Optional[ScoringResult] = None
        self.callback_request: Optional[CallbackRequest] = None
        self.sms_requested = False
        self.created_at = clock()
        self.effect_outcomes: Dict[str, str] = {}
        self._result: Optional[IntakeResult] = None

        self._handlers: Dict[Operation, Callable] = {
            Operation.RECORD_DEMOGRAPHICS: self._record_demographics,
            Operation.RECORD_EDUCATION: self._record_education,
            Operation.RECORD_MEDICAL_CONDITIONS: self._record_medical_conditions,
            Operation.RECORD_MEDICATIONS: self._record_medications,
            Operation.RECORD_FUNCTIONAL_LIMITATIONS: self._record_functional_limitations,
            Operation.RECORD_WORK_HISTORY: self._record_work_history,
            Operation.RECORD_APPLICATION_STATUS: self._record_application_status,
            Operation.RECORD_SMS_CONSENT: self._record_sms_consent,
            Operation.RECORD_ASSESSMENT: self._record_assessment,
            Operation.FLAG_URGENT: self._flag_urgent,
            Operation.REQUEST_HUMAN_TRANSFER: self._request_human_transfer,
            Operation.END_CALL: self._end_call,
            Operation.RECORD_CALLBACK_REQUEST: self._record_callback_request,
        }

        log_call_event(logger, "intake_session_created", call_id, intake_id=self.intake_id)

    @property
    def is_collecting(self) -> bool:
        return self.state == SessionState.COLLECTING

    @property
    def is_finalized(self) -> bool:
        return self.state == SessionState.FINALIZED

    def _today(self) -> date:
        return self._clock().date()

    # ------------------------------------------------------------------
    # Event entry point
    # ------------------------------------------------------------------

    async def handle_structured_event(self, name: str, args: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Apply one structured event from the speech model.

        Never raises: unknown names, invalid arguments and handler errors
        all come back as ``{"error": ...}`` so the model can recover.
        """
        operation = parse_operation(name)
        if operation is None:
            log_call_event(logger, "unknown_function", self.call_id, name=name)
            track_function_call("unknown", "unknown")
            return {"error": f"Unknown function: {name}"}

        if not self.is_collecting:
            track_function_call(operation.value, "rejected")
            return {"error": "This call has ended; no further information can be recorded."}

        if isinstance(args, dict):
            logger.debug(f"{operation.value} arguments for call {self.call_id}: {redact_phi_dict(args)}")
        try:
            payload = parse_payload(operation, args)
        except ValidationError as e:
            track_function_call(operation.value, "invalid")
            log_call_event(
                logger, "function_arguments_invalid", self.call_id,
                name=operation.value, errors=e.error_count(),
            )
            return {
                "error": f"Invalid arguments for {operation.value}",
                "details": [
                    f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
                    for err in e.errors()
                ],
            }

        try:
            result = await self._handlers[operation](payload)
        except Exception as e:
            track_function_call(operation.value, "error")
            log_error(logger, e, f"Handling {operation.value} failed", call_id=self.call_id)
            return {"error": f"Could not record {operation.value}. Please continue the conversation."}

        track_function_call(operation.value, "success")
        return result

    def add_transcript(self, role: Speaker, text: str) -> None:
        """Append a completed utterance; ignored once the session is finalizing."""
        text = (text or "").strip()
        if not text or not self.is_collecting:
            return
        self.record.transcript.append(TranscriptEntry(role=role, text=text, timestamp=self._clock()))

    # ------------------------------------------------------------------
    # Recording operations
    # ------------------------------------------------------------------

    async def _record_demographics(self, payload: OperationPayload) -> Dict[str, Any]:
        updates = payload.provided()
        warnings: List[str] = []

        if "date_of_birth" in updates:
            dob = InputValidator.parse_date(updates["date_of_birth"])
            if dob is None and updates["date_of_birth"]:
                warnings.append("Date of birth was not understood; please confirm it with the caller.")
            updates["date_of_birth"] = dob

        if updates.get("phone"):
            is_valid, formatted = InputValidator.validate_phone_number(updates["phone"])
            if is_valid:
                updates["phone"] = formatted
            else:
                warnings.append("Phone number looks incomplete; please confirm it with the caller.")
                del updates["phone"]

        if "email" in updates:
            is_valid, cleaned = InputValidator.validate_email(updates["email"] or "")
            if is_valid:
                updates["email"] = cleaned
            else:
                if updates["email"]:
                    warnings.append("Email address looks invalid; please spell it back to the caller.")
                del updates["email"]

        current = self.record.demographics.model_dump(exclude={"age"})
        self.record.demographics = Demographics.model_validate({**current, **updates})
        demographics = self.record.demographics
        if demographics.date_of_birth is not None:
            demographics.age = InputValidator.calculate_age(demographics.date_of_birth, self._today())

        log_call_event(
            logger, "demographics_recorded", self.call_id,
            age=demographics.age, has_phone=bool(demographics.phone),
        )

        result: Dict[str, Any] = {
            "recorded": True,
            "age": demographics.age,
            "complete": bool(demographics.first_name and demographics.last_name and demographics.phone),
        }
        if warnings:
            result["warnings"] = warnings

        age = demographics.age
        if age is not None and age >= IntakeConfig.ADVANCED_AGE:
            result["guidance"] = (
                "This caller is in the Advanced Age category (55+), which provides "
                "significant advantages under SSA Grid Rules."
            )
        elif age is not None and age >= IntakeConfig.CLOSELY_APPROACHING_AGE:
            result["guidance"] = (
                "This caller is in the Closely Approaching Advanced Age category (50-54), "
                "which provides some Grid Rule advantages."
            )
        return result

    async def _record_education(self, payload: OperationPayload) -> Dict[str, Any]:
        fields = payload.provided()
        if "education_level" in fields:
            fields["level"] = fields.pop("education_level")
        self.record.education = self.record.education.model_copy(update=fields)

        level = self.record.education.level
        log_call_event(logger, "education_recorded", self.call_id, level=level.value if level else None)

        age = self.record.demographics.age or 0
        if level in (EducationLevel.LIMITED, EducationLevel.MARGINAL, EducationLevel.ILLITERATE) \
                and age >= IntakeConfig.CLOSELY_APPROACHING_AGE:
            return {
                "recorded": True,
                "guidance": "Limited education combined with age 50+ is favorable under Grid Rules. "
                            "This strengthens the case.",
            }
        return {"recorded": True}

    async def _record_medical_conditions(self, payload: OperationPayload) -> Dict[str, Any]:
        self.record.medical = self.record.medical.model_copy(update=payload.provided())
        medical = self.record.medical

        log_call_event(
            logger, "medical_conditions_recorded", self.call_id,
            condition_count=len(medical.conditions),
            severity=medical.severity.value if medical.severity else None,
        )

        if any(_mentions(c, IntakeConfig.HIGH_APPROVAL_CONDITIONS) for c in medical.conditions):
            return {
                "recorded": True,
                "guidance": "One or more conditions have high approval rates. This is a strong case indicator.",
            }
        if len(medical.conditions) >= IntakeConfig.MULTIPLE_CONDITIONS_COUNT:
            return {
                "recorded": True,
                "guidance": "Multiple conditions documented. Combined effect may qualify even if "
                            "individual conditions don't meet listings.",
            }
        return {"recorded": True}

    async def _record_medications(self, payload: OperationPayload) -> Dict[str, Any]:
        self.record.medical = self.record.medical.model_copy(update=payload.provided())
        medications = self.record.medical.medications

        log_call_event(logger, "medications_recorded", self.call_id, medication_count=len(medications))

        if any(_mentions(m, IntakeConfig.OPIOID_MEDICATIONS) for m in medications):
            return {
                "recorded": True,
                "guidance": "Opioid medications indicate significant chronic pain. This supports case severity.",
            }
        if len(medications) >= IntakeConfig.POLYPHARMACY_COUNT:
            return {
                "recorded": True,
                "guidance": "Polypharmacy (5+ medications) indicates complex medical situation.",
            }
        return {"recorded": True}

    async def _record_functional_limitations(self, payload: OperationPayload) -> Dict[str, Any]:
        current = self.record.functional_limitations.model_dump()
        self.record.functional_limitations = FunctionalLimitations.model_validate(
            {**current, **payload.provided()}
        )
        limits = self.record.functional_limitations

        log_call_event(
            logger, "functional_limitations_recorded", self.call_id,
            lifting=limits.lifting_pounds, sitting=limits.sitting_minutes,
        )

        critical = []
        if limits.lifting_pounds is not None and 0 < limits.lifting_pounds <= 10:
            critical.append("sedentary lifting capacity")
        if limits.sitting_minutes is not None and 0 < limits.sitting_minutes <= 30:
            critical.append("cannot sit for extended periods")
        if limits.expected_absences is not None and limits.expected_absences >= 2:
            critical.append("would miss 2+ days/month (precludes competitive employment)")

        if critical:
            return {
                "recorded": True,
                "guidance": f"Critical limitations identified: {', '.join(critical)}. "
                            f"These are strong case factors.",
            }
        return {"recorded": True}

    async def _record_work_history(self, payload: OperationPayload) -> Dict[str, Any]:
        current = self.record.work_history.model_dump()
        self.record.work_history = WorkHistory.model_validate({**current, **payload.provided()})
        history = self.record.work_history

        log_call_event(
            logger, "work_history_recorded", self.call_id,
            job_count=len(history.jobs),
            heaviest_lifting=history.heaviest_lifting.value if history.heaviest_lifting else None,
        )

        unskilled = any(_mentions(job.title, UNSKILLED_JOB_KEYWORDS) for job in history.jobs)
        if unskilled and history.heaviest_lifting in (WorkDemand.HEAVY, WorkDemand.VERY_HEAVY):
            return {
                "recorded": True,
                "guidance": "Unskilled heavy work history with no transferable skills. "
                            "Very favorable for Grid Rules.",
            }
        return {"recorded": True}

    async def _record_application_status(self, payload: OperationPayload) -> Dict[str, Any]:
        updates = payload.provided()
        warnings: List[str] = []
        for field in ("denial_date", "hearing_date"):
            if field in updates:
                parsed = InputValidator.parse_date(updates[field])
                if parsed is None and updates[field]:
                    warnings.append(f"{field.replace('_', ' ').capitalize()} was not understood.")
                updates[field] = parsed

        current = self.record.application.model_dump()
        self.record.application = ApplicationStatus.model_validate({**current, **updates})
        application = self.record.application

        log_call_event(
            logger, "application_status_recorded", self.call_id,
            status=application.status.value if application.status else None,
        )

        result: Dict[str, Any] = {"recorded": True}
        urgent_warnings = []

        if application.denial_date is not None:
            days_since_denial = (self._today() - application.denial_date).days
            if days_since_denial >= IntakeConfig.APPEAL_URGENCY_DAYS:
                self._raise_urgent(f"Appeal deadline approaching ({IntakeConfig.APPEAL_WINDOW_DAYS} days from denial)")
                urgent_warnings.append(
                    "URGENT: Appeal deadline may be approaching. Only 60 days from denial date to appeal."
                )

        if application.status == ApplicationStage.HEARING_SCHEDULED:
            self._raise_urgent("Hearing scheduled")
            urgent_warnings.append("URGENT: Hearing is scheduled. Attorney review needed immediately.")

        if urgent_warnings:
            result["urgent"] = True
            result["warning"] = " ".join(urgent_warnings)
        if warnings:
            result["warnings"] = warnings
        return result

    async def _record_sms_consent(self, payload: OperationPayload) -> Dict[str, Any]:
        phone = payload.phone_number or self.record.demographics.phone
        if phone:
            is_valid, formatted = InputValidator.validate_phone_number(phone)
            phone = formatted if is_valid else None

        self.record.sms_consent = self.record.sms_consent.model_copy(update={
            "consent_given": payload.consent_given,
            "consent_timestamp": self._clock(),
            "phone_number": phone,
        })

        log_call_event(
            logger, "sms_consent_recorded", self.call_id,
            consent=payload.consent_given,
            timestamp=self.record.sms_consent.consent_timestamp.isoformat(),
        )

        if payload.consent_given:
            return {
                "recorded": True,
                "consent": "granted",
                "message": "Consent recorded. The caller will receive a text with their reference number.",
            }
        return {
            "recorded": True,
            "consent": "declined",
            "message": "Understood. No text messages will be sent.",
        }

    async def _record_assessment(self, payload: OperationPayload) -> Dict[str, Any]:
        if payload.notes:
            self.record.notes = payload.notes

        self.scoring = calculate_score(self.record, self.thresholds, today=self._today())
        scoring = self.scoring

        log_call_event(
            logger, "assessment_recorded", self.call_id,
            score=scoring.total_score, recommendation=scoring.recommendation.value,
        )

        return {
            "score": scoring.total_score,
            "recommendation": scoring.recommendation.value,
            "viability": scoring.viability_rating,
            "likelihood": scoring.approval_likelihood,
            "strengths": list(scoring.case_strengths),
            "concerns": list(scoring.case_concerns),
            "callback_timeframe": scoring.callback_timeframe,
            "closing_guidance": self._closing_guidance(scoring),
        }

    def _closing_guidance(self, scoring: ScoringResult) -> str:
        name = self.record.demographics.first_name or "there"
        score = scoring.total_score
        if score >= self.thresholds.highly_recommended:
            strengths = ", ".join(scoring.case_strengths[:2])
            return (
                f"This is a strong case. Tell {name} their case has strong potential, mention 1-2 key "
                f"strengths ({strengths}), and that an attorney will call within 24 hours."
            )
        if score >= self.thresholds.recommended:
            return (
                f"This is a promising case. Tell {name} their situation has several factors that could "
                f"support a claim, and an attorney will review and call within 48 hours."
            )
        if score >= self.thresholds.consider_caution:
            return (
                f"This case has challenges. Be honest with {name} that disability cases can be "
                f"challenging, but the attorney will review and call within a few days."
            )
        return (
            f"This case may be difficult. Gently explain to {name} that without certain factors, these "
            f"cases can be hard to win. Still pass to attorney for review, but mention they might want "
            f"to explore other resources."
        )

    def _raise_urgent(self, reason: Optional[str], crisis_mentioned: bool = False) -> None:
        first = not self.flags.urgent
        self.flags.raise_urgent(reason, crisis_mentioned)
        if first:
            urgent_flags.labels(crisis=str(self.flags.crisis_mentioned).lower()).inc()
        log_call_event(
            logger, "urgent_flagged", self.call_id,
            reason=reason, crisis=self.flags.crisis_mentioned,
        )

    async def _flag_urgent(self, payload: OperationPayload) -> Dict[str, Any]:
        self._raise_urgent(payload.reason, payload.crisis_mentioned)
        result: Dict[str, Any] = {"flagged": True}
        if payload.crisis_mentioned:
            result["instruction"] = CRISIS_INSTRUCTION
        return result

    async def _request_human_transfer(self, payload: OperationPayload) -> Dict[str, Any]:
        self.flags.transfer_requested = True
        log_call_event(logger, "human_transfer_requested", self.call_id, reason=payload.reason)
        return {"transfer_initiated": True, "instruction": TRANSFER_INSTRUCTION}

    async def _end_call(self, payload: OperationPayload) -> Dict[str, Any]:
        self.outcome = payload.outcome
        self.sms_requested = payload.send_sms

        will_send = sms_decision(self.record, self.caller, self.sms_enabled) == SMS_SENT

        log_call_event(
            logger, "call_ending", self.call_id,
            outcome=self.outcome.value, send_sms=payload.send_sms,
            sms_consent=self.record.sms_consent.consent_given,
        )
        return {"call_ended": True, "intake_id": self.intake_id, "sms_sent": will_send}

    async def _record_callback_request(self, payload: OperationPayload) -> Dict[str, Any]:
        phone = payload.phone_number or self.caller.caller_phone
        request = CallbackRequest(
            call_id=self.call_id,
            caller_name=payload.caller_name,
            phone_number=phone,
            purpose=payload.purpose,
            category=payload.category,
            is_urgent=payload.is_urgent,
            notes=payload.notes,
            transcript=list(self.record.transcript),
            created_at=self._clock(),
        )
        self.callback_request = request
        self.outcome = CallOutcome.CALLBACK_REQUESTED

        log_call_event(
            logger, "callback_request_received", self.call_id,
            category=request.category.value, urgent=request.is_urgent,
        )

        try:
            message_id = await self.repository.save_callback_request(request)
        except Exception as e:
            log_error(logger, e, "Saving callback request failed", call_id=self.call_id)
            return {
                "recorded": False,
                "error": "Failed to save callback request, but the call details have been logged.",
            }

        if self.email_service is not None:
            try:
                sent = await self.email_service.send_callback_notification(request, message_id)
                log_call_event(logger, "callback_notification", self.call_id, message_id=message_id, sent=sent)
            except Exception as e:
                log_error(logger, e, "Callback notification email failed", call_id=self.call_id)

        timeframe = (
            IntakeConfig.CALLBACK_URGENT_TIMEFRAME if request.is_urgent
            else IntakeConfig.CALLBACK_NORMAL_TIMEFRAME
        )
        return {
            "recorded": True,
            "callback_timeframe": timeframe,
            "message": f"Callback request recorded for {request.caller_name}. "
                       f"Someone will call back {timeframe}.",
        }

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    async def finalize(self, call_duration: Optional[int] = None) -> IntakeResult:
        """Score, assemble and hand off the intake. Runs at most once.

        A second call after completion returns the cached result without
        re-running any effect. If scoring fails the error propagates, the
        session ends in FAILED and no effect runs.

        Raises:
            FinalizeInProgressError: If called while the first finalize is running
            FinalizeFailedError: If called again after scoring failed
        """
        if self.state == SessionState.FINALIZED:
            return self._result
        if self.state == SessionState.FINALIZING:
            raise FinalizeInProgressError(f"finalize already running for call {self.call_id}")
        if self.state == SessionState.FAILED:
            raise FinalizeFailedError(f"finalize already failed for call {self.call_id}")

        self.state = SessionState.FINALIZING
        if self.outcome == CallOutcome.IN_PROGRESS:
            self.outcome = CallOutcome.DISCONNECTED

        try:
            scoring = await self._final_scoring(call_duration)
        except Exception as e:
            self.state = SessionState.FAILED
            log_call_event(
                logger, "finalize_failed", self.call_id,
                intake_id=self.intake_id, error_type=type(e).__name__,
            )
            raise

        self._result = IntakeResult(
            call_id=self.call_id,
            intake_id=self.intake_id,
            caller=self.caller,
            record=self.record,
            scoring=scoring,
            flags=self.flags,
            outcome=self.outcome,
            callback_request=self.callback_request,
            sms_requested=self.sms_requested,
            created_at=self.created_at,
            completed_at=self._clock(),
        )

        track_scoring(scoring.source.value, scoring.recommendation.value, scoring.total_score)
        call_outcomes.labels(outcome=self.outcome.value).inc()
        log_call_event(
            logger, "intake_finalized", self.call_id,
            intake_id=self.intake_id, score=scoring.total_score,
            outcome=self.outcome.value, source=scoring.source.value,
            sms=sms_decision(self.record, self.caller, self.sms_enabled) == SMS_SENT,
        )

        self.effect_outcomes = await run_effects(self._result, self.effects)
        self.state = SessionState.FINALIZED
        return self._result

    async def _final_scoring(self, call_duration: Optional[int]) -> ScoringResult:
        if self.callback_request is not None or not self.scoring_strategy.delegates:
            if self.scoring is None:
                self.scoring = calculate_score(self.record, self.thresholds, today=self._today())
            return self.scoring

        # Any local fallback happens inside the strategy
        self.scoring = await self.scoring_strategy.score(
            call_id=self.call_id,
            intake_id=self.intake_id,
            record=self.record,
            caller=self.caller,
            flags=self.flags,
            call_duration=call_duration,
        )
        return self.scoring
