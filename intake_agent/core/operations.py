"""Structured events the speech model can emit, with typed payloads.

The model calls functions by name with loosely typed JSON arguments.
``parse_operation`` maps the name onto the closed ``Operation`` enum and
``parse_payload`` coerces the arguments into the pydantic payload for that
operation, so the session only ever deals with validated values.
"""
import re
from enum import Enum
from typing import Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator

from intake_agent.core.models import (
    ApplicationStage,
    CallOutcome,
    EducationLevel,
    Job,
    Severity,
    WorkDemand,
)
from intake_agent.core.validators import InputValidator


class Operation(str, Enum):
    """Every function exposed to the speech model."""
    RECORD_DEMOGRAPHICS = "record_demographics"
    RECORD_EDUCATION = "record_education"
    RECORD_MEDICAL_CONDITIONS = "record_medical_conditions"
    RECORD_MEDICATIONS = "record_medications"
    RECORD_FUNCTIONAL_LIMITATIONS = "record_functional_limitations"
    RECORD_WORK_HISTORY = "record_work_history"
    RECORD_APPLICATION_STATUS = "record_application_status"
    RECORD_SMS_CONSENT = "record_sms_consent"
    RECORD_ASSESSMENT = "record_assessment"
    FLAG_URGENT = "flag_urgent"
    REQUEST_HUMAN_TRANSFER = "request_human_transfer"
    END_CALL = "end_call"
    RECORD_CALLBACK_REQUEST = "record_callback_request"


def parse_operation(name: str) -> Optional[Operation]:
    """Return the Operation for a function name, or None when unknown."""
    try:
        return Operation(name)
    except ValueError:
        return None


def _as_list(value):
    """Accept a single string where a list is expected."""
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


def _as_number(value):
    if value is None or value == "":
        return None
    number = InputValidator.coerce_number(value)
    if number is None:
        raise ValueError(f"not a number: {value!r}")
    return number


def _as_enum_value(value):
    """'High School' -> 'high_school'."""
    if isinstance(value, str):
        return re.sub(r'[\s\-]+', '_', value.strip().lower())
    return value


class OperationPayload(BaseModel):
    """Base for payloads; unknown keys from the model are ignored."""
    model_config = ConfigDict(extra="ignore")

    def provided(self) -> Dict:
        """Only the fields the model actually sent."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class DemographicsPayload(OperationPayload):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None


class EducationPayload(OperationPayload):
    education_level: Optional[EducationLevel] = None
    details: Optional[str] = None

    @field_validator("education_level", mode="before")
    @classmethod
    def normalize_level(cls, v):
        return _as_enum_value(v)


class MedicalConditionsPayload(OperationPayload):
    conditions: List[str] = Field(default_factory=list)
    severity: Optional[Severity] = None
    duration_months: Optional[float] = None
    treatments: List[str] = Field(default_factory=list)
    hospitalizations: Optional[int] = Field(None, ge=0)

    @field_validator("conditions", "treatments", mode="before")
    @classmethod
    def split_lists(cls, v):
        return _as_list(v)

    @field_validator("severity", mode="before")
    @classmethod
    def normalize_severity(cls, v):
        return _as_enum_value(v)

    @field_validator("duration_months", mode="before")
    @classmethod
    def coerce_duration(cls, v):
        return _as_number(v)

    @field_validator("hospitalizations", mode="before")
    @classmethod
    def coerce_hospitalizations(cls, v):
        number = _as_number(v)
        return int(number) if number is not None else None


class MedicationsPayload(OperationPayload):
    medications: List[str] = Field(default_factory=list)
    side_effects: List[str] = Field(default_factory=list)

    @field_validator("medications", "side_effects", mode="before")
    @classmethod
    def split_lists(cls, v):
        return _as_list(v)


class FunctionalLimitationsPayload(OperationPayload):
    sitting_minutes: Optional[float] = Field(None, ge=0)
    standing_minutes: Optional[float] = Field(None, ge=0)
    walking_blocks: Optional[float] = Field(None, ge=0)
    lifting_pounds: Optional[float] = Field(None, ge=0)
    concentration_issues: Optional[bool] = None
    memory_issues: Optional[bool] = None
    social_difficulties: Optional[bool] = None
    expected_absences: Optional[float] = Field(None, ge=0)
    needs_to_lie_down: Optional[bool] = None
    assistive_devices: List[str] = Field(default_factory=list)

    @field_validator(
        "sitting_minutes", "standing_minutes", "walking_blocks",
        "lifting_pounds", "expected_absences", mode="before",
    )
    @classmethod
    def coerce_numbers(cls, v):
        return _as_number(v)

    @field_validator("assistive_devices", mode="before")
    @classmethod
    def split_lists(cls, v):
        return _as_list(v)


class WorkHistoryPayload(OperationPayload):
    jobs: List[Job] = Field(default_factory=list)
    heaviest_lifting: Optional[WorkDemand] = None
    total_work_years: Optional[float] = Field(None, ge=0)
    last_work_date: Optional[str] = None
    currently_working: Optional[bool] = None

    @field_validator("jobs", mode="before")
    @classmethod
    def normalize_jobs(cls, v):
        jobs = []
        for job in _as_list(v):
            if isinstance(job, str):
                job = {"title": job}
            elif isinstance(job, dict) and "years" in job:
                job = {**job, "years": _as_number(job["years"])}
            jobs.append(job)
        return jobs

    @field_validator("heaviest_lifting", mode="before")
    @classmethod
    def normalize_demand(cls, v):
        return _as_enum_value(v)

    @field_validator("total_work_years", mode="before")
    @classmethod
    def coerce_numbers(cls, v):
        return _as_number(v)


class ApplicationStatusPayload(OperationPayload):
    has_applied: Optional[bool] = None
    status: Optional[ApplicationStage] = None
    denial_date: Optional[str] = None
    hearing_date: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        return _as_enum_value(v)


class SmsConsentPayload(OperationPayload):
    consent_given: bool
    phone_number: Optional[str] = None


class AssessmentPayload(OperationPayload):
    notes: Optional[str] = None


class FlagUrgentPayload(OperationPayload):
    reason: Optional[str] = None
    crisis_mentioned: bool = False


class HumanTransferPayload(OperationPayload):
    reason: Optional[str] = None


class EndCallPayload(OperationPayload):
    outcome: CallOutcome
    send_sms: bool = False

    @field_validator("outcome", mode="before")
    @classmethod
    def reject_in_progress(cls, v):
        v = _as_enum_value(v)
        if v == CallOutcome.IN_PROGRESS.value:
            raise ValueError("outcome must describe how the call ended")
        return v


class CallbackRequestPayload(OperationPayload):
    caller_name: str = Field(min_length=1)
    phone_number: Optional[str] = None
    purpose: str = Field(min_length=1)
    category: str = "GENERAL"
    is_urgent: bool = False
    notes: Optional[str] = None


PAYLOAD_TYPES: Dict[Operation, Type[OperationPayload]] = {
    Operation.RECORD_DEMOGRAPHICS: DemographicsPayload,
    Operation.RECORD_EDUCATION: EducationPayload,
    Operation.RECORD_MEDICAL_CONDITIONS: MedicalConditionsPayload,
    Operation.RECORD_MEDICATIONS: MedicationsPayload,
    Operation.RECORD_FUNCTIONAL_LIMITATIONS: FunctionalLimitationsPayload,
    Operation.RECORD_WORK_HISTORY: WorkHistoryPayload,
    Operation.RECORD_APPLICATION_STATUS: ApplicationStatusPayload,
    Operation.RECORD_SMS_CONSENT: SmsConsentPayload,
    Operation.RECORD_ASSESSMENT: AssessmentPayload,
    Operation.FLAG_URGENT: FlagUrgentPayload,
    Operation.REQUEST_HUMAN_TRANSFER: HumanTransferPayload,
    Operation.END_CALL: EndCallPayload,
    Operation.RECORD_CALLBACK_REQUEST: CallbackRequestPayload,
}


def parse_payload(operation: Operation, args: Optional[dict]) -> OperationPayload:
    """Validate raw arguments for an operation.

    Raises:
        pydantic.ValidationError: If the arguments do not fit the payload
    """
    return PAYLOAD_TYPES[operation].model_validate(args or {})
