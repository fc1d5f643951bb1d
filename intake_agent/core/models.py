"""Data models for the disability intake line."""
import time
import uuid
from typing import Optional, List, Tuple
from datetime import date, datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, EmailStr, field_validator, model_validator
from enum import Enum

from intake_agent.core.validators import InputValidator


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def generate_id(prefix: str) -> str:
    """Sortable identifier such as INT_1718040000000_1a2b3c4d."""
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


class EducationLevel(str, Enum):
    """Highest completed education, lowest first."""
    ILLITERATE = "illiterate"
    MARGINAL = "marginal"
    LIMITED = "limited"
    HIGH_SCHOOL = "high_school"
    COLLEGE = "college"


class Severity(str, Enum):
    """Overall severity of the reported conditions."""
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"
    DISABLING = "disabling"


class WorkDemand(str, Enum):
    """Heaviest physical demand level of past work."""
    SEDENTARY = "sedentary"
    LIGHT = "light"
    MEDIUM = "medium"
    HEAVY = "heavy"
    VERY_HEAVY = "very_heavy"


class ApplicationStage(str, Enum):
    """Where the caller's SSA claim currently stands."""
    NEVER_APPLIED = "never_applied"
    WAITING = "waiting"
    DENIED_INITIAL = "denied_initial"
    DENIED_RECONSIDERATION = "denied_reconsideration"
    HEARING_PENDING = "hearing_pending"
    HEARING_SCHEDULED = "hearing_scheduled"


class Recommendation(str, Enum):
    """Referral tiers, strongest first."""
    HIGHLY_RECOMMENDED = "highly_recommended"
    RECOMMENDED = "recommended"
    CONSIDER_CAUTION = "consider_caution"
    WEAK_CASE = "weak_case"
    NOT_RECOMMENDED = "not_recommended"


class ScoringSource(str, Enum):
    """Which engine produced a score."""
    LOCAL = "local"
    REMOTE = "remote"


class CallOutcome(str, Enum):
    """How a call ended."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    TRANSFERRED = "transferred"
    CALLBACK_REQUESTED = "callback_requested"
    DISCONNECTED = "disconnected"
    NOT_INTERESTED = "not_interested"


class SessionState(str, Enum):
    """Lifecycle of an intake session."""
    COLLECTING = "collecting"
    FINALIZING = "finalizing"
    FINALIZED = "finalized"
    FAILED = "failed"


class Speaker(str, Enum):
    """Transcript speaker roles."""
    USER = "user"
    ASSISTANT = "assistant"


class CallbackCategory(str, Enum):
    """Reason categories for non-intake callback requests."""
    EXISTING_CLIENT = "EXISTING_CLIENT"
    CASE_STATUS = "CASE_STATUS"
    BILLING = "BILLING"
    DOCUMENTS = "DOCUMENTS"
    REFERRAL = "REFERRAL"
    VENDOR = "VENDOR"
    GENERAL = "GENERAL"
    OTHER = "OTHER"


class CallerInfo(BaseModel):
    """Carrier-supplied caller ID metadata."""
    caller_phone: Optional[str] = None
    caller_city: Optional[str] = None
    caller_state: Optional[str] = None


class Demographics(BaseModel):
    """Caller identity and contact details.

    ``age`` is always derived from ``date_of_birth``; a value passed in
    without a date of birth is discarded.
    """
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    age: Optional[int] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    city: Optional[str] = None
    state: Optional[str] = None

    @model_validator(mode="after")
    def derive_age(self) -> "Demographics":
        self.age = InputValidator.calculate_age(self.date_of_birth) if self.date_of_birth else None
        return self

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class Education(BaseModel):
    """Education level and free-text detail."""
    level: Optional[EducationLevel] = None
    details: Optional[str] = None


class MedicalInfo(BaseModel):
    """Conditions, treatment and medication history."""
    conditions: List[str] = Field(default_factory=list)
    severity: Optional[Severity] = None
    duration_months: Optional[float] = None
    treatments: List[str] = Field(default_factory=list)
    hospitalizations: Optional[int] = Field(None, ge=0)
    medications: List[str] = Field(default_factory=list)
    side_effects: List[str] = Field(default_factory=list)


class FunctionalLimitations(BaseModel):
    """Self-reported residual functional capacity."""
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


class Job(BaseModel):
    """One past job."""
    title: str = ""
    years: Optional[float] = Field(None, ge=0)


class WorkHistory(BaseModel):
    """Past relevant work."""
    jobs: List[Job] = Field(default_factory=list)
    heaviest_lifting: Optional[WorkDemand] = None
    total_work_years: Optional[float] = Field(None, ge=0)
    last_work_date: Optional[str] = None
    currently_working: Optional[bool] = None


class ApplicationStatus(BaseModel):
    """SSA application stage and key dates."""
    has_applied: Optional[bool] = None
    status: Optional[ApplicationStage] = None
    denial_date: Optional[date] = None
    hearing_date: Optional[date] = None


class SmsConsent(BaseModel):
    """Explicit SMS opt-in; an unrecorded consent counts as a refusal."""
    consent_given: bool = False
    consent_timestamp: Optional[datetime] = None
    phone_number: Optional[str] = None

    @property
    def recorded(self) -> bool:
        return self.consent_timestamp is not None


class TranscriptEntry(BaseModel):
    """One completed utterance."""
    model_config = ConfigDict(frozen=True)

    role: Speaker
    text: str
    timestamp: datetime = Field(default_factory=utc_now)


class IntakeRecord(BaseModel):
    """The accumulating case file for one call."""
    demographics: Demographics = Field(default_factory=Demographics)
    education: Education = Field(default_factory=Education)
    medical: MedicalInfo = Field(default_factory=MedicalInfo)
    functional_limitations: FunctionalLimitations = Field(default_factory=FunctionalLimitations)
    work_history: WorkHistory = Field(default_factory=WorkHistory)
    application: ApplicationStatus = Field(default_factory=ApplicationStatus)
    sms_consent: SmsConsent = Field(default_factory=SmsConsent)
    notes: Optional[str] = None
    transcript: List[TranscriptEntry] = Field(default_factory=list)


class CallFlags(BaseModel):
    """Escalation flags; once raised they stay raised for the call."""
    urgent: bool = False
    urgent_reason: Optional[str] = None
    crisis_mentioned: bool = False
    transfer_requested: bool = False

    def raise_urgent(self, reason: Optional[str], crisis_mentioned: bool = False) -> None:
        self.urgent = True
        if reason:
            self.urgent_reason = reason
        self.crisis_mentioned = self.crisis_mentioned or crisis_mentioned


class ScoringResult(BaseModel):
    """Immutable outcome of scoring one intake record."""
    model_config = ConfigDict(frozen=True)

    total_score: int = Field(ge=0, le=100)
    recommendation: Recommendation
    viability_rating: str
    approval_likelihood: str
    case_strengths: Tuple[str, ...] = ()
    case_concerns: Tuple[str, ...] = ()
    callback_timeframe: str
    source: ScoringSource = ScoringSource.LOCAL


class CallbackRequest(BaseModel):
    """Message left by a caller who is not opening a new claim."""
    call_id: str
    caller_name: str
    phone_number: Optional[str] = None
    purpose: str
    category: CallbackCategory = CallbackCategory.GENERAL
    is_urgent: bool = False
    notes: Optional[str] = None
    transcript: List[TranscriptEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, v):
        if isinstance(v, str):
            v = v.strip().upper()
            if v not in CallbackCategory.__members__:
                return CallbackCategory.OTHER
        return v

    @property
    def priority(self) -> str:
        return "URGENT" if self.is_urgent else "NORMAL"


class IntakeResult(BaseModel):
    """Everything handed to persistence and notification after a call."""
    call_id: str
    intake_id: str
    caller: CallerInfo = Field(default_factory=CallerInfo)
    record: IntakeRecord
    scoring: ScoringResult
    flags: CallFlags
    outcome: CallOutcome
    callback_request: Optional[CallbackRequest] = None
    sms_requested: bool = False
    created_at: datetime
    completed_at: datetime = Field(default_factory=utc_now)

    @property
    def is_callback(self) -> bool:
        return self.callback_request is not None

    @property
    def duration_seconds(self) -> int:
        return int((self.completed_at - self.created_at).total_seconds())
