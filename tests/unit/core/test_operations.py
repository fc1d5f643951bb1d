"""Unit tests for structured event parsing."""
import pytest
from pydantic import ValidationError

from intake_agent.core.models import CallOutcome, EducationLevel, Severity, WorkDemand
from intake_agent.core.operations import (
    Operation,
    PAYLOAD_TYPES,
    parse_operation,
    parse_payload,
)


@pytest.mark.unit
class TestOperations:
    """Test mapping function calls onto typed payloads."""

    def test_every_operation_has_a_payload(self):
        """Test that no operation is missing its payload type."""
        assert set(PAYLOAD_TYPES) == set(Operation)

    def test_parse_operation_unknown(self):
        """Test that unknown names give None."""
        assert parse_operation("record_demographics") == Operation.RECORD_DEMOGRAPHICS
        assert parse_operation("order_pizza") is None

    def test_provided_only_lists_sent_fields(self):
        """Test that defaults are not reported as provided."""
        payload = parse_payload(Operation.RECORD_DEMOGRAPHICS, {"first_name": "Maria"})

        assert payload.provided() == {"first_name": "Maria"}

    def test_unknown_keys_ignored(self):
        """Test that extra arguments from the model are dropped."""
        payload = parse_payload(Operation.RECORD_ASSESSMENT, {"notes": "ok", "confidence": 0.9})

        assert payload.provided() == {"notes": "ok"}

    def test_enum_values_normalized(self):
        """Test that spoken enum values are normalized."""
        education = parse_payload(Operation.RECORD_EDUCATION, {"education_level": "High School"})
        medical = parse_payload(Operation.RECORD_MEDICAL_CONDITIONS, {"severity": "Severe"})
        work = parse_payload(Operation.RECORD_WORK_HISTORY, {"heaviest_lifting": "very heavy"})

        assert education.education_level == EducationLevel.HIGH_SCHOOL
        assert medical.severity == Severity.SEVERE
        assert work.heaviest_lifting == WorkDemand.VERY_HEAVY

    def test_lists_accept_comma_separated_strings(self):
        """Test that a single string becomes a list."""
        payload = parse_payload(
            Operation.RECORD_MEDICATIONS,
            {"medications": "gabapentin, tramadol", "side_effects": None},
        )

        assert payload.medications == ["gabapentin", "tramadol"]
        assert payload.side_effects == []

    def test_numbers_coerced_from_text(self):
        """Test that '20 lbs' style answers become numbers."""
        payload = parse_payload(
            Operation.RECORD_FUNCTIONAL_LIMITATIONS,
            {"lifting_pounds": "20 lbs", "sitting_minutes": 30, "walking_blocks": ""},
        )

        assert payload.lifting_pounds == 20.0
        assert payload.sitting_minutes == 30.0
        assert payload.walking_blocks is None

    def test_non_numeric_value_rejected(self):
        """Test that a number field without a number fails validation."""
        with pytest.raises(ValidationError):
            parse_payload(Operation.RECORD_FUNCTIONAL_LIMITATIONS, {"lifting_pounds": "a lot"})

    def test_jobs_accept_titles(self):
        """Test that job titles given as strings become Job entries."""
        payload = parse_payload(
            Operation.RECORD_WORK_HISTORY,
            {"jobs": ["cashier", {"title": "forklift driver", "years": "12 years"}]},
        )

        assert [job.title for job in payload.jobs] == ["cashier", "forklift driver"]
        assert payload.jobs[1].years == 12.0

    def test_end_call_rejects_in_progress(self):
        """Test that end_call must say how the call ended."""
        with pytest.raises(ValidationError):
            parse_payload(Operation.END_CALL, {"outcome": "in_progress"})

        payload = parse_payload(Operation.END_CALL, {"outcome": "Completed", "send_sms": True})
        assert payload.outcome == CallOutcome.COMPLETED
        assert payload.send_sms is True

    def test_sms_consent_requires_decision(self):
        """Test that consent_given is mandatory."""
        with pytest.raises(ValidationError):
            parse_payload(Operation.RECORD_SMS_CONSENT, {})

    def test_callback_request_requires_name_and_purpose(self):
        """Test the required callback fields."""
        with pytest.raises(ValidationError):
            parse_payload(Operation.RECORD_CALLBACK_REQUEST, {"caller_name": "", "purpose": "billing"})
