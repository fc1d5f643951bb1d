"""Unit tests for caller identifier redaction."""
import pytest

from intake_agent.utils.phi_redactor import PHIRedactor, mask_phone, redact_phi, redact_phi_dict


@pytest.mark.unit
class TestPHIRedactor:
    """Test redaction of caller identifiers in log text."""

    @pytest.fixture
    def redactor(self):
        """Create a PHI redactor instance."""
        return PHIRedactor()

    def test_redact_ssn(self, redactor):
        """Test SSN redaction."""
        redacted = redactor.redact("My SSN is 123-45-6789")

        assert redacted == "My SSN is [REDACTED]"

    def test_redact_phone(self, redactor):
        """Test that phone numbers keep only the last four digits."""
        assert redactor.redact("Call me at 555-123-4567") == "Call me at ***4567"

    def test_redact_phone_formats(self, redactor):
        """Test various phone number formats."""
        for phone in ["(555) 123-4567", "555.123.4567", "5551234567", "+1-555-123-4567"]:
            redacted = redactor.redact(f"Phone: {phone}")

            assert phone not in redacted
            assert redacted.endswith("***4567")

    def test_redact_email(self, redactor):
        """Test that emails keep only the domain."""
        assert redactor.redact("Email: maria@example.com") == "Email: ***@example.com"

    def test_redact_dates_full_level(self, redactor):
        """Test that dates of birth keep only the year."""
        assert redactor.redact("Born 03/15/1962") == "Born XX/XX/1962"
        assert redactor.redact("dob=1962-03-15") == "dob=XX/XX/1962"

    def test_partial_level_keeps_dates(self, redactor):
        """Test that partial redaction leaves dates alone."""
        redacted = redactor.redact("Denied on 01/10/2025, call 555-123-4567", redact_level="partial")

        assert "01/10/2025" in redacted
        assert "***4567" in redacted

    def test_minimal_level_only_ssn(self, redactor):
        """Test that minimal redaction only removes SSNs."""
        redacted = redactor.redact("SSN 123-45-6789 phone 555-123-4567", redact_level="minimal")

        assert redacted == "SSN [REDACTED] phone 555-123-4567"

    def test_empty_text(self, redactor):
        """Test that empty input is returned unchanged."""
        assert redactor.redact("") == ""
        assert redactor.redact(None) is None

    def test_redact_dict(self, redactor):
        """Test nested dictionaries with sensitive keys."""
        data = {
            "first_name": "Maria",
            "caller_phone": "+15551234567",
            "notes": "SSN 123-45-6789",
            "medical": {"conditions": ["lupus"], "hospitalizations": 2},
            "age": 58,
        }

        redacted = redactor.redact_dict(data)

        assert redacted == {
            "first_name": "[REDACTED]",
            "caller_phone": "***4567",
            "notes": "SSN [REDACTED]",
            "medical": {"conditions": ["lupus"], "hospitalizations": 2},
            "age": 58,
        }
        assert data["first_name"] == "Maria"

    def test_mask_phone(self):
        """Test phone masking edge cases."""
        assert mask_phone("+1 (555) 123-4567") == "***4567"
        assert mask_phone("12") == "***"
        assert mask_phone(None) == "none"

    def test_convenience_functions(self):
        """Test the module-level helpers."""
        assert redact_phi("SSN 123-45-6789") == "SSN [REDACTED]"
        assert redact_phi_dict({"email": "maria@example.com"}) == {"email": "[REDACTED]"}
