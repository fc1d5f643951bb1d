"""Redaction of caller identifiers before they reach the logs.

Intake calls carry health details together with names, phone numbers,
dates of birth and Social Security numbers. Log lines keep enough context
to debug a call (last four digits, email domain, birth year) and drop the
rest.
"""
import re
from typing import Dict, List, Optional


class PHIRedactor:
    """Redacts caller identifiers from free text and structured payloads."""

    DEFAULT_SENSITIVE_KEYS = (
        "first_name", "last_name", "caller_name", "full_name",
        "date_of_birth", "dob", "ssn", "social_security",
        "email", "phone", "phone_number", "caller_phone",
    )

    def __init__(self, placeholder: str = "[REDACTED]"):
        """Initialize redactor.

        Args:
            placeholder: String to replace fully redacted values with
        """
        self.placeholder = placeholder
        self._compile_patterns()

    def _compile_patterns(self) -> None:
        """Compile regex patterns for identifier detection."""

        # Social Security Numbers: ###-##-####
        self.ssn_pattern = re.compile(
            r'\b\d{3}[-\s]\d{2}[-\s]\d{4}\b'
        )

        # Phone numbers, with or without country code
        self.phone_pattern = re.compile(
            r'(?:\+?1[-.\s]?)?\(?\b\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b'
        )

        # Email addresses
        self.email_pattern = re.compile(
            r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b'
        )

        # Dates: MM/DD/YYYY, MM-DD-YYYY, YYYY-MM-DD
        self.date_pattern = re.compile(
            r'\b(?:\d{1,2}[-/]\d{1,2}[-/]\d{2,4}|\d{4}-\d{2}-\d{2})\b'
        )

    def redact(self, text: str, redact_level: str = "full") -> str:
        """Redact identifiers from text.

        Args:
            text: Text to redact
            redact_level: "minimal" (SSN only), "partial" (plus contact
                details) or "full" (plus dates)

        Returns:
            Redacted text
        """
        if not text:
            return text

        redacted = self.ssn_pattern.sub(self.placeholder, text)

        if redact_level in ("partial", "full"):
            redacted = self.phone_pattern.sub(lambda m: mask_phone(m.group(0)), redacted)
            redacted = self.email_pattern.sub(self._redact_email, redacted)

        if redact_level == "full":
            redacted = self.date_pattern.sub(self._redact_date, redacted)

        return redacted

    def _redact_email(self, match) -> str:
        """Keep only the domain of an email address."""
        email = match.group(0)
        return f"***@{email.split('@', 1)[1]}"

    def _redact_date(self, match) -> str:
        """Keep only the year of a date."""
        years = re.findall(r'\d{4}', match.group(0))
        return f"XX/XX/{years[0]}" if years else self.placeholder

    def redact_dict(
        self,
        data: Dict,
        sensitive_keys: Optional[List[str]] = None,
        redact_level: str = "full"
    ) -> Dict:
        """Redact identifiers from a (possibly nested) dictionary.

        Args:
            data: Dictionary to redact
            sensitive_keys: Keys whose string values are replaced outright
            redact_level: Redaction level for the remaining string values

        Returns:
            New dictionary with redacted values
        """
        keys = tuple(sensitive_keys) if sensitive_keys is not None else self.DEFAULT_SENSITIVE_KEYS

        redacted = {}
        for key, value in data.items():
            if isinstance(value, str):
                if key.lower() in keys:
                    redacted[key] = mask_phone(value) if "phone" in key.lower() else self.placeholder
                else:
                    redacted[key] = self.redact(value, redact_level)
            elif isinstance(value, dict):
                redacted[key] = self.redact_dict(value, list(keys), redact_level)
            elif isinstance(value, list):
                redacted[key] = [
                    self.redact(item, redact_level) if isinstance(item, str)
                    else self.redact_dict(item, list(keys), redact_level) if isinstance(item, dict)
                    else item
                    for item in value
                ]
            else:
                redacted[key] = value

        return redacted


def mask_phone(phone: Optional[str]) -> str:
    """Mask all but the last four digits of a phone number."""
    if not phone:
        return "none"
    digits = re.sub(r'\D', '', phone)
    if len(digits) < 4:
        return "***"
    return f"***{digits[-4:]}"


# Global singleton instance
_redactor = None


def get_phi_redactor(placeholder: str = "[REDACTED]") -> PHIRedactor:
    """Get global redactor instance."""
    global _redactor
    if _redactor is None:
        _redactor = PHIRedactor(placeholder)
    return _redactor


def redact_phi(text: str, level: str = "full") -> str:
    """Convenience function to redact identifiers from text."""
    return get_phi_redactor().redact(text, level)


def redact_phi_dict(data: Dict, level: str = "full") -> Dict:
    """Convenience function to redact identifiers from a dictionary."""
    return get_phi_redactor().redact_dict(data, redact_level=level)
