"""Input validation utilities for the intake line."""
import re
from datetime import date, datetime
from typing import Optional, Tuple

from intake_agent.utils.logger import get_logger

logger = get_logger(__name__)

# Formats the speech model is likely to produce when asked for a date
_DATE_FORMATS = (
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%m/%d/%y",
    "%B %d, %Y",
    "%B %d %Y",
    "%b %d, %Y",
    "%b %d %Y",
    "%d %B %Y",
)


class InputValidator:
    """Validates and normalizes values extracted from the conversation."""

    @staticmethod
    def validate_phone_number(phone_input: str) -> Tuple[bool, Optional[str]]:
        """Validate a US phone number and format it as E.164."""
        if not phone_input:
            return False, None

        # Remove all non-digits
        digits = re.sub(r'[^0-9]', '', phone_input)

        # 10 digits (US phone)
        if len(digits) == 10:
            return True, f"+1{digits}"

        # 11 digits starting with 1
        elif len(digits) == 11 and digits[0] == '1':
            return True, f"+{digits}"

        # Already international
        elif phone_input.strip().startswith('+') and 10 <= len(digits) <= 15:
            return True, f"+{digits}"

        return False, None

    @staticmethod
    def validate_email(email_input: str) -> Tuple[bool, Optional[str]]:
        """Validate email address."""
        if not email_input:
            return False, None

        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'

        cleaned = email_input.strip().lower()

        if re.match(email_pattern, cleaned):
            return True, cleaned

        return False, None

    @staticmethod
    def parse_date(date_input) -> Optional[date]:
        """Parse a date given in one of the common spoken/written formats.

        Returns None when the value cannot be understood.
        """
        if date_input is None:
            return None
        if isinstance(date_input, datetime):
            return date_input.date()
        if isinstance(date_input, date):
            return date_input

        cleaned = re.sub(r'(\d)(st|nd|rd|th)\b', r'\1', str(date_input).strip())
        if not cleaned:
            return None

        # ISO timestamps ("2024-03-05T00:00:00Z")
        if 'T' in cleaned and cleaned[:4].isdigit():
            cleaned = cleaned.split('T', 1)[0]

        for fmt in _DATE_FORMATS:
            try:
                return datetime.strptime(cleaned, fmt).date()
            except ValueError:
                continue

        logger.debug(f"Unparseable date value: {cleaned!r}")
        return None

    @staticmethod
    def calculate_age(date_of_birth: date, today: Optional[date] = None) -> int:
        """Whole years between date_of_birth and today.

        One year is subtracted when today's month/day falls before the
        birthday.
        """
        today = today or date.today()
        age = today.year - date_of_birth.year
        if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
            age -= 1
        return age

    @staticmethod
    def coerce_number(value) -> Optional[float]:
        """Accept ints, floats and numeric strings like '20 lbs'."""
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return float(value)
        match = re.search(r'-?\d+(?:\.\d+)?', str(value))
        if match:
            return float(match.group(0))
        return None
