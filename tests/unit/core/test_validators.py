"""Unit tests for input validators."""
import pytest
from datetime import date, datetime, timedelta

from intake_agent.core.validators import InputValidator


@pytest.mark.unit
class TestInputValidator:
    """Test input validation functions."""

    def test_validate_phone_number_valid(self):
        """Test validating a valid phone number."""
        valid, cleaned = InputValidator.validate_phone_number("555-123-4567")
        assert valid is True
        assert cleaned == "+15551234567"

    def test_validate_phone_number_with_country_code(self):
        """Test phone number with country code."""
        valid, cleaned = InputValidator.validate_phone_number("+1 (555) 123-4567")
        assert valid is True
        assert cleaned == "+15551234567"

    def test_validate_phone_number_international(self):
        """Test a non-US number that already carries a plus sign."""
        valid, cleaned = InputValidator.validate_phone_number("+44 20 7946 0958")
        assert valid is True
        assert cleaned == "+442079460958"

    def test_validate_phone_number_too_short(self):
        """Test invalid phone number (too short)."""
        valid, cleaned = InputValidator.validate_phone_number("555123")
        assert valid is False
        assert cleaned is None

    def test_validate_phone_number_invalid_characters(self):
        """Test phone number with invalid characters."""
        valid, cleaned = InputValidator.validate_phone_number("abc-defg-hijk")
        assert valid is False

    def test_validate_email_valid(self):
        """Test validating a valid email."""
        valid, cleaned = InputValidator.validate_email(" Test@Example.com ")
        assert valid is True
        assert cleaned == "test@example.com"

    def test_validate_email_invalid(self):
        """Test invalid email formats."""
        assert InputValidator.validate_email("invalid")[0] is False
        assert InputValidator.validate_email("@example.com")[0] is False
        assert InputValidator.validate_email("test@")[0] is False
        assert InputValidator.validate_email("")[0] is False

    def test_parse_date_formats(self):
        """Test dates in the formats the model tends to produce."""
        expected = date(1968, 3, 5)
        assert InputValidator.parse_date("1968-03-05") == expected
        assert InputValidator.parse_date("03/05/1968") == expected
        assert InputValidator.parse_date("March 5, 1968") == expected
        assert InputValidator.parse_date("March 5th, 1968") == expected
        assert InputValidator.parse_date("1968-03-05T00:00:00Z") == expected

    def test_parse_date_passthrough(self):
        """Test that date and datetime values are accepted as is."""
        assert InputValidator.parse_date(date(2020, 1, 2)) == date(2020, 1, 2)
        assert InputValidator.parse_date(datetime(2020, 1, 2, 9, 30)) == date(2020, 1, 2)

    def test_parse_date_unparseable(self):
        """Test that unknown values give None."""
        assert InputValidator.parse_date("sometime last spring") is None
        assert InputValidator.parse_date("") is None
        assert InputValidator.parse_date(None) is None

    def test_calculate_age_before_birthday(self):
        """Test that a birthday later in the year is not yet counted."""
        dob = date(1970, 12, 31)
        assert InputValidator.calculate_age(dob, date(2025, 6, 1)) == 54
        assert InputValidator.calculate_age(dob, date(2025, 12, 31)) == 55

    @pytest.mark.parametrize("years", [18, 49, 50, 55, 60])
    @pytest.mark.parametrize("reference", [date(2025, 6, 10), date(2025, 1, 1), date(2024, 12, 31)])
    def test_calculate_age_one_day_around_birthday(self, reference, years):
        """Test that birthdays one day apart around the anniversary differ by one year of age."""
        anniversary = reference.replace(year=reference.year - years)

        day_before = InputValidator.calculate_age(anniversary - timedelta(days=1), reference)
        on_the_day = InputValidator.calculate_age(anniversary, reference)
        day_after = InputValidator.calculate_age(anniversary + timedelta(days=1), reference)

        assert day_before == years
        assert on_the_day == years
        assert day_after == years - 1
        assert day_before - day_after == 1

    def test_coerce_number(self):
        """Test extracting numbers from loosely typed values."""
        assert InputValidator.coerce_number(10) == 10.0
        assert InputValidator.coerce_number("20 lbs") == 20.0
        assert InputValidator.coerce_number("about 2.5 blocks") == 2.5
        assert InputValidator.coerce_number("no idea") is None
        assert InputValidator.coerce_number(True) is None
