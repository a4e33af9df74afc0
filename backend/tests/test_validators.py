from decimal import Decimal

import pytest

from water_billing.exceptions import ValidationError
from water_billing.utils.validators import normalize_phone, parse_decimal, whole_amount, account_reference


class TestNormalizePhone:
    @pytest.mark.parametrize("raw", ["0712345678", "712345678", "254712345678", "+254 712 345 678", 254712345678])
    def test_known_shapes_become_international(self, raw):
        assert normalize_phone(raw) == "254712345678"

    def test_safaricom_01_range(self):
        assert normalize_phone("0110123456") == "254110123456"
        assert normalize_phone("110123456") == "254110123456"

    def test_other_country_code(self):
        assert normalize_phone("0971234567", country_code="260") == "260971234567"

    def test_unknown_shape_passes_through(self):
        assert normalize_phone("12345") == "12345"

    def test_no_digits_is_rejected(self):
        with pytest.raises(ValidationError):
            normalize_phone("not-a-phone")
        with pytest.raises(ValidationError):
            normalize_phone(None)


class TestParseDecimal:
    def test_accepts_numbers_and_numeric_strings(self):
        assert parse_decimal(100, "amount") == Decimal("100")
        assert parse_decimal("99.5", "amount") == Decimal("99.5")
        assert parse_decimal(0.1, "amount") == Decimal("0.1")

    @pytest.mark.parametrize("value", ["abc", "NaN", "Infinity", True])
    def test_rejects_non_numeric(self, value):
        with pytest.raises(ValidationError):
            parse_decimal(value, "amount")

    def test_missing_value(self):
        with pytest.raises(ValidationError, match="Missing field: waterUsed"):
            parse_decimal(None, "waterUsed")


class TestWholeAmount:
    def test_rounds_half_up(self):
        assert whole_amount(Decimal("99.5")) == 100
        assert whole_amount(Decimal("99.4")) == 99
        assert whole_amount(Decimal("100")) == 100

    def test_rejects_amount_rounding_to_zero(self):
        with pytest.raises(ValidationError):
            whole_amount(Decimal("0.4"))


def test_account_reference_is_truncated_to_twelve_characters():
    assert account_reference("MTR1") == "MTR1"
    assert account_reference("METER-0000012345") == "METER-000001"
