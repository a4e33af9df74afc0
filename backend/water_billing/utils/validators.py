"""
Validators — Phone normalization and numeric input checks for billing requests.
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from water_billing.exceptions import ValidationError
from water_billing.utils.logging import get_logger

logger = get_logger(__name__)

# Safaricom mobile ranges start with 7 (07xx) or 1 (01xx) after the trunk 0
MOBILE_LEADING_DIGITS = ("7", "1")


def normalize_phone(phone: str | int | None, country_code: str = "254") -> str:
    """Normalize a subscriber number to the international form M-Pesa expects.

    "0712345678", "712345678", "+254 712 345 678" all become "254712345678".
    Numbers that fit none of the known shapes are passed through as digits.
    """
    digits = re.sub(r"\D", "", str(phone or ""))
    if not digits:
        raise ValidationError("Invalid phone number")

    if digits.startswith("0"):
        return country_code + digits[1:]
    if len(digits) == 9 and digits[0] in MOBILE_LEADING_DIGITS:
        return country_code + digits
    if digits.startswith(country_code) and len(digits) >= 12:
        return digits

    logger.warning("Unrecognized phone format %s, passing through", digits)
    return digits


def parse_decimal(value, field: str) -> Decimal:
    """Coerce a JSON number or numeric string into a Decimal."""
    if value is None or value == "":
        raise ValidationError(f"Missing field: {field}")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be numeric")
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field} must be numeric")
    if not number.is_finite():
        raise ValidationError(f"{field} must be numeric")
    return number


def whole_amount(amount: Decimal) -> int:
    """M-Pesa only accepts whole shillings: round half-up."""
    rounded = int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if rounded < 1:
        raise ValidationError("amount must be at least 1 after rounding")
    return rounded


def account_reference(meter_number: str, max_length: int = 12) -> str:
    """AccountReference is capped at 12 characters by Daraja."""
    return meter_number.strip()[:max_length]
