from water_billing.utils.logging import configure_logging, get_logger
from water_billing.utils.validators import normalize_phone, parse_decimal, whole_amount, account_reference

__all__ = [
    "configure_logging", "get_logger",
    "normalize_phone", "parse_decimal", "whole_amount", "account_reference",
]
