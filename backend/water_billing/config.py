"""
Application Configuration — Environment & Settings
Centralizes all config from .env with Pydantic Settings for validation.
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Resolve paths relative to backend/ directory
BASE_DIR = Path(__file__).resolve().parent.parent

# Water quantities are stored as Numeric(18, 3)
QUANTITY_SCALE = Decimal("0.001")


@dataclass(frozen=True)
class BillingRates:
    """Conversion from paid currency to water units, plus alert threshold.

    ``rate_per_unit`` currency units buy ``unit_size`` water units, so the
    default 1/1 configuration credits one unit per shilling and a tiered
    configuration such as 50/1000 credits 1000 litres per 50 KES.
    """

    rate_per_unit: Decimal = Decimal("1")
    unit_size: Decimal = Decimal("1")
    low_balance_threshold: Decimal = Decimal("10")
    unit_label: str = "units"

    def __post_init__(self):
        if self.rate_per_unit <= 0 or self.unit_size <= 0:
            raise ValueError("rate_per_unit and unit_size must be positive")

    def quantity_for(self, amount) -> Decimal:
        """Water units credited for a paid amount, at storage precision."""
        quantity = (Decimal(str(amount)) / self.rate_per_unit) * self.unit_size
        return quantity.quantize(QUANTITY_SCALE, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class MpesaCredentials:
    """Everything the Daraja client needs, fixed at construction."""

    base_url: str
    consumer_key: str
    consumer_secret: str
    shortcode: str
    passkey: str
    callback_url: str
    transaction_type: str = "CustomerPayBillOnline"
    transaction_desc: str = "Water Bill Payment"
    token_timeout: float = 10.0
    request_timeout: float = 15.0


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # --- Core ---
    APP_NAME: str = "Prepaid Water Billing API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # --- Database ---
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'data' / 'water_billing.db'}"

    # --- M-Pesa (Daraja) ---
    MPESA_BASE_URL: str = "https://sandbox.safaricom.co.ke"
    MPESA_CONSUMER_KEY: str = ""
    MPESA_CONSUMER_SECRET: str = ""
    MPESA_SHORTCODE: str = "174379"
    MPESA_PASSKEY: str = ""
    MPESA_CALLBACK_URL: str = ""
    MPESA_TRANSACTION_TYPE: str = "CustomerPayBillOnline"
    MPESA_TRANSACTION_DESC: str = "Water Bill Payment"
    MPESA_TOKEN_TIMEOUT: float = 10.0
    MPESA_REQUEST_TIMEOUT: float = 15.0
    PHONE_COUNTRY_CODE: str = "254"

    # --- Water Billing ---
    RATE_PER_UNIT: Decimal = Decimal("1")
    UNIT_SIZE: Decimal = Decimal("1")
    UNIT_LABEL: str = "units"
    CURRENCY: str = "KES"
    LOW_BALANCE_THRESHOLD: Decimal = Decimal("10")
    PAYMENT_HISTORY_LIMIT: int = 10
    ALERT_LIST_LIMIT: int = 50
    TELEMETRY_LOG_LIMIT: int = 50

    # --- Security ---
    CORS_ORIGINS: list[str] = ["*"]
    TOPUP_RATE_LIMIT: int = 5
    TOPUP_RATE_WINDOW: int = 60

    # --- Logging ---
    LOG_DIR: str = str(BASE_DIR / "logs")
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = True

    class Config:
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True
        frozen = True

    def billing_rates(self) -> BillingRates:
        return BillingRates(
            rate_per_unit=self.RATE_PER_UNIT,
            unit_size=self.UNIT_SIZE,
            low_balance_threshold=self.LOW_BALANCE_THRESHOLD,
            unit_label=self.UNIT_LABEL,
        )

    def mpesa_credentials(self) -> MpesaCredentials:
        return MpesaCredentials(
            base_url=self.MPESA_BASE_URL.rstrip("/"),
            consumer_key=self.MPESA_CONSUMER_KEY,
            consumer_secret=self.MPESA_CONSUMER_SECRET,
            shortcode=self.MPESA_SHORTCODE,
            passkey=self.MPESA_PASSKEY,
            callback_url=self.MPESA_CALLBACK_URL,
            transaction_type=self.MPESA_TRANSACTION_TYPE,
            transaction_desc=self.MPESA_TRANSACTION_DESC,
            token_timeout=self.MPESA_TOKEN_TIMEOUT,
            request_timeout=self.MPESA_REQUEST_TIMEOUT,
        )


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


def get_billing_rates() -> BillingRates:
    """FastAPI dependency: the configured billing rates."""
    return get_settings().billing_rates()
