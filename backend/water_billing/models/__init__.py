from water_billing.models.payment import PaymentRequest
from water_billing.models.balance import ClientBalance
from water_billing.models.alert import Alert
from water_billing.models.telemetry import AccountProfile, LiveTelemetry, TelemetryLog

__all__ = ["PaymentRequest", "ClientBalance", "Alert", "AccountProfile", "LiveTelemetry", "TelemetryLog"]
