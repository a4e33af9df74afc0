from water_billing.services.mpesa_service import MpesaService
from water_billing.services.alert_service import AlertService
from water_billing.services.balance_service import BalanceService
from water_billing.services.payment_service import PaymentService
from water_billing.services.telemetry_service import TelemetryService

__all__ = ["MpesaService", "AlertService", "BalanceService", "PaymentService", "TelemetryService"]
