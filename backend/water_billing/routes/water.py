"""
Water Routes — Consumption reports, balance status, payment history and alerts.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from water_billing.config import BillingRates, get_billing_rates, get_settings
from water_billing.database import get_db
from water_billing.exceptions import ValidationError
from water_billing.schemas.schemas import (
    ConsumptionRequest, ConsumptionResponse, BalanceResponse,
    PaymentHistoryResponse, PaymentRecordOut, AlertListResponse, AlertOut,
)
from water_billing.services.alert_service import AlertService
from water_billing.services.balance_service import BalanceService
from water_billing.services.payment_service import PaymentService
from water_billing.utils.validators import parse_decimal

settings = get_settings()
router = APIRouter(prefix="/api", tags=["Water"])


@router.post("/water-usage", response_model=ConsumptionResponse)
def record_water_usage(
    payload: ConsumptionRequest,
    db: Session = Depends(get_db),
    rates: BillingRates = Depends(get_billing_rates),
):
    """Debit usage reported by a meter's microcontroller."""
    if payload.meter_number in (None, "") or payload.water_used is None:
        raise ValidationError("Missing fields: meterNumber and waterUsed are required")
    consumed = parse_decimal(payload.water_used, "waterUsed")

    result = BalanceService(db, rates).record_consumption(str(payload.meter_number), consumed)
    return ConsumptionResponse(
        meter_number=result.meter_number,
        remaining_quantity=result.remaining_quantity,
        status=result.status,
    )


@router.get("/water-status/{meter_number}", response_model=BalanceResponse)
def get_water_status(
    meter_number: str,
    db: Session = Depends(get_db),
    rates: BillingRates = Depends(get_billing_rates),
):
    """Current prepaid balance of a meter."""
    balance = BalanceService(db, rates).get_balance(meter_number)
    return BalanceResponse.model_validate(balance)


@router.get("/payment-history/{meter_number}", response_model=PaymentHistoryResponse)
def get_payment_history(
    meter_number: str,
    limit: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    rates: BillingRates = Depends(get_billing_rates),
):
    """Most recent top-ups for a meter, newest first."""
    page_size = min(limit or settings.PAYMENT_HISTORY_LIMIT, settings.PAYMENT_HISTORY_LIMIT)
    payments = PaymentService(db, rates).history(meter_number, limit=page_size)
    return PaymentHistoryResponse(payments=[PaymentRecordOut.model_validate(p) for p in payments])


@router.get("/alerts/{meter_number}", response_model=AlertListResponse)
def list_alerts(
    meter_number: str,
    resolved: Optional[bool] = None,
    db: Session = Depends(get_db),
):
    """Alerts raised for a meter, newest first."""
    alerts = AlertService.list_for_meter(db, meter_number, resolved=resolved, limit=settings.ALERT_LIST_LIMIT)
    return AlertListResponse(alerts=[AlertOut.model_validate(a) for a in alerts])


@router.post("/alerts/{alert_id}/resolve", response_model=AlertOut)
def resolve_alert(alert_id: int, db: Session = Depends(get_db)):
    """Mark an alert as handled."""
    return AlertOut.model_validate(AlertService.resolve(db, alert_id))
