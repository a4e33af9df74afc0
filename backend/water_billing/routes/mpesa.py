"""
M-Pesa Routes — STK push top-ups and the Safaricom callback webhook.
"""
import json

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from water_billing.config import BillingRates, get_billing_rates, get_settings
from water_billing.database import get_db
from water_billing.schemas.schemas import TopUpRequest, TopUpResponse, CallbackAck
from water_billing.services.mpesa_service import MpesaService, get_mpesa_service
from water_billing.services.payment_service import PaymentService, CALLBACK_ACK
from water_billing.utils.logging import get_logger
from water_billing.utils.rate_limiter import rate_limit

settings = get_settings()
logger = get_logger(__name__)
router = APIRouter(prefix="/mpesa", tags=["M-Pesa"])


@router.post("/stkpush", response_model=TopUpResponse)
def stk_push(
    payload: TopUpRequest,
    db: Session = Depends(get_db),
    mpesa: MpesaService = Depends(get_mpesa_service),
    rates: BillingRates = Depends(get_billing_rates),
    _throttle: bool = Depends(rate_limit(requests=settings.TOPUP_RATE_LIMIT, window=settings.TOPUP_RATE_WINDOW)),
):
    """Prompt the payer's phone for a water top-up."""
    service = PaymentService(db, rates, mpesa, country_code=settings.PHONE_COUNTRY_CODE)
    response = service.initiate_topup(
        phone=payload.phone_number,
        amount=payload.amount,
        meter_number=payload.meter_number,
        user_id=payload.user_id,
    )
    return TopUpResponse(
        CheckoutRequestID=response["CheckoutRequestID"],
        MerchantRequestID=response.get("MerchantRequestID"),
        ResponseCode=str(response.get("ResponseCode", "0")),
        ResponseDescription=response.get("ResponseDescription"),
        CustomerMessage=response.get("CustomerMessage"),
    )


@router.post("/callback", response_model=CallbackAck)
async def mpesa_callback(
    request: Request,
    db: Session = Depends(get_db),
    rates: BillingRates = Depends(get_billing_rates),
):
    """
    Always acknowledge with ResultCode 0. Safaricom retries anything else,
    which would re-run the whole reconciliation.
    """
    raw = await request.body()
    try:
        payload = json.loads(raw.decode("utf-8")) if raw else None
    except (UnicodeDecodeError, ValueError):
        logger.warning("Callback received invalid JSON body: %r", raw[:1000])
        payload = None

    try:
        return await run_in_threadpool(PaymentService(db, rates).handle_callback, payload)
    except Exception:
        # catch-all so the provider never sees a failure
        logger.exception("Unexpected error while handling M-Pesa callback")
        return dict(CALLBACK_ACK)
