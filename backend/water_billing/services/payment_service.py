"""
Payment Service — STK push top-ups and their asynchronous callbacks.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from water_billing.config import BillingRates
from water_billing.exceptions import BillingError, StoreError, ValidationError
from water_billing.models.payment import PaymentRequest, PENDING, SUCCESS, FAILED
from water_billing.services.balance_service import BalanceService
from water_billing.services.mpesa_service import MpesaService
from water_billing.utils.logging import get_logger
from water_billing.utils.validators import normalize_phone, parse_decimal, whole_amount, account_reference

logger = get_logger(__name__)

CALLBACK_ACK = {"ResultCode": 0, "ResultDesc": "Success"}


@dataclass
class StkCallback:
    """The parts of ``Body.stkCallback`` the reconciliation flow needs."""

    checkout_request_id: str
    result_code: int
    result_desc: Optional[str] = None
    merchant_request_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.result_code == 0

    @property
    def amount(self):
        return self.metadata.get("Amount")

    @property
    def receipt_number(self) -> Optional[str]:
        receipt = self.metadata.get("MpesaReceiptNumber")
        return str(receipt) if receipt is not None else None


def parse_stk_callback(payload: Any) -> Optional[StkCallback]:
    """
    Parse an M-Pesa STK callback payload.

    Expected shape::

        {"Body": {"stkCallback": {
            "MerchantRequestID": "29115-34620561-1",
            "CheckoutRequestID": "ws_CO_191220191020363925",
            "ResultCode": 0,
            "ResultDesc": "The service request is processed successfully.",
            "CallbackMetadata": {"Item": [
                {"Name": "Amount", "Value": 1.00},
                {"Name": "MpesaReceiptNumber", "Value": "NLJ7RT61SV"},
                {"Name": "TransactionDate", "Value": 20191219102115},
                {"Name": "PhoneNumber", "Value": 254708374149}]}}}}

    Returns None for anything that does not carry a CheckoutRequestID and an
    integer ResultCode.
    """
    if not isinstance(payload, dict):
        return None
    body = payload.get("Body")
    stk = body.get("stkCallback") if isinstance(body, dict) else None
    if not isinstance(stk, dict):
        return None

    checkout_request_id = stk.get("CheckoutRequestID")
    if not checkout_request_id:
        return None
    try:
        result_code = int(stk.get("ResultCode"))
    except (TypeError, ValueError):
        return None

    metadata = {}
    callback_metadata = stk.get("CallbackMetadata")
    items = callback_metadata.get("Item") if isinstance(callback_metadata, dict) else None
    for item in items or []:
        if isinstance(item, dict) and item.get("Name"):
            metadata[item["Name"]] = item.get("Value")

    return StkCallback(
        checkout_request_id=str(checkout_request_id),
        result_code=result_code,
        result_desc=stk.get("ResultDesc"),
        merchant_request_id=stk.get("MerchantRequestID"),
        metadata=metadata,
    )


class PaymentService:
    """Initiates top-ups and reconciles provider callbacks against them."""

    def __init__(
        self,
        db: Session,
        rates: BillingRates,
        mpesa: Optional[MpesaService] = None,
        country_code: str = "254",
    ):
        self.db = db
        self.rates = rates
        self.mpesa = mpesa
        self.country_code = country_code

    # ─── Payment Initiator ───────────────────────────────────────────

    def initiate_topup(self, phone, amount, meter_number, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Send an STK push and record the pending payment once M-Pesa accepts it.

        Returns:
            The provider response (CheckoutRequestID, MerchantRequestID, ...).
        """
        if not phone or amount is None or amount == "" or not meter_number:
            raise ValidationError("Missing fields: phoneNumber, amount, meterNumber are required")
        value = parse_decimal(amount, "amount")
        if value <= 0:
            raise ValidationError("amount must be greater than 0")

        msisdn = normalize_phone(phone, self.country_code)
        charged = whole_amount(value)
        meter_number = str(meter_number).strip()

        response = self.mpesa.stk_push(msisdn, charged, account_reference(meter_number))

        now = datetime.utcnow()
        payment = PaymentRequest(
            transaction_id=response["CheckoutRequestID"],
            merchant_request_id=response.get("MerchantRequestID"),
            user_id=user_id or "unknown",
            phone=msisdn,
            amount=charged,
            meter_number=meter_number,
            status=PENDING,
            processed=False,
            quantity_purchased=0,
            created_at=now,
            updated_at=now,
        )
        try:
            self.db.add(payment)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Could not record pending payment %s: %s", response.get("CheckoutRequestID"), e)
            raise StoreError("Payment was submitted but could not be recorded")

        logger.info("Pending payment %s recorded for meter %s", payment.transaction_id, meter_number)
        return response

    # ─── Callback Receiver ───────────────────────────────────────────

    def handle_callback(self, payload: Any) -> Dict[str, Any]:
        """Apply a provider callback. Always returns the acknowledgment."""
        callback = parse_stk_callback(payload)
        if callback is None:
            logger.warning("Callback missing stkCallback payload: %s", payload)
            return dict(CALLBACK_ACK)

        status = SUCCESS if callback.succeeded else FAILED
        logger.info("Processing callback for transaction %s: %s", callback.checkout_request_id, status)

        try:
            payment = self._apply_result(callback, status)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to record callback for %s", callback.checkout_request_id)
            return dict(CALLBACK_ACK)

        if payment is None:
            logger.warning("No payment record found for transactionId: %s", callback.checkout_request_id)
        elif payment.status == SUCCESS and not payment.processed:
            self._credit(payment, callback)

        return dict(CALLBACK_ACK)

    def _apply_result(self, callback: StkCallback, status: str) -> Optional[PaymentRequest]:
        """Move a Pending payment to its terminal status in one conditional write."""
        result = self.db.execute(
            update(PaymentRequest)
            .where(
                PaymentRequest.transaction_id == callback.checkout_request_id,
                PaymentRequest.status == PENDING,
            )
            .values(
                status=status,
                result_code=callback.result_code,
                result_desc=callback.result_desc,
                receipt_number=callback.receipt_number,
                callback_metadata=callback.metadata,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

        payment = (
            self.db.query(PaymentRequest)
            .populate_existing()
            .filter(PaymentRequest.transaction_id == callback.checkout_request_id)
            .first()
        )
        if payment is not None and result.rowcount == 0:
            logger.info("Payment %s already %s, not transitioning again", payment.transaction_id, payment.status)
        return payment

    def _credit(self, payment: PaymentRequest, callback: StkCallback) -> None:
        amount = callback.amount if callback.amount is not None else payment.amount
        try:
            BalanceService(self.db, self.rates).credit_payment(
                transaction_id=payment.transaction_id,
                amount=amount,
                meter_number=payment.meter_number,
                phone=payment.phone,
                user_id=payment.user_id,
            )
        except (BillingError, SQLAlchemyError, ArithmeticError):
            self.db.rollback()
            logger.exception("Balance update failed for payment %s", payment.transaction_id)

    # ─── Queries ─────────────────────────────────────────────────────

    def history(self, meter_number: str, limit: int = 10) -> list[PaymentRequest]:
        try:
            return (
                self.db.query(PaymentRequest)
                .filter(PaymentRequest.meter_number == meter_number)
                .order_by(PaymentRequest.created_at.desc(), PaymentRequest.id.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            raise StoreError(f"Could not load payment history: {e}")
