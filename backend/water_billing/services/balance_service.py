"""
Balance Service — Credits paid top-ups and debits metered consumption.

Every write to a meter's balance is a conditional UPDATE on its version
column; a lost race rolls back and re-reads. Accumulators are incremented
in SQL so concurrent writers never overwrite each other's totals.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from water_billing.config import BillingRates, QUANTITY_SCALE
from water_billing.exceptions import NotFound, StoreError, ValidationError
from water_billing.models.alert import Alert, LOW_BALANCE, WATER_SHUTOFF
from water_billing.models.balance import ClientBalance, ACTIVE, WARNING, DEPLETED
from water_billing.models.payment import PaymentRequest
from water_billing.services.alert_service import AlertService
from water_billing.utils.logging import get_logger

logger = get_logger(__name__)

MAX_WRITE_ATTEMPTS = 5


class _WriteConflict(Exception):
    """Another writer bumped the balance version between read and write."""


def classify_balance(remaining: Decimal, threshold: Decimal) -> tuple[str, Optional[str]]:
    """Map a remaining quantity to (status, alert kind or None)."""
    if remaining <= 0:
        return DEPLETED, WATER_SHUTOFF
    if remaining <= threshold:
        return WARNING, LOW_BALANCE
    return ACTIVE, None


@dataclass
class ConsumptionResult:
    meter_number: str
    remaining_quantity: Decimal
    status: str
    alert: Optional[Alert] = None


class BalanceService:
    """Per-meter prepaid balance bookkeeping."""

    def __init__(self, db: Session, rates: BillingRates):
        self.db = db
        self.rates = rates

    def _load(self, meter_number: str) -> Optional[ClientBalance]:
        return (
            self.db.query(ClientBalance)
            .populate_existing()
            .filter(ClientBalance.meter_number == meter_number)
            .first()
        )

    def get_balance(self, meter_number: str) -> ClientBalance:
        try:
            balance = self._load(meter_number)
        except SQLAlchemyError as e:
            raise StoreError(f"Could not load balance: {e}")
        if not balance:
            raise NotFound(f"Client {meter_number} not found")
        return balance

    # ─── Credit ──────────────────────────────────────────────────────

    def credit_payment(
        self,
        transaction_id: str,
        amount,
        meter_number: str,
        phone: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Optional[Decimal]:
        """Convert a confirmed payment into water units and credit the meter.

        The payment is flagged ``processed`` in the same transaction as the
        balance write, gated on it not being processed yet, so a replayed
        callback never credits twice.

        Returns:
            The credited quantity, or None if the payment was already
            processed (or does not exist).
        """
        quantity = self.rates.quantity_for(amount)
        logger.info("Payment conversion: %s = %s %s", amount, quantity, self.rates.unit_label)

        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            try:
                remaining = self._try_credit(transaction_id, quantity, meter_number, phone, user_id)
            except (_WriteConflict, IntegrityError):
                self.db.rollback()
                logger.warning("Balance write conflict on meter %s (attempt %d)", meter_number, attempt)
                continue
            except SQLAlchemyError as e:
                self.db.rollback()
                raise StoreError(f"Could not credit meter {meter_number}: {e}")

            if remaining is None:
                logger.info("Payment %s already processed, skipping credit", transaction_id)
                return None

            logger.info("Credited meter %s: +%s, remaining %s", meter_number, quantity, remaining)
            if remaining <= 0:
                AlertService.raise_alert(self.db, meter_number, WATER_SHUTOFF, remaining, self.rates.unit_label)
            return quantity

        raise StoreError(f"Too many concurrent updates on meter {meter_number}")

    def _try_credit(self, transaction_id, quantity, meter_number, phone, user_id) -> Optional[Decimal]:
        now = datetime.utcnow()
        marked = self.db.execute(
            update(PaymentRequest)
            .where(
                PaymentRequest.transaction_id == transaction_id,
                PaymentRequest.processed.is_(False),
            )
            .values(
                processed=True,
                quantity_purchased=quantity,
                conversion_rate=self.rates.rate_per_unit,
                unit_size=self.rates.unit_size,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if marked.rowcount == 0:
            self.db.rollback()
            return None

        balance = self._load(meter_number)
        if balance is None:
            self.db.add(ClientBalance(
                meter_number=meter_number,
                user_id=user_id,
                phone=phone,
                remaining_quantity=quantity,
                total_purchased=quantity,
                consumption_total=Decimal("0"),
                status=ACTIVE if quantity > 0 else DEPLETED,
                version=1,
                last_top_up=now,
                last_updated=now,
            ))
            self.db.flush()
            self.db.commit()
            return quantity

        remaining = Decimal(balance.remaining_quantity or 0) + quantity
        written = self.db.execute(
            update(ClientBalance)
            .where(
                ClientBalance.meter_number == meter_number,
                ClientBalance.version == balance.version,
            )
            .values(
                remaining_quantity=remaining,
                total_purchased=ClientBalance.total_purchased + quantity,
                status=ACTIVE if remaining > 0 else DEPLETED,
                last_top_up=now,
                last_updated=now,
                version=ClientBalance.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if written.rowcount == 0:
            raise _WriteConflict()
        self.db.commit()
        return remaining

    # ─── Debit ───────────────────────────────────────────────────────

    def record_consumption(self, meter_number: str, consumed: Decimal) -> ConsumptionResult:
        """Debit metered usage and re-evaluate the low balance thresholds."""
        if consumed < 0:
            raise ValidationError("waterUsed cannot be negative")
        consumed = consumed.quantize(QUANTITY_SCALE, rounding=ROUND_HALF_UP)

        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            try:
                balance = self._load(meter_number)
                if not balance:
                    raise NotFound(f"Client {meter_number} not found")

                remaining = Decimal(balance.remaining_quantity or 0) - consumed
                status, alert_kind = classify_balance(remaining, self.rates.low_balance_threshold)

                written = self.db.execute(
                    update(ClientBalance)
                    .where(
                        ClientBalance.meter_number == meter_number,
                        ClientBalance.version == balance.version,
                    )
                    .values(
                        remaining_quantity=remaining,
                        consumption_total=ClientBalance.consumption_total + consumed,
                        last_consumption=consumed,
                        status=status,
                        last_updated=datetime.utcnow(),
                        version=ClientBalance.version + 1,
                    )
                    .execution_options(synchronize_session=False)
                )
                if written.rowcount == 0:
                    self.db.rollback()
                    logger.warning("Balance write conflict on meter %s (attempt %d)", meter_number, attempt)
                    continue
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                raise StoreError(f"Could not record consumption for meter {meter_number}: {e}")
            break
        else:
            raise StoreError(f"Too many concurrent updates on meter {meter_number}")

        logger.info("Meter %s used %s, remaining %s (%s)", meter_number, consumed, remaining, status)

        alert = None
        if alert_kind:
            alert = AlertService.raise_alert(self.db, meter_number, alert_kind, remaining, self.rates.unit_label)
        return ConsumptionResult(meter_number, remaining, status, alert)
