"""
Alert Service — Records low balance and shutoff alerts for a meter.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from water_billing.exceptions import NotFound, StoreError
from water_billing.models.alert import Alert, LOW_BALANCE, WATER_SHUTOFF
from water_billing.utils.logging import get_logger

logger = get_logger(__name__)

_PRIORITY = {WATER_SHUTOFF: "high", LOW_BALANCE: "medium"}


class AlertService:
    """Creates, lists and resolves meter alerts."""

    @staticmethod
    def build_message(kind: str, remaining: Optional[Decimal], unit_label: str = "units") -> str:
        if kind == WATER_SHUTOFF:
            return "Water units depleted - flow stopped"
        return f"Low water balance: {remaining.normalize():f} {unit_label} remaining"

    @staticmethod
    def raise_alert(
        db: Session,
        meter_number: str,
        kind: str,
        remaining: Optional[Decimal] = None,
        unit_label: str = "units",
    ) -> Optional[Alert]:
        """Persist an alert. Failures are logged and never propagate.

        Returns:
            The created Alert, or None if it could not be stored.
        """
        try:
            alert = Alert(
                meter_number=meter_number,
                kind=kind,
                message=AlertService.build_message(kind, remaining, unit_label),
                priority=_PRIORITY[kind],
                remaining_quantity=remaining,
                resolved=False,
                created_at=datetime.utcnow(),
            )
            db.add(alert)
            db.commit()
            db.refresh(alert)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to record %s alert for meter %s", kind, meter_number)
            return None

        logger.info("Alert %s raised for meter %s", kind, meter_number)
        return alert

    @staticmethod
    def list_for_meter(db: Session, meter_number: str, resolved: Optional[bool] = None, limit: int = 50) -> list[Alert]:
        query = db.query(Alert).filter(Alert.meter_number == meter_number)
        if resolved is not None:
            query = query.filter(Alert.resolved.is_(resolved))
        try:
            return query.order_by(Alert.created_at.desc(), Alert.id.desc()).limit(limit).all()
        except SQLAlchemyError as e:
            raise StoreError(f"Could not load alerts: {e}")

    @staticmethod
    def resolve(db: Session, alert_id: int) -> Alert:
        alert = db.query(Alert).filter(Alert.id == alert_id).first()
        if not alert:
            raise NotFound(f"Alert {alert_id} not found")
        if not alert.resolved:
            alert.resolved = True
            alert.resolved_at = datetime.utcnow()
            try:
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StoreError(f"Could not resolve alert: {e}")
            db.refresh(alert)
        return alert
