"""
Telemetry Service — Mirrors live microcontroller readings into per-meter logs.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from water_billing.exceptions import NotFound, StoreError, ValidationError
from water_billing.models.telemetry import AccountProfile, LiveTelemetry, TelemetryLog
from water_billing.utils.logging import get_logger

logger = get_logger(__name__)


class TelemetryService:
    """Live telemetry writes and their mirroring into meter logs."""

    @staticmethod
    def mirror(db: Session, user_id: str, data: Optional[Dict[str, Any]]) -> Optional[TelemetryLog]:
        """Append the live reading of ``user_id`` to its meter's log.

        Fire-and-forget: a deleted record, an unknown account or a store
        failure is logged and yields None instead of raising.
        """
        if not data:
            logger.info("Live data deleted for user %s", user_id)
            return None

        try:
            account = db.query(AccountProfile).filter(AccountProfile.user_id == user_id).first()
            if not account:
                logger.error("No account profile found for userId: %s", user_id)
                return None
            if not account.meter_number:
                logger.error("meterNumber missing for userId: %s", user_id)
                return None

            entry = TelemetryLog(
                meter_number=account.meter_number,
                user_id=user_id,
                data=dict(data),
                synced_at=datetime.utcnow(),
            )
            db.add(entry)
            db.commit()
            db.refresh(entry)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Telemetry sync failed for user %s", user_id)
            return None

        logger.info("Telemetry synced for meter %s", entry.meter_number)
        return entry

    @staticmethod
    def write_live(db: Session, user_id: str, data: Dict[str, Any]) -> Optional[TelemetryLog]:
        """Store the latest reading for a user, then mirror it."""
        if not isinstance(data, dict):
            raise ValidationError("Telemetry payload must be a JSON object")
        try:
            live = db.query(LiveTelemetry).filter(LiveTelemetry.user_id == user_id).first()
            if live:
                live.data = dict(data)
                live.updated_at = datetime.utcnow()
            else:
                db.add(LiveTelemetry(user_id=user_id, data=dict(data), updated_at=datetime.utcnow()))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Could not store live telemetry: {e}")

        return TelemetryService.mirror(db, user_id, data)

    @staticmethod
    def delete_live(db: Session, user_id: str) -> None:
        try:
            db.query(LiveTelemetry).filter(LiveTelemetry.user_id == user_id).delete()
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Could not delete live telemetry: {e}")

        TelemetryService.mirror(db, user_id, None)

    @staticmethod
    def logs_for_meter(db: Session, meter_number: str, limit: int = 50) -> list[TelemetryLog]:
        return (
            db.query(TelemetryLog)
            .filter(TelemetryLog.meter_number == meter_number)
            .order_by(TelemetryLog.synced_at.desc(), TelemetryLog.id.desc())
            .limit(limit)
            .all()
        )

    # ─── Account profiles ────────────────────────────────────────────

    @staticmethod
    def upsert_account(
        db: Session,
        user_id: str,
        meter_number: Optional[str],
        phone: Optional[str] = None,
        name: Optional[str] = None,
    ) -> AccountProfile:
        account = db.query(AccountProfile).filter(AccountProfile.user_id == user_id).first()
        if account is None:
            account = AccountProfile(user_id=user_id)
            db.add(account)
        account.meter_number = meter_number
        if phone is not None:
            account.phone = phone
        if name is not None:
            account.name = name
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Could not save account profile: {e}")
        db.refresh(account)
        return account

    @staticmethod
    def get_account(db: Session, user_id: str) -> AccountProfile:
        account = db.query(AccountProfile).filter(AccountProfile.user_id == user_id).first()
        if not account:
            raise NotFound(f"Account {user_id} not found")
        return account
