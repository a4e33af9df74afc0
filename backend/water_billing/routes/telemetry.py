"""
Telemetry Routes — Account profiles and live meter readings.
Writing a live reading mirrors it into the meter's log collection.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from water_billing.config import get_settings
from water_billing.database import get_db
from water_billing.schemas.schemas import (
    AccountProfileRequest, AccountProfileResponse,
    TelemetryWriteResponse, TelemetryLogResponse,
)
from water_billing.services.telemetry_service import TelemetryService

settings = get_settings()
router = APIRouter(prefix="/api", tags=["Telemetry"])


@router.put("/accounts/{user_id}", response_model=AccountProfileResponse)
def save_account(user_id: str, payload: AccountProfileRequest, db: Session = Depends(get_db)):
    """Link a user to their meter."""
    account = TelemetryService.upsert_account(
        db, user_id, payload.meter_number, phone=payload.phone, name=payload.name,
    )
    return AccountProfileResponse.model_validate(account)


@router.get("/accounts/{user_id}", response_model=AccountProfileResponse)
def get_account(user_id: str, db: Session = Depends(get_db)):
    return AccountProfileResponse.model_validate(TelemetryService.get_account(db, user_id))


@router.put("/telemetry/live/{user_id}", response_model=TelemetryWriteResponse)
def write_live_telemetry(
    user_id: str,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
):
    """Store a user's live reading and mirror it to their meter's log."""
    entry = TelemetryService.write_live(db, user_id, payload)
    if entry is None:
        return TelemetryWriteResponse(mirrored=False)
    return TelemetryWriteResponse(mirrored=True, meter_number=entry.meter_number, log_id=entry.id)


@router.delete("/telemetry/live/{user_id}", response_model=TelemetryWriteResponse)
def delete_live_telemetry(user_id: str, db: Session = Depends(get_db)):
    TelemetryService.delete_live(db, user_id)
    return TelemetryWriteResponse(mirrored=False)


@router.get("/telemetry/{meter_number}/logs", response_model=TelemetryLogResponse)
def get_telemetry_logs(
    meter_number: str,
    limit: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
):
    """Mirrored readings for a meter, newest first."""
    page_size = min(limit or settings.TELEMETRY_LOG_LIMIT, settings.TELEMETRY_LOG_LIMIT)
    entries = TelemetryService.logs_for_meter(db, meter_number, limit=page_size)
    return TelemetryLogResponse(logs=[
        {
            **(entry.data or {}),
            "id": entry.id,
            "meterNumber": entry.meter_number,
            "userId": entry.user_id,
            "syncedAt": entry.synced_at.isoformat() if entry.synced_at else None,
        }
        for entry in entries
    ])
