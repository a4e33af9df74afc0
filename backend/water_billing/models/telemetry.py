"""
Telemetry Models — Account profiles, live meter readings and per-meter logs.
"""
from datetime import datetime
from sqlalchemy import Column, DateTime, Integer, JSON, String

from water_billing.database import Base


class AccountProfile(Base):
    __tablename__ = "account_profiles"

    user_id = Column(String(128), primary_key=True, index=True)
    meter_number = Column(String(64))
    phone = Column(String(16))
    name = Column(String(128))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class LiveTelemetry(Base):
    """Latest reading pushed by a user's microcontroller."""
    __tablename__ = "live_telemetry"

    user_id = Column(String(128), primary_key=True, index=True)
    data = Column(JSON, default=dict)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class TelemetryLog(Base):
    __tablename__ = "telemetry_logs"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    meter_number = Column(String(64), nullable=False, index=True)
    user_id = Column(String(128), nullable=False)

    data = Column(JSON, default=dict)                 # Raw telemetry fields
    synced_at = Column(DateTime, default=datetime.utcnow)
