"""
Alert Model — Append-only low balance and shutoff notices.
"""
from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String

from water_billing.database import Base

LOW_BALANCE = "low_balance"
WATER_SHUTOFF = "water_shutoff"


class Alert(Base):
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    meter_number = Column(String(64), nullable=False, index=True)

    kind = Column(String(24), nullable=False)         # low_balance | water_shutoff
    message = Column(String(256), nullable=False)
    priority = Column(String(8), nullable=False)      # high | medium
    remaining_quantity = Column(Numeric(18, 3))

    resolved = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    resolved_at = Column(DateTime, nullable=True)
