"""
Client Balance Model — Prepaid water units per meter.
"""
from datetime import datetime
from sqlalchemy import Column, DateTime, Integer, Numeric, String

from water_billing.database import Base

ACTIVE = "active"
WARNING = "warning"
DEPLETED = "depleted"


class ClientBalance(Base):
    __tablename__ = "client_balances"

    meter_number = Column(String(64), primary_key=True, index=True)
    user_id = Column(String(128))
    phone = Column(String(16))

    remaining_quantity = Column(Numeric(18, 3), default=0, nullable=False)   # May go negative
    total_purchased = Column(Numeric(18, 3), default=0, nullable=False)
    consumption_total = Column(Numeric(18, 3), default=0, nullable=False)
    last_consumption = Column(Numeric(18, 3))

    status = Column(String(16), default=ACTIVE)       # active | warning | depleted
    version = Column(Integer, default=1, nullable=False)

    last_top_up = Column(DateTime)
    last_updated = Column(DateTime, default=datetime.utcnow)
