"""
Payment Request Model — Tracks M-Pesa STK push top-ups.
"""
from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, Numeric, String

from water_billing.database import Base

PENDING = "Pending"
SUCCESS = "Success"
FAILED = "Failed"


class PaymentRequest(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    transaction_id = Column(String(64), unique=True, nullable=False, index=True)  # CheckoutRequestID
    merchant_request_id = Column(String(64))

    user_id = Column(String(128), default="unknown")
    phone = Column(String(16), nullable=False)
    amount = Column(Integer, nullable=False)          # Whole KES actually charged
    meter_number = Column(String(64), nullable=False, index=True)

    # Status tracking
    status = Column(String(16), default=PENDING)      # Pending | Success | Failed
    processed = Column(Boolean, default=False, nullable=False)
    quantity_purchased = Column(Numeric(18, 3), default=0)
    conversion_rate = Column(Numeric(18, 3))
    unit_size = Column(Numeric(18, 3))

    # Callback audit
    result_code = Column(Integer)
    result_desc = Column(String(256))
    receipt_number = Column(String(32))
    callback_metadata = Column(JSON, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)
