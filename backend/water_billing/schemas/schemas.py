"""
Pydantic Schemas — Request & Response models for API validation.
Field names are camelCase on the wire to match the mobile client.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, from_attributes=True)


# ──────────────── M-Pesa ────────────────

class TopUpRequest(CamelModel):
    phone_number: Optional[Union[str, int]] = Field(None, description="Payer MSISDN, local or international")
    amount: Optional[Union[int, float, str]] = Field(None, description="Amount in KES (> 0)")
    meter_number: Optional[Union[str, int]] = Field(None, description="Meter to credit")
    user_id: Optional[str] = None


class TopUpResponse(BaseModel):
    success: bool = True
    CheckoutRequestID: str
    MerchantRequestID: Optional[str] = None
    ResponseCode: str = "0"
    ResponseDescription: Optional[str] = None
    CustomerMessage: Optional[str] = None


class CallbackAck(BaseModel):
    ResultCode: int = 0
    ResultDesc: str = "Success"


# ──────────────── Water ────────────────

class ConsumptionRequest(CamelModel):
    meter_number: Optional[Union[str, int]] = None
    water_used: Optional[Union[int, float, str]] = None


class ConsumptionResponse(CamelModel):
    success: bool = True
    meter_number: str
    remaining_quantity: float
    status: str


class BalanceResponse(CamelModel):
    success: bool = True
    meter_number: str
    user_id: Optional[str] = None
    phone: Optional[str] = None
    remaining_quantity: float
    total_purchased: float
    consumption_total: float
    last_consumption: Optional[float] = None
    status: str
    last_top_up: Optional[datetime] = None
    last_updated: Optional[datetime] = None


class PaymentRecordOut(CamelModel):
    id: int
    transaction_id: str
    merchant_request_id: Optional[str] = None
    user_id: Optional[str] = None
    phone: str
    amount: int
    meter_number: str
    status: str
    processed: bool
    quantity_purchased: float = 0
    receipt_number: Optional[str] = None
    result_desc: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class PaymentHistoryResponse(BaseModel):
    success: bool = True
    payments: List[PaymentRecordOut] = []


class AlertOut(CamelModel):
    id: int
    meter_number: str
    kind: str
    message: str
    priority: str
    remaining_quantity: Optional[float] = None
    resolved: bool
    created_at: datetime
    resolved_at: Optional[datetime] = None


class AlertListResponse(BaseModel):
    success: bool = True
    alerts: List[AlertOut] = []


# ──────────────── Telemetry ────────────────

class AccountProfileRequest(CamelModel):
    meter_number: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None


class AccountProfileResponse(CamelModel):
    success: bool = True
    user_id: str
    meter_number: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None


class TelemetryWriteResponse(CamelModel):
    success: bool = True
    mirrored: bool
    meter_number: Optional[str] = None
    log_id: Optional[int] = None


class TelemetryLogResponse(BaseModel):
    success: bool = True
    logs: List[Dict[str, Any]] = []
