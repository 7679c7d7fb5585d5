# backend/horaly/schemas/payments.py

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class DepositCreate(BaseModel):
    appointment_id: int


class TransactionRead(BaseModel):
    transaction_id: int = Field(validation_alias="id")
    appointment_id: int
    ref: Optional[str] = Field(None, validation_alias="gateway_ref")
    amount: Decimal
    payment_status: str
    qr_payload: Optional[str] = None
    expires_at: datetime
    paid_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class WebhookData(BaseModel):
    id: int | str


class WebhookPayload(BaseModel):
    """
    Gateway push body. Either a direct status update {ref, status} or a
    provider notification {type: "payment", data: {id}} that is resolved
    by polling the gateway.
    """
    ref: Optional[str] = None
    status: Optional[str] = None
    type: Optional[str] = None
    data: Optional[WebhookData] = None


class WebhookAck(BaseModel):
    ok: bool = True
    payment_status: Optional[str] = None
