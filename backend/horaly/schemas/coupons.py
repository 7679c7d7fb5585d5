# backend/horaly/schemas/coupons.py

from decimal import Decimal

from pydantic import BaseModel


class CouponValidateRequest(BaseModel):
    establishment_id: int
    service_id: int
    code: str


class CouponQuoteRead(BaseModel):
    code: str
    base_price: Decimal
    discount_amount: Decimal
    final_price: Decimal

    model_config = {"from_attributes": True}
