# backend/horaly/routers/coupons.py

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..clock import Clock, get_clock
from ..database import get_db
from ..schemas.coupons import CouponQuoteRead, CouponValidateRequest
from ..services.coupons import validate_coupon
from ..services.slots import establishment_today, get_active_establishment, get_active_service

router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.post("/validate", response_model=CouponQuoteRead)
def validate(
    data: CouponValidateRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Preview a coupon. Nothing is reserved or redeemed."""
    establishment = get_active_establishment(db, data.establishment_id)
    service = get_active_service(db, establishment, data.service_id)
    today = establishment_today(establishment, clock.now())
    return validate_coupon(db, establishment.id, service, data.code, today)
