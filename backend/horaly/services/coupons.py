# backend/horaly/services/coupons.py
"""
Coupon validation and pricing.

Rule: one coupon per appointment. The discount is computed here from the
coupon row; a discount sent by the client is never used.

Checks (first failure wins):
  not_found → inactive → not_started / expired → usage_limit_reached
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..errors import CouponInvalid
from ..models.tables import Appointments, Coupons, Services
from .pricing import ZERO, service_base_price, to_money

logger = logging.getLogger(__name__)


def normalize_code(code: str) -> str:
    return code.strip().upper()


@dataclass(frozen=True)
class CouponQuote:
    coupon_id: int | None
    code: str | None
    base_price: Decimal
    discount_amount: Decimal
    final_price: Decimal


def no_coupon_quote(service: Services) -> CouponQuote:
    base_price = service_base_price(service)
    return CouponQuote(
        coupon_id=None,
        code=None,
        base_price=base_price,
        discount_amount=ZERO,
        final_price=base_price,
    )


def validate_coupon(
    db: Session,
    establishment_id: int,
    service: Services,
    code: str,
    today: date,
) -> CouponQuote:
    """
    Validate a coupon code and price the service with it.

    Args:
        today: Current date in the establishment's time zone.

    Raises:
        CouponInvalid: with reason not_found | inactive | not_started |
                       expired | usage_limit_reached
    """
    coupon = (
        db.query(Coupons)
        .filter(
            Coupons.establishment_id == establishment_id,
            Coupons.code == normalize_code(code),
        )
        .first()
    )

    if coupon is None:
        raise CouponInvalid("not_found")
    if not coupon.is_active:
        raise CouponInvalid("inactive")
    if coupon.valid_from and today < coupon.valid_from:
        raise CouponInvalid("not_started")
    if coupon.valid_until and today > coupon.valid_until:
        raise CouponInvalid("expired")
    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        raise CouponInvalid("usage_limit_reached")

    base_price = service_base_price(service)
    discount = compute_discount(coupon.type, coupon.value, base_price)

    return CouponQuote(
        coupon_id=coupon.id,
        code=coupon.code,
        base_price=base_price,
        discount_amount=discount,
        final_price=base_price - discount,
    )


def compute_discount(coupon_type: str, value, base_price: Decimal) -> Decimal:
    """Discount clamped to [0, base_price]."""
    if coupon_type == "fixed":
        discount = to_money(value)
    elif coupon_type == "percentage":
        discount = to_money(base_price * Decimal(str(value)) / Decimal(100))
    else:
        raise CouponInvalid("inactive", f"Unknown coupon type: {coupon_type}")

    return max(ZERO, min(discount, base_price))


def redeem_coupon(db: Session, appointment_id: int, coupon_id: int, enforce_limit: bool) -> bool:
    """
    Increment used_count once for an appointment.

    The appointment's coupon_redeemed flag is flipped with a conditional
    UPDATE first, so a second call for the same appointment is a no-op.
    With enforce_limit, the increment also requires used_count < usage_limit.

    Returns:
        True if used_count was incremented.

    Raises:
        CouponInvalid: enforce_limit and the limit was reached meanwhile.
    """
    claimed = db.execute(
        update(Appointments)
        .where(Appointments.id == appointment_id, Appointments.coupon_redeemed.is_(False))
        .values(coupon_redeemed=True)
        .execution_options(synchronize_session=False)
    ).rowcount
    if claimed != 1:
        return False

    stmt = update(Coupons).where(Coupons.id == coupon_id)
    if enforce_limit:
        stmt = stmt.where(
            Coupons.usage_limit.is_(None) | (Coupons.used_count < Coupons.usage_limit)
        )
    incremented = db.execute(
        stmt.values(used_count=Coupons.used_count + 1)
        .execution_options(synchronize_session=False)
    ).rowcount
    if incremented != 1:
        if enforce_limit:
            raise CouponInvalid("usage_limit_reached")
        return False

    logger.info(f"Coupon {coupon_id} redeemed by appointment {appointment_id}")
    return True
