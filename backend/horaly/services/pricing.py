# backend/horaly/services/pricing.py
"""
Money helpers: base price of a service and reservation deposit amount.

All amounts are Decimal, rounded half-up to cents.
"""

from decimal import ROUND_HALF_UP, Decimal

from ..models.tables import Establishments, Services

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Round to cents, half-up."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def service_base_price(service: Services) -> Decimal:
    """Promotional price when the service is on promotion, else price."""
    if service.has_promotion and service.promotion_price is not None:
        return to_money(service.promotion_price)
    return to_money(service.price)


def compute_deposit_amount(establishment: Establishments, final_price: Decimal) -> Decimal:
    """
    Deposit due at booking.

    fixed      → booking_fee_amount, capped at final_price
    percentage → final_price * booking_fee_percentage / 100
    Zero when the fee is disabled.
    """
    if not establishment.booking_fee_enabled:
        return ZERO

    if establishment.booking_fee_type == "percentage":
        percentage = Decimal(str(establishment.booking_fee_percentage or 0))
        amount = to_money(final_price * percentage / Decimal(100))
    else:
        amount = min(to_money(establishment.booking_fee_amount or 0), final_price)

    return max(amount, ZERO)
