from datetime import date
from decimal import Decimal

import pytest

from horaly.errors import CouponInvalid
from horaly.models.tables import Coupons
from horaly.services.coupons import compute_discount, validate_coupon

TODAY = date(2030, 6, 3)


def test_percentage_coupon_on_hundred(db, make_establishment, make_service, make_coupon):
    establishment = make_establishment()
    service = make_service(establishment, price=Decimal("100.00"))
    make_coupon(establishment, code="SAVE20", type="percentage", value="20")

    quote = validate_coupon(db, establishment.id, service, "SAVE20", TODAY)

    assert quote.base_price == Decimal("100.00")
    assert quote.discount_amount == Decimal("20.00")
    assert quote.final_price == Decimal("80.00")
    assert quote.code == "SAVE20"


def test_code_is_case_insensitive(db, make_establishment, make_service, make_coupon):
    establishment = make_establishment()
    service = make_service(establishment)
    make_coupon(establishment, code="BEMVINDO", type="fixed", value="15")

    quote = validate_coupon(db, establishment.id, service, "  bemvindo ", TODAY)
    assert quote.discount_amount == Decimal("15.00")
    assert quote.final_price == Decimal("85.00")


def test_fixed_discount_is_clamped_to_price(db, make_establishment, make_service, make_coupon):
    establishment = make_establishment()
    service = make_service(establishment, price=Decimal("40.00"))
    make_coupon(establishment, code="BIG", type="fixed", value="50")

    quote = validate_coupon(db, establishment.id, service, "BIG", TODAY)
    assert quote.discount_amount == Decimal("40.00")
    assert quote.final_price == Decimal("0.00")


def test_promotional_price_is_the_base(db, make_establishment, make_service, make_coupon):
    establishment = make_establishment()
    service = make_service(
        establishment,
        price=Decimal("100.00"),
        has_promotion=True,
        promotion_price=Decimal("70.00"),
    )
    make_coupon(establishment, code="TEN", type="percentage", value="10")

    quote = validate_coupon(db, establishment.id, service, "TEN", TODAY)
    assert quote.base_price == Decimal("70.00")
    assert quote.discount_amount == Decimal("7.00")
    assert quote.final_price == Decimal("63.00")


def test_percentage_rounds_half_up_to_cents():
    assert compute_discount("percentage", Decimal("33.33"), Decimal("10.00")) == Decimal("3.33")
    assert compute_discount("percentage", Decimal("12.5"), Decimal("0.20")) == Decimal("0.03")


@pytest.mark.parametrize(
    "kwargs, reason",
    [
        ({"is_active": False}, "inactive"),
        ({"valid_from": date(2030, 6, 4)}, "not_started"),
        ({"valid_until": date(2030, 6, 2)}, "expired"),
        ({"usage_limit": 3, "used_count": 3}, "usage_limit_reached"),
    ],
)
def test_invalid_coupons(db, make_establishment, make_service, make_coupon, kwargs, reason):
    establishment = make_establishment()
    service = make_service(establishment)
    make_coupon(establishment, code="PROMO", **kwargs)

    with pytest.raises(CouponInvalid) as exc:
        validate_coupon(db, establishment.id, service, "PROMO", TODAY)
    assert exc.value.reason == reason


def test_validity_window_is_inclusive(db, make_establishment, make_service, make_coupon):
    establishment = make_establishment()
    service = make_service(establishment)
    make_coupon(establishment, code="DAY", valid_from=TODAY, valid_until=TODAY)

    assert validate_coupon(db, establishment.id, service, "DAY", TODAY).final_price == Decimal("80.00")


def test_unknown_code_and_other_establishment(db, make_establishment, make_service, make_coupon):
    establishment = make_establishment()
    other = make_establishment()
    service = make_service(establishment)
    make_coupon(other, code="THEIRS")

    with pytest.raises(CouponInvalid) as exc:
        validate_coupon(db, establishment.id, service, "NOPE", TODAY)
    assert exc.value.reason == "not_found"

    with pytest.raises(CouponInvalid) as exc:
        validate_coupon(db, establishment.id, service, "THEIRS", TODAY)
    assert exc.value.reason == "not_found"


def test_validation_does_not_consume_usage(db, make_establishment, make_service, make_coupon):
    establishment = make_establishment()
    service = make_service(establishment)
    coupon = make_coupon(establishment, code="ONCE", usage_limit=1)

    validate_coupon(db, establishment.id, service, "ONCE", TODAY)
    validate_coupon(db, establishment.id, service, "ONCE", TODAY)

    db.expire_all()
    assert db.get(Coupons, coupon.id).used_count == 0
