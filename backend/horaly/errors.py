# backend/horaly/errors.py
"""
Domain errors.

Services raise these; the exception handler in main.py renders them as
{"detail": ..., "code": ...} with the class' HTTP status.
"""


class BookingError(Exception):
    code = "booking_error"
    status_code = 400

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.__class__.__doc__ or self.code
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {"detail": self.detail, "code": self.code}


# ── Validation ───────────────────────────────────────────────────────────


class ServiceInactive(BookingError):
    """Service is inactive or does not belong to the establishment."""
    code = "invalid_service"
    status_code = 422


class SlotClosed(BookingError):
    """Establishment is closed at the requested time."""
    code = "slot_closed"
    status_code = 422


class SlotBlocked(BookingError):
    """Requested time is blocked."""
    code = "slot_blocked"
    status_code = 422


class SlotInPast(BookingError):
    """Requested time is in the past or before the booking window opens."""
    code = "slot_in_past"
    status_code = 422


class CouponInvalid(BookingError):
    """Coupon cannot be applied."""
    code = "coupon_invalid"
    status_code = 422

    def __init__(self, reason: str, detail: str | None = None):
        self.reason = reason
        super().__init__(detail or f"Coupon invalid: {reason}")

    def to_dict(self) -> dict:
        return {**super().to_dict(), "reason": self.reason}


class CustomerDataInvalid(BookingError):
    """Required customer fields are missing."""
    code = "customer_data_invalid"
    status_code = 422

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing required customer fields: {', '.join(missing)}")

    def to_dict(self) -> dict:
        return {**super().to_dict(), "missing": self.missing}


class InvalidRange(BookingError):
    """Date range is empty or too long."""
    code = "invalid_range"
    status_code = 422


class DepositNotRequired(BookingError):
    """Appointment does not require a deposit."""
    code = "deposit_not_required"
    status_code = 422


# ── Not found ────────────────────────────────────────────────────────────


class EstablishmentNotFound(BookingError):
    """Establishment not found or inactive."""
    code = "establishment_not_found"
    status_code = 404


class AppointmentNotFound(BookingError):
    """Appointment not found."""
    code = "appointment_not_found"
    status_code = 404


class TransactionNotFound(BookingError):
    """Transaction not found."""
    code = "transaction_not_found"
    status_code = 404


# ── Contention / integration / security ──────────────────────────────────


class SlotFull(BookingError):
    """Slot capacity is exhausted."""
    code = "slot_full"
    status_code = 409


class PaymentGatewayError(BookingError):
    """Payment gateway is unavailable."""
    code = "payment_gateway_error"
    status_code = 502


class InvalidWebhookSignature(BookingError):
    """Webhook signature is missing or invalid."""
    code = "invalid_signature"
    status_code = 403
