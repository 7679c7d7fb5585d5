# backend/horaly/services/payments/orchestrator.py
"""
Deposit payment state machine.

  pending ──create_deposit──▶ awaiting payment (transaction created/pending)
  awaiting ──paid──▶     appointment confirmed, coupon used_count +1
  awaiting ──rejected──▶ appointment cancelled (payment_rejected)
  awaiting ──timeout──▶  appointment cancelled (payment_timeout)

Webhook and poll both end in ingest_status(). Transitions are a
conditional UPDATE on payment_status (created/pending only), so a
duplicated or late delivery changes nothing and fires no side effect.
No database transaction is held open across a gateway call.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...clock import to_utc_naive
from ...config import settings
from ...errors import AppointmentNotFound, DepositNotRequired, TransactionNotFound
from ...models.tables import OPEN_PAYMENT_STATUSES, Appointments, Transactions
from ..coupons import redeem_coupon
from ..events import notify_status_change
from ..pricing import ZERO, to_money
from ..reservations import mark_cancelled
from .gateway import PixGatewayClient, map_gateway_status

logger = logging.getLogger(__name__)


def create_deposit(
    db: Session,
    gateway: PixGatewayClient,
    appointment_id: int,
    now: datetime,
) -> Transactions:
    """
    Create the PIX charge for a pending appointment.

    Idempotent: an appointment has at most one transaction; a repeated call
    returns it unchanged.

    Raises:
        AppointmentNotFound, DepositNotRequired, PaymentGatewayError
    """
    appointment = db.get(Appointments, appointment_id)
    if appointment is None:
        raise AppointmentNotFound(f"Appointment {appointment_id} not found")

    existing = _get_transaction_for(db, appointment_id)
    if existing is not None:
        return existing

    amount = to_money(appointment.booking_fee_amount or 0)
    if appointment.status != "pending" or amount <= ZERO:
        raise DepositNotRequired(f"Appointment {appointment_id} does not require a deposit")

    idempotency_key = f"deposit-{appointment_id}"
    default_expiry = now + timedelta(minutes=settings.deposit_expiry_minutes)
    description = f"Booking deposit #{appointment_id}"
    # End the read transaction before calling out
    db.commit()

    charge = gateway.create_charge(amount, idempotency_key, description, default_expiry)

    stamp = to_utc_naive(now)
    tx = Transactions(
        appointment_id=appointment_id,
        gateway_ref=charge.ref,
        amount=amount,
        payment_status="created",
        idempotency_key=idempotency_key,
        qr_payload=charge.qr_payload,
        expires_at=to_utc_naive(charge.expires_at or default_expiry),
        created_at=stamp,
        updated_at=stamp,
    )
    try:
        db.add(tx)
        db.flush()
        tx.payment_status = "pending"
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = _get_transaction_for(db, appointment_id)
        if existing is None:
            raise
        logger.info(f"Deposit for appointment {appointment_id} created concurrently, reusing {existing.gateway_ref}")
        return existing

    logger.info(
        f"Deposit created: appointment={appointment_id} ref={charge.ref} "
        f"amount={amount} expires_at={tx.expires_at.isoformat()}"
    )

    initial = map_gateway_status(charge.status)
    if initial != "pending":
        return ingest_status(db, charge.ref, initial, now)

    db.refresh(tx)
    return tx


def ingest_status(
    db: Session,
    gateway_ref: str,
    status: str,
    now: datetime,
) -> Transactions:
    """
    Apply a gateway status to a transaction and its appointment.

    Only the caller that moves the transaction out of created/pending runs
    the side effects (appointment transition, coupon redemption, event).

    Raises:
        TransactionNotFound
    """
    new_status = map_gateway_status(status)
    tx = _get_transaction_by_ref(db, gateway_ref)
    stamp = to_utc_naive(now)

    if new_status == "pending":
        db.execute(
            update(Transactions)
            .where(Transactions.id == tx.id, Transactions.payment_status == "created")
            .values(payment_status="pending", updated_at=stamp)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        db.refresh(tx)
        return tx

    values = {"payment_status": new_status, "updated_at": stamp}
    if new_status == "paid":
        values["paid_at"] = stamp

    won = db.execute(
        update(Transactions)
        .where(
            Transactions.id == tx.id,
            Transactions.payment_status.in_(OPEN_PAYMENT_STATUSES),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    ).rowcount == 1

    if not won:
        db.rollback()
        db.refresh(tx)
        logger.info(
            f"Transaction {gateway_ref} already {tx.payment_status}; ignoring {new_status}"
        )
        return tx

    try:
        appointment = tx.appointment
        changed, reason = _apply_to_appointment(db, appointment, new_status, now)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(tx)
    logger.info(
        f"Transaction {gateway_ref} → {new_status}; appointment {appointment.id} → {appointment.status}"
    )
    if changed:
        notify_status_change(appointment.establishment, appointment, reason)
    return tx


def refresh_status(
    db: Session,
    gateway: PixGatewayClient,
    gateway_ref: str,
    now: datetime,
) -> Transactions:
    """
    Poll the gateway for a non-terminal transaction and ingest the answer.

    A transaction still open after its expires_at is expired here as well.
    """
    tx = _get_transaction_by_ref(db, gateway_ref)
    if tx.payment_status not in OPEN_PAYMENT_STATUSES:
        return tx

    # End the read transaction before calling out
    db.commit()
    charge = gateway.get_status(gateway_ref)
    tx = ingest_status(db, gateway_ref, charge.status, now)

    if tx.payment_status in OPEN_PAYMENT_STATUSES and expire_transaction(db, tx.id, now):
        db.refresh(tx)
    return tx


def expire_transaction(db: Session, transaction_id: int, now: datetime) -> bool:
    """
    Expire an open transaction past its expires_at and cancel its appointment.

    Returns:
        True if this call expired it; False if not due or already terminal.
    """
    stamp = to_utc_naive(now)
    won = db.execute(
        update(Transactions)
        .where(
            Transactions.id == transaction_id,
            Transactions.payment_status.in_(OPEN_PAYMENT_STATUSES),
            Transactions.expires_at < stamp,
        )
        .values(payment_status="expired", updated_at=stamp)
        .execution_options(synchronize_session=False)
    ).rowcount == 1
    if not won:
        db.rollback()
        return False

    tx = db.get(Transactions, transaction_id)
    db.refresh(tx)
    try:
        appointment = tx.appointment
        changed, reason = _apply_to_appointment(db, appointment, "expired", now)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Transaction {tx.gateway_ref} expired; appointment {appointment.id} → {appointment.status}")
    if changed:
        notify_status_change(appointment.establishment, appointment, reason)
    return True


def sweep_expired(db: Session, now: datetime) -> int:
    """
    Cancel everything whose payment window has closed.

    - open transactions past expires_at
    - pending deposit appointments that never got a transaction within
      deposit_expiry_minutes of creation

    Returns:
        Number of appointments cancelled.
    """
    stamp = to_utc_naive(now)
    due_ids = [
        row.id
        for row in db.query(Transactions.id)
        .filter(
            Transactions.payment_status.in_(OPEN_PAYMENT_STATUSES),
            Transactions.expires_at < stamp,
        )
        .all()
    ]
    db.commit()

    expired = 0
    for transaction_id in due_ids:
        if expire_transaction(db, transaction_id, now):
            expired += 1

    expired += _cancel_unpaid_without_charge(db, now)
    return expired


# ── Helpers ──────────────────────────────────────────────────────────────


def _apply_to_appointment(
    db: Session,
    appointment: Appointments,
    payment_status: str,
    now: datetime,
) -> tuple[bool, str | None]:
    """
    Move the appointment after a won transaction update.

    The appointment row itself is moved with a conditional UPDATE on
    status='pending'; the loaded object's status is not trusted.

    Returns:
        (changed, cancellation reason). changed is False when the
        appointment was no longer pending.
    """
    if payment_status == "paid":
        reason = None
        changed = db.execute(
            update(Appointments)
            .where(Appointments.id == appointment.id, Appointments.status == "pending")
            .values(status="confirmed", updated_at=to_utc_naive(now))
            .execution_options(synchronize_session=False)
        ).rowcount == 1
        if changed and appointment.coupon_id is not None:
            redeem_coupon(db, appointment.id, appointment.coupon_id, enforce_limit=False)
    else:
        reason = "payment_rejected" if payment_status == "rejected" else "payment_timeout"
        changed = mark_cancelled(db, appointment.id, reason, now, only_pending=True)

    if not changed:
        level = logging.WARNING if payment_status == "paid" else logging.INFO
        logger.log(
            level,
            f"Payment {payment_status} for appointment {appointment.id} that is no longer "
            f"pending; appointment left unchanged",
        )
        return False, None
    return True, reason


def _cancel_unpaid_without_charge(db: Session, now: datetime) -> int:
    cutoff = to_utc_naive(now - timedelta(minutes=settings.deposit_expiry_minutes))
    stale = (
        db.query(Appointments)
        .outerjoin(Transactions, Transactions.appointment_id == Appointments.id)
        .filter(
            Appointments.status == "pending",
            Appointments.booking_fee_amount > 0,
            Appointments.created_at < cutoff,
            Transactions.id.is_(None),
        )
        .all()
    )
    if not stale:
        db.commit()
        return 0

    try:
        cancelled = [
            appointment
            for appointment in stale
            if mark_cancelled(db, appointment.id, "payment_timeout", now, only_pending=True)
        ]
        db.commit()
    except Exception:
        db.rollback()
        raise

    for appointment in cancelled:
        logger.info(f"Appointment {appointment.id} cancelled: no deposit charge created in time")
        notify_status_change(appointment.establishment, appointment, "payment_timeout")
    return len(cancelled)


def _get_transaction_for(db: Session, appointment_id: int) -> Transactions | None:
    return db.query(Transactions).filter(Transactions.appointment_id == appointment_id).first()


def _get_transaction_by_ref(db: Session, gateway_ref: str) -> Transactions:
    tx = db.query(Transactions).filter(Transactions.gateway_ref == gateway_ref).first()
    if tx is None:
        raise TransactionNotFound(f"Transaction {gateway_ref} not found")
    return tx
