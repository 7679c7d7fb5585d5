# backend/horaly/routers/payments.py
"""
Deposit payment endpoints.

POST /payments/deposits       - create the PIX charge for a pending appointment
GET  /payments/{ref}/status   - poll (queries the gateway while still open)
POST /payments/webhook        - gateway push (HMAC-signed when a secret is set)
"""

import asyncio
import json
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Header, Request, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..clock import Clock, get_clock
from ..config import settings
from ..database import get_db
from ..schemas.payments import DepositCreate, TransactionRead, WebhookAck, WebhookPayload
from ..services.payments import (
    PixGatewayClient,
    create_deposit,
    get_gateway,
    ingest_status,
    refresh_status,
)
from ..services.payments.webhook_security import verify_webhook_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/deposits", response_model=TransactionRead, status_code=status.HTTP_201_CREATED)
def create_deposit_charge(
    data: DepositCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    gateway: PixGatewayClient = Depends(get_gateway),
):
    return create_deposit(db, gateway, data.appointment_id, clock.now())


@router.get("/{ref}/status", response_model=TransactionRead)
def get_payment_status(
    ref: str,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    gateway: PixGatewayClient = Depends(get_gateway),
):
    return refresh_status(db, gateway, ref, clock.now())


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    x_signature: str | None = Header(None),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    gateway: PixGatewayClient = Depends(get_gateway),
):
    body = await request.body()
    verify_webhook_signature(settings.webhook_secret, body, x_signature)

    try:
        payload = WebhookPayload.model_validate(json.loads(body or b"{}"))
    except (ValueError, ValidationError):
        logger.warning("Webhook ignored: malformed body")
        return WebhookAck(ok=False)

    payment_status = await asyncio.to_thread(_apply_webhook, db, gateway, payload, clock.now())
    return WebhookAck(ok=True, payment_status=payment_status)


def _apply_webhook(
    db: Session,
    gateway: PixGatewayClient,
    payload: WebhookPayload,
    now: datetime,
) -> str | None:
    if payload.ref and payload.status:
        return ingest_status(db, payload.ref, payload.status, now).payment_status
    if payload.type == "payment" and payload.data is not None:
        return refresh_status(db, gateway, str(payload.data.id), now).payment_status

    logger.info(f"Webhook ignored: type={payload.type!r}")
    return None
