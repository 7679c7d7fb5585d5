# backend/horaly/services/payments/gateway.py
"""
PIX charge provider client.

Contract:
  POST /charges        (X-Idempotency-Key) → {id, status, qr_code, expires_at}
  GET  /charges/{id}                       → {id, status}

Transport errors and 5xx are retried with exponential backoff up to
max_attempts; 4xx fails immediately. Every failure surfaces as
PaymentGatewayError.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from functools import lru_cache
from typing import Callable

import httpx

from ...config import settings
from ...errors import PaymentGatewayError

logger = logging.getLogger(__name__)

# Provider vocabulary → transaction payment_status
STATUS_MAP = {
    "approved": "paid",
    "paid": "paid",
    "rejected": "rejected",
    "cancelled": "rejected",
    "refused": "rejected",
    "expired": "expired",
    "pending": "pending",
    "in_process": "pending",
    "authorized": "pending",
    "waiting": "pending",
}


def map_gateway_status(raw: str) -> str:
    status = STATUS_MAP.get((raw or "").strip().lower())
    if status is None:
        logger.warning(f"Unknown gateway status {raw!r}, treating as pending")
        return "pending"
    return status


@dataclass(frozen=True)
class ChargeResult:
    ref: str
    status: str
    qr_payload: str | None = None
    expires_at: datetime | None = None


class PixGatewayClient:
    """Synchronous httpx client for the charge provider."""

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        headers = {"Accept": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self._client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    # ── Operations ───────────────────────────────────────────────────────

    def create_charge(
        self,
        amount: Decimal,
        idempotency_key: str,
        description: str,
        expires_at: datetime,
    ) -> ChargeResult:
        data = self._request(
            "POST",
            "/charges",
            json={
                "amount": str(amount),
                "method": "pix",
                "description": description,
                "external_reference": idempotency_key,
                "expires_at": expires_at.isoformat(),
            },
            headers={"X-Idempotency-Key": idempotency_key},
        )
        return _parse_charge(data)

    def get_status(self, ref: str) -> ChargeResult:
        return _parse_charge(self._request("GET", f"/charges/{ref}"))

    # ── Transport ────────────────────────────────────────────────────────

    def _request(self, method: str, path: str, **kwargs) -> dict:
        last_error = "no attempt made"
        for attempt in range(1, self.max_attempts + 1):
            try:
                resp = self._client.request(method, path, **kwargs)
            except httpx.TransportError as e:
                last_error = f"{type(e).__name__}: {e}"
            else:
                if resp.status_code < 400:
                    try:
                        return resp.json()
                    except ValueError:
                        raise PaymentGatewayError(f"Gateway returned invalid JSON for {method} {path}")
                if resp.status_code < 500:
                    raise PaymentGatewayError(
                        f"Gateway rejected {method} {path}: {resp.status_code} {resp.text[:200]}"
                    )
                last_error = f"HTTP {resp.status_code}"

            logger.warning(
                f"Gateway {method} {path} failed (attempt {attempt}/{self.max_attempts}): {last_error}"
            )
            if attempt < self.max_attempts:
                self._sleep(self.backoff_seconds * 2 ** (attempt - 1))

        raise PaymentGatewayError(f"Gateway unavailable for {method} {path}: {last_error}")


def _parse_charge(data: dict) -> ChargeResult:
    try:
        ref = str(data["id"])
        status = str(data["status"])
    except (KeyError, TypeError):
        raise PaymentGatewayError(f"Unexpected gateway response: {data!r}")

    expires_at = None
    if data.get("expires_at"):
        try:
            expires_at = datetime.fromisoformat(str(data["expires_at"]).replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Unparseable expires_at from gateway: {data['expires_at']!r}")

    return ChargeResult(
        ref=ref,
        status=status,
        qr_payload=data.get("qr_code"),
        expires_at=expires_at,
    )


@lru_cache
def get_gateway() -> PixGatewayClient:
    """Gateway client from settings (singleton). FastAPI dependency."""
    return PixGatewayClient(
        base_url=settings.gateway_base_url,
        api_token=settings.gateway_api_token,
        timeout=settings.gateway_timeout_seconds,
        max_attempts=settings.gateway_max_attempts,
        backoff_seconds=settings.gateway_backoff_seconds,
    )
