"""
Webhook signature verification for gateway push notifications.

The gateway signs the raw request body with HMAC-SHA256 using the shared
webhook secret and sends the hex digest in the X-Signature header
(optionally prefixed with "sha256=").
"""

import hashlib
import hmac
import logging

from ...errors import InvalidWebhookSignature

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Signature"


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def constant_time_compare(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def verify_webhook_signature(secret: str | None, payload: bytes, signature: str | None) -> None:
    """
    Raise InvalidWebhookSignature unless signature matches payload.

    No secret configured → verification disabled.
    """
    if not secret:
        return

    provided = (signature or "").strip()
    if provided.startswith("sha256="):
        provided = provided[len("sha256="):]

    if not constant_time_compare(compute_hmac_sha256(secret, payload), provided.lower()):
        logger.warning("Webhook rejected: invalid or missing signature")
        raise InvalidWebhookSignature()
