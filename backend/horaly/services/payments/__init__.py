# backend/horaly/services/payments/__init__.py
"""
Deposit payments.

gateway.py       PIX charge provider client (httpx, retries)
orchestrator.py  transaction / appointment state machine
sweeper.py       background timeout loop
"""

from .gateway import ChargeResult, PixGatewayClient, get_gateway, map_gateway_status
from .orchestrator import (
    create_deposit,
    expire_transaction,
    ingest_status,
    refresh_status,
    sweep_expired,
)

__all__ = [
    "ChargeResult",
    "PixGatewayClient",
    "get_gateway",
    "map_gateway_status",
    "create_deposit",
    "expire_transaction",
    "ingest_status",
    "refresh_status",
    "sweep_expired",
]
