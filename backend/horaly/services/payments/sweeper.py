"""
Deposit timeout sweeper.

Periodically expires open deposit transactions past expires_at and cancels
their appointments (reason=payment_timeout), releasing the slot.

Runs as an asyncio task in the app lifespan.
Uses the synchronous DB session (via asyncio.to_thread).
"""

import asyncio
import logging

from sqlalchemy.orm import sessionmaker

from ...clock import Clock, get_clock
from ...config import settings
from ...database import SessionLocal
from .orchestrator import sweep_expired

logger = logging.getLogger(__name__)


async def deposit_sweeper_loop(
    session_factory: sessionmaker = SessionLocal,
    clock: Clock | None = None,
    interval: float | None = None,
) -> None:
    """Run sweep_expired every `interval` seconds until cancelled."""
    clock = clock or get_clock()
    interval = interval or settings.sweep_interval_seconds
    logger.info("deposit_sweeper_loop started")

    try:
        while True:
            try:
                await asyncio.to_thread(run_sweep, session_factory, clock)
            except asyncio.CancelledError:
                logger.info("deposit_sweeper_loop cancelled")
                raise
            except Exception:
                logger.exception("deposit_sweeper_loop error")

            await asyncio.sleep(interval)
    except asyncio.CancelledError:
        pass


def run_sweep(session_factory: sessionmaker, clock: Clock) -> int:
    """One sweep pass in its own session (synchronous)."""
    db = session_factory()
    try:
        cancelled = sweep_expired(db, clock.now())
        if cancelled:
            logger.info(f"Deposit sweep cancelled {cancelled} appointment(s)")
        return cancelled
    finally:
        db.close()
