# backend/horaly/main.py

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import settings
from .database import init_db
from .errors import BookingError
from .middleware.audit import audit_middleware
from .redis_client import redis_client
from .routers import appointments, coupons, payments, slots
from .services.payments.sweeper import deposit_sweeper_loop

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.auto_create_tables:
        init_db()
        logger.info("Database tables ensured")

    sweeper = asyncio.create_task(deposit_sweeper_loop())
    yield

    sweeper.cancel()
    try:
        await sweeper
    except asyncio.CancelledError:
        pass


app = FastAPI(title="Horaly Booking API", lifespan=lifespan)

app.middleware("http")(audit_middleware)

app.include_router(slots.router)
app.include_router(coupons.router)
app.include_router(appointments.router)
app.include_router(payments.router)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


@app.get("/health")
def health():
    redis_ok = None
    if redis_client is not None:
        try:
            redis_ok = bool(redis_client.ping())
        except Exception as e:
            logger.warning(f"Redis ping failed: {e}")
            redis_ok = False
    return {"status": "ok", "redis": redis_ok}
