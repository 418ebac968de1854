"""FastAPI application for the ISP customer portal backend."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from portal.config import (
    ENVIRONMENT,
    OTP_LENGTH,
    OTP_MAX_ATTEMPTS,
    OTP_TTL_SECONDS,
    RATE_LIMIT_SWEEP_INTERVAL,
    is_production,
)
from portal.rate_limit.config import get_rate_limit_config
from portal.rate_limit.guard import RateLimitGuard
from portal.rate_limit.limiter import limiter
from portal.routers import admin, customer, health
from portal.services.background import RateLimitSweeper
from portal.services.otp_store import OtpStore
from portal.services.whatsapp import WhatsAppSender

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the per-process services, start background work, tear down on exit."""
    logging.basicConfig(
        level=logging.INFO if is_production() else logging.DEBUG,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting customer portal API in %s mode", ENVIRONMENT)

    # ── Startup ───────────────────────────────────────────────────────
    guard = RateLimitGuard(get_rate_limit_config())
    otp_store = OtpStore(
        ttl_seconds=OTP_TTL_SECONDS,
        max_attempts=OTP_MAX_ATTEMPTS,
        length=OTP_LENGTH,
    )
    sweeper = RateLimitSweeper(guard, interval=RATE_LIMIT_SWEEP_INTERVAL, otp_store=otp_store)
    sender = WhatsAppSender()

    app.state.rate_limit_guard = guard
    app.state.otp_store = otp_store
    app.state.whatsapp_sender = sender

    await sweeper.start()

    yield

    # ── Shutdown ──────────────────────────────────────────────────────
    await sweeper.stop()
    await sender.close()
    logger.info("Customer portal API shut down")


app = FastAPI(
    title="ISP Customer Portal API",
    description="WhatsApp OTP login for customers and rate-limit operations for admins",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Rate limiting (slowapi) ───────────────────────────────────────────────
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ── Routers ───────────────────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(customer.router)
app.include_router(admin.router)
