import logging
from datetime import UTC, datetime, timedelta
from typing import Annotated

import jwt
from fastapi import Cookie, Depends, HTTPException, Request, Response, status

from portal.config import JWT_ALGORITHM, JWT_EXPIRY_HOURS, JWT_SECRET, is_production
from portal.models import AdminInfo, CustomerInfo
from portal.rate_limit.guard import RateLimitGuard
from portal.services.otp_store import OtpStore
from portal.services.whatsapp import WhatsAppSender

logger = logging.getLogger(__name__)

ADMIN_COOKIE = "admin_session"
CUSTOMER_COOKIE = "customer_session"

# Fallback identifier when the peer address is not available
UNKNOWN_IP = "unknown"


# ── Shared services (built once in the app lifespan) ───────────────────────


def get_rate_limit_guard(request: Request) -> RateLimitGuard:
    return request.app.state.rate_limit_guard


def get_otp_store(request: Request) -> OtpStore:
    return request.app.state.otp_store


def get_whatsapp_sender(request: Request) -> WhatsAppSender:
    return request.app.state.whatsapp_sender


Guard = Annotated[RateLimitGuard, Depends(get_rate_limit_guard)]
Otps = Annotated[OtpStore, Depends(get_otp_store)]
Sender = Annotated[WhatsAppSender, Depends(get_whatsapp_sender)]


# ── Request helpers ────────────────────────────────────────────────────────


def get_client_ip(request: Request) -> str:
    if request.client is None or not request.client.host:
        return UNKNOWN_IP
    return request.client.host


def rate_limit_bypassed(request: Request) -> bool:
    """Outside production, ``?bypassRateLimit=dev`` skips the OTP guard."""
    if is_production():
        return False
    if request.query_params.get("bypassRateLimit") == "dev":
        logger.debug("🔧 Rate limiting bypassed for development")
        return True
    return False


# ── JWT / Session ──────────────────────────────────────────────────────────


def create_jwt(subject: str, role: str) -> str:
    now = datetime.now(UTC)
    payload = {
        "sub": subject,
        "role": role,
        "iat": now,
        "exp": now + timedelta(hours=JWT_EXPIRY_HOURS),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def create_session_cookie(response: Response, cookie: str, subject: str, role: str) -> None:
    response.set_cookie(
        key=cookie,
        value=create_jwt(subject, role),
        httponly=True,
        samesite="lax",
        secure=is_production(),
        max_age=JWT_EXPIRY_HOURS * 3600,
    )


def _decode_session(token: str | None, role: str) -> dict:
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required. Please log in.",
        )

    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired. Please log in again.",
        ) from None
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session. Please log in again.",
        ) from None

    if not payload.get("sub") or payload.get("role") != role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload.",
        )
    return payload


async def get_current_admin(
    admin_session: Annotated[str | None, Cookie()] = None,
) -> AdminInfo:
    payload = _decode_session(admin_session, "admin")
    return AdminInfo(
        username=payload["sub"],
        authenticated_at=datetime.fromtimestamp(payload.get("iat", 0), tz=UTC),
    )


async def get_current_customer(
    customer_session: Annotated[str | None, Cookie()] = None,
) -> CustomerInfo:
    payload = _decode_session(customer_session, "customer")
    return CustomerInfo(
        phone=payload["sub"],
        authenticated_at=datetime.fromtimestamp(payload.get("iat", 0), tz=UTC),
    )


CurrentAdmin = Annotated[AdminInfo, Depends(get_current_admin)]
CurrentCustomer = Annotated[CustomerInfo, Depends(get_current_customer)]
