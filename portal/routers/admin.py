"""
Admin endpoints – session login and rate-limit operations.

The rate-limit endpoints expose the guard's introspection/control API
(stats, per-key reset, clearing suspicious IPs) to operators and to
scripts/reset_rate_limit.py.
"""

import hmac
import logging
from datetime import UTC, datetime

from fastapi import APIRouter, HTTPException, Request, Response, status

from portal.config import ADMIN_PASSWORD, ADMIN_USERNAME
from portal.dependencies import ADMIN_COOKIE, CurrentAdmin, Guard, create_session_cookie
from portal.models import (
    AdminInfo,
    AdminLoginRequest,
    ClearSuspiciousRequest,
    MessageResponse,
    RateLimitActionResponse,
    RateLimitResetRequest,
    RateLimitStats,
    RateLimitStatsResponse,
)
from portal.rate_limit.limiter import LOGIN, limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _credentials_match(username: str, password: str) -> bool:
    user_ok = hmac.compare_digest(username.encode(), ADMIN_USERNAME.encode())
    pass_ok = hmac.compare_digest(password.encode(), ADMIN_PASSWORD.encode())
    return user_ok and pass_ok


# ── Session ────────────────────────────────────────────────────────────────


@router.post(
    "/login",
    response_model=AdminInfo,
    operation_id="adminLogin",
    summary="Log in to the admin console",
)
@limiter.limit(LOGIN)
async def login(request: Request, body: AdminLoginRequest, response: Response) -> AdminInfo:
    if not _credentials_match(body.username, body.password):
        logger.warning("Failed admin login for %r", body.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    create_session_cookie(response, ADMIN_COOKIE, body.username, "admin")
    logger.info("Admin %s logged in", body.username)
    return AdminInfo(username=body.username, authenticated_at=datetime.now(UTC))


@router.post(
    "/logout",
    response_model=MessageResponse,
    operation_id="adminLogout",
    summary="Clear the admin session cookie",
)
async def logout(current_admin: CurrentAdmin, response: Response) -> MessageResponse:
    response.delete_cookie(ADMIN_COOKIE)
    return MessageResponse(message="Logged out successfully")


@router.get(
    "/me",
    response_model=AdminInfo,
    operation_id="getAdmin",
    summary="Get the logged-in admin",
)
async def get_me(current_admin: CurrentAdmin) -> AdminInfo:
    return current_admin


# ── Rate limiting ──────────────────────────────────────────────────────────


@router.get(
    "/rate-limit/stats",
    response_model=RateLimitStatsResponse,
    operation_id="getRateLimitStats",
    summary="Current rate-limit counters and active profile",
)
async def get_rate_limit_stats(current_admin: CurrentAdmin, guard: Guard) -> RateLimitStatsResponse:
    return RateLimitStatsResponse(
        stats=RateLimitStats(**guard.get_stats()),
        suspicious=guard.suspicious_ips(),
        config=guard.config.to_dict(),
        timestamp=datetime.now(UTC),
    )


@router.post(
    "/rate-limit/reset",
    response_model=RateLimitActionResponse,
    operation_id="resetRateLimit",
    summary="Delete one rate-limit counter by key",
)
async def reset_rate_limit(
    body: RateLimitResetRequest,
    current_admin: CurrentAdmin,
    guard: Guard,
) -> RateLimitActionResponse:
    if not body.key:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Rate limit key is required",
        )

    try:
        existed = guard.reset_rate_limit(body.key)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from None

    logger.info("Admin %s reset rate limit %s", current_admin.username, body.key)
    return RateLimitActionResponse(
        message=f"Rate limit reset for key: {body.key}",
        existed=existed,
    )


@router.post(
    "/rate-limit/clear-suspicious",
    response_model=RateLimitActionResponse,
    operation_id="clearSuspiciousIp",
    summary="Remove an IP from the suspicious list",
)
async def clear_suspicious(
    body: ClearSuspiciousRequest,
    current_admin: CurrentAdmin,
    guard: Guard,
) -> RateLimitActionResponse:
    if not body.ip:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="IP address is required",
        )

    existed = guard.clear_suspicious_ip(body.ip)
    return RateLimitActionResponse(
        message=f"Suspicious status cleared for IP: {body.ip}",
        existed=existed,
    )
