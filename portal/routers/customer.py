"""
Customer self-service endpoints – WhatsApp OTP login.
"""

import logging
from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, Response, status

from portal.config import is_production
from portal.dependencies import (
    CUSTOMER_COOKIE,
    CurrentCustomer,
    Guard,
    Otps,
    Sender,
    create_session_cookie,
    get_client_ip,
    rate_limit_bypassed,
)
from portal.models import (
    CustomerAuthResponse,
    CustomerInfo,
    MessageResponse,
    OtpSendRequest,
    OtpSendResponse,
    OtpVerifyRequest,
    RateLimitError,
)
from portal.rate_limit.limiter import AUTH, limiter
from portal.services.otp_store import OtpVerification
from portal.services.whatsapp import WhatsAppSender

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/customer", tags=["customer"])

_MIN_PHONE_DIGITS = 10

_VERIFY_FAILURES: dict[OtpVerification, tuple[int, str]] = {
    OtpVerification.NOT_FOUND: (
        status.HTTP_404_NOT_FOUND,
        "No OTP found for this phone number. Please request a new one.",
    ),
    OtpVerification.EXPIRED: (
        status.HTTP_400_BAD_REQUEST,
        "OTP has expired. Please request a new one.",
    ),
    OtpVerification.TOO_MANY_ATTEMPTS: (
        status.HTTP_400_BAD_REQUEST,
        "Maximum attempts exceeded. Please request a new OTP.",
    ),
    OtpVerification.INVALID: (
        status.HTTP_401_UNAUTHORIZED,
        "Invalid OTP code.",
    ),
}


def _reset_timestamp(seconds: int) -> str:
    """ISO-8601 UTC instant (millisecond precision, `Z` suffix) when the IP quota resets."""
    reset_at = datetime.now(UTC) + timedelta(seconds=seconds)
    return reset_at.isoformat(timespec="milliseconds").replace("+00:00", "Z")


async def _deliver_otp(sender: WhatsAppSender, phone: str, otp: str, expiry_minutes: int) -> None:
    delivered = await sender.send_otp(phone, otp, expiry_minutes)
    if not delivered:
        logger.error("❌ WhatsApp send failed for %s", phone)
        if not is_production():
            logger.info("🔐 Development OTP for %s: %s (WhatsApp failed)", phone, otp)


@router.post(
    "/otp/send",
    response_model=OtpSendResponse,
    operation_id="sendOtp",
    summary="Send a one-time login code to the customer's WhatsApp",
    responses={429: {"model": RateLimitError}},
)
async def send_otp(
    request: Request,
    body: OtpSendRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    guard: Guard,
    otp_store: Otps,
    sender: Sender,
) -> OtpSendResponse:
    """
    Check the OTP rate limits, issue a code, and hand it to WhatsApp in
    the background so the response isn't held up by the gateway.
    """
    phone = body.phone.strip()
    if sum(ch.isdigit() for ch in phone) < _MIN_PHONE_DIGITS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Valid phone number is required",
        )

    if not rate_limit_bypassed(request):
        ip = get_client_ip(request)
        try:
            result = guard.check_and_record(ip, phone)
        except Exception:
            # Never lock customers out because of a limiter bug
            logger.exception("❌ Rate limiter error - allowing request from %s", ip)
            result = None

        if result is not None and not result.allowed:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=RateLimitError(
                    message=result.message,
                    reason=result.decision.value,
                    retry_after=result.retry_after,
                ).model_dump(by_alias=True),
                headers={"Retry-After": str(result.retry_after)},
            )

        if result is not None:
            response.headers["X-RateLimit-Limit"] = str(result.limit)
            response.headers["X-RateLimit-Remaining"] = str(result.remaining)
            response.headers["X-RateLimit-Reset"] = _reset_timestamp(result.reset_after)

    otp = otp_store.issue(phone)
    expiry_minutes = max(1, otp_store.ttl_seconds // 60)
    background_tasks.add_task(_deliver_otp, sender, phone, otp, expiry_minutes)

    return OtpSendResponse(
        message="OTP sent successfully to your WhatsApp",
        phone=phone,
        expires_in_seconds=otp_store.ttl_seconds,
        otp=None if is_production() else otp,
    )


@router.post(
    "/otp/verify",
    response_model=CustomerAuthResponse,
    operation_id="verifyOtp",
    summary="Verify an OTP and receive a session cookie",
)
@limiter.limit(AUTH)
async def verify_otp(
    request: Request,
    body: OtpVerifyRequest,
    response: Response,
    otp_store: Otps,
) -> CustomerAuthResponse:
    phone = body.phone.strip()
    outcome = otp_store.verify(phone, body.otp)
    if outcome is not OtpVerification.VERIFIED:
        status_code, detail = _VERIFY_FAILURES[outcome]
        raise HTTPException(status_code=status_code, detail=detail)

    create_session_cookie(response, CUSTOMER_COOKIE, phone, "customer")
    logger.info("Customer %s logged in", phone)
    return CustomerAuthResponse(
        message="Authenticated successfully",
        customer=CustomerInfo(phone=phone, authenticated_at=datetime.now(UTC)),
    )


@router.post(
    "/logout",
    response_model=MessageResponse,
    operation_id="customerLogout",
    summary="Clear the customer session cookie",
)
async def logout(current_customer: CurrentCustomer, response: Response) -> MessageResponse:
    response.delete_cookie(CUSTOMER_COOKIE)
    return MessageResponse(message="Logged out successfully")


@router.get(
    "/me",
    response_model=CustomerInfo,
    operation_id="getCustomer",
    summary="Get the logged-in customer",
)
async def get_me(current_customer: CurrentCustomer) -> CustomerInfo:
    return current_customer
