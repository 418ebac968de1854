"""
WhatsApp OTP delivery through a WAHA-compatible HTTP gateway.

In development (no gateway configured), the message is logged to the
console instead so the OTP flow can be tested without a paired phone.
"""

from __future__ import annotations

import logging
import re

import httpx

from portal.config import (
    COMPANY_HEADER,
    POWERED_BY,
    WHATSAPP_API_KEY,
    WHATSAPP_API_URL,
    WHATSAPP_SESSION,
    whatsapp_enabled,
)

logger = logging.getLogger(__name__)

_NON_DIGIT = re.compile(r"\D")
_COUNTRY_CODE = "62"


def format_phone_number(phone: str) -> str:
    """Normalise an Indonesian number to international form without '+'.

    ``0819…`` → ``62819…``; numbers without a country code get ``62``.
    """
    digits = _NON_DIGIT.sub("", phone)
    if digits.startswith("0"):
        digits = _COUNTRY_CODE + digits[1:]
    if not digits.startswith(_COUNTRY_CODE):
        digits = _COUNTRY_CODE + digits
    return digits


def build_otp_message(otp: str, expiry_minutes: int) -> str:
    return (
        f"🏢 {COMPANY_HEADER}\n\n"
        "🔐 *CUSTOMER PORTAL OTP CODE*\n\n"
        f"Your OTP code is: *{otp}*\n\n"
        f"⏰ This code is valid for {expiry_minutes} minutes.\n"
        "🔒 Do not share this code with anyone.\n\n"
        f"{POWERED_BY}"
    )


class WhatsAppSender:
    """Async client for the gateway's ``/api/sendText`` endpoint."""

    def __init__(
        self,
        timeout: float = 15.0,
        *,
        base_url: str = WHATSAPP_API_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"X-Api-Key": WHATSAPP_API_KEY},
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def send_otp(self, phone: str, otp: str, expiry_minutes: int = 5) -> bool:
        """
        Send (or log) an OTP message.  Returns True when delivered.

        Gateway failures are logged and reported as False; the caller
        decides whether that's fatal.
        """
        text = build_otp_message(otp, expiry_minutes)
        chat_id = f"{format_phone_number(phone)}@c.us"

        # ── Console fallback (dev mode) ───────────────────────────────────
        if not whatsapp_enabled():
            logger.info("📱 [DEV] Would send WhatsApp OTP to %s:\n%s", chat_id, text)
            return True

        # ── Real send ─────────────────────────────────────────────────────
        payload = {"session": WHATSAPP_SESSION, "chatId": chat_id, "text": text}
        try:
            resp = await self._client.post("/api/sendText", json=payload)
            resp.raise_for_status()
        except httpx.HTTPError:
            logger.exception("Failed to send WhatsApp OTP to %s", phone)
            return False

        logger.info("✅ OTP sent to %s via WhatsApp", phone)
        return True
