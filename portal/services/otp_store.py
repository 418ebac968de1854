"""
In-memory store for issued OTP codes.

One pending code per phone number.  A code is valid for ``ttl_seconds``,
can be used once, and is discarded after ``max_attempts`` wrong guesses.
"""

from __future__ import annotations

import hmac
import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class OtpVerification(str, Enum):
    VERIFIED = "verified"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    INVALID = "invalid"


@dataclass
class OtpRecord:
    code: str
    phone: str
    created_at: float
    attempts: int = 0


class OtpStore:
    def __init__(
        self,
        *,
        ttl_seconds: int,
        max_attempts: int,
        length: int = 6,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_attempts = max_attempts
        self._length = length
        self._clock = clock
        self._records: dict[str, OtpRecord] = {}

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    def __len__(self) -> int:
        return len(self._records)

    def issue(self, phone: str) -> str:
        """Generate a fresh code for *phone*, replacing any pending one."""
        code = f"{secrets.randbelow(10 ** self._length):0{self._length}d}"
        self._records[phone] = OtpRecord(code=code, phone=phone, created_at=self._clock())
        logger.info("OTP generated for %s (expires in %ds)", phone, self._ttl)
        return code

    def verify(self, phone: str, code: str) -> OtpVerification:
        record = self._records.get(phone)
        if record is None:
            return OtpVerification.NOT_FOUND

        if self._clock() - record.created_at > self._ttl:
            del self._records[phone]
            return OtpVerification.EXPIRED

        record.attempts += 1
        if record.attempts > self._max_attempts:
            del self._records[phone]
            logger.warning("OTP attempts exhausted for %s", phone)
            return OtpVerification.TOO_MANY_ATTEMPTS

        if not hmac.compare_digest(record.code, code):
            return OtpVerification.INVALID

        del self._records[phone]
        return OtpVerification.VERIFIED

    def purge_expired(self) -> int:
        """Drop codes past their TTL that were never verified.  Returns how many."""
        now = self._clock()
        expired = [p for p, r in self._records.items() if now - r.created_at > self._ttl]
        for phone in expired:
            del self._records[phone]
        if expired:
            logger.debug("🧹 Purged %d expired OTPs, %d pending", len(expired), len(self))
        return len(expired)
