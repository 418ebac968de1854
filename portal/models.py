"""Pydantic request/response models for the customer portal API."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: datetime


# ── Customer OTP ──────────────────────────────────────────────────────────


class OtpSendRequest(BaseModel):
    phone: str = Field(..., description="Customer phone number, local (0…) or international (62…)")


class OtpSendResponse(BaseModel):
    message: str
    phone: str
    expires_in_seconds: int
    method: str = "WhatsApp"
    # Only populated outside production, for manual testing
    otp: str | None = None


class OtpVerifyRequest(BaseModel):
    phone: str
    otp: str = Field(..., min_length=4, max_length=8, pattern=r"^\d+$")


class CustomerInfo(BaseModel):
    phone: str
    authenticated_at: datetime


class CustomerAuthResponse(BaseModel):
    message: str
    customer: CustomerInfo


class RateLimitError(BaseModel):
    """Body of a 429 from the OTP endpoint."""

    message: str
    reason: str
    retry_after: int = Field(..., alias="retryAfter")

    model_config = ConfigDict(populate_by_name=True)


# ── Admin ─────────────────────────────────────────────────────────────────


class AdminLoginRequest(BaseModel):
    username: str
    password: str


class AdminInfo(BaseModel):
    username: str
    authenticated_at: datetime


class RateLimitStats(BaseModel):
    total_keys: int = Field(..., alias="totalKeys")
    suspicious_ips: int = Field(..., alias="suspiciousIPs")
    global_requests: int = Field(..., alias="globalRequests")

    model_config = ConfigDict(populate_by_name=True)


class RateLimitStatsResponse(BaseModel):
    stats: RateLimitStats
    suspicious: list[str] = Field(default_factory=list, description="Currently flagged IPs")
    config: dict[str, Any]
    timestamp: datetime


class RateLimitResetRequest(BaseModel):
    key: str | None = Field(None, description='Counter key, e.g. "ip:127.0.0.1" or "phone:0812…"')


class ClearSuspiciousRequest(BaseModel):
    ip: str | None = None


class RateLimitActionResponse(BaseModel):
    message: str
    existed: bool
