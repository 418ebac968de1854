"""
Application configuration from environment variables.

All settings have sensible defaults for local development.
A .env file in the project root is loaded automatically (if present).
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file before reading any env vars
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

# ── Environment ───────────────────────────────────────────────────────────

# "production" selects the strict rate-limit profile; anything else is dev.
ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")


def is_production() -> bool:
    return ENVIRONMENT.lower() == "production"


# ── Admin console ─────────────────────────────────────────────────────────

ADMIN_USERNAME: str = os.getenv("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD: str = os.getenv("ADMIN_PASSWORD", "admin")

# ── JWT sessions ──────────────────────────────────────────────────────────

JWT_SECRET: str = os.getenv("JWT_SECRET", "dev-secret-change-me-in-production")
JWT_ALGORITHM: str = "HS256"
JWT_EXPIRY_HOURS: int = int(os.getenv("JWT_EXPIRY_HOURS", "12"))

# ── OTP ───────────────────────────────────────────────────────────────────

OTP_LENGTH: int = int(os.getenv("OTP_LENGTH", "6"))
OTP_TTL_SECONDS: int = int(os.getenv("OTP_TTL_SECONDS", "300"))
OTP_MAX_ATTEMPTS: int = int(os.getenv("OTP_MAX_ATTEMPTS", "3"))

# ── WhatsApp gateway (WAHA-compatible HTTP API) ───────────────────────────

WHATSAPP_API_URL: str = os.getenv("WHATSAPP_API_URL", "")
WHATSAPP_API_KEY: str = os.getenv("WHATSAPP_API_KEY", "")
WHATSAPP_SESSION: str = os.getenv("WHATSAPP_SESSION", "default")

COMPANY_HEADER: str = os.getenv("COMPANY_HEADER", "AxeLink")
POWERED_BY: str = os.getenv("POWERED_BY", "Powered by AxeLink")

# Set to "false" to keep OTP messages on the console even when the gateway
# is configured, so local testing doesn't spam real phones.
_WHATSAPP_ENABLED_OVERRIDE: str = os.getenv("WHATSAPP_ENABLED", "auto")


def whatsapp_enabled() -> bool:
    """True when OTP codes should actually be sent over WhatsApp.

    Controlled by WHATSAPP_ENABLED env var:
      • "auto" (default): send if the gateway URL is configured
      • "true":  always send (will fail if the gateway is missing)
      • "false": never send, log to console instead
    """
    if _WHATSAPP_ENABLED_OVERRIDE.lower() == "false":
        return False
    if _WHATSAPP_ENABLED_OVERRIDE.lower() == "true":
        return True
    return bool(WHATSAPP_API_URL)


# ── Rate limiting ─────────────────────────────────────────────────────────

# How often expired rate-limit counters are swept from memory (seconds).
RATE_LIMIT_SWEEP_INTERVAL: float = float(os.getenv("RATE_LIMIT_SWEEP_INTERVAL", "300"))

# ── Reset tool ────────────────────────────────────────────────────────────

# Base URL of the running portal that scripts/reset_rate_limit.py talks to.
PORTAL_URL: str = os.getenv("PORTAL_URL", "http://127.0.0.1:8000")
