"""
Endpoint-level rate limits using slowapi.

These sit on top of the OTP guard and protect the endpoints the guard
doesn't cover:
  • auth  – 10/min (OTP verify – prevents brute-forcing codes)
  • login –  5/min (admin login – prevents password guessing)

The limiter keys on client IP.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, default_limits=["60/minute"])

# Named rate strings for use in @limiter.limit() decorators
AUTH = "10/minute"      # OTP verification
LOGIN = "5/minute"      # admin login
