"""
Rate-limit reset tool for local development.

Rate-limit counters live in the memory of the running server, so this tool
talks to it through the admin API: it prints the current stats, resets the
counters that a developer's own OTP testing usually trips (loopback IPs,
burst keys, the test phone number), clears their suspicious flags and
prints the stats again.

If the server can't be reached, it prints how to clear the limits by hand
instead.  It always exits 0.

Usage:
    python scripts/reset_rate_limit.py
    python scripts/reset_rate_limit.py --url http://localhost:8000 --key phone:0812345678901
"""

from __future__ import annotations

import argparse
import logging
from collections.abc import Callable, Iterable

import httpx

from portal.config import ADMIN_PASSWORD, ADMIN_USERNAME, PORTAL_URL

logger = logging.getLogger(__name__)

DEV_KEYS = [
    "ip:::1",               # IPv6 localhost
    "ip:127.0.0.1",         # IPv4 localhost
    "ip:unknown",           # unknown peer address
    "burst:::1",
    "burst:127.0.0.1",
    "burst:unknown",
    "phone:081911290961",   # test phone number
    "phone:6281911290961",  # same number, international form
]

DEV_IPS = ["::1", "127.0.0.1", "unknown"]

MANUAL_STEPS = """\
🔧 Alternative: Manual Server Restart
=====================================
If direct access fails, you can restart the backend server:
1. Stop the current backend server (Ctrl+C)
2. Run: python main.py
3. This will clear all in-memory rate limits

⏰ Or wait for automatic expiry:
- Burst detection: ~1 minute
- Phone cooldown: ~1 minute between requests
- IP rate limit: ~1 hour
- Global stats: reset every hour"""


class GuardUnavailable(Exception):
    """The running server's rate limiter could not be reached."""


class RemoteGuard:
    """The guard's stats/reset API, driven over HTTP through /api/admin."""

    def __init__(self, client: httpx.Client) -> None:
        self._client = client

    @classmethod
    def connect(
        cls,
        base_url: str,
        username: str,
        password: str,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> RemoteGuard:
        client = httpx.Client(base_url=base_url, timeout=10.0, transport=transport)
        try:
            resp = client.post(
                "/api/admin/login",
                json={"username": username, "password": password},
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            client.close()
            raise GuardUnavailable(f"cannot log in to {base_url}: {exc}") from exc
        return cls(client)

    def close(self) -> None:
        self._client.close()

    def get_stats(self) -> dict[str, int]:
        resp = self._client.get("/api/admin/rate-limit/stats")
        resp.raise_for_status()
        return resp.json()["stats"]

    def reset_rate_limit(self, key: str) -> bool:
        resp = self._client.post("/api/admin/rate-limit/reset", json={"key": key})
        if resp.status_code == 400:
            raise ValueError(resp.json()["detail"])
        resp.raise_for_status()
        return resp.json()["existed"]

    def clear_suspicious_ip(self, ip: str) -> bool:
        resp = self._client.post("/api/admin/rate-limit/clear-suspicious", json={"ip": ip})
        resp.raise_for_status()
        return resp.json()["existed"]


def _print_stats(guard, out: Callable[[str], None]) -> None:
    try:
        stats = guard.get_stats()
    except Exception as exc:
        logger.warning("Could not get rate limit stats: %s", exc)
        out(f"⚠️ Could not get stats: {exc}")
        return
    out(f"- Total active keys: {stats['totalKeys']}")
    out(f"- Suspicious IPs: {stats['suspiciousIPs']}")
    out(f"- Global requests this hour: {stats['globalRequests']}")


def reset_rate_limits(
    guard,
    *,
    keys: Iterable[str] = DEV_KEYS,
    ips: Iterable[str] = DEV_IPS,
    out: Callable[[str], None] = print,
) -> list[str]:
    """
    Reset *keys* and clear *ips* on *guard* (a ``RateLimitGuard`` or
    ``RemoteGuard``).  Each key is attempted even if an earlier one fails.
    Returns the keys/IPs that failed.
    """
    failures: list[str] = []

    out("📊 Current Rate Limit Statistics:")
    _print_stats(guard, out)

    out("\n🔄 Resetting rate limits for development...")
    for key in keys:
        try:
            guard.reset_rate_limit(key)
            out(f"✅ Reset: {key}")
        except Exception as exc:
            logger.warning("Could not reset %s: %s", key, exc)
            out(f"⚠️ Could not reset {key}: {exc}")
            failures.append(key)

    out("\n🔄 Clearing suspicious IP status...")
    for ip in ips:
        try:
            guard.clear_suspicious_ip(ip)
            out(f"✅ Cleared suspicious: {ip}")
        except Exception as exc:
            logger.warning("Could not clear %s: %s", ip, exc)
            out(f"⚠️ Could not clear {ip}: {exc}")
            failures.append(ip)

    out("\n✅ Rate limit reset completed!")
    out("\n📊 Updated Statistics:")
    _print_stats(guard, out)
    return failures


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Reset OTP rate limits on a running portal server")
    parser.add_argument("--url", default=PORTAL_URL, help="Portal base URL")
    parser.add_argument("--username", default=ADMIN_USERNAME)
    parser.add_argument("--password", default=ADMIN_PASSWORD)
    parser.add_argument(
        "--key",
        action="append",
        default=[],
        help="Extra counter key to reset (repeatable), e.g. phone:081234567890",
    )
    args = parser.parse_args(argv)

    print("🔧 Direct Rate Limit Reset Tool (Development)")
    print("==============================================\n")

    try:
        guard = RemoteGuard.connect(args.url, args.username, args.password)
    except GuardUnavailable as exc:
        print(f"❌ Error accessing rate limiter: {exc}\n")
        print(MANUAL_STEPS)
        return 0

    try:
        reset_rate_limits(guard, keys=[*DEV_KEYS, *args.key])
    finally:
        guard.close()

    print("\n🧪 You should now be able to test OTP requests again!")
    print("Try making an OTP request from your frontend now.")
    return 0
