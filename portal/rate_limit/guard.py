"""
Multi-layer rate limiting for OTP requests.

Every OTP request is identified by the caller's IP address and the target
phone number, and checked in this order:

1.  Burst       – requests per IP inside a short (minute) window.
2.  IP blocked  – an IP that overflowed its hourly quota stays blocked
                  for ``ip.block_duration_ms``.
3.  IP hourly   – requests per IP per hour; overflow applies the block.
4.  Cooldown    – minimum spacing between two requests for one phone.
5.  Phone       – hourly quota and rolling 24h quota for one phone.
6.  Global      – total OTP requests per hour across all callers.

A check that passes records the request in its own counter before the
next one runs; the first failing check decides the denial.  The global
tally is the exception: every request is counted there up front, and the
cap is compared against the requests seen before this one.  Sources whose
hourly volume crosses ``global.suspicious_threshold`` are flagged for
operators but not denied because of it.

All state lives in memory on a single ``RateLimitGuard`` instance and is
lost on restart.  Windows are pruned lazily on access and swept
periodically by ``RateLimitSweeper``.

Usage::

    guard  = RateLimitGuard(get_rate_limit_config())
    result = guard.check_and_record("203.0.113.7", "081234567890")
    if not result.allowed:
        ...  # 429 with result.retry_after
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from portal.rate_limit.config import RateLimitConfig
from portal.rate_limit.keys import CounterKey, Dimension

logger = logging.getLogger(__name__)

_HOUR = 3600.0
_DAY = 24 * _HOUR

# How long an IP stays on the suspicious list unless cleared.
SUSPICIOUS_TTL_SECONDS = _DAY

# Request-pattern heuristics (logged only).
_PATTERN_WINDOW = 5 * 60.0
_RAPID_FIRE_ATTEMPTS = 5
_MIN_INTERVALS_FOR_REGULARITY = 3
_REGULAR_INTERVAL_VARIANCE = 1000 / 1_000_000  # 1000 ms², in s²


class Decision(str, Enum):
    ALLOWED = "allowed"
    DENIED_IP_BLOCKED = "ip_blocked"
    DENIED_IP_RATE_EXCEEDED = "ip_rate_exceeded"
    DENIED_PHONE_COOLDOWN = "phone_cooldown"
    DENIED_PHONE_HOURLY_EXCEEDED = "phone_hourly_exceeded"
    DENIED_PHONE_DAILY_EXCEEDED = "phone_daily_exceeded"
    DENIED_BURST = "burst"
    DENIED_GLOBAL_CAPACITY = "global_capacity"


_MESSAGES: dict[Decision, str] = {
    Decision.ALLOWED: "OK",
    Decision.DENIED_IP_BLOCKED: (
        "Too many requests from your IP address. Please try again later."
    ),
    Decision.DENIED_IP_RATE_EXCEEDED: (
        "Too many requests from your IP address. Please try again later."
    ),
    Decision.DENIED_PHONE_COOLDOWN: (
        "Please wait {retry_after} seconds before requesting another OTP."
    ),
    Decision.DENIED_PHONE_HOURLY_EXCEEDED: (
        "Too many OTP requests for this phone number. Please try again later."
    ),
    Decision.DENIED_PHONE_DAILY_EXCEEDED: (
        "Daily OTP limit reached for this phone number. Please try again tomorrow."
    ),
    Decision.DENIED_BURST: (
        "Too many requests too quickly. Please wait a moment and try again."
    ),
    Decision.DENIED_GLOBAL_CAPACITY: (
        "Service is currently experiencing high demand. Please try again later."
    ),
}


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one ``check_and_record`` call."""

    decision: Decision
    retry_after: int = 0
    # IP quota snapshot, for X-RateLimit-* headers on admitted requests
    limit: int = 0
    remaining: int = 0
    reset_after: int = 0
    patterns: tuple[str, ...] = ()

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ALLOWED

    @property
    def message(self) -> str:
        return _MESSAGES[self.decision].format(retry_after=self.retry_after)


@dataclass
class CounterEntry:
    """Timestamps recorded for one key, oldest first."""

    window_start: float
    events: deque[float] = field(default_factory=deque)
    blocked_until: float | None = None

    def prune(self, cutoff: float, now: float) -> None:
        while self.events and self.events[0] <= cutoff:
            self.events.popleft()
        self.window_start = self.events[0] if self.events else now

    def count_since(self, since: float) -> int:
        return sum(1 for t in self.events if t > since)

    def oldest_since(self, since: float) -> float | None:
        return next((t for t in self.events if t > since), None)

    def is_blocked(self, now: float) -> bool:
        return self.blocked_until is not None and now < self.blocked_until

    def is_live(self, cutoff: float, now: float) -> bool:
        if self.is_blocked(now):
            return True
        return bool(self.events) and self.events[-1] > cutoff


def _seconds_until(moment: float, now: float) -> int:
    return max(1, math.ceil(moment - now))


def _window_retry(oldest: float | None, window: float, now: float) -> int:
    """Seconds until *oldest* leaves *window*; a full window when nothing is counted."""
    if oldest is None:
        return _seconds_until(now + window, now)
    return _seconds_until(oldest + window, now)


def analyze_request_pattern(events: deque[float] | list[float], now: float) -> list[str]:
    """Flag bot-like request timing for one phone.

    ``rapid_fire``          – five or more requests in the last 5 minutes
    ``consistent_pattern``  – near-identical spacing between recent requests
    """
    recent = [t for t in events if t > now - _PATTERN_WINDOW]
    issues: list[str] = []

    if len(recent) >= _RAPID_FIRE_ATTEMPTS:
        issues.append("rapid_fire")

    intervals = [b - a for a, b in zip(recent, recent[1:])]
    if len(intervals) >= _MIN_INTERVALS_FOR_REGULARITY:
        mean = sum(intervals) / len(intervals)
        variance = sum((i - mean) ** 2 for i in intervals) / len(intervals)
        if variance < _REGULAR_INTERVAL_VARIANCE:
            issues.append("consistent_pattern")

    return issues


class RateLimitGuard:
    """
    Owns every rate-limit counter for the process.

    Build one at startup and share it; tests create their own instance
    with a fake *clock* (any callable returning seconds).

    All public methods take the same lock, so the check-then-record
    sequence for a key is atomic even when called from worker threads.
    """

    def __init__(
        self,
        config: RateLimitConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
        suspicious_ttl_seconds: float = SUSPICIOUS_TTL_SECONDS,
    ) -> None:
        self._config = config
        self._clock = clock
        self._suspicious_ttl = suspicious_ttl_seconds
        self._lock = threading.Lock()

        self._entries: dict[CounterKey, CounterEntry] = {}
        self._global: deque[float] = deque()
        # ip → request times in the last hour, whatever the outcome
        self._source_tally: dict[str, deque[float]] = {}
        # ip → flag expiry
        self._suspicious: dict[str, float] = {}

        self._ip_window = config.ip.window_ms / 1000
        self._ip_block = config.ip.block_duration_ms / 1000
        self._burst_window = config.burst.window_ms / 1000
        self._phone_window = config.phone.window_ms / 1000
        self._phone_cooldown = config.phone.cooldown_ms / 1000
        self._phone_retention = max(self._phone_window, _DAY)

    @property
    def config(self) -> RateLimitConfig:
        return self._config

    # ── Check ──────────────────────────────────────────────────────────

    def check_and_record(self, ip: str, phone: str | None = None) -> RateLimitResult:
        """Decide whether an OTP request may proceed, and record it."""
        with self._lock:
            now = self._clock()
            self._tally_source(ip, now)
            global_before = self._tally_global(now)

            denied = self._check_burst(ip, now)
            if denied is not None:
                return denied

            denied = self._check_ip(ip, now)
            if denied is not None:
                return denied

            patterns: list[str] = []
            if phone:
                denied = self._check_phone(phone, now)
                if denied is not None:
                    return denied
                patterns = self._analyze_phone(phone, now)

            denied = self._check_global(global_before, now)
            if denied is not None:
                return denied

            ip_entry = self._entries[CounterKey.ip(ip)]
            used = ip_entry.count_since(now - self._ip_window)
            oldest = ip_entry.oldest_since(now - self._ip_window)
            logger.debug("Rate limit check passed - IP: %s, phone: %s", ip, phone or "N/A")
            return RateLimitResult(
                decision=Decision.ALLOWED,
                limit=self._config.ip.max_requests,
                remaining=max(0, self._config.ip.max_requests - used),
                reset_after=_seconds_until(oldest + self._ip_window, now) if oldest is not None else 0,
                patterns=tuple(patterns),
            )

    def _entry(self, key: CounterKey, retention: float, now: float) -> CounterEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = CounterEntry(window_start=now)
            self._entries[key] = entry
        else:
            entry.prune(now - retention, now)
        return entry

    def _check_burst(self, ip: str, now: float) -> RateLimitResult | None:
        entry = self._entry(CounterKey.burst(ip), self._burst_window, now)
        if len(entry.events) >= self._config.burst.max_requests_per_minute:
            logger.warning(
                "🚫 IP burst limit exceeded: %s - %d requests in %.0fs",
                ip, len(entry.events), self._burst_window,
            )
            return RateLimitResult(
                Decision.DENIED_BURST,
                retry_after=_window_retry(
                    entry.events[0] if entry.events else None, self._burst_window, now
                ),
            )
        entry.events.append(now)
        return None

    def _check_ip(self, ip: str, now: float) -> RateLimitResult | None:
        entry = self._entry(CounterKey.ip(ip), self._ip_window, now)

        if entry.is_blocked(now):
            return RateLimitResult(
                Decision.DENIED_IP_BLOCKED,
                retry_after=_seconds_until(entry.blocked_until, now),
            )
        entry.blocked_until = None

        if len(entry.events) >= self._config.ip.max_requests:
            entry.blocked_until = now + self._ip_block
            logger.warning(
                "🚫 IP rate limit exceeded: %s - %d requests, blocked for %.0fs",
                ip, len(entry.events), self._ip_block,
            )
            return RateLimitResult(
                Decision.DENIED_IP_RATE_EXCEEDED,
                retry_after=_seconds_until(entry.blocked_until, now),
            )
        entry.events.append(now)
        return None

    def _check_phone(self, phone: str, now: float) -> RateLimitResult | None:
        limits = self._config.phone
        entry = self._entry(CounterKey.phone(phone), self._phone_retention, now)

        if entry.events:
            elapsed = now - entry.events[-1]
            if elapsed < self._phone_cooldown:
                return RateLimitResult(
                    Decision.DENIED_PHONE_COOLDOWN,
                    retry_after=_seconds_until(entry.events[-1] + self._phone_cooldown, now),
                )

        hourly_since = now - self._phone_window
        if entry.count_since(hourly_since) >= limits.max_requests:
            logger.warning("🚫 Phone hourly limit exceeded: %s", phone)
            oldest = entry.oldest_since(hourly_since)
            return RateLimitResult(
                Decision.DENIED_PHONE_HOURLY_EXCEEDED,
                retry_after=_window_retry(oldest, self._phone_window, now),
            )

        if entry.count_since(now - _DAY) >= limits.daily_limit:
            logger.warning("🚫 Phone daily limit exceeded: %s", phone)
            oldest = entry.oldest_since(now - _DAY)
            return RateLimitResult(
                Decision.DENIED_PHONE_DAILY_EXCEEDED,
                retry_after=_window_retry(oldest, _DAY, now),
            )

        entry.events.append(now)
        return None

    def _analyze_phone(self, phone: str, now: float) -> list[str]:
        entry = self._entries[CounterKey.phone(phone)]
        patterns = analyze_request_pattern(entry.events, now)
        if patterns:
            logger.warning(
                "🔍 Suspicious patterns detected for %s: %s", phone, ", ".join(patterns)
            )
        return patterns

    def _tally_global(self, now: float) -> int:
        """Count this request globally; returns the hour's count before it."""
        self._prune_global(now)
        before = len(self._global)
        self._global.append(now)
        return before

    def _check_global(self, before: int, now: float) -> RateLimitResult | None:
        if before >= self._config.global_.max_requests_per_hour:
            logger.warning("🌍 Global rate limit exceeded: %d requests this hour", before)
            return RateLimitResult(
                Decision.DENIED_GLOBAL_CAPACITY,
                retry_after=_window_retry(self._global[0], _HOUR, now),
            )
        return None

    def _prune_global(self, now: float) -> None:
        cutoff = now - _HOUR
        while self._global and self._global[0] <= cutoff:
            self._global.popleft()

    # ── Suspicious sources ─────────────────────────────────────────────

    def _tally_source(self, ip: str, now: float) -> None:
        tally = self._source_tally.setdefault(ip, deque())
        while tally and tally[0] <= now - _HOUR:
            tally.popleft()
        tally.append(now)

        if len(tally) > self._config.global_.suspicious_threshold and not self._is_suspicious(ip, now):
            self._suspicious[ip] = now + self._suspicious_ttl
            logger.warning(
                "🚨 IP marked as suspicious: %s - %d requests in one hour", ip, len(tally)
            )

    def _is_suspicious(self, ip: str, now: float) -> bool:
        expires_at = self._suspicious.get(ip)
        return expires_at is not None and now < expires_at

    def is_suspicious(self, ip: str) -> bool:
        with self._lock:
            return self._is_suspicious(ip, self._clock())

    def suspicious_ips(self) -> list[str]:
        with self._lock:
            now = self._clock()
            return sorted(ip for ip, exp in self._suspicious.items() if now < exp)

    # ── Operations / introspection ─────────────────────────────────────

    def _retention(self, dimension: Dimension) -> float:
        if dimension is Dimension.IP:
            return self._ip_window
        if dimension is Dimension.BURST:
            return self._burst_window
        return self._phone_retention

    def get_stats(self) -> dict[str, int]:
        """Snapshot for monitoring.  Does not prune or otherwise mutate state."""
        with self._lock:
            now = self._clock()
            total_keys = sum(
                1
                for key, entry in self._entries.items()
                if entry.is_live(now - self._retention(key.dimension), now)
            )
            return {
                "totalKeys": total_keys,
                "suspiciousIPs": sum(1 for exp in self._suspicious.values() if now < exp),
                "globalRequests": sum(1 for t in self._global if t > now - _HOUR),
            }

    def reset_rate_limit(self, key: str | CounterKey) -> bool:
        """Delete one counter by exact key.  Returns False if it didn't exist."""
        counter_key = CounterKey.parse(key) if isinstance(key, str) else key
        with self._lock:
            removed = self._entries.pop(counter_key, None) is not None
        logger.info("🔄 Rate limit reset for key: %s", counter_key)
        return removed

    def clear_suspicious_ip(self, ip: str) -> bool:
        """Drop the suspicious flag (and hourly tally) for *ip*."""
        with self._lock:
            removed = self._suspicious.pop(ip, None) is not None
            self._source_tally.pop(ip, None)
        logger.info("🔄 Cleared suspicious status for IP: %s", ip)
        return removed

    def sweep(self) -> int:
        """Remove expired counters, flags and tallies.  Returns entries removed."""
        with self._lock:
            now = self._clock()
            removed = 0
            for key in list(self._entries):
                entry = self._entries[key]
                cutoff = now - self._retention(key.dimension)
                entry.prune(cutoff, now)
                if not entry.is_live(cutoff, now):
                    del self._entries[key]
                    removed += 1

            for ip in [ip for ip, exp in self._suspicious.items() if now >= exp]:
                del self._suspicious[ip]

            for ip in list(self._source_tally):
                tally = self._source_tally[ip]
                while tally and tally[0] <= now - _HOUR:
                    tally.popleft()
                if not tally:
                    del self._source_tally[ip]

            self._prune_global(now)

        if removed:
            logger.debug("🧹 Rate limiter cleanup: removed %d expired entries", removed)
        return removed
