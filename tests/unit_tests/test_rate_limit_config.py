"""Tests for rate-limit profiles, profile selection and counter keys."""

import dataclasses

import pytest

from portal.rate_limit.config import (
    DEVELOPMENT_RATE_LIMIT_CONFIG,
    PRODUCTION_RATE_LIMIT_CONFIG,
    get_rate_limit_config,
)
from portal.rate_limit.keys import CounterKey, Dimension


class TestProfiles:
    def test_production_is_never_more_lenient(self):
        dev, prod = DEVELOPMENT_RATE_LIMIT_CONFIG, PRODUCTION_RATE_LIMIT_CONFIG

        assert prod.ip.max_requests <= dev.ip.max_requests
        assert prod.phone.max_requests <= dev.phone.max_requests
        assert prod.phone.daily_limit <= dev.phone.daily_limit
        assert prod.global_.max_requests_per_hour <= dev.global_.max_requests_per_hour
        assert prod.global_.suspicious_threshold <= dev.global_.suspicious_threshold
        assert prod.burst.max_requests_per_minute <= dev.burst.max_requests_per_minute
        # Longer waits are stricter
        assert prod.ip.block_duration_ms >= dev.ip.block_duration_ms
        assert prod.phone.cooldown_ms >= dev.phone.cooldown_ms

    def test_production_values(self):
        prod = PRODUCTION_RATE_LIMIT_CONFIG
        assert prod.ip.max_requests == 10
        assert prod.ip.block_duration_ms == 2 * 60 * 60 * 1000
        assert prod.phone.max_requests == 5
        assert prod.phone.cooldown_ms == 60 * 1000
        assert prod.phone.daily_limit == 20
        assert prod.global_.max_requests_per_hour == 1000
        assert prod.burst.max_requests_per_minute == 3

    def test_profiles_are_immutable(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            PRODUCTION_RATE_LIMIT_CONFIG.ip.max_requests = 1000

    def test_to_dict(self):
        data = PRODUCTION_RATE_LIMIT_CONFIG.to_dict()
        assert data["profile"] == "production"
        assert data["ip"] == {"maxRequests": 10, "windowMs": 3_600_000, "blockDurationMs": 7_200_000}
        assert data["phone"]["cooldownMs"] == 60_000
        assert data["global"]["maxRequestsPerHour"] == 1000
        assert data["burst"]["maxRequestsPerMinute"] == 3


class TestProfileSelection:
    @pytest.mark.parametrize("environment", ["production", "PRODUCTION", " production "])
    def test_production(self, environment):
        assert get_rate_limit_config(environment) is PRODUCTION_RATE_LIMIT_CONFIG

    @pytest.mark.parametrize("environment", ["development", "staging", "test", ""])
    def test_everything_else_is_development(self, environment):
        assert get_rate_limit_config(environment) is DEVELOPMENT_RATE_LIMIT_CONFIG

    def test_defaults_to_environment_setting(self, monkeypatch):
        monkeypatch.setattr("portal.config.ENVIRONMENT", "production")
        assert get_rate_limit_config() is PRODUCTION_RATE_LIMIT_CONFIG

        monkeypatch.setattr("portal.config.ENVIRONMENT", "development")
        assert get_rate_limit_config() is DEVELOPMENT_RATE_LIMIT_CONFIG


class TestCounterKey:
    def test_string_form(self):
        assert str(CounterKey.ip("127.0.0.1")) == "ip:127.0.0.1"
        assert str(CounterKey.burst("::1")) == "burst:::1"
        assert str(CounterKey.phone("081911290961")) == "phone:081911290961"

    def test_parse_ipv6(self):
        key = CounterKey.parse("ip:::1")
        assert key.dimension is Dimension.IP
        assert key.identifier == "::1"
        assert key == CounterKey.ip("::1")

    def test_phone_forms_are_distinct(self):
        assert CounterKey.parse("phone:081911290961") != CounterKey.parse("phone:6281911290961")

    @pytest.mark.parametrize("raw", ["", "ip", "ip:", "127.0.0.1"])
    def test_malformed(self, raw):
        with pytest.raises(ValueError, match="Malformed"):
            CounterKey.parse(raw)

    def test_unknown_dimension(self):
        with pytest.raises(ValueError, match="Unknown rate limit dimension"):
            CounterKey.parse("email:someone@example.com")

    def test_empty_identifier(self):
        with pytest.raises(ValueError):
            CounterKey.phone("")
