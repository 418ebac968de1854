"""Tests for OTP issuing and verification."""

import pytest

from portal.services.otp_store import OtpStore, OtpVerification
from tests.mocks.models import TEST_PHONE


@pytest.fixture()
def store(clock) -> OtpStore:
    return OtpStore(ttl_seconds=300, max_attempts=3, clock=clock)


def _wrong(code: str) -> str:
    return "1" * len(code) if code != "1" * len(code) else "2" * len(code)


class TestIssue:
    def test_code_is_six_digits(self, store):
        code = store.issue(TEST_PHONE)
        assert len(code) == 6
        assert code.isdigit()

    def test_reissue_replaces_pending_code(self, store):
        first = store.issue(TEST_PHONE)
        second = store.issue(TEST_PHONE)
        assert len(store) == 1
        if first != second:
            assert store.verify(TEST_PHONE, first) is OtpVerification.INVALID
        assert store.verify(TEST_PHONE, second) is OtpVerification.VERIFIED


class TestVerify:
    def test_success_is_single_use(self, store):
        code = store.issue(TEST_PHONE)
        assert store.verify(TEST_PHONE, code) is OtpVerification.VERIFIED
        assert store.verify(TEST_PHONE, code) is OtpVerification.NOT_FOUND

    def test_unknown_phone(self, store):
        assert store.verify(TEST_PHONE, "123456") is OtpVerification.NOT_FOUND

    def test_expired(self, store, clock):
        code = store.issue(TEST_PHONE)
        clock.advance(301)
        assert store.verify(TEST_PHONE, code) is OtpVerification.EXPIRED
        assert len(store) == 0

    def test_valid_until_ttl(self, store, clock):
        code = store.issue(TEST_PHONE)
        clock.advance(300)
        assert store.verify(TEST_PHONE, code) is OtpVerification.VERIFIED

    def test_attempts_exhausted(self, store):
        code = store.issue(TEST_PHONE)
        for _ in range(3):
            assert store.verify(TEST_PHONE, _wrong(code)) is OtpVerification.INVALID

        # Even the right code is refused once attempts run out
        assert store.verify(TEST_PHONE, code) is OtpVerification.TOO_MANY_ATTEMPTS
        assert store.verify(TEST_PHONE, code) is OtpVerification.NOT_FOUND


class TestPurgeExpired:
    def test_unverified_codes_are_dropped(self, store, clock):
        for i in range(1000):
            store.issue(f"08120000{i:04d}")

        clock.advance(10 * 24 * 3600)
        store.issue(TEST_PHONE)

        assert store.purge_expired() == 1000
        assert len(store) == 1

    def test_pending_codes_survive(self, store, clock):
        code = store.issue(TEST_PHONE)
        clock.advance(299)

        assert store.purge_expired() == 0
        assert store.verify(TEST_PHONE, code) is OtpVerification.VERIFIED
