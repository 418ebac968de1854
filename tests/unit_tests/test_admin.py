"""Tests for admin login and the rate-limit operations endpoints."""

from portal.rate_limit.guard import Decision
from tests.mocks.models import TEST_IP, TEST_PHONE


class TestAdminLogin:
    def test_login_success(self, client):
        resp = client.post("/api/admin/login", json={"username": "admin", "password": "admin"})
        assert resp.status_code == 200
        assert resp.json()["username"] == "admin"
        assert "admin_session" in resp.cookies

        me = client.get("/api/admin/me")
        assert me.status_code == 200
        assert me.json()["username"] == "admin"

    def test_login_wrong_password(self, client):
        resp = client.post("/api/admin/login", json={"username": "admin", "password": "nope"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid username or password"

    def test_customer_session_is_not_admin(self, client, monkeypatch):
        monkeypatch.setattr("portal.config.ENVIRONMENT", "development")
        otp = client.post("/api/customer/otp/send", json={"phone": TEST_PHONE}).json()["otp"]
        client.post("/api/customer/otp/verify", json={"phone": TEST_PHONE, "otp": otp})

        assert client.get("/api/admin/me").status_code == 401

    def test_logout(self, client):
        client.post("/api/admin/login", json={"username": "admin", "password": "admin"})
        assert client.post("/api/admin/logout").status_code == 200
        assert client.get("/api/admin/me").status_code == 401


class TestRateLimitStats:
    def test_requires_admin(self, client):
        resp = client.get("/api/admin/rate-limit/stats")
        assert resp.status_code == 401

    def test_stats(self, admin_client, _test_env):
        _test_env.check_and_record(TEST_IP, TEST_PHONE)

        resp = admin_client.get("/api/admin/rate-limit/stats")
        assert resp.status_code == 200

        data = resp.json()
        assert data["stats"] == {"totalKeys": 3, "suspiciousIPs": 0, "globalRequests": 1}
        assert data["suspicious"] == []
        assert data["config"]["profile"] == "production"
        assert data["config"]["ip"]["maxRequests"] == 10
        assert "timestamp" in data


class TestRateLimitReset:
    def test_missing_key(self, admin_client):
        resp = admin_client.post("/api/admin/rate-limit/reset", json={})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Rate limit key is required"

    def test_malformed_key(self, admin_client):
        resp = admin_client.post("/api/admin/rate-limit/reset", json={"key": "nonsense"})
        assert resp.status_code == 400
        assert "Malformed" in resp.json()["detail"]

    def test_reset_unblocks_ip(self, admin_client, _test_env, clock):
        guard = _test_env
        for _ in range(10):
            guard.check_and_record(TEST_IP)
            clock.advance(61)
        assert guard.check_and_record(TEST_IP).decision is Decision.DENIED_IP_RATE_EXCEEDED

        resp = admin_client.post("/api/admin/rate-limit/reset", json={"key": f"ip:{TEST_IP}"})
        assert resp.status_code == 200
        assert resp.json() == {"message": f"Rate limit reset for key: ip:{TEST_IP}", "existed": True}

        clock.advance(61)
        assert guard.check_and_record(TEST_IP).allowed

    def test_reset_absent_key(self, admin_client):
        resp = admin_client.post("/api/admin/rate-limit/reset", json={"key": "phone:081200000000"})
        assert resp.status_code == 200
        assert resp.json()["existed"] is False


class TestClearSuspicious:
    def test_missing_ip(self, admin_client):
        resp = admin_client.post("/api/admin/rate-limit/clear-suspicious", json={})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "IP address is required"

    def test_clear(self, admin_client, _test_env):
        guard = _test_env
        # 101 attempts inside the hour crosses the production threshold of 100
        for _ in range(101):
            guard.check_and_record(TEST_IP)
        assert guard.is_suspicious(TEST_IP)

        stats = admin_client.get("/api/admin/rate-limit/stats").json()
        assert stats["suspicious"] == [TEST_IP]

        resp = admin_client.post("/api/admin/rate-limit/clear-suspicious", json={"ip": TEST_IP})
        assert resp.status_code == 200
        assert resp.json()["existed"] is True
        assert not guard.is_suspicious(TEST_IP)
