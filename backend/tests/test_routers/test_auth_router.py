"""Tests for the /api/auth endpoints."""

import pyotp
import pytest

from helpers.time_utils import utc_now
from services.login_attempt_service import LoginAttemptService
from services.mfa_service import MFAService


def login(client, email: str, password: str):
    return client.post("/api/auth/login", json={"email": email, "password": password})


@pytest.fixture
def tokens(client, test_account, test_password) -> dict:
    response = login(client, test_account.email, test_password)
    assert response.status_code == 200
    return response.json()


class TestLoginEndpoint:
    """Tests for POST /api/auth/login."""

    def test_success(self, tokens) -> None:
        assert tokens["token_type"] == "bearer"
        assert tokens["access_token"]
        assert tokens["refresh_token"]
        assert tokens["expires_in"] == 15 * 60

    def test_invalid_credentials(self, client, test_account) -> None:
        response = login(client, test_account.email, "wrong-password")

        assert response.status_code == 401
        body = response.json()
        assert body["type"] == "authentication_failed"
        assert body["detail"] == "Invalid email or password"
        assert body["correlation_id"]
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_unknown_email_same_response(self, client) -> None:
        response = login(client, "nobody@example.com", "whatever")

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"

    def test_invalid_email_format(self, client) -> None:
        response = login(client, "not-an-email", "whatever")
        assert response.status_code == 422

    def test_disabled_account(self, client, account_factory, test_password) -> None:
        account = account_factory("gone@example.com", is_active=False)

        response = login(client, account.email, test_password)

        assert response.status_code == 403
        assert response.json()["type"] == "permission_denied"

    def test_disabled_account_wrong_password(self, client, account_factory) -> None:
        account = account_factory("gone@example.com", is_active=False)

        response = login(client, account.email, "wrong")

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"

    def test_lockout_returns_423(self, client, test_account) -> None:
        for _ in range(4):
            assert login(client, test_account.email, "wrong").status_code == 401

        response = login(client, test_account.email, "wrong")

        assert response.status_code == 423
        body = response.json()
        assert body["type"] == "account_locked"
        assert body["minutes_remaining"] == 15
        assert body["locked_until"]

    def test_ip_block_returns_429(
        self, client, db_session, test_account, test_password
    ) -> None:
        now = utc_now()
        for i in range(20):
            LoginAttemptService.record_attempt(
                db_session,
                f"spray{i}@example.com",
                success=False,
                ip_address="testclient",
                now=now,
            )

        response = login(client, test_account.email, test_password)

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "1800"
        assert response.json()["type"] == "rate_limited"

    def test_request_rate_limit(self, client) -> None:
        statuses = [login(client, f"u{i}@example.com", "x").status_code for i in range(11)]

        assert statuses[:10] == [401] * 10
        assert statuses[10] == 429

    def test_mfa_login(self, client, db_session, test_account, test_password) -> None:
        now = utc_now()
        start = MFAService.start_enrollment(db_session, test_account.id, test_account.email)
        MFAService.verify_enrollment(
            db_session, test_account.id, pyotp.TOTP(start.secret).at(now), now=now
        )

        first = login(client, test_account.email, test_password)
        assert first.status_code == 200
        assert first.json()["mfa_required"] is True
        assert "access_token" not in first.json()

        second = client.post(
            "/api/auth/login/mfa",
            json={
                "session_token": first.json()["mfa_session_token"],
                "code": pyotp.TOTP(start.secret).now(),
            },
        )
        assert second.status_code == 200
        assert second.json()["refresh_token"]

    def test_mfa_login_unknown_session(self, client) -> None:
        response = client.post(
            "/api/auth/login/mfa", json={"session_token": "nope", "code": "123456"}
        )

        assert response.status_code == 401
        assert response.json()["type"] == "mfa_challenge_expired"


class TestRefreshAndLogout:
    """Tests for refresh, logout and sessions."""

    def test_refresh_rotates(self, client, tokens) -> None:
        response = client.post(
            "/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
        )

        assert response.status_code == 200
        assert response.json()["refresh_token"] != tokens["refresh_token"]

    def test_reused_refresh_token(self, client, tokens) -> None:
        first = client.post(
            "/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
        )
        replay = client.post(
            "/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
        )
        rotated = client.post(
            "/api/auth/refresh", json={"refresh_token": first.json()["refresh_token"]}
        )

        assert replay.status_code == 401
        assert rotated.status_code == 401

    def test_logout_requires_auth(self, client) -> None:
        response = client.post("/api/auth/logout", json={})

        assert response.status_code == 401
        assert response.json()["detail"] == "Not authenticated"

    def test_logout(self, client, tokens) -> None:
        headers = {"Authorization": f"Bearer {tokens['access_token']}"}

        response = client.post(
            "/api/auth/logout",
            json={"refresh_token": tokens["refresh_token"]},
            headers=headers,
        )

        assert response.status_code == 200
        assert response.json() == {"revoked": 1}
        refresh = client.post(
            "/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
        )
        assert refresh.status_code == 401

    def test_logout_all(self, client, tokens, test_account, test_password) -> None:
        login(client, test_account.email, test_password)
        headers = {"Authorization": f"Bearer {tokens['access_token']}"}

        response = client.post("/api/auth/logout-all", headers=headers)

        assert response.json() == {"revoked": 2}

    def test_sessions(self, client, tokens, test_account, test_password) -> None:
        login(client, test_account.email, test_password)
        headers = {
            "Authorization": f"Bearer {tokens['access_token']}",
            "X-Refresh-Token": tokens["refresh_token"],
        }

        response = client.get("/api/auth/sessions", headers=headers)

        assert response.status_code == 200
        sessions = response.json()
        assert len(sessions) == 2
        assert [s["is_current"] for s in sessions].count(True) == 1
        assert all("token" not in key for s in sessions for key in s)

    def test_revoke_other_accounts_session(
        self, client, tokens, other_account
    ) -> None:
        from authentication.auth import create_access_token

        own = client.get(
            "/api/auth/sessions",
            headers={"Authorization": f"Bearer {tokens['access_token']}"},
        ).json()
        intruder = {
            "Authorization": f"Bearer {create_access_token(other_account.id, other_account.email)}"
        }

        response = client.delete(f"/api/auth/sessions/{own[0]['id']}", headers=intruder)

        assert response.status_code == 404

    def test_login_history(self, client, tokens) -> None:
        response = client.get(
            "/api/auth/login-history",
            headers={"Authorization": f"Bearer {tokens['access_token']}"},
        )

        assert response.status_code == 200
        assert response.json()[0]["success"] is True

    def test_invalid_bearer(self, client) -> None:
        response = client.get(
            "/api/auth/sessions", headers={"Authorization": "Bearer garbage"}
        )
        assert response.status_code == 401


class TestAdminEndpoints:
    """Tests for unlock and lockout statistics."""

    def test_unlock_requires_admin(self, client, auth_headers, other_account) -> None:
        response = client.post(
            f"/api/auth/accounts/{other_account.id}/unlock", headers=auth_headers
        )

        assert response.status_code == 403
        assert response.json()["detail"] == "Admin privileges required"

    def test_unlock(self, client, admin_auth_headers, test_account, db_session) -> None:
        for _ in range(5):
            LoginAttemptService.record_attempt(
                db_session, test_account.email, success=False, account_id=test_account.id
            )

        response = client.post(
            f"/api/auth/accounts/{test_account.id}/unlock", headers=admin_auth_headers
        )

        assert response.status_code == 200
        assert response.json() == {"message": "Account unlocked"}
        assert test_account.account_locked_until is None

    def test_unlock_unknown_account(self, client, admin_auth_headers) -> None:
        response = client.post("/api/auth/accounts/9999/unlock", headers=admin_auth_headers)
        assert response.status_code == 404

    def test_lockout_stats(self, client, admin_auth_headers, test_account) -> None:
        login(client, test_account.email, "wrong")

        response = client.get("/api/auth/lockout-stats", headers=admin_auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["accounts_with_failures"] == 1
        assert body["most_targeted"][0]["email"] == test_account.email


class TestCrossCutting:
    """Tests for headers added to every response."""

    def test_correlation_id_echoed(self, client) -> None:
        response = client.get("/api/health", headers={"X-Correlation-ID": "abcd1234"})

        assert response.headers["X-Correlation-ID"] == "abcd1234"

    def test_security_headers(self, client) -> None:
        response = client.get("/api/health")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Cache-Control"] == "no-store"

    def test_health(self, client) -> None:
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
