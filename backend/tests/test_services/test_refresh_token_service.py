"""Tests for RefreshTokenService issue, rotation and revocation."""

import jwt
import pytest

from models.config import settings
from models.exceptions import (
    AccountNotFoundException,
    InvalidTokenException,
    SessionNotFoundException,
)
from repositories.refresh_token_repository import RefreshTokenRepository
from services.refresh_token_service import (
    RefreshTokenService,
    generate_refresh_token,
    hash_token,
)

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class TestTokenGeneration:
    """Tests for raw token generation and hashing."""

    def test_tokens_are_unique_and_long(self) -> None:
        tokens = {generate_refresh_token() for _ in range(50)}
        assert len(tokens) == 50
        # 48 random bytes encode to 64 URL-safe characters
        assert all(len(token) == 64 for token in tokens)

    def test_hash_is_sha256_hex(self) -> None:
        digest = hash_token("abc")
        assert len(digest) == 64
        assert digest == hash_token("abc")


class TestCreateRefreshToken:
    """Tests for issuing tokens."""

    def test_only_hash_is_stored(self, db_session, test_account) -> None:
        tokens = RefreshTokenService.create_refresh_token(
            db_session, test_account.id, "10.0.0.1", CHROME_UA
        )

        repo = RefreshTokenRepository(db_session)
        row = repo.get_by_hash(hash_token(tokens.refresh_token))
        assert row is not None
        assert row.token_hash != tokens.refresh_token
        assert row.device["browser"].startswith("Chrome")

    def test_access_token_claims(self, db_session, test_account) -> None:
        tokens = RefreshTokenService.create_refresh_token(db_session, test_account.id)

        claims = jwt.decode(
            tokens.access_token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
        assert claims["sub"] == str(test_account.id)
        assert claims["email"] == test_account.email
        assert claims["type"] == "access"
        assert tokens.expires_in == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        assert tokens.token_type == "bearer"

    def test_unknown_account(self, db_session) -> None:
        with pytest.raises(AccountNotFoundException):
            RefreshTokenService.create_refresh_token(db_session, 999)


class TestRotation:
    """Tests for single-use rotation and reuse detection."""

    def test_refresh_rotates_token(self, db_session, test_account) -> None:
        issued = RefreshTokenService.create_refresh_token(db_session, test_account.id)

        refreshed = RefreshTokenService.use_refresh_token(db_session, issued.refresh_token)

        assert refreshed.refresh_token is not None
        assert refreshed.refresh_token != issued.refresh_token
        old = RefreshTokenRepository(db_session).get_by_hash(hash_token(issued.refresh_token))
        assert old.revoked_at is not None
        assert old.replaced_by_hash == hash_token(refreshed.refresh_token)

    def test_rotated_token_reports_reuse(self, db_session, test_account) -> None:
        issued = RefreshTokenService.create_refresh_token(db_session, test_account.id)
        RefreshTokenService.use_refresh_token(db_session, issued.refresh_token)

        with pytest.raises(InvalidTokenException) as exc_info:
            RefreshTokenService.use_refresh_token(db_session, issued.refresh_token)

        assert exc_info.value.reused_account_id == test_account.id

    def test_unknown_token(self, db_session) -> None:
        with pytest.raises(InvalidTokenException) as exc_info:
            RefreshTokenService.use_refresh_token(db_session, "not-a-token")
        assert exc_info.value.reused_account_id is None

    def test_empty_token(self, db_session) -> None:
        with pytest.raises(InvalidTokenException):
            RefreshTokenService.use_refresh_token(db_session, "")

    def test_revoked_token_is_not_reuse(self, db_session, test_account) -> None:
        """Logout revocation is plain invalid, not a reuse signal."""
        issued = RefreshTokenService.create_refresh_token(db_session, test_account.id)
        RefreshTokenService.revoke_token(db_session, issued.refresh_token)

        with pytest.raises(InvalidTokenException) as exc_info:
            RefreshTokenService.use_refresh_token(db_session, issued.refresh_token)
        assert exc_info.value.reused_account_id is None

    def test_disabled_account_token_revoked(self, db_session, test_account) -> None:
        issued = RefreshTokenService.create_refresh_token(db_session, test_account.id)
        test_account.is_active = False
        db_session.commit()

        with pytest.raises(InvalidTokenException):
            RefreshTokenService.use_refresh_token(db_session, issued.refresh_token)

        row = RefreshTokenRepository(db_session).get_by_hash(hash_token(issued.refresh_token))
        assert row.revoked_at is not None


class TestWithoutRotation:
    """Tests for multi-use tokens when rotation is disabled."""

    def test_token_reused_until_max_usage(self, db_session, test_account, monkeypatch) -> None:
        monkeypatch.setattr(settings, "TOKEN_ROTATION_ENABLED", False)
        monkeypatch.setattr(settings, "REFRESH_TOKEN_MAX_USAGE", 2)
        issued = RefreshTokenService.create_refresh_token(db_session, test_account.id)

        first = RefreshTokenService.use_refresh_token(db_session, issued.refresh_token)
        second = RefreshTokenService.use_refresh_token(db_session, issued.refresh_token)

        assert first.refresh_token is None
        assert second.refresh_token is None
        with pytest.raises(InvalidTokenException) as exc_info:
            RefreshTokenService.use_refresh_token(db_session, issued.refresh_token)
        assert exc_info.value.reused_account_id is None


class TestSessions:
    """Tests for session listing and revocation."""

    def test_list_sessions_marks_current(self, db_session, test_account) -> None:
        current = RefreshTokenService.create_refresh_token(
            db_session, test_account.id, "10.0.0.1", CHROME_UA
        )
        RefreshTokenService.create_refresh_token(db_session, test_account.id, "10.0.0.2")

        sessions = RefreshTokenService.list_sessions(
            db_session, test_account.id, current.refresh_token
        )

        assert len(sessions) == 2
        assert sum(1 for s in sessions if s["is_current"]) == 1
        assert all("token_hash" not in s for s in sessions)

    def test_revoke_session_of_other_account(
        self, db_session, test_account, other_account
    ) -> None:
        RefreshTokenService.create_refresh_token(db_session, test_account.id)
        session_id = RefreshTokenService.list_sessions(db_session, test_account.id)[0]["id"]

        with pytest.raises(SessionNotFoundException):
            RefreshTokenService.revoke_session(db_session, other_account.id, session_id)

    def test_revoke_session(self, db_session, test_account) -> None:
        RefreshTokenService.create_refresh_token(db_session, test_account.id)
        session_id = RefreshTokenService.list_sessions(db_session, test_account.id)[0]["id"]

        assert RefreshTokenService.revoke_session(db_session, test_account.id, session_id) == 1
        assert RefreshTokenService.list_sessions(db_session, test_account.id) == []

    def test_revoke_all(self, db_session, test_account) -> None:
        for _ in range(3):
            RefreshTokenService.create_refresh_token(db_session, test_account.id)

        assert RefreshTokenService.revoke_all_for_account(db_session, test_account.id) == 3
        stats = RefreshTokenService.get_token_stats(db_session, test_account.id)
        assert stats["active"] == 0
        assert stats["revoked"] == 3

    def test_revoke_token_is_idempotent(self, db_session, test_account) -> None:
        issued = RefreshTokenService.create_refresh_token(db_session, test_account.id)

        assert RefreshTokenService.revoke_token(db_session, issued.refresh_token) == 1
        assert RefreshTokenService.revoke_token(db_session, issued.refresh_token) == 0
