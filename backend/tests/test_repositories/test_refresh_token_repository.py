"""Tests for RefreshTokenRepository conditional updates."""

from datetime import timedelta

import pytest

import repositories.db_models as db_models
from helpers.time_utils import utc_now
from repositories.refresh_token_repository import RefreshTokenRepository


@pytest.fixture
def make_token(db_session, test_account):
    """Insert a refresh token row with the given hash."""

    def _make(token_hash: str, max_usage: int = 1, expires_in_days: int = 30):
        now = utc_now()
        row = db_models.RefreshToken(
            account_id=test_account.id,
            token_hash=token_hash,
            expires_at=now + timedelta(days=expires_in_days),
            usage_count=0,
            max_usage=max_usage,
            created_at=now,
        )
        db_session.add(row)
        db_session.commit()
        return row

    return _make


class TestConsume:
    """Tests for spending token uses."""

    def test_single_use_token_consumed_once(self, db_session, make_token) -> None:
        """A max_usage=1 token yields exactly one successful consume."""
        make_token("a" * 64)
        repo = RefreshTokenRepository(db_session)
        now = utc_now()

        assert repo.consume("a" * 64, now) is True
        assert repo.consume("a" * 64, now) is False

    def test_multi_use_token(self, db_session, make_token) -> None:
        """A token allows max_usage consumes and no more."""
        make_token("b" * 64, max_usage=3)
        repo = RefreshTokenRepository(db_session)
        now = utc_now()

        results = [repo.consume("b" * 64, now) for _ in range(4)]
        assert results == [True, True, True, False]

    def test_expired_token_not_consumed(self, db_session, make_token) -> None:
        """Expired tokens are rejected by the UPDATE filter."""
        make_token("c" * 64, expires_in_days=-1)
        assert RefreshTokenRepository(db_session).consume("c" * 64, utc_now()) is False

    def test_revoked_token_not_consumed(self, db_session, make_token) -> None:
        """Revoked tokens are rejected."""
        make_token("d" * 64)
        repo = RefreshTokenRepository(db_session)
        now = utc_now()
        assert repo.revoke_by_hash("d" * 64, now) == 1

        assert repo.consume("d" * 64, now) is False

    def test_unknown_hash(self, db_session) -> None:
        """Unknown hashes never match."""
        assert RefreshTokenRepository(db_session).consume("e" * 64, utc_now()) is False


class TestRevocation:
    """Tests for revocation and rotation bookkeeping."""

    def test_revoke_is_idempotent(self, db_session, make_token) -> None:
        """Revoking twice only updates the row once."""
        make_token("f" * 64)
        repo = RefreshTokenRepository(db_session)
        now = utc_now()

        assert repo.revoke_by_hash("f" * 64, now) == 1
        assert repo.revoke_by_hash("f" * 64, now) == 0

    def test_mark_rotated_links_replacement(self, db_session, make_token) -> None:
        """Rotation revokes the row and records the successor hash."""
        row = make_token("1" * 64)
        repo = RefreshTokenRepository(db_session)

        assert repo.mark_rotated(row.id, "2" * 64, utc_now()) == 1
        db_session.commit()

        stored = repo.get_by_hash("1" * 64)
        assert stored.revoked_at is not None
        assert stored.replaced_by_hash == "2" * 64

    def test_revoke_all_for_account(self, db_session, make_token, test_account) -> None:
        """Every live token of the account is revoked."""
        make_token("3" * 64)
        make_token("4" * 64)
        repo = RefreshTokenRepository(db_session)

        assert repo.revoke_all_for_account(test_account.id, utc_now()) == 2
        db_session.commit()
        assert repo.list_active(test_account.id) == []

    def test_stats(self, db_session, make_token, test_account) -> None:
        """Stats split tokens into active, revoked and expired."""
        make_token("5" * 64)
        make_token("6" * 64, expires_in_days=-1)
        make_token("7" * 64)
        repo = RefreshTokenRepository(db_session)
        repo.revoke_by_hash("7" * 64, utc_now())
        db_session.commit()

        stats = repo.get_stats(test_account.id)

        assert stats == {"total": 3, "active": 1, "revoked": 1, "expired": 1}
