"""Tests for ChallengeSessionRepository attempt budget and verification."""

from datetime import timedelta

import pytest

import repositories.db_models as db_models
from helpers.time_utils import utc_now
from repositories.challenge_session_repository import ChallengeSessionRepository


@pytest.fixture
def challenge(db_session, test_account) -> db_models.MFAChallengeSession:
    now = utc_now()
    session = db_models.MFAChallengeSession(
        session_token="challenge-token",
        account_id=test_account.id,
        expires_at=now + timedelta(minutes=5),
        created_at=now,
    )
    db_session.add(session)
    db_session.commit()
    return session


class TestAttemptBudget:
    """Tests for spending failed attempts."""

    def test_attempts_stop_at_budget(self, db_session, challenge) -> None:
        repo = ChallengeSessionRepository(db_session)

        spent = [repo.record_failed_attempt(challenge.id, 3) for _ in range(4)]

        assert spent == [True, True, True, False]
        assert repo.get_attempts(challenge.id) == 3

    def test_get_by_token(self, db_session, challenge) -> None:
        repo = ChallengeSessionRepository(db_session)
        assert repo.get_by_token("challenge-token").id == challenge.id
        assert repo.get_by_token("missing") is None


class TestMarkVerified:
    """Tests for the single verification flip."""

    def test_verified_only_once(self, db_session, challenge) -> None:
        repo = ChallengeSessionRepository(db_session)
        now = utc_now()

        assert repo.mark_verified(challenge.id, 5, now) is True
        assert repo.mark_verified(challenge.id, 5, now) is False

    def test_expired_session_not_verified(self, db_session, challenge) -> None:
        repo = ChallengeSessionRepository(db_session)
        later = utc_now() + timedelta(minutes=10)

        assert repo.mark_verified(challenge.id, 5, later) is False

    def test_exhausted_session_not_verified(self, db_session, challenge) -> None:
        repo = ChallengeSessionRepository(db_session)
        for _ in range(2):
            repo.record_failed_attempt(challenge.id, 2)

        assert repo.mark_verified(challenge.id, 2, utc_now()) is False


class TestDeleteDead:
    """Tests for challenge cleanup."""

    def test_removes_expired_and_verified(self, db_session, test_account) -> None:
        now = utc_now()
        rows = [
            db_models.MFAChallengeSession(
                session_token=f"token-{i}",
                account_id=test_account.id,
                expires_at=expires_at,
                verified=verified,
            )
            for i, (expires_at, verified) in enumerate(
                [
                    (now - timedelta(minutes=1), False),
                    (now + timedelta(minutes=5), True),
                    (now + timedelta(minutes=5), False),
                ]
            )
        ]
        db_session.add_all(rows)
        db_session.commit()

        repo = ChallengeSessionRepository(db_session)
        assert repo.delete_dead(now) == 2
        db_session.commit()
        assert repo.count() == 1
