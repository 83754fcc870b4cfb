"""
MFA challenge session repository.

A session dies when it is verified, exhausts its attempt budget or passes
``expires_at``. Attempt counting and verification are conditional UPDATEs.
"""

from datetime import datetime

from sqlalchemy.orm import Session

import repositories.db_models as db_models

from .base import BaseRepository


class ChallengeSessionRepository(BaseRepository[db_models.MFAChallengeSession]):
    """Repository for MFA challenge sessions."""

    def __init__(self, db: Session):
        super().__init__(db_models.MFAChallengeSession, db)

    def get_by_token(self, session_token: str) -> db_models.MFAChallengeSession | None:
        return (
            self.db.query(db_models.MFAChallengeSession)
            .filter(db_models.MFAChallengeSession.session_token == session_token)
            .first()
        )

    def record_failed_attempt(self, session_id: int, max_attempts: int) -> bool:
        """
        Spend one attempt from the budget.

        Returns False when the budget was already exhausted.
        """
        updated = (
            self.db.query(db_models.MFAChallengeSession)
            .filter(
                db_models.MFAChallengeSession.id == session_id,
                db_models.MFAChallengeSession.attempts < max_attempts,
            )
            .update(
                {
                    db_models.MFAChallengeSession.attempts: db_models.MFAChallengeSession.attempts
                    + 1
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def get_attempts(self, session_id: int) -> int:
        return (
            self.db.query(db_models.MFAChallengeSession.attempts)
            .filter(db_models.MFAChallengeSession.id == session_id)
            .scalar()
            or 0
        )

    def mark_verified(
        self, session_id: int, max_attempts: int, now: datetime
    ) -> bool:
        """Flip ``verified`` once; a second caller gets False."""
        updated = (
            self.db.query(db_models.MFAChallengeSession)
            .filter(
                db_models.MFAChallengeSession.id == session_id,
                db_models.MFAChallengeSession.verified.is_(False),
                db_models.MFAChallengeSession.attempts < max_attempts,
                db_models.MFAChallengeSession.expires_at > now,
            )
            .update(
                {db_models.MFAChallengeSession.verified: True},
                synchronize_session=False,
            )
        )
        return updated == 1

    def delete_dead(self, now: datetime) -> int:
        """Delete expired sessions and verified ones."""
        expired = self.delete_older_than(db_models.MFAChallengeSession.expires_at, now)
        verified = (
            self.db.query(db_models.MFAChallengeSession)
            .filter(db_models.MFAChallengeSession.verified.is_(True))
            .delete(synchronize_session=False)
        )
        return expired + verified
