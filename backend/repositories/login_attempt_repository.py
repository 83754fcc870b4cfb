"""
Login attempt repository for database operations.

Provides data access for the append-only login attempt log used by the
lockout tracker and IP based distributed-attack detection.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

import repositories.db_models as db_models
from helpers.time_utils import utc_now

from .base import BaseRepository


class LoginAttemptRepository(BaseRepository[db_models.LoginAttempt]):
    """Repository for LoginAttempt entity database operations."""

    def __init__(self, db: Session):
        """
        Initialize login attempt repository.

        Args:
            db: Database session
        """
        super().__init__(db_models.LoginAttempt, db)

    def add_attempt(
        self,
        email: str,
        success: bool,
        account_id: Optional[int] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        failure_reason: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> db_models.LoginAttempt:
        """Stage a new attempt on the session. Caller commits."""
        attempt = db_models.LoginAttempt(
            email=email,
            account_id=account_id,
            ip_address=ip_address,
            user_agent=user_agent,
            success=success,
            failure_reason=failure_reason,
            created_at=created_at or utc_now(),
        )
        self.add(attempt)
        return attempt

    def count_failed_since(
        self,
        since: datetime,
        email: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> int:
        """
        Count failed login attempts since a point in time.

        Args:
            since: Lower bound (exclusive) on created_at
            email: Filter by email address
            ip_address: Filter by IP address

        Returns:
            Count of failed attempts
        """
        query = self.db.query(func.count(db_models.LoginAttempt.id)).filter(
            db_models.LoginAttempt.success.is_(False),
            db_models.LoginAttempt.created_at > since,
        )

        if email is not None:
            query = query.filter(db_models.LoginAttempt.email == email)

        if ip_address is not None:
            query = query.filter(db_models.LoginAttempt.ip_address == ip_address)

        result = query.scalar()
        return result if result is not None else 0

    def get_history(
        self,
        account_id: Optional[int] = None,
        email: Optional[str] = None,
        limit: int = 20,
    ) -> list[db_models.LoginAttempt]:
        """Most recent attempts for an account id or email."""
        query = self.db.query(db_models.LoginAttempt)
        if account_id is not None:
            query = query.filter(db_models.LoginAttempt.account_id == account_id)
        if email is not None:
            query = query.filter(db_models.LoginAttempt.email == email)
        return (
            query.order_by(
                db_models.LoginAttempt.created_at.desc(),
                db_models.LoginAttempt.id.desc(),
            )
            .limit(limit)
            .all()
        )

    def most_targeted_emails(
        self, since: datetime, limit: int = 10
    ) -> list[tuple[str, int, datetime]]:
        """Emails with the most failures since ``since``."""
        attempt_count = func.count(db_models.LoginAttempt.id).label("attempt_count")
        rows = (
            self.db.query(
                db_models.LoginAttempt.email,
                attempt_count,
                func.max(db_models.LoginAttempt.created_at),
            )
            .filter(
                db_models.LoginAttempt.success.is_(False),
                db_models.LoginAttempt.created_at > since,
            )
            .group_by(db_models.LoginAttempt.email)
            .order_by(attempt_count.desc())
            .limit(limit)
            .all()
        )
        return [(row[0], row[1], row[2]) for row in rows]

    def cleanup_old_attempts(self, retention_days: int = 90) -> int:
        """
        Delete attempts older than the retention period. Caller commits.

        Args:
            retention_days: Number of days to retain attempts

        Returns:
            Number of attempts deleted
        """
        cutoff = utc_now() - timedelta(days=retention_days)
        return self.delete_older_than(db_models.LoginAttempt.created_at, cutoff)
