"""
Refresh token repository.

Tokens are addressed by the SHA-256 hash of the raw value; the raw token is
never passed to this layer. Consumption and revocation are conditional
UPDATE statements whose rowcount decides the outcome.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

import repositories.db_models as db_models
from helpers.time_utils import utc_now

from .base import BaseRepository


class RefreshTokenRepository(BaseRepository[db_models.RefreshToken]):
    """Repository for refresh token persistence."""

    def __init__(self, db: Session):
        super().__init__(db_models.RefreshToken, db)

    def get_by_hash(self, token_hash: str) -> db_models.RefreshToken | None:
        """Row for a hash in any state (used for reuse detection)."""
        return (
            self.db.query(db_models.RefreshToken)
            .filter(db_models.RefreshToken.token_hash == token_hash)
            .populate_existing()
            .first()
        )

    def consume(self, token_hash: str, now: datetime) -> bool:
        """
        Spend one use of a token.

        Returns True only if the token was usable at the moment of the
        UPDATE. Two concurrent callers on a single-use token get exactly
        one True.
        """
        updated = (
            self.db.query(db_models.RefreshToken)
            .filter(
                db_models.RefreshToken.token_hash == token_hash,
                db_models.RefreshToken.revoked_at.is_(None),
                db_models.RefreshToken.expires_at > now,
                db_models.RefreshToken.usage_count < db_models.RefreshToken.max_usage,
            )
            .update(
                {
                    db_models.RefreshToken.usage_count: db_models.RefreshToken.usage_count
                    + 1,
                    db_models.RefreshToken.last_used_at: now,
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def mark_rotated(self, token_id: int, replaced_by_hash: str, now: datetime) -> int:
        return (
            self.db.query(db_models.RefreshToken)
            .filter(
                db_models.RefreshToken.id == token_id,
                db_models.RefreshToken.revoked_at.is_(None),
            )
            .update(
                {
                    db_models.RefreshToken.revoked_at: now,
                    db_models.RefreshToken.replaced_by_hash: replaced_by_hash,
                },
                synchronize_session=False,
            )
        )

    def revoke_by_hash(self, token_hash: str, now: datetime) -> int:
        return (
            self.db.query(db_models.RefreshToken)
            .filter(
                db_models.RefreshToken.token_hash == token_hash,
                db_models.RefreshToken.revoked_at.is_(None),
            )
            .update(
                {db_models.RefreshToken.revoked_at: now}, synchronize_session=False
            )
        )

    def revoke_all_for_account(self, account_id: int, now: datetime) -> int:
        return (
            self.db.query(db_models.RefreshToken)
            .filter(
                db_models.RefreshToken.account_id == account_id,
                db_models.RefreshToken.revoked_at.is_(None),
            )
            .update(
                {db_models.RefreshToken.revoked_at: now}, synchronize_session=False
            )
        )

    def revoke_for_account_by_id(
        self, account_id: int, token_id: int, now: datetime
    ) -> int:
        return (
            self.db.query(db_models.RefreshToken)
            .filter(
                db_models.RefreshToken.id == token_id,
                db_models.RefreshToken.account_id == account_id,
                db_models.RefreshToken.revoked_at.is_(None),
            )
            .update(
                {db_models.RefreshToken.revoked_at: now}, synchronize_session=False
            )
        )

    def get_for_account(
        self, account_id: int, token_id: int
    ) -> db_models.RefreshToken | None:
        return (
            self.db.query(db_models.RefreshToken)
            .filter(
                db_models.RefreshToken.id == token_id,
                db_models.RefreshToken.account_id == account_id,
            )
            .first()
        )

    def list_active(
        self, account_id: int, now: Optional[datetime] = None
    ) -> list[db_models.RefreshToken]:
        """Usable tokens for an account, most recently used first."""
        now = now or utc_now()
        return (
            self.db.query(db_models.RefreshToken)
            .filter(
                db_models.RefreshToken.account_id == account_id,
                db_models.RefreshToken.revoked_at.is_(None),
                db_models.RefreshToken.expires_at > now,
                db_models.RefreshToken.usage_count < db_models.RefreshToken.max_usage,
            )
            .order_by(
                func.coalesce(
                    db_models.RefreshToken.last_used_at,
                    db_models.RefreshToken.created_at,
                ).desc()
            )
            .all()
        )

    def get_stats(self, account_id: Optional[int] = None) -> dict[str, int]:
        """Counts of total, active, revoked and expired tokens."""
        now = utc_now()
        base = self.db.query(db_models.RefreshToken)
        if account_id is not None:
            base = base.filter(db_models.RefreshToken.account_id == account_id)

        total = base.count()
        revoked = base.filter(db_models.RefreshToken.revoked_at.isnot(None)).count()
        expired = base.filter(
            db_models.RefreshToken.revoked_at.is_(None),
            db_models.RefreshToken.expires_at <= now,
        ).count()
        active = base.filter(
            db_models.RefreshToken.revoked_at.is_(None),
            db_models.RefreshToken.expires_at > now,
            db_models.RefreshToken.usage_count < db_models.RefreshToken.max_usage,
        ).count()
        return {
            "total": total,
            "active": active,
            "revoked": revoked,
            "expired": expired,
        }

    def cleanup(self, retention_days: int) -> int:
        """Delete tokens expired or revoked longer ago than the retention window."""
        cutoff = utc_now() - timedelta(days=retention_days)
        return (
            self.db.query(db_models.RefreshToken)
            .filter(
                or_(
                    db_models.RefreshToken.expires_at < cutoff,
                    db_models.RefreshToken.revoked_at < cutoff,
                )
            )
            .delete(synchronize_session=False)
        )
