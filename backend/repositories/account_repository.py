"""
Account repository.

The core treats accounts as an external identity source; this repository is
the only place that reads them and the only place their lockout and MFA
columns are written. Counter changes are single conditional UPDATE
statements so concurrent requests never lose an increment.
"""

from datetime import datetime

from sqlalchemy.orm import Session

import repositories.db_models as db_models
from helpers.time_utils import utc_now

from .base import BaseRepository


class AccountRepository(BaseRepository[db_models.Account]):
    """Repository for Account identity lookups and security columns."""

    def __init__(self, db: Session):
        super().__init__(db_models.Account, db)

    def get_by_email(self, email: str) -> db_models.Account | None:
        """Case-insensitive lookup by email."""
        return (
            self.db.query(db_models.Account)
            .filter(db_models.Account.email == email.strip().lower())
            .first()
        )

    def increment_failed_attempts(self, account_id: int, now: datetime) -> int:
        """
        Atomically add one failure and return the new counter value.

        The increment is evaluated by the database, so two concurrent
        failures always produce two increments.
        """
        self.db.query(db_models.Account).filter(
            db_models.Account.id == account_id
        ).update(
            {
                db_models.Account.failed_login_attempts: db_models.Account.failed_login_attempts
                + 1,
                db_models.Account.last_failed_login_at: now,
            },
            synchronize_session=False,
        )
        self.db.flush()
        return (
            self.db.query(db_models.Account.failed_login_attempts)
            .filter(db_models.Account.id == account_id)
            .scalar()
            or 0
        )

    def set_lockout(self, account_id: int, locked_until: datetime) -> None:
        self.db.query(db_models.Account).filter(
            db_models.Account.id == account_id
        ).update(
            {db_models.Account.account_locked_until: locked_until},
            synchronize_session=False,
        )

    def clear_expired_lockout(self, account_id: int, now: datetime) -> int:
        """Clear the lockout only if it is still expired when the UPDATE runs."""
        return (
            self.db.query(db_models.Account)
            .filter(
                db_models.Account.id == account_id,
                db_models.Account.account_locked_until.isnot(None),
                db_models.Account.account_locked_until <= now,
            )
            .update(
                {db_models.Account.account_locked_until: None},
                synchronize_session=False,
            )
        )

    def reset_failures(self, account_id: int, now: datetime | None = None) -> None:
        """Reset the counter and any lockout after a successful login."""
        values: dict = {
            db_models.Account.failed_login_attempts: 0,
            db_models.Account.account_locked_until: None,
        }
        if now is not None:
            values[db_models.Account.last_login_at] = now
        self.db.query(db_models.Account).filter(
            db_models.Account.id == account_id
        ).update(values, synchronize_session=False)

    def unlock(self, account_id: int) -> int:
        """Admin unlock: clear counter, lockout and last failure."""
        return (
            self.db.query(db_models.Account)
            .filter(db_models.Account.id == account_id)
            .update(
                {
                    db_models.Account.failed_login_attempts: 0,
                    db_models.Account.account_locked_until: None,
                    db_models.Account.last_failed_login_at: None,
                },
                synchronize_session=False,
            )
        )

    def count_locked(self, now: datetime | None = None) -> int:
        return (
            self.db.query(db_models.Account)
            .filter(db_models.Account.account_locked_until > (now or utc_now()))
            .count()
        )

    def count_with_failures(self) -> int:
        return (
            self.db.query(db_models.Account)
            .filter(db_models.Account.failed_login_attempts > 0)
            .count()
        )

    def set_mfa_enabled(self, account_id: int, enabled: bool, now: datetime) -> None:
        self.db.query(db_models.Account).filter(
            db_models.Account.id == account_id
        ).update(
            {
                db_models.Account.mfa_enabled: enabled,
                db_models.Account.mfa_method: (
                    db_models.MFAMethod.TOTP.value if enabled else None
                ),
                db_models.Account.mfa_enabled_at: now if enabled else None,
            },
            synchronize_session=False,
        )

    def touch_audit(self, account_id: int, now: datetime) -> None:
        self.db.query(db_models.Account).filter(
            db_models.Account.id == account_id
        ).update(
            {db_models.Account.last_audit_event_at: now},
            synchronize_session=False,
        )
