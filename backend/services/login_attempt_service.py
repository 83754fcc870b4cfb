"""
Lockout tracker.

Records every login attempt and applies progressive account lockout.
Storage errors here are logged and the login is allowed to proceed: the
tracker fails open.
"""

from datetime import datetime, timedelta
from typing import Literal, Optional

import sentry_sdk
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from helpers.time_utils import ensure_utc, utc_now
from models.auth_types import LockoutState, LockoutStatus
from models.config import settings
from models.exceptions import AccountNotFoundException
from repositories import db_models
from repositories.account_repository import AccountRepository
from repositories.login_attempt_repository import LoginAttemptRepository


def normalize_email(email: str) -> str:
    return email.strip().lower()


class LoginAttemptService:
    """Service for login attempt tracking and progressive lockout."""

    @staticmethod
    def lockout_duration(failed_attempts: int) -> Optional[timedelta]:
        """Duration for the highest threshold reached, or None below the first."""
        for threshold, minutes in settings.lockout_tiers:
            if failed_attempts >= threshold:
                return timedelta(minutes=minutes)
        return None

    @staticmethod
    def record_attempt(
        db: Session,
        email: str,
        success: bool,
        account_id: Optional[int] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        failure_reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Persist an attempt and update the account's failure counter.

        A success resets the counter and clears any lockout. A failure for a
        known account increments the counter atomically and applies the
        lockout tier it reaches.
        """
        now = now or utc_now()
        try:
            LoginAttemptRepository(db).add_attempt(
                email=normalize_email(email),
                success=success,
                account_id=account_id,
                ip_address=ip_address,
                user_agent=user_agent,
                failure_reason=None if success else failure_reason,
                created_at=now,
            )
            if account_id is not None:
                accounts = AccountRepository(db)
                if success:
                    accounts.reset_failures(account_id, now)
                else:
                    attempts = accounts.increment_failed_attempts(account_id, now)
                    duration = LoginAttemptService.lockout_duration(attempts)
                    if duration is not None:
                        accounts.set_lockout(account_id, now + duration)
                        logger.warning(
                            f"Account {account_id} locked for {duration} after {attempts} failed attempts"
                        )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            sentry_sdk.capture_exception(e)
            logger.error(f"Failed to record login attempt: {e!r}")

    @staticmethod
    def check_account_lockout(
        db: Session, email: str, now: Optional[datetime] = None
    ) -> LockoutStatus:
        """
        Report whether the account behind ``email`` is locked.

        An expired lockout is cleared as a side effect of the check.
        """
        now = now or utc_now()
        try:
            accounts = AccountRepository(db)
            account = accounts.get_by_email(email)
            if account is None:
                return LockoutStatus(state=LockoutState.NOT_FOUND)

            locked_until = ensure_utc(account.account_locked_until)
            attempts = account.failed_login_attempts or 0
            if locked_until is None:
                return LockoutStatus(
                    state=LockoutState.UNLOCKED,
                    attempts=attempts,
                    account_id=account.id,
                )
            if locked_until > now:
                return LockoutStatus(
                    state=LockoutState.LOCKED,
                    locked_until=locked_until,
                    attempts=attempts,
                    account_id=account.id,
                )

            accounts.clear_expired_lockout(account.id, now)
            db.commit()
            db.refresh(account)
            return LockoutStatus(
                state=LockoutState.EXPIRED_CLEARED,
                attempts=attempts,
                account_id=account.id,
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Lockout check failed, allowing login: {e!r}")
            return LockoutStatus(state=LockoutState.UNLOCKED)

    @staticmethod
    def recent_failed_attempts(
        db: Session,
        identifier: str,
        window_minutes: int,
        by: Literal["email", "ip"] = "email",
        now: Optional[datetime] = None,
    ) -> int:
        """Failed attempts for an email or IP inside the trailing window."""
        since = (now or utc_now()) - timedelta(minutes=window_minutes)
        repo = LoginAttemptRepository(db)
        try:
            if by == "ip":
                return repo.count_failed_since(since, ip_address=identifier)
            return repo.count_failed_since(since, email=normalize_email(identifier))
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed-attempt query failed, assuming none: {e!r}")
            return 0

    @staticmethod
    def is_ip_blocked(
        db: Session, ip_address: Optional[str], now: Optional[datetime] = None
    ) -> bool:
        """True once an IP reaches the distributed-attack threshold."""
        if not ip_address:
            return False
        failures = LoginAttemptService.recent_failed_attempts(
            db,
            ip_address,
            settings.IP_FAILURE_WINDOW_MINUTES,
            by="ip",
            now=now,
        )
        return failures >= settings.IP_FAILURE_THRESHOLD

    @staticmethod
    def get_login_history(
        db: Session, account_id: int, limit: int = 20
    ) -> list[db_models.LoginAttempt]:
        return LoginAttemptRepository(db).get_history(account_id=account_id, limit=limit)

    @staticmethod
    def unlock_account(db: Session, account_id: int) -> None:
        """
        Admin unlock: reset counter and lockout.

        Raises:
            AccountNotFoundException: If the account does not exist.
        """
        if AccountRepository(db).unlock(account_id) == 0:
            raise AccountNotFoundException(account_id)
        db.commit()
        logger.info(f"Account {account_id} manually unlocked")

    @staticmethod
    def get_lockout_stats(db: Session, hours: int = 24) -> dict:
        now = utc_now()
        accounts = AccountRepository(db)
        attempts = LoginAttemptRepository(db)
        targeted = attempts.most_targeted_emails(now - timedelta(hours=hours))
        return {
            "currently_locked": accounts.count_locked(now),
            "accounts_with_failures": accounts.count_with_failures(),
            "recent_failures": attempts.count_failed_since(now - timedelta(hours=1)),
            "most_targeted": [
                {
                    "email": email,
                    "attempt_count": count,
                    "last_attempt": ensure_utc(last_attempt),
                }
                for email, count, last_attempt in targeted
            ],
        }

    @staticmethod
    def cleanup_old_attempts(
        db: Session, retention_days: Optional[int] = None, commit: bool = True
    ) -> int:
        deleted = LoginAttemptRepository(db).cleanup_old_attempts(
            retention_days or settings.LOGIN_ATTEMPT_RETENTION_DAYS
        )
        if commit:
            db.commit()
        return deleted
