"""
Data Retention Service.

Purges authentication records that have aged out of their retention windows:
login attempts, refresh tokens, MFA challenge sessions, stale trusted devices
and the audit ledger (events, daily summaries, closed alerts).

Should be run via scheduled task (background scheduler) or the
``scripts/cleanup_auth_data.py`` command.
"""

from typing import Callable

import sentry_sdk
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.config import settings
from services.auth_audit_service import AuthAuditService
from services.login_attempt_service import LoginAttemptService
from services.mfa_service import MFAService
from services.refresh_token_service import RefreshTokenService
from services.trusted_device_service import TrustedDeviceService


class RetentionService:
    """
    Service for enforcing data retention policies.

    Each job runs in its own transaction; a failing job is rolled back and
    reported as ``None`` without stopping the others.
    """

    @staticmethod
    def _jobs(commit: bool) -> dict[str, Callable[[Session], object]]:
        return {
            "login_attempts": lambda db: LoginAttemptService.cleanup_old_attempts(
                db, commit=commit
            ),
            "refresh_tokens": lambda db: RefreshTokenService.cleanup_expired_tokens(
                db, commit=commit
            ),
            "mfa_challenges": lambda db: MFAService.cleanup_expired_challenges(
                db, commit=commit
            ),
            "trusted_devices": lambda db: TrustedDeviceService.cleanup_stale_devices(
                db, settings.TRUSTED_DEVICE_DAYS, commit=commit
            ),
            "audit": lambda db: AuthAuditService.cleanup_old_audit_data(
                db, commit=commit
            ),
        }

    @staticmethod
    def run_all_cleanup_jobs(db: Session, dry_run: bool = False) -> dict:
        """
        Run all retention cleanup jobs.

        Args:
            db: Database session
            dry_run: Count what would be deleted, then roll back

        Returns:
            Summary of cleanup actions taken, keyed by job name
        """
        logger.info(f"Starting retention cleanup jobs (dry_run={dry_run})")

        results: dict = {}
        for name, job in RetentionService._jobs(commit=not dry_run).items():
            try:
                results[name] = job(db)
                if dry_run:
                    db.rollback()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Retention job '{name}' failed: {e}")
                sentry_sdk.capture_exception(e)
                results[name] = None

        logger.info(f"Retention cleanup complete: {results}")
        return results
