"""
MFA engine.

Per account: unenrolled -> enrolling (inert secret) -> enabled -> disabled.
Per login: a challenge session gatekeeps token issue until a TOTP or backup
code is verified. Verification failures are hard errors; nothing here fails
open.
"""

import secrets
from datetime import datetime, timedelta
from typing import Optional

from loguru import logger
from sqlalchemy.orm import Session

from authentication.auth import verify_password
from helpers.time_utils import ensure_utc, utc_now
from models.auth_types import (
    AuditEventType,
    ChallengeResult,
    ChallengeState,
    EnrollmentStart,
)
from models.config import settings
from models.exceptions import (
    ChallengeExpiredException,
    EnrollmentRequiredException,
    InvalidCredentialsException,
    MFAAlreadyEnabledException,
    MFANotEnabledException,
    MFAVerificationFailedException,
)
from repositories import db_models
from repositories.account_repository import AccountRepository
from repositories.challenge_session_repository import ChallengeSessionRepository
from repositories.mfa_repository import BackupCodeRepository, MFAConfigurationRepository
from services.auth_audit_service import AuthAuditService
from services.trusted_device_service import TrustedDeviceService

SESSION_TOKEN_BYTES = 32

_ACCOUNT_MANAGEMENT = db_models.AuditCategory.ACCOUNT_MANAGEMENT.value
_AUTHENTICATION = db_models.AuditCategory.AUTHENTICATION.value


class MFAService:
    """Service for MFA enrollment, challenges, backup codes and disable."""

    @staticmethod
    def get_status(db: Session, account: db_models.Account) -> dict:
        config = MFAConfigurationRepository(db).get_for_account(account.id)
        return {
            "enabled": bool(account.mfa_enabled),
            "method": account.mfa_method,
            "enabled_at": ensure_utc(account.mfa_enabled_at),
            "pending_enrollment": config is not None and not config.enabled,
            "backup_codes_remaining": BackupCodeRepository(db).get_remaining_count(
                account.id
            ),
            "trusted_devices": len(TrustedDeviceService.list_devices(db, account.id)),
        }

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    @staticmethod
    def start_enrollment(
        db: Session,
        account_id: int,
        email: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> EnrollmentStart:
        """
        Store an inert TOTP secret and return it with its provisioning URI.

        Raises:
            MFAAlreadyEnabledException: If MFA is already enabled.
            MFAConfigurationException: If the encryption key is not configured.
        """
        repo = MFAConfigurationRepository(db)
        existing = repo.get_for_account(account_id)
        if existing is not None and existing.enabled:
            raise MFAAlreadyEnabledException()

        _, plain_secret = repo.upsert_pending(account_id)
        db.commit()

        AuthAuditService.log_event(
            db,
            AuditEventType.MFA_ENROLLMENT_STARTED,
            _ACCOUNT_MANAGEMENT,
            success=True,
            account_id=account_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return EnrollmentStart(
            secret=plain_secret,
            provisioning_uri=repo.get_provisioning_uri(plain_secret, email),
        )

    @staticmethod
    def verify_enrollment(
        db: Session,
        account_id: int,
        code: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> list[str]:
        """
        Activate MFA with the first TOTP code and issue fresh backup codes.

        Returns:
            The plain backup codes (shown once).

        Raises:
            EnrollmentRequiredException: If enrollment was never started.
            MFAAlreadyEnabledException: If MFA is already enabled.
            MFAVerificationFailedException: If the code is wrong.
        """
        now = now or utc_now()
        repo = MFAConfigurationRepository(db)
        config = repo.get_for_account(account_id)
        if config is None:
            raise EnrollmentRequiredException()
        if config.enabled:
            raise MFAAlreadyEnabledException()

        if not repo.verify_code(config, code, for_time=now):
            repo.increment_failed(config.id)
            db.commit()
            AuthAuditService.log_event(
                db,
                AuditEventType.MFA_ENROLLMENT_FAILED,
                _ACCOUNT_MANAGEMENT,
                success=False,
                account_id=account_id,
                ip_address=ip_address,
                user_agent=user_agent,
                failure_reason="invalid_code",
            )
            raise MFAVerificationFailedException()

        repo.mark_enabled(config.id, now)
        AccountRepository(db).set_mfa_enabled(account_id, True, now)
        codes = BackupCodeRepository(db).replace_codes(
            account_id, settings.MFA_BACKUP_CODE_COUNT
        )
        db.commit()

        logger.info(f"MFA enabled for account {account_id}")
        AuthAuditService.log_event(
            db,
            AuditEventType.MFA_ENABLED,
            _ACCOUNT_MANAGEMENT,
            success=True,
            account_id=account_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"method": db_models.MFAMethod.TOTP.value},
        )
        return codes

    # ------------------------------------------------------------------
    # Login challenge
    # ------------------------------------------------------------------

    @staticmethod
    def create_challenge(
        db: Session,
        account_id: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """Open a challenge session and return its opaque token."""
        now = now or utc_now()
        session_token = secrets.token_urlsafe(SESSION_TOKEN_BYTES)
        ChallengeSessionRepository(db).add(
            db_models.MFAChallengeSession(
                session_token=session_token,
                account_id=account_id,
                method=db_models.MFAMethod.TOTP.value,
                ip_address=ip_address,
                user_agent=user_agent,
                expires_at=now + timedelta(minutes=settings.MFA_CHALLENGE_TTL_MINUTES),
                created_at=now,
            )
        )
        db.commit()

        AuthAuditService.log_event(
            db,
            AuditEventType.MFA_CHALLENGE_REQUIRED,
            _AUTHENTICATION,
            success=True,
            account_id=account_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return session_token

    @staticmethod
    def lookup_challenge(
        db: Session, session_token: str, now: Optional[datetime] = None
    ) -> tuple[ChallengeState, Optional[db_models.MFAChallengeSession]]:
        """Classify a challenge session without mutating it."""
        now = now or utc_now()
        session = ChallengeSessionRepository(db).get_by_token(session_token)
        if session is None:
            return ChallengeState.NOT_FOUND, None
        if session.verified:
            return ChallengeState.VERIFIED, session
        if session.attempts >= settings.MFA_CHALLENGE_MAX_ATTEMPTS:
            return ChallengeState.EXHAUSTED, session
        if ensure_utc(session.expires_at) <= now:
            return ChallengeState.EXPIRED, session
        return ChallengeState.FOUND, session

    @staticmethod
    def _check_second_factor(
        db: Session,
        account_id: int,
        code: str,
        ip_address: Optional[str],
        now: datetime,
    ) -> tuple[bool, bool]:
        """
        Try TOTP first, then a backup code.

        Returns:
            (verified, used_backup_code)
        """
        config_repo = MFAConfigurationRepository(db)
        config = config_repo.get_enabled(account_id)
        if config is None:
            raise ChallengeExpiredException()

        code = (code or "").strip()
        if config_repo.verify_code(config, code, for_time=now):
            config_repo.touch_last_used(config.id, now)
            return True, False
        if BackupCodeRepository(db).consume(account_id, code, ip_address):
            return True, True
        return False, False

    @staticmethod
    def verify_challenge(
        db: Session,
        session_token: str,
        code: str,
        trust_device: bool = False,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ChallengeResult:
        """
        Verify the second factor for a pending login.

        Raises:
            ChallengeExpiredException: If the session is unknown, already
                used, out of attempts or past its TTL.
            MFAVerificationFailedException: If the code is wrong; carries
                ``attempts_remaining``.
        """
        now = now or utc_now()
        max_attempts = settings.MFA_CHALLENGE_MAX_ATTEMPTS
        state, session = MFAService.lookup_challenge(db, session_token, now)
        if state is ChallengeState.EXHAUSTED:
            raise ChallengeExpiredException(
                "Too many failed attempts. Please login again."
            )
        if state is not ChallengeState.FOUND or session is None:
            raise ChallengeExpiredException()

        account_id = session.account_id
        sessions = ChallengeSessionRepository(db)
        verified, used_backup = MFAService._check_second_factor(
            db, account_id, code, ip_address, now
        )

        if not verified:
            spent = sessions.record_failed_attempt(session.id, max_attempts)
            db.commit()
            remaining = max(0, max_attempts - sessions.get_attempts(session.id))
            AuthAuditService.log_event(
                db,
                AuditEventType.MFA_CHALLENGE_FAILED,
                _AUTHENTICATION,
                success=False,
                account_id=account_id,
                ip_address=ip_address,
                user_agent=user_agent,
                failure_reason="invalid_code",
                metadata={"attempts_remaining": remaining},
            )
            if not spent:
                raise ChallengeExpiredException(
                    "Too many failed attempts. Please login again."
                )
            raise MFAVerificationFailedException(attempts_remaining=remaining)

        if not sessions.mark_verified(session.id, max_attempts, now):
            # Lost a race with a concurrent verification; undo the code spend
            db.rollback()
            raise ChallengeExpiredException()

        if trust_device:
            TrustedDeviceService.trust_device(db, account_id, ip_address, user_agent, now)
        db.commit()

        AuthAuditService.log_event(
            db,
            AuditEventType.MFA_VERIFIED,
            _AUTHENTICATION,
            success=True,
            account_id=account_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={
                "method": "backup_code" if used_backup else "totp",
                "device_trusted": trust_device,
            },
        )
        return ChallengeResult(
            verified=True, account_id=account_id, used_backup_code=used_backup
        )

    # ------------------------------------------------------------------
    # Backup codes / disable
    # ------------------------------------------------------------------

    @staticmethod
    def _require_password(
        db: Session,
        account: db_models.Account,
        password: str,
        event_type: str,
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> None:
        if verify_password(password or "", account.hashed_password):
            return
        AuthAuditService.log_event(
            db,
            event_type,
            _ACCOUNT_MANAGEMENT,
            success=False,
            account_id=account.id,
            ip_address=ip_address,
            user_agent=user_agent,
            failure_reason="invalid_password",
        )
        raise InvalidCredentialsException("Invalid password")

    @staticmethod
    def regenerate_backup_codes(
        db: Session,
        account: db_models.Account,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> list[str]:
        """
        Replace all unused backup codes after re-authentication.

        Raises:
            MFANotEnabledException: If MFA is not enabled.
            InvalidCredentialsException: If the password is wrong.
        """
        if not account.mfa_enabled:
            raise MFANotEnabledException()
        MFAService._require_password(
            db,
            account,
            password,
            AuditEventType.MFA_BACKUP_CODES_REGENERATED,
            ip_address,
            user_agent,
        )

        codes = BackupCodeRepository(db).replace_codes(
            account.id, settings.MFA_BACKUP_CODE_COUNT
        )
        db.commit()
        AuthAuditService.log_event(
            db,
            AuditEventType.MFA_BACKUP_CODES_REGENERATED,
            _ACCOUNT_MANAGEMENT,
            success=True,
            account_id=account.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return codes

    @staticmethod
    def disable(
        db: Session,
        account: db_models.Account,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """
        Turn MFA off after re-authentication.

        Wipes the configuration and backup codes, clears the account flag
        and revokes every trusted device.

        Raises:
            MFANotEnabledException: If MFA is not enabled.
            InvalidCredentialsException: If the password is wrong.
        """
        if not account.mfa_enabled:
            raise MFANotEnabledException()
        MFAService._require_password(
            db, account, password, AuditEventType.MFA_DISABLED, ip_address, user_agent
        )

        account_id = account.id
        MFAConfigurationRepository(db).delete_for_account(account_id)
        BackupCodeRepository(db).delete_for_account(account_id)
        AccountRepository(db).set_mfa_enabled(account_id, False, utc_now())
        revoked = TrustedDeviceService.revoke_all(db, account_id)
        db.commit()

        logger.info(f"MFA disabled for account {account_id}")
        AuthAuditService.log_event(
            db,
            AuditEventType.MFA_DISABLED,
            _ACCOUNT_MANAGEMENT,
            success=True,
            account_id=account_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"trusted_devices_revoked": revoked},
        )

    @staticmethod
    def revoke_trusted_device(
        db: Session,
        account_id: int,
        device_id: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> int:
        count = TrustedDeviceService.revoke_device(db, account_id, device_id)
        AuthAuditService.log_event(
            db,
            AuditEventType.MFA_DEVICE_REVOKED,
            _ACCOUNT_MANAGEMENT,
            success=True,
            account_id=account_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"device_id": device_id},
        )
        return count

    @staticmethod
    def cleanup_expired_challenges(
        db: Session, now: Optional[datetime] = None, commit: bool = True
    ) -> int:
        deleted = ChallengeSessionRepository(db).delete_dead(now or utc_now())
        if commit:
            db.commit()
        return deleted
