"""
Authentication Service

Login orchestration: composes the lockout tracker, credential check, MFA
engine, token lifecycle and audit ledger for each login, MFA completion,
refresh and logout request.
"""

from datetime import datetime
from typing import Optional

import sentry_sdk
from loguru import logger
from sqlalchemy.orm import Session

from authentication.auth import verify_password
from helpers.time_utils import utc_now
from models.auth_types import (
    AuditEventType,
    IssuedTokens,
    LoginFailureReason,
    LoginOutcome,
)
from models.config import settings
from models.exceptions import (
    AccountDisabledException,
    AccountLockedException,
    InvalidCredentialsException,
    InvalidTokenException,
    RateLimitedException,
)
from repositories import db_models
from repositories.account_repository import AccountRepository
from services.auth_audit_service import AuthAuditService
from services.login_attempt_service import LoginAttemptService, normalize_email
from services.mfa_service import MFAService
from services.refresh_token_service import RefreshTokenService
from services.trusted_device_service import TrustedDeviceService

_AUTHENTICATION = db_models.AuditCategory.AUTHENTICATION.value
_SECURITY = db_models.AuditCategory.SECURITY.value
_SESSION = db_models.AuditCategory.SESSION.value


class AuthService:
    """Service for authentication business logic."""

    @staticmethod
    def _reject(
        db: Session,
        email: str,
        reason: str,
        account_id: Optional[int],
        ip_address: Optional[str],
        user_agent: Optional[str],
        now: datetime,
        record: bool = True,
    ) -> None:
        """Record and audit a failed login before the caller raises."""
        if record:
            LoginAttemptService.record_attempt(
                db,
                email,
                success=False,
                account_id=account_id,
                ip_address=ip_address,
                user_agent=user_agent,
                failure_reason=reason,
                now=now,
            )
        AuthAuditService.log_event(
            db,
            AuditEventType.LOGIN_FAILED,
            _AUTHENTICATION,
            success=False,
            account_id=account_id,
            ip_address=ip_address,
            user_agent=user_agent,
            failure_reason=reason,
            metadata={"email": email},
            now=now,
        )

    @staticmethod
    def login(
        db: Session,
        email: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> LoginOutcome:
        """
        Authenticate with email and password.

        Returns:
            A ``LoginOutcome`` holding either tokens or an MFA session token.

        Raises:
            RateLimitedException: If the IP is blocked for repeated failures.
            AccountLockedException: If the account is locked, or this failure locked it.
            InvalidCredentialsException: Unknown email or wrong password.
            AccountDisabledException: If the account is deactivated.
        """
        now = now or utc_now()
        email = normalize_email(email)

        if LoginAttemptService.is_ip_blocked(db, ip_address, now):
            AuthAuditService.log_event(
                db,
                AuditEventType.IP_BLOCKED,
                _SECURITY,
                success=False,
                ip_address=ip_address,
                user_agent=user_agent,
                failure_reason=LoginFailureReason.IP_BLOCKED,
                metadata={"email": email},
                now=now,
            )
            raise RateLimitedException(
                retry_after=settings.IP_FAILURE_WINDOW_MINUTES * 60
            )

        lockout = LoginAttemptService.check_account_lockout(db, email, now)
        if lockout.locked:
            AuthService._reject(
                db,
                email,
                LoginFailureReason.ACCOUNT_LOCKED,
                lockout.account_id,
                ip_address,
                user_agent,
                now,
                record=False,
            )
            raise AccountLockedException(lockout.locked_until, lockout.attempts)

        account = AccountRepository(db).get_by_email(email)
        if account is None:
            AuthService._reject(
                db, email, LoginFailureReason.USER_NOT_FOUND, None, ip_address, user_agent, now
            )
            raise InvalidCredentialsException()

        account_id = account.id
        if not verify_password(password, account.hashed_password):
            AuthService._reject(
                db,
                email,
                LoginFailureReason.INVALID_PASSWORD,
                account_id,
                ip_address,
                user_agent,
                now,
            )
            status = LoginAttemptService.check_account_lockout(db, email, now)
            if status.locked:
                AuthAuditService.log_event(
                    db,
                    AuditEventType.ACCOUNT_LOCKED,
                    _SECURITY,
                    success=True,
                    account_id=account_id,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    metadata={
                        "attempts": status.attempts,
                        "locked_until": status.locked_until,
                    },
                    now=now,
                )
                raise AccountLockedException(status.locked_until, status.attempts)
            raise InvalidCredentialsException()

        if not account.is_active:
            AuthService._reject(
                db,
                email,
                LoginFailureReason.ACCOUNT_DISABLED,
                account_id,
                ip_address,
                user_agent,
                now,
            )
            raise AccountDisabledException()

        if account.mfa_enabled and not TrustedDeviceService.is_device_trusted(
            db, account_id, ip_address, user_agent, now
        ):
            session_token = MFAService.create_challenge(
                db, account_id, ip_address, user_agent, now
            )
            return LoginOutcome(mfa_session_token=session_token, account_id=account_id)

        tokens = AuthService._finish_login(
            db,
            account,
            ip_address,
            user_agent,
            now,
            method="trusted_device" if account.mfa_enabled else "password",
        )
        return LoginOutcome(tokens=tokens, account_id=account_id)

    @staticmethod
    def _finish_login(
        db: Session,
        account: db_models.Account,
        ip_address: Optional[str],
        user_agent: Optional[str],
        now: datetime,
        method: str,
    ) -> IssuedTokens:
        account_id = account.id
        email = account.email
        LoginAttemptService.record_attempt(
            db,
            email,
            success=True,
            account_id=account_id,
            ip_address=ip_address,
            user_agent=user_agent,
            now=now,
        )
        tokens = RefreshTokenService.create_refresh_token(
            db, account_id, ip_address, user_agent, now
        )
        AuthAuditService.log_event(
            db,
            AuditEventType.LOGIN,
            _AUTHENTICATION,
            success=True,
            account_id=account_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"method": method},
            now=now,
        )
        logger.info(f"Login succeeded for account {account_id} via {method}")
        return tokens

    @staticmethod
    def complete_mfa_login(
        db: Session,
        session_token: str,
        code: str,
        trust_device: bool = False,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> IssuedTokens:
        """
        Finish a login that was parked on an MFA challenge.

        Raises:
            ChallengeExpiredException: If the challenge is dead.
            MFAVerificationFailedException: If the code is wrong.
            InvalidCredentialsException: If the account vanished or was disabled.
        """
        now = now or utc_now()
        result = MFAService.verify_challenge(
            db, session_token, code, trust_device, ip_address, user_agent, now
        )
        account = AccountRepository(db).get_by_id(result.account_id)
        if account is None or not account.is_active:
            raise InvalidCredentialsException()
        method = "mfa_backup_code" if result.used_backup_code else "mfa_totp"
        return AuthService._finish_login(db, account, ip_address, user_agent, now, method)

    @staticmethod
    def refresh(
        db: Session,
        raw_refresh_token: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> IssuedTokens:
        """
        Exchange a refresh token for new tokens.

        Presenting a token that was already rotated revokes every session of
        its account before the error is raised.

        Raises:
            InvalidTokenException: If the token cannot be used.
        """
        now = now or utc_now()
        try:
            tokens = RefreshTokenService.use_refresh_token(
                db, raw_refresh_token, ip_address, user_agent, now
            )
        except InvalidTokenException as e:
            if e.reused_account_id is not None:
                revoked = RefreshTokenService.revoke_all_for_account(
                    db, e.reused_account_id
                )
                logger.warning(
                    f"Refresh token reuse detected for account {e.reused_account_id}; "
                    f"revoked {revoked} sessions"
                )
                sentry_sdk.capture_message("Refresh token reuse detected", level="warning")
                AuthAuditService.log_event(
                    db,
                    AuditEventType.TOKEN_REUSE_DETECTED,
                    _SECURITY,
                    success=False,
                    account_id=e.reused_account_id,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    failure_reason="rotated_token_reused",
                    metadata={"sessions_revoked": revoked},
                    now=now,
                )
            else:
                AuthAuditService.log_event(
                    db,
                    AuditEventType.TOKEN_REFRESH_FAILED,
                    _SESSION,
                    success=False,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    failure_reason="invalid_token",
                    now=now,
                )
            raise

        AuthAuditService.log_event(
            db,
            AuditEventType.TOKEN_REFRESH,
            _SESSION,
            success=True,
            account_id=tokens.account_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"rotated": tokens.refresh_token is not None},
            now=now,
        )
        return tokens

    @staticmethod
    def logout(
        db: Session,
        account_id: int,
        raw_refresh_token: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> int:
        """Revoke the presented refresh token. Idempotent."""
        revoked = (
            RefreshTokenService.revoke_token(db, raw_refresh_token)
            if raw_refresh_token
            else 0
        )
        AuthAuditService.log_event(
            db,
            AuditEventType.LOGOUT,
            _SESSION,
            success=True,
            account_id=account_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"tokens_revoked": revoked},
        )
        return revoked

    @staticmethod
    def logout_all(
        db: Session,
        account_id: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> int:
        revoked = RefreshTokenService.revoke_all_for_account(db, account_id)
        AuthAuditService.log_event(
            db,
            AuditEventType.LOGOUT_ALL,
            _SESSION,
            success=True,
            account_id=account_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"tokens_revoked": revoked},
        )
        return revoked

    @staticmethod
    def revoke_session(
        db: Session,
        account_id: int,
        session_id: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> int:
        revoked = RefreshTokenService.revoke_session(db, account_id, session_id)
        AuthAuditService.log_event(
            db,
            AuditEventType.SESSION_REVOKED,
            _SESSION,
            success=True,
            account_id=account_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"session_id": session_id, "tokens_revoked": revoked},
        )
        return revoked

    @staticmethod
    def unlock_account(
        db: Session,
        account_id: int,
        admin_id: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        LoginAttemptService.unlock_account(db, account_id)
        AuthAuditService.log_event(
            db,
            AuditEventType.ACCOUNT_UNLOCKED,
            db_models.AuditCategory.ACCOUNT_MANAGEMENT.value,
            success=True,
            account_id=account_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"unlocked_by": admin_id},
        )
