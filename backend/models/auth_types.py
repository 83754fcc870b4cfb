"""
Domain value types shared by the auth services.

Lookups that can end several ways return tagged results instead of
``None`` so "not found" and "not locked" never collapse into each other.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


class AuditEventType:
    """Standard event types for the audit ledger."""

    LOGIN = "login"
    LOGIN_FAILED = "login_failed"
    LOGOUT = "logout"
    LOGOUT_ALL = "logout_all"
    TOKEN_REFRESH = "token_refresh"
    TOKEN_REFRESH_FAILED = "token_refresh_failed"
    TOKEN_REUSE_DETECTED = "token_reuse_detected"
    SESSION_REVOKED = "session_revoked"
    ACCOUNT_LOCKED = "account_locked"
    ACCOUNT_UNLOCKED = "account_unlocked"
    IP_BLOCKED = "ip_blocked"
    PASSWORD_CHANGE = "password_change"  # nosec B105 - event type, not password  # pragma: allowlist secret
    PASSWORD_RESET = "password_reset"  # nosec B105 # pragma: allowlist secret
    MFA_ENROLLMENT_STARTED = "mfa_enrollment_started"
    MFA_ENROLLMENT_FAILED = "mfa_enrollment_failed"
    MFA_ENABLED = "mfa_enabled"
    MFA_DISABLED = "mfa_disabled"
    MFA_CHALLENGE_REQUIRED = "mfa_challenge_required"
    MFA_CHALLENGE_FAILED = "mfa_challenge_failed"
    MFA_VERIFIED = "mfa_verified"
    MFA_BACKUP_CODES_REGENERATED = "mfa_backup_codes_regenerated"
    MFA_DEVICE_REVOKED = "mfa_device_revoked"


SENSITIVE_EVENT_TYPES = frozenset(
    {
        AuditEventType.PASSWORD_RESET,
        AuditEventType.ACCOUNT_LOCKED,
        AuditEventType.MFA_DISABLED,
    }
)


class RiskFactor:
    AUTHENTICATION_FAILURE = "authentication_failure"
    NEW_IP_ADDRESS = "new_ip_address"
    NEW_DEVICE = "new_device"
    REPEATED_FAILURES = "repeated_failures"
    RAPID_SUCCESSION = "rapid_succession"
    UNUSUAL_HOURS = "unusual_hours"
    SENSITIVE_EVENT = "sensitive_event"


class LoginFailureReason:
    USER_NOT_FOUND = "user_not_found"
    INVALID_PASSWORD = "invalid_password"  # nosec B105 # pragma: allowlist secret
    ACCOUNT_DISABLED = "account_disabled"
    ACCOUNT_LOCKED = "account_locked"
    IP_BLOCKED = "ip_blocked"
    MFA_FAILED = "mfa_failed"


class LockoutState(str, enum.Enum):
    NOT_FOUND = "not_found"
    UNLOCKED = "unlocked"
    LOCKED = "locked"
    EXPIRED_CLEARED = "expired_cleared"


@dataclass(frozen=True)
class LockoutStatus:
    state: LockoutState
    locked_until: Optional[datetime] = None
    attempts: int = 0
    account_id: Optional[int] = None

    @property
    def locked(self) -> bool:
        return self.state is LockoutState.LOCKED


class ChallengeState(str, enum.Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    VERIFIED = "verified"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class RiskAssessment:
    score: int
    factors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class IssuedTokens:
    """Tokens handed to the client. The raw refresh token only lives here."""

    access_token: str
    refresh_token: Optional[str]
    expires_in: int
    account_id: int
    token_type: str = "bearer"


@dataclass(frozen=True)
class ChallengeResult:
    verified: bool
    account_id: int
    used_backup_code: bool = False


@dataclass(frozen=True)
class EnrollmentStart:
    secret: str
    provisioning_uri: str


@dataclass(frozen=True)
class LoginOutcome:
    """Either issued tokens or a pending MFA challenge, never both."""

    tokens: Optional[IssuedTokens] = None
    mfa_session_token: Optional[str] = None
    account_id: Optional[int] = None

    @property
    def mfa_required(self) -> bool:
        return self.mfa_session_token is not None
