"""
Custom domain exceptions for the authentication core.

These exceptions are raised by the service layer and converted to HTTP responses
by centralized exception handlers in main.py, maintaining proper separation of concerns.

The authentication module (auth.py) also uses these domain exceptions to remain
HTTP-agnostic, allowing reuse in non-HTTP contexts (CLI tools, background tasks).

Enhanced with correlation IDs for Sentry integration and user error reporting.
"""

import math
from datetime import datetime, timezone

from core.correlation import generate_correlation_id, get_correlation_id


class DomainException(Exception):
    """
    Base class for all domain exceptions.

    Attributes:
        message: Human-readable error message.
        correlation_id: Unique ID for error tracking (auto-generated if not provided).
    """

    def __init__(self, message: str, correlation_id: str | None = None):
        self.message = message
        # Use request correlation ID if available, otherwise generate new one
        self.correlation_id = (
            correlation_id or get_correlation_id() or generate_correlation_id()
        )
        super().__init__(self.message)


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    pass


class PermissionDeniedException(DomainException):
    """Raised when the caller lacks required permissions."""

    pass


class ValidationException(DomainException):
    """Raised when input validation fails."""

    pass


class ConflictException(DomainException):
    """Raised when operation conflicts with existing state."""

    pass


class AuthenticationException(DomainException):
    """Raised when authentication fails."""

    pass


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    pass


# ============================================================================
# Credential / Lockout Exceptions
# ============================================================================


class InvalidCredentialsException(AuthenticationException):
    """Wrong password or unknown account (deliberately indistinguishable)."""

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message)


class AccountDisabledException(PermissionDeniedException):
    """Raised when a deactivated account tries to authenticate."""

    def __init__(self, message: str = "Account is disabled"):
        super().__init__(message)


class InsufficientPermissionsException(PermissionDeniedException):
    """Raised when a non-admin calls an admin operation."""

    def __init__(self, message: str = "Admin privileges required"):
        super().__init__(message)


class AccountNotFoundException(NotFoundException):
    """Account not found."""

    def __init__(self, account_id: int):
        super().__init__(f"Account with ID {account_id} not found")
        self.account_id = account_id


class AccountLockedException(AuthenticationException):
    """Raised when the account is inside a progressive lockout window."""

    def __init__(self, locked_until: datetime, attempts: int = 0):
        self.locked_until = locked_until
        self.attempts = attempts
        super().__init__(
            f"Account temporarily locked. Try again in {self.minutes_remaining} minutes."
        )

    @property
    def minutes_remaining(self) -> int:
        locked_until = self.locked_until
        if locked_until.tzinfo is None:
            locked_until = locked_until.replace(tzinfo=timezone.utc)
        seconds = (locked_until - datetime.now(timezone.utc)).total_seconds()
        return max(1, math.ceil(seconds / 60))


class RateLimitedException(DomainException):
    """Raised when an IP exceeds the distributed-attack failure threshold."""

    def __init__(
        self,
        message: str = "Too many failed login attempts from this address. Please try again later.",
        retry_after: int | None = None,
    ):
        super().__init__(message)
        self.retry_after = retry_after


# ============================================================================
# Token Exceptions
# ============================================================================


class InvalidTokenException(AuthenticationException):
    """Refresh or access token is unknown, expired, exhausted or revoked.

    ``reused_account_id`` is set when the presented refresh token had already
    been rotated, which callers treat as a token reuse signal.
    """

    def __init__(
        self,
        message: str = "Invalid or expired token",
        reused_account_id: int | None = None,
    ):
        super().__init__(message)
        self.reused_account_id = reused_account_id


class SessionNotFoundException(NotFoundException):
    """Raised when a session id does not belong to the caller."""

    def __init__(self, message: str = "Session not found"):
        super().__init__(message)


# ============================================================================
# Multi-Factor Authentication Exceptions
# ============================================================================


class MFAException(DomainException):
    """Base exception for MFA errors."""

    pass


class MFAVerificationFailedException(MFAException):
    """Raised when a TOTP or backup code is rejected."""

    def __init__(
        self,
        message: str = "Invalid authentication code.",
        attempts_remaining: int | None = None,
    ):
        super().__init__(message)
        self.attempts_remaining = attempts_remaining


class ChallengeExpiredException(MFAException):
    """Raised when a challenge session is unknown, used, exhausted or expired."""

    def __init__(
        self, message: str = "Verification session expired. Please login again."
    ):
        super().__init__(message)


class EnrollmentRequiredException(MFAException):
    """Raised when enrollment verification runs without a pending enrollment."""

    def __init__(
        self, message: str = "No pending MFA enrollment found. Please start enrollment."
    ):
        super().__init__(message)


class MFAAlreadyEnabledException(MFAException):
    """Raised when trying to enroll while MFA is already enabled."""

    def __init__(
        self, message: str = "Multi-factor authentication is already enabled."
    ):
        super().__init__(message)


class MFANotEnabledException(MFAException):
    """Raised when an operation requires MFA but it is not enabled."""

    def __init__(self, message: str = "Multi-factor authentication is not enabled."):
        super().__init__(message)


class MFAConfigurationException(MFAException):
    """Raised when MFA is not properly configured on the server."""

    def __init__(
        self,
        message: str = "Multi-factor authentication is not configured. Contact administrator.",
    ):
        super().__init__(message)


class TrustedDeviceNotFoundException(NotFoundException):
    """Raised when a trusted device is not found."""

    def __init__(self, message: str = "Trusted device not found."):
        super().__init__(message)


# ============================================================================
# Audit Exceptions
# ============================================================================


class AlertNotFoundException(NotFoundException):
    """Raised when a suspicious activity alert is not found."""

    def __init__(self, alert_id: int):
        super().__init__(f"Alert with ID {alert_id} not found")
        self.alert_id = alert_id


class InvalidAlertTransitionException(ValidationException):
    """Raised when an alert status change is not allowed."""

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot move alert from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested
