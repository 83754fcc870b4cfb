"""
Services layer for business logic.

Services are classes of static methods taking a SQLAlchemy session; they
raise domain exceptions and stay free of HTTP concerns.
"""

from .auth_audit_service import AuthAuditService
from .auth_service import AuthService
from .login_attempt_service import LoginAttemptService
from .mfa_service import MFAService
from .refresh_token_service import RefreshTokenService
from .retention_service import RetentionService
from .trusted_device_service import TrustedDeviceService

__all__ = [
    "AuthAuditService",
    "AuthService",
    "LoginAttemptService",
    "MFAService",
    "RefreshTokenService",
    "RetentionService",
    "TrustedDeviceService",
]
