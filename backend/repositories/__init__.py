"""
Repository pattern implementation for data access layer.
"""

from .account_repository import AccountRepository
from .audit_repository import (
    AlertRepository,
    AuditEventRepository,
    DailySummaryRepository,
)
from .base import BaseRepository
from .challenge_session_repository import ChallengeSessionRepository
from .login_attempt_repository import LoginAttemptRepository
from .mfa_repository import BackupCodeRepository, MFAConfigurationRepository
from .refresh_token_repository import RefreshTokenRepository
from .trusted_device_repository import TrustedDeviceRepository

__all__ = [
    "AccountRepository",
    "AlertRepository",
    "AuditEventRepository",
    "BackupCodeRepository",
    "BaseRepository",
    "ChallengeSessionRepository",
    "DailySummaryRepository",
    "LoginAttemptRepository",
    "MFAConfigurationRepository",
    "RefreshTokenRepository",
    "TrustedDeviceRepository",
]
