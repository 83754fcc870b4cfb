"""Models package - settings, Pydantic schemas and domain types."""

from .auth_types import (
    AuditEventType,
    ChallengeState,
    IssuedTokens,
    LockoutState,
    LockoutStatus,
    LoginOutcome,
    RiskAssessment,
)

__all__ = [
    "AuditEventType",
    "ChallengeState",
    "IssuedTokens",
    "LockoutState",
    "LockoutStatus",
    "LoginOutcome",
    "RiskAssessment",
]
