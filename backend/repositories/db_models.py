"""
Database models using SQLAlchemy 2.0 style with Mapped type hints.

This module defines the tables owned by the authentication core plus the
minimal ``Account`` identity row the core reads and mutates.
"""

import enum
import json
from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from repositories.database import Base


class AuditCategory(str, enum.Enum):
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    ACCOUNT_MANAGEMENT = "account_management"
    SECURITY = "security"
    SESSION = "session"


class AlertSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertStatus(str, enum.Enum):
    NEW = "new"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    FALSE_POSITIVE = "false_positive"


class MFAMethod(str, enum.Enum):
    TOTP = "totp"


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


class Account(Base):
    """Identity row consumed by the core.

    Only the lockout tracker mutates ``failed_login_attempts`` and
    ``account_locked_until``; the MFA engine owns the ``mfa_*`` columns.
    """

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    failed_login_attempts: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    account_locked_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    last_failed_login_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    mfa_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    mfa_method: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    mfa_enabled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    last_audit_event_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    refresh_tokens: Mapped[List["RefreshToken"]] = relationship(
        "RefreshToken", back_populates="account", cascade="all, delete-orphan"
    )


class LoginAttempt(Base):
    """Immutable record of a single login attempt."""

    __tablename__ = "login_attempts"
    __table_args__ = (
        Index("ix_login_attempts_email_created", "email", "created_at"),
        Index("ix_login_attempts_ip_created", "ip_address", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String, nullable=False)
    account_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True
    )
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="user_not_found, invalid_password, account_disabled, account_locked",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utc_now, nullable=False, index=True
    )


class RefreshToken(Base):
    """Refresh token row. Only the SHA-256 hash of the token is stored."""

    __tablename__ = "refresh_tokens"
    __table_args__ = (
        Index("ix_refresh_tokens_account_revoked", "account_id", "revoked_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    account_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    token_hash: Mapped[str] = mapped_column(
        String(64), unique=True, index=True, nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    device_info: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True, comment="JSON: browser, os, device"
    )
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_usage: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    replaced_by_hash: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, comment="Hash of the token minted on rotation"
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    account: Mapped["Account"] = relationship(
        "Account", back_populates="refresh_tokens"
    )

    @property
    def device(self) -> dict:
        return json.loads(self.device_info) if self.device_info else {}


class MFAConfiguration(Base):
    """MFA secret per (account, method). Inert until ``enabled`` is set."""

    __tablename__ = "mfa_configurations"
    __table_args__ = (
        UniqueConstraint("account_id", "method", name="uq_mfa_account_method"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    account_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    method: Mapped[str] = mapped_column(
        String(20), default=MFAMethod.TOTP.value, nullable=False
    )
    encrypted_secret: Mapped[str] = mapped_column(
        String(256), nullable=False
    )  # Fernet-encrypted
    enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    failed_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)


class BackupCode(Base):
    """One-time recovery code for MFA."""

    __tablename__ = "mfa_backup_codes"
    __table_args__ = (Index("ix_backup_codes_account_used", "account_id", "used"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    account_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    code_hash: Mapped[str] = mapped_column(String(64), nullable=False)  # SHA-256 hash
    used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    used_ip: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)


class TrustedDevice(Base):
    """Device exempted from MFA challenges until ``expires_at``."""

    __tablename__ = "mfa_trusted_devices"
    __table_args__ = (
        UniqueConstraint(
            "account_id", "device_fingerprint", name="uq_trusted_device_fingerprint"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    account_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    device_fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    device_info: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    @property
    def device(self) -> dict:
        return json.loads(self.device_info) if self.device_info else {}


class MFAChallengeSession(Base):
    """Ephemeral second-factor challenge issued after a correct password."""

    __tablename__ = "mfa_challenge_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    session_token: Mapped[str] = mapped_column(
        String(64), unique=True, index=True, nullable=False
    )
    account_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    method: Mapped[str] = mapped_column(
        String(20), default=MFAMethod.TOTP.value, nullable=False
    )
    verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)


class AuditEvent(Base):
    """Append-only security event with its computed risk score."""

    __tablename__ = "auth_audit_events"
    __table_args__ = (
        Index("ix_auth_audit_account_created", "account_id", "created_at"),
        Index("ix_auth_audit_type_created", "event_type", "created_at"),
        Index("ix_auth_audit_ip_created", "ip_address", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    category: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment="authentication, authorization, account_management, security, session",
    )
    account_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True
    )
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    risk_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    risk_factors: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True, comment="JSON list of risk factor names"
    )
    details: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True, comment="JSON with additional event details"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utc_now, nullable=False, index=True
    )

    @property
    def risk_factor_list(self) -> list[str]:
        return json.loads(self.risk_factors) if self.risk_factors else []

    @property
    def metadata_dict(self) -> dict:
        return json.loads(self.details) if self.details else {}


class DailyAuditSummary(Base):
    """Per account, per day rollup of audit events."""

    __tablename__ = "auth_audit_daily_summaries"
    __table_args__ = (
        UniqueConstraint("account_id", "summary_date", name="uq_audit_summary_day"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    account_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    summary_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    successful_logins: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_logins: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    password_changes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    token_refreshes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    high_risk_events: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unique_ips: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unique_devices: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utc_now, onupdate=_utc_now
    )


class SuspiciousActivityAlert(Base):
    """Alert raised for a high risk audit event."""

    __tablename__ = "suspicious_activity_alerts"
    __table_args__ = (Index("ix_alerts_status_created", "status", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    account_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True
    )
    audit_event_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("auth_audit_events.id", ondelete="SET NULL"), nullable=True
    )
    alert_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="multiple_failures, new_device, unusual_activity",
    )
    severity: Mapped[str] = mapped_column(
        String(20), default=AlertSeverity.MEDIUM.value, nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), default=AlertStatus.NEW.value, nullable=False
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    risk_score: Mapped[int] = mapped_column(Integer, nullable=False)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    resolved_by: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utc_now, nullable=False
    )
