from datetime import date, datetime
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field

from helpers.time_utils import ensure_utc
from repositories.db_models import AlertSeverity, AlertStatus

# SQLite hands back naive datetimes; every timestamp leaves the API as UTC.
UTCDateTime = Annotated[datetime, AfterValidator(ensure_utc)]


class MessageResponse(BaseModel):
    """Simple message response."""

    message: str


# ============================================================================
# Login / Token Schemas
# ============================================================================


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=256)


class MFALoginRequest(BaseModel):
    """Second login step: answer the MFA challenge."""

    session_token: str = Field(..., description="MFA session token from /auth/login")
    code: str = Field(
        ...,
        min_length=6,
        max_length=9,
        description="6-digit TOTP code or 8-character backup code",
    )
    trust_device: bool = Field(
        default=False, description="Skip MFA on this device for the trust window"
    )


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = Field(
        None, description="New refresh token, null when rotation is disabled"
    )
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Access token lifetime in seconds")


class MFARequiredResponse(BaseModel):
    """Returned by /auth/login when a second factor is needed."""

    mfa_required: bool = True
    mfa_session_token: str
    message: str = "Multi-factor authentication required"


class SessionResponse(BaseModel):
    id: int
    device: dict
    ip_address: Optional[str] = None
    created_at: Optional[UTCDateTime] = None
    last_used_at: Optional[UTCDateTime] = None
    expires_at: UTCDateTime
    is_current: bool = False


class RevokedResponse(BaseModel):
    revoked: int


class LoginAttemptResponse(BaseModel):
    id: int
    ip_address: Optional[str]
    user_agent: Optional[str]
    success: bool
    failure_reason: Optional[str]
    created_at: UTCDateTime

    model_config = ConfigDict(from_attributes=True)


class TargetedEmail(BaseModel):
    email: str
    attempt_count: int
    last_attempt: Optional[UTCDateTime] = None


class LockoutStatsResponse(BaseModel):
    currently_locked: int
    accounts_with_failures: int
    recent_failures: int
    most_targeted: List[TargetedEmail]


# ============================================================================
# Multi-Factor Authentication Schemas
# ============================================================================


class MFAStatusResponse(BaseModel):
    enabled: bool
    method: Optional[str] = None
    enabled_at: Optional[UTCDateTime] = None
    pending_enrollment: bool = False
    backup_codes_remaining: int = 0
    trusted_devices: int = 0


class EnrollmentStartResponse(BaseModel):
    """Response for MFA enrollment initiation."""

    secret: str = Field(..., description="Base32-encoded TOTP secret (show once)")
    provisioning_uri: str = Field(..., description="otpauth:// URI for QR code")


class EnrollmentVerifyRequest(BaseModel):
    code: str = Field(
        ...,
        min_length=6,
        max_length=6,
        pattern=r"^\d{6}$",
        description="6-digit TOTP code from authenticator app",
    )


class BackupCodesResponse(BaseModel):
    backup_codes: List[str] = Field(
        ..., description="One-time backup codes (show once, cannot be retrieved)"
    )


class PasswordConfirmRequest(BaseModel):
    """Re-authentication for disabling MFA or regenerating backup codes."""

    password: str = Field(..., min_length=1, max_length=256)


class TrustedDeviceResponse(BaseModel):
    id: int
    device: dict
    ip_address: Optional[str] = None
    created_at: Optional[UTCDateTime] = None
    last_used_at: Optional[UTCDateTime] = None
    expires_at: UTCDateTime


# ============================================================================
# Audit Schemas
# ============================================================================


class AuditEventResponse(BaseModel):
    id: int
    event_type: str
    category: str
    success: bool
    failure_reason: Optional[str]
    ip_address: Optional[str]
    risk_score: int
    risk_factors: List[str] = Field(
        default_factory=list, validation_alias="risk_factor_list"
    )
    metadata: dict = Field(default_factory=dict, validation_alias="metadata_dict")
    created_at: UTCDateTime

    model_config = ConfigDict(from_attributes=True)


class DailySummaryResponse(BaseModel):
    summary_date: date
    successful_logins: int
    failed_logins: int
    password_changes: int
    token_refreshes: int
    high_risk_events: int
    unique_ips: int
    unique_devices: int

    model_config = ConfigDict(from_attributes=True)


class AlertResponse(BaseModel):
    id: int
    account_id: Optional[int]
    audit_event_id: Optional[int]
    alert_type: str
    severity: AlertSeverity
    status: AlertStatus
    description: str
    risk_score: int
    ip_address: Optional[str]
    resolved_by: Optional[int]
    resolved_at: Optional[UTCDateTime]
    notes: Optional[str]
    created_at: UTCDateTime

    model_config = ConfigDict(from_attributes=True)


class AlertUpdateRequest(BaseModel):
    status: AlertStatus
    notes: Optional[str] = Field(None, max_length=2000)


class AuditStatsResponse(BaseModel):
    period_days: int
    total_events: int
    failed_events: int
    high_risk_events: int
    events_by_type: dict[str, int]
    alerts_by_status: dict[str, int]
