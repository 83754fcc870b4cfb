"""Authentication router endpoints: login, MFA login, refresh, logout, sessions."""

from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

import authentication.auth as auth
import models.schemas as schemas
import repositories.db_models as db_models
from helpers.rate_limiter import LOGIN_RATE_LIMIT, REFRESH_RATE_LIMIT, limiter
from helpers.request_utils import ClientContext, get_client_context
from models.auth_types import IssuedTokens
from repositories.database import get_db
from services.auth_service import AuthService
from services.login_attempt_service import LoginAttemptService
from services.refresh_token_service import RefreshTokenService

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_response(tokens: IssuedTokens) -> schemas.TokenResponse:
    return schemas.TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type=tokens.token_type,
        expires_in=tokens.expires_in,
    )


@router.post(
    "/login",
    response_model=Union[schemas.TokenResponse, schemas.MFARequiredResponse],
)
@limiter.limit(LOGIN_RATE_LIMIT)
def login(
    request: Request,
    credentials: schemas.LoginRequest,
    db: Session = Depends(get_db),
    client: ClientContext = Depends(get_client_context),
) -> Union[schemas.TokenResponse, schemas.MFARequiredResponse]:
    """
    Login with email and password.

    If the account has MFA enabled and the device is not trusted, returns
    MFARequiredResponse. Call /auth/login/mfa with the session token and
    a TOTP or backup code to finish.

    Domain exceptions are caught by centralized exception handlers.
    """
    outcome = AuthService.login(
        db,
        credentials.email,
        credentials.password,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )
    if outcome.mfa_required:
        return schemas.MFARequiredResponse(mfa_session_token=outcome.mfa_session_token)
    return _token_response(outcome.tokens)


@router.post("/login/mfa", response_model=schemas.TokenResponse)
@limiter.limit(LOGIN_RATE_LIMIT)
def login_mfa(
    request: Request,
    body: schemas.MFALoginRequest,
    db: Session = Depends(get_db),
    client: ClientContext = Depends(get_client_context),
) -> schemas.TokenResponse:
    """Complete a login with a TOTP or backup code."""
    tokens = AuthService.complete_mfa_login(
        db,
        body.session_token,
        body.code,
        trust_device=body.trust_device,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )
    return _token_response(tokens)


@router.post("/refresh", response_model=schemas.TokenResponse)
@limiter.limit(REFRESH_RATE_LIMIT)
def refresh(
    request: Request,
    body: schemas.RefreshRequest,
    db: Session = Depends(get_db),
    client: ClientContext = Depends(get_client_context),
) -> schemas.TokenResponse:
    """
    Exchange a refresh token for a new access token.

    With rotation enabled the response carries a replacement refresh token
    and the presented one stops working.
    """
    tokens = AuthService.refresh(
        db, body.refresh_token, client.ip_address, client.user_agent
    )
    return _token_response(tokens)


@router.post("/logout", response_model=schemas.RevokedResponse)
def logout(
    body: schemas.LogoutRequest,
    current_account: db_models.Account = Depends(auth.get_current_account),
    db: Session = Depends(get_db),
    client: ClientContext = Depends(get_client_context),
) -> schemas.RevokedResponse:
    revoked = AuthService.logout(
        db,
        current_account.id,
        body.refresh_token,
        client.ip_address,
        client.user_agent,
    )
    return schemas.RevokedResponse(revoked=revoked)


@router.post("/logout-all", response_model=schemas.RevokedResponse)
def logout_all(
    current_account: db_models.Account = Depends(auth.get_current_account),
    db: Session = Depends(get_db),
    client: ClientContext = Depends(get_client_context),
) -> schemas.RevokedResponse:
    """Revoke every refresh token of the current account."""
    revoked = AuthService.logout_all(
        db, current_account.id, client.ip_address, client.user_agent
    )
    return schemas.RevokedResponse(revoked=revoked)


@router.get("/sessions", response_model=List[schemas.SessionResponse])
def list_sessions(
    current_account: db_models.Account = Depends(auth.get_current_account),
    db: Session = Depends(get_db),
    x_refresh_token: Optional[str] = Header(default=None),
) -> list[dict]:
    """
    List active sessions.

    Send the current refresh token in ``X-Refresh-Token`` to have its
    session flagged with ``is_current``.
    """
    return RefreshTokenService.list_sessions(db, current_account.id, x_refresh_token)


@router.delete("/sessions/{session_id}", response_model=schemas.RevokedResponse)
def revoke_session(
    session_id: int,
    current_account: db_models.Account = Depends(auth.get_current_account),
    db: Session = Depends(get_db),
    client: ClientContext = Depends(get_client_context),
) -> schemas.RevokedResponse:
    revoked = AuthService.revoke_session(
        db, current_account.id, session_id, client.ip_address, client.user_agent
    )
    return schemas.RevokedResponse(revoked=revoked)


@router.get("/login-history", response_model=List[schemas.LoginAttemptResponse])
def login_history(
    limit: int = 20,
    current_account: db_models.Account = Depends(auth.get_current_account),
    db: Session = Depends(get_db),
) -> list[db_models.LoginAttempt]:
    return LoginAttemptService.get_login_history(
        db, current_account.id, limit=min(max(limit, 1), 100)
    )


# ============================================================================
# Admin Endpoints
# ============================================================================


@router.post("/accounts/{account_id}/unlock", response_model=schemas.MessageResponse)
def unlock_account(
    account_id: int,
    admin: db_models.Account = Depends(auth.get_admin_account),
    db: Session = Depends(get_db),
    client: ClientContext = Depends(get_client_context),
) -> schemas.MessageResponse:
    """Clear the failure counter and lockout of an account (admin only)."""
    AuthService.unlock_account(
        db, account_id, admin.id, client.ip_address, client.user_agent
    )
    return schemas.MessageResponse(message="Account unlocked")


@router.get("/lockout-stats", response_model=schemas.LockoutStatsResponse)
def lockout_stats(
    hours: int = 24,
    admin: db_models.Account = Depends(auth.get_admin_account),
    db: Session = Depends(get_db),
) -> dict:
    return LoginAttemptService.get_lockout_stats(db, hours=hours)
