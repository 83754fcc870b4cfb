"""
Authentication primitives: password hashing, JWT access tokens and the
FastAPI dependencies resolving the calling account.

Kept HTTP-agnostic apart from the dependencies so services and scripts can
reuse the primitives.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

import repositories.db_models as db_models
from models.config import settings
from models.exceptions import (
    AccountDisabledException,
    AuthenticationException,
    InsufficientPermissionsException,
    InvalidTokenException,
)
from repositories.database import get_db

ACCESS_TOKEN_TYPE = "access"

bearer_scheme = HTTPBearer(auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode(), hashed_password.encode())
    except ValueError:
        # Malformed stored hash
        return False


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def create_access_token(
    account_id: int,
    email: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Signed short-lived JWT identifying the account."""
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {
        "sub": str(account_id),
        "email": email,
        "type": ACCESS_TOKEN_TYPE,
        "iat": now,
        "exp": expire,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Validate an access token and return its claims.

    Raises:
        InvalidTokenException: If the token is expired, malformed or not an access token.
    """
    try:
        payload = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
    except jwt.exceptions.ExpiredSignatureError:
        raise InvalidTokenException("Session expired. Please log in again.")
    except jwt.exceptions.InvalidTokenError:
        raise InvalidTokenException("Could not validate credentials")

    if payload.get("type") != ACCESS_TOKEN_TYPE or not payload.get("sub"):
        raise InvalidTokenException("Could not validate credentials")
    return payload


async def get_current_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> db_models.Account:
    """
    Resolve the account behind the bearer access token.

    Raises:
        AuthenticationException: If no token is supplied.
        InvalidTokenException: If the token is invalid or the account is gone.
        AccountDisabledException: If the account has been deactivated.
    """
    if credentials is None:
        raise AuthenticationException("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    try:
        account_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise InvalidTokenException("Could not validate credentials")

    account = db.get(db_models.Account, account_id)
    if account is None:
        raise InvalidTokenException("Could not validate credentials")
    if not account.is_active:
        raise AccountDisabledException()
    return account


async def get_admin_account(
    current_account: db_models.Account = Depends(get_current_account),
) -> db_models.Account:
    """
    Require admin permissions.

    Raises:
        InsufficientPermissionsException: If the account is not an admin.
    """
    if not current_account.is_admin:
        raise InsufficientPermissionsException()
    return current_account
