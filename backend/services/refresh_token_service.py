"""
Token lifecycle manager.

Issues short-lived JWT access tokens and long-lived refresh tokens. Refresh
tokens are 384-bit random values; only their SHA-256 hash is stored and the
raw value is never logged.

With rotation enabled every refresh token is single use: using it revokes
it and mints a replacement linked through ``replaced_by_hash``. With
rotation disabled a token may be used ``REFRESH_TOKEN_MAX_USAGE`` times.
"""

import hashlib
import json
import secrets
from datetime import datetime, timedelta
from typing import Optional

from loguru import logger
from sqlalchemy.orm import Session

from authentication.auth import create_access_token
from helpers.time_utils import ensure_utc, utc_now
from helpers.user_agent import parse_user_agent
from models.auth_types import IssuedTokens
from models.config import settings
from models.exceptions import (
    AccountNotFoundException,
    InvalidTokenException,
    SessionNotFoundException,
)
from repositories import db_models
from repositories.account_repository import AccountRepository
from repositories.refresh_token_repository import RefreshTokenRepository

TOKEN_BYTES = 48


def generate_refresh_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode()).hexdigest()


class RefreshTokenService:
    """Service for refresh token issue, use, rotation and revocation."""

    @staticmethod
    def _stage_refresh_token(
        db: Session,
        account_id: int,
        ip_address: Optional[str],
        user_agent: Optional[str],
        now: datetime,
    ) -> tuple[str, db_models.RefreshToken]:
        raw_token = generate_refresh_token()
        row = db_models.RefreshToken(
            account_id=account_id,
            token_hash=hash_token(raw_token),
            expires_at=now + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            device_info=json.dumps(parse_user_agent(user_agent)),
            ip_address=ip_address,
            user_agent=user_agent,
            usage_count=0,
            max_usage=settings.refresh_token_max_usage,
            created_at=now,
        )
        RefreshTokenRepository(db).add(row)
        return raw_token, row

    @staticmethod
    def _access_token_for(account: db_models.Account) -> str:
        return create_access_token(account.id, account.email)

    @staticmethod
    def create_refresh_token(
        db: Session,
        account_id: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> IssuedTokens:
        """
        Issue an access token and a new refresh token for an account.

        Raises:
            AccountNotFoundException: If the account does not exist.
        """
        now = now or utc_now()
        account = AccountRepository(db).get_by_id(account_id)
        if account is None:
            raise AccountNotFoundException(account_id)

        raw_token, _ = RefreshTokenService._stage_refresh_token(
            db, account_id, ip_address, user_agent, now
        )
        db.commit()
        logger.info(f"Issued refresh token for account {account_id}")
        return IssuedTokens(
            access_token=RefreshTokenService._access_token_for(account),
            refresh_token=raw_token,
            expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            account_id=account_id,
        )

    @staticmethod
    def use_refresh_token(
        db: Session,
        raw_token: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> IssuedTokens:
        """
        Spend a refresh token and issue a new access token.

        With rotation the consumed token is revoked and a replacement is
        returned in ``refresh_token``; without rotation ``refresh_token`` is
        None and the client keeps its current token.

        Raises:
            InvalidTokenException: If the token is unknown, expired, exhausted
                or revoked. ``reused_account_id`` is set when the token had
                already been rotated.
        """
        now = now or utc_now()
        token_hash = hash_token(raw_token or "")
        repo = RefreshTokenRepository(db)

        if not raw_token or not repo.consume(token_hash, now):
            db.rollback()
            existing = repo.get_by_hash(token_hash) if raw_token else None
            if existing is not None and existing.replaced_by_hash:
                raise InvalidTokenException(reused_account_id=existing.account_id)
            raise InvalidTokenException()

        row = repo.get_by_hash(token_hash)
        account = AccountRepository(db).get_by_id(row.account_id)
        if account is None or not account.is_active:
            repo.revoke_by_hash(token_hash, now)
            db.commit()
            raise InvalidTokenException()

        new_raw_token: Optional[str] = None
        if settings.TOKEN_ROTATION_ENABLED:
            new_raw_token, new_row = RefreshTokenService._stage_refresh_token(
                db, account.id, ip_address, user_agent, now
            )
            repo.mark_rotated(row.id, new_row.token_hash, now)
        db.commit()

        return IssuedTokens(
            access_token=RefreshTokenService._access_token_for(account),
            refresh_token=new_raw_token,
            expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            account_id=account.id,
        )

    @staticmethod
    def revoke_token(db: Session, raw_token: str) -> int:
        """Revoke one token. Revoking an unknown or revoked token returns 0."""
        count = RefreshTokenRepository(db).revoke_by_hash(
            hash_token(raw_token), utc_now()
        )
        db.commit()
        return count

    @staticmethod
    def revoke_all_for_account(db: Session, account_id: int) -> int:
        count = RefreshTokenRepository(db).revoke_all_for_account(
            account_id, utc_now()
        )
        db.commit()
        if count:
            logger.info(f"Revoked {count} refresh tokens for account {account_id}")
        return count

    @staticmethod
    def revoke_session(db: Session, account_id: int, session_id: int) -> int:
        """
        Revoke one of the account's sessions by id.

        Raises:
            SessionNotFoundException: If the session belongs to someone else
                or does not exist.
        """
        repo = RefreshTokenRepository(db)
        if repo.get_for_account(account_id, session_id) is None:
            raise SessionNotFoundException()
        count = repo.revoke_for_account_by_id(account_id, session_id, utc_now())
        db.commit()
        return count

    @staticmethod
    def list_sessions(
        db: Session, account_id: int, current_token: Optional[str] = None
    ) -> list[dict]:
        """Active sessions with device metadata. Token values are never included."""
        current_hash = hash_token(current_token) if current_token else None
        return [
            {
                "id": row.id,
                "device": row.device,
                "ip_address": row.ip_address,
                "created_at": ensure_utc(row.created_at),
                "last_used_at": ensure_utc(row.last_used_at),
                "expires_at": ensure_utc(row.expires_at),
                "is_current": row.token_hash == current_hash,
            }
            for row in RefreshTokenRepository(db).list_active(account_id)
        ]

    @staticmethod
    def get_token_stats(db: Session, account_id: Optional[int] = None) -> dict:
        return RefreshTokenRepository(db).get_stats(account_id)

    @staticmethod
    def cleanup_expired_tokens(
        db: Session, retention_days: Optional[int] = None, commit: bool = True
    ) -> int:
        """Delete tokens expired or revoked before the retention window."""
        deleted = RefreshTokenRepository(db).cleanup(
            retention_days or settings.REFRESH_TOKEN_RETENTION_DAYS
        )
        if commit:
            db.commit()
        logger.info(f"Deleted {deleted} stale refresh tokens")
        return deleted
