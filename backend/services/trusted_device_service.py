"""
Trusted devices for the MFA remember-device feature.

A device is identified by SHA-256 over ``"{account_id}:{ip}:{user_agent}"``.
Any change of IP or user agent yields a different fingerprint, so the next
login is challenged again rather than rejected.
"""

import hashlib
import json
from datetime import datetime, timedelta
from typing import Optional

from loguru import logger
from sqlalchemy.orm import Session

from helpers.time_utils import ensure_utc, utc_now
from helpers.user_agent import parse_user_agent
from models.config import settings
from models.exceptions import TrustedDeviceNotFoundException
from repositories import db_models
from repositories.trusted_device_repository import TrustedDeviceRepository


class TrustedDeviceService:
    """Service for trusted device management."""

    @staticmethod
    def compute_fingerprint(
        account_id: int, ip_address: Optional[str], user_agent: Optional[str]
    ) -> str:
        raw = f"{account_id}:{ip_address or ''}:{user_agent or ''}"
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    @staticmethod
    def is_device_trusted(
        db: Session,
        account_id: int,
        ip_address: Optional[str],
        user_agent: Optional[str],
        now: Optional[datetime] = None,
    ) -> bool:
        """True when this exact (account, ip, user agent) has live trust."""
        now = now or utc_now()
        repo = TrustedDeviceRepository(db)
        device = repo.find_active(
            account_id,
            TrustedDeviceService.compute_fingerprint(account_id, ip_address, user_agent),
            now,
        )
        if device is None:
            return False
        repo.touch(device.id, now)
        db.commit()
        return True

    @staticmethod
    def trust_device(
        db: Session,
        account_id: int,
        ip_address: Optional[str],
        user_agent: Optional[str],
        now: Optional[datetime] = None,
    ) -> db_models.TrustedDevice:
        """Create or refresh a trust window. Caller commits."""
        now = now or utc_now()
        device = TrustedDeviceRepository(db).upsert(
            account_id=account_id,
            device_fingerprint=TrustedDeviceService.compute_fingerprint(
                account_id, ip_address, user_agent
            ),
            device_info=json.dumps(parse_user_agent(user_agent)),
            ip_address=ip_address,
            user_agent=user_agent,
            expires_at=now + timedelta(days=settings.TRUSTED_DEVICE_DAYS),
        )
        logger.info(f"Device trusted for account {account_id}")
        return device

    @staticmethod
    def list_devices(db: Session, account_id: int) -> list[dict]:
        return [
            {
                "id": device.id,
                "device": device.device,
                "ip_address": device.ip_address,
                "created_at": ensure_utc(device.created_at),
                "last_used_at": ensure_utc(device.last_used_at),
                "expires_at": ensure_utc(device.expires_at),
            }
            for device in TrustedDeviceRepository(db).list_active(account_id)
        ]

    @staticmethod
    def revoke_device(db: Session, account_id: int, device_id: int) -> int:
        """
        Revoke one device. Revoking an already revoked device returns 0.

        Raises:
            TrustedDeviceNotFoundException: If the device is not the account's.
        """
        repo = TrustedDeviceRepository(db)
        device = repo.get_by_id(device_id)
        if device is None or device.account_id != account_id:
            raise TrustedDeviceNotFoundException()
        count = repo.revoke_for_account_by_id(account_id, device_id)
        db.commit()
        return count

    @staticmethod
    def revoke_all(db: Session, account_id: int) -> int:
        """Revoke every device for the account. Caller commits."""
        return TrustedDeviceRepository(db).revoke_all_for_account(account_id)

    @staticmethod
    def cleanup_stale_devices(
        db: Session, retention_days: int, commit: bool = True
    ) -> int:
        """Delete devices revoked or expired before the retention window."""
        deleted = TrustedDeviceRepository(db).delete_stale(retention_days)
        if commit:
            db.commit()
        return deleted
