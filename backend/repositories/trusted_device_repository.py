"""
Trusted Device Repository for the MFA remember-device feature.

Devices are keyed by (account, fingerprint). Trust is evaluated lazily by
comparing ``expires_at`` with the current time.
"""

from datetime import datetime, timedelta

from sqlalchemy.orm import Session

import repositories.db_models as db_models
from helpers.time_utils import utc_now

from .base import BaseRepository


class TrustedDeviceRepository(BaseRepository[db_models.TrustedDevice]):
    """Repository for trusted device operations."""

    def __init__(self, db: Session):
        """
        Initialize trusted device repository.

        Args:
            db: Database session
        """
        super().__init__(db_models.TrustedDevice, db)

    def get_by_fingerprint(
        self, account_id: int, device_fingerprint: str
    ) -> db_models.TrustedDevice | None:
        return (
            self.db.query(db_models.TrustedDevice)
            .filter(
                db_models.TrustedDevice.account_id == account_id,
                db_models.TrustedDevice.device_fingerprint == device_fingerprint,
            )
            .first()
        )

    def find_active(
        self, account_id: int, device_fingerprint: str, now: datetime
    ) -> db_models.TrustedDevice | None:
        """Device that is neither revoked nor past its trust window."""
        return (
            self.db.query(db_models.TrustedDevice)
            .filter(
                db_models.TrustedDevice.account_id == account_id,
                db_models.TrustedDevice.device_fingerprint == device_fingerprint,
                db_models.TrustedDevice.revoked.is_(False),
                db_models.TrustedDevice.expires_at > now,
            )
            .first()
        )

    def upsert(
        self,
        account_id: int,
        device_fingerprint: str,
        device_info: str | None,
        ip_address: str | None,
        user_agent: str | None,
        expires_at: datetime,
    ) -> db_models.TrustedDevice:
        """
        Create the device or refresh its trust window.

        A previously revoked device with the same fingerprint is reinstated.
        """
        device = self.get_by_fingerprint(account_id, device_fingerprint)
        now = utc_now()
        if device is None:
            device = db_models.TrustedDevice(
                account_id=account_id,
                device_fingerprint=device_fingerprint,
                created_at=now,
            )
            self.db.add(device)
        device.device_info = device_info
        device.ip_address = ip_address
        device.user_agent = user_agent
        device.expires_at = expires_at
        device.revoked = False
        device.last_used_at = now
        self.db.flush()
        return device

    def touch(self, device_id: int, now: datetime) -> None:
        self.db.query(db_models.TrustedDevice).filter(
            db_models.TrustedDevice.id == device_id
        ).update(
            {db_models.TrustedDevice.last_used_at: now}, synchronize_session=False
        )

    def list_active(
        self, account_id: int, now: datetime | None = None
    ) -> list[db_models.TrustedDevice]:
        return (
            self.db.query(db_models.TrustedDevice)
            .filter(
                db_models.TrustedDevice.account_id == account_id,
                db_models.TrustedDevice.revoked.is_(False),
                db_models.TrustedDevice.expires_at > (now or utc_now()),
            )
            .order_by(db_models.TrustedDevice.last_used_at.desc())
            .all()
        )

    def count_active(self, account_id: int) -> int:
        return len(self.list_active(account_id))

    def revoke_for_account_by_id(self, account_id: int, device_id: int) -> int:
        return (
            self.db.query(db_models.TrustedDevice)
            .filter(
                db_models.TrustedDevice.id == device_id,
                db_models.TrustedDevice.account_id == account_id,
                db_models.TrustedDevice.revoked.is_(False),
            )
            .update(
                {db_models.TrustedDevice.revoked: True}, synchronize_session=False
            )
        )

    def revoke_all_for_account(self, account_id: int) -> int:
        """
        Revoke every trusted device for an account.

        Returns:
            Number of devices revoked
        """
        return (
            self.db.query(db_models.TrustedDevice)
            .filter(
                db_models.TrustedDevice.account_id == account_id,
                db_models.TrustedDevice.revoked.is_(False),
            )
            .update(
                {db_models.TrustedDevice.revoked: True}, synchronize_session=False
            )
        )

    def delete_stale(self, retention_days: int) -> int:
        """Delete devices revoked or expired before the retention window."""
        cutoff = utc_now() - timedelta(days=retention_days)
        revoked = self.delete_older_than(
            db_models.TrustedDevice.created_at,
            cutoff,
            db_models.TrustedDevice.revoked.is_(True),
        )
        expired = self.delete_older_than(db_models.TrustedDevice.expires_at, cutoff)
        return revoked + expired
