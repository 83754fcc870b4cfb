"""Repositories for MFA configurations and backup codes."""

import hashlib
import secrets
from datetime import datetime
from typing import Optional

import pyotp
from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.orm import Session

from helpers.time_utils import utc_now
from models.config import settings
from models.exceptions import MFAConfigurationException
from repositories.base import BaseRepository
from repositories.db_models import BackupCode, MFAConfiguration, MFAMethod


class MFAConfigurationRepository(BaseRepository[MFAConfiguration]):
    """Repository for TOTP secret management."""

    def __init__(self, db: Session):
        """Initialize the repository."""
        super().__init__(MFAConfiguration, db)
        self._fernet: Optional[Fernet] = None

    def _get_fernet(self) -> Fernet:
        """Get Fernet instance for encryption/decryption.

        Raises:
            MFAConfigurationException: If MFA_ENCRYPTION_KEY is missing or invalid.
        """
        if self._fernet is None:
            if not settings.MFA_ENCRYPTION_KEY:
                raise MFAConfigurationException()
            try:
                self._fernet = Fernet(settings.MFA_ENCRYPTION_KEY.encode())
            except ValueError as e:
                raise MFAConfigurationException(
                    f"Invalid MFA_ENCRYPTION_KEY: {e}"
                ) from e
        return self._fernet

    @staticmethod
    def generate_secret() -> str:
        """New TOTP secret: 32 base32 characters, 160 bits."""
        return pyotp.random_base32(length=32)

    def encrypt_secret(self, secret: str) -> str:
        return self._get_fernet().encrypt(secret.encode()).decode()

    def decrypt_secret(self, encrypted: str) -> str:
        """Decrypt TOTP secret from database.

        Raises:
            MFAConfigurationException: If the key does not match the stored secret.
        """
        try:
            return self._get_fernet().decrypt(encrypted.encode()).decode()
        except InvalidToken as e:
            raise MFAConfigurationException(
                "Failed to decrypt MFA secret. Contact administrator."
            ) from e

    def get_for_account(
        self, account_id: int, method: str = MFAMethod.TOTP.value
    ) -> Optional[MFAConfiguration]:
        return (
            self.db.query(MFAConfiguration)
            .filter(
                MFAConfiguration.account_id == account_id,
                MFAConfiguration.method == method,
            )
            .first()
        )

    def get_enabled(self, account_id: int) -> Optional[MFAConfiguration]:
        return (
            self.db.query(MFAConfiguration)
            .filter(
                MFAConfiguration.account_id == account_id,
                MFAConfiguration.enabled.is_(True),
            )
            .first()
        )

    def upsert_pending(self, account_id: int) -> tuple[MFAConfiguration, str]:
        """
        Store a fresh inert secret for the account, replacing any pending one.

        Returns:
            Tuple of (MFAConfiguration record, plain text secret)
        """
        plain_secret = self.generate_secret()
        encrypted = self.encrypt_secret(plain_secret)

        record = self.get_for_account(account_id)
        if record is None:
            record = MFAConfiguration(
                account_id=account_id,
                method=MFAMethod.TOTP.value,
                created_at=utc_now(),
            )
            self.db.add(record)
        record.encrypted_secret = encrypted
        record.enabled = False
        record.verified_at = None
        record.failed_attempts = 0
        self.db.flush()
        return record, plain_secret

    def verify_code(
        self,
        record: MFAConfiguration,
        code: str,
        for_time: Optional[datetime] = None,
    ) -> bool:
        """
        Check a TOTP code against the stored secret.

        Codes from ``MFA_TOTP_VALID_WINDOW`` steps either side of
        ``for_time`` are accepted.
        """
        if not code or not code.isdigit():
            return False
        totp = pyotp.TOTP(self.decrypt_secret(record.encrypted_secret))
        return totp.verify(
            code,
            for_time=for_time,
            valid_window=settings.MFA_TOTP_VALID_WINDOW,
        )

    def mark_enabled(self, record_id: int, now: datetime) -> None:
        self.db.query(MFAConfiguration).filter(MFAConfiguration.id == record_id).update(
            {
                MFAConfiguration.enabled: True,
                MFAConfiguration.verified_at: now,
                MFAConfiguration.failed_attempts: 0,
            },
            synchronize_session=False,
        )

    def increment_failed(self, record_id: int) -> None:
        self.db.query(MFAConfiguration).filter(MFAConfiguration.id == record_id).update(
            {MFAConfiguration.failed_attempts: MFAConfiguration.failed_attempts + 1},
            synchronize_session=False,
        )

    def touch_last_used(self, record_id: int, now: datetime) -> None:
        self.db.query(MFAConfiguration).filter(MFAConfiguration.id == record_id).update(
            {MFAConfiguration.last_used_at: now}, synchronize_session=False
        )

    def delete_for_account(self, account_id: int) -> int:
        return (
            self.db.query(MFAConfiguration)
            .filter(MFAConfiguration.account_id == account_id)
            .delete(synchronize_session=False)
        )

    def get_provisioning_uri(self, secret: str, email: str) -> str:
        """
        Generate provisioning URI for QR code.

        Args:
            secret: Plain text TOTP secret
            email: Account email (used as account name)

        Returns:
            otpauth:// URI for QR code generation
        """
        totp = pyotp.TOTP(secret)
        return totp.provisioning_uri(name=email, issuer_name=settings.MFA_ISSUER_NAME)


class BackupCodeRepository(BaseRepository[BackupCode]):
    """Repository for backup code management."""

    CODE_LENGTH = 8
    # Use only unambiguous characters (no 0/O, 1/l/I)
    ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZ"  # pragma: allowlist secret

    def __init__(self, db: Session):
        """Initialize the repository."""
        super().__init__(BackupCode, db)

    def generate_code(self) -> str:
        return "".join(secrets.choice(self.ALPHABET) for _ in range(self.CODE_LENGTH))

    @staticmethod
    def hash_code(code: str) -> str:
        """Hash backup code for storage."""
        normalized = code.upper().replace("-", "").replace(" ", "")
        return hashlib.sha256(normalized.encode()).hexdigest()

    def replace_codes(self, account_id: int, count: int) -> list[str]:
        """
        Invalidate all unused codes and create ``count`` new unique ones.

        Used codes are kept for the forensic trail.

        Returns:
            List of plain text backup codes (show once)
        """
        self.db.query(BackupCode).filter(
            BackupCode.account_id == account_id,
            BackupCode.used.is_(False),
        ).delete(synchronize_session=False)

        plain_codes: list[str] = []
        while len(plain_codes) < count:
            code = self.generate_code()
            if code in plain_codes:
                continue
            plain_codes.append(code)

        now = utc_now()
        self.db.add_all(
            [
                BackupCode(
                    account_id=account_id,
                    code_hash=self.hash_code(code),
                    created_at=now,
                )
                for code in plain_codes
            ]
        )
        self.db.flush()
        return plain_codes

    def consume(
        self, account_id: int, code: str, ip_address: Optional[str] = None
    ) -> bool:
        """
        Mark a matching unused code as used in a single UPDATE.

        Returns:
            True only for the request whose UPDATE flipped the row.
        """
        if not code:
            return False
        updated = (
            self.db.query(BackupCode)
            .filter(
                BackupCode.account_id == account_id,
                BackupCode.code_hash == self.hash_code(code),
                BackupCode.used.is_(False),
            )
            .update(
                {
                    BackupCode.used: True,
                    BackupCode.used_at: utc_now(),
                    BackupCode.used_ip: ip_address,
                },
                synchronize_session=False,
            )
        )
        return updated > 0

    def get_remaining_count(self, account_id: int) -> int:
        """Get count of unused backup codes."""
        return (
            self.db.query(BackupCode)
            .filter(
                BackupCode.account_id == account_id,
                BackupCode.used.is_(False),
            )
            .count()
        )

    def delete_for_account(self, account_id: int) -> int:
        return (
            self.db.query(BackupCode)
            .filter(BackupCode.account_id == account_id)
            .delete(synchronize_session=False)
        )
