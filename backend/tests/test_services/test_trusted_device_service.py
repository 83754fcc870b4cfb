"""Tests for TrustedDeviceService."""

from datetime import timedelta

import pytest

import repositories.db_models as db_models
from helpers.time_utils import utc_now
from models.exceptions import TrustedDeviceNotFoundException
from services.trusted_device_service import TrustedDeviceService

IP = "203.0.113.4"
UA = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Safari/604.1"


class TestFingerprint:
    """Tests for device fingerprinting."""

    def test_deterministic(self) -> None:
        first = TrustedDeviceService.compute_fingerprint(1, IP, UA)
        assert first == TrustedDeviceService.compute_fingerprint(1, IP, UA)
        assert len(first) == 64

    def test_any_change_yields_new_fingerprint(self) -> None:
        base = TrustedDeviceService.compute_fingerprint(1, IP, UA)
        assert base != TrustedDeviceService.compute_fingerprint(2, IP, UA)
        assert base != TrustedDeviceService.compute_fingerprint(1, "203.0.113.5", UA)
        assert base != TrustedDeviceService.compute_fingerprint(1, IP, UA + " extra")


class TestTrust:
    """Tests for trust windows."""

    def test_trusted_within_window(self, db_session, test_account) -> None:
        now = utc_now()
        TrustedDeviceService.trust_device(db_session, test_account.id, IP, UA, now)
        db_session.commit()

        assert TrustedDeviceService.is_device_trusted(db_session, test_account.id, IP, UA, now)
        assert not TrustedDeviceService.is_device_trusted(
            db_session, test_account.id, IP, UA, now + timedelta(days=31)
        )

    def test_trust_bound_to_account(self, db_session, test_account, other_account) -> None:
        TrustedDeviceService.trust_device(db_session, test_account.id, IP, UA)
        db_session.commit()

        assert not TrustedDeviceService.is_device_trusted(db_session, other_account.id, IP, UA)

    def test_retrust_reinstates_revoked_device(self, db_session, test_account) -> None:
        device = TrustedDeviceService.trust_device(db_session, test_account.id, IP, UA)
        db_session.commit()
        TrustedDeviceService.revoke_device(db_session, test_account.id, device.id)

        again = TrustedDeviceService.trust_device(db_session, test_account.id, IP, UA)
        db_session.commit()

        assert again.id == device.id
        assert TrustedDeviceService.is_device_trusted(db_session, test_account.id, IP, UA)

    def test_list_devices(self, db_session, test_account) -> None:
        TrustedDeviceService.trust_device(db_session, test_account.id, IP, UA)
        db_session.commit()

        devices = TrustedDeviceService.list_devices(db_session, test_account.id)

        assert len(devices) == 1
        assert devices[0]["ip_address"] == IP
        assert devices[0]["device"]["device"] == "Mobile"


class TestRevoke:
    """Tests for revocation and cleanup."""

    def test_revoke_other_accounts_device(
        self, db_session, test_account, other_account
    ) -> None:
        device = TrustedDeviceService.trust_device(db_session, test_account.id, IP, UA)
        db_session.commit()

        with pytest.raises(TrustedDeviceNotFoundException):
            TrustedDeviceService.revoke_device(db_session, other_account.id, device.id)

    def test_revoke_is_idempotent(self, db_session, test_account) -> None:
        device = TrustedDeviceService.trust_device(db_session, test_account.id, IP, UA)
        db_session.commit()

        assert TrustedDeviceService.revoke_device(db_session, test_account.id, device.id) == 1
        assert TrustedDeviceService.revoke_device(db_session, test_account.id, device.id) == 0
        assert TrustedDeviceService.list_devices(db_session, test_account.id) == []

    def test_cleanup_stale_devices(self, db_session, test_account) -> None:
        old = utc_now() - timedelta(days=120)
        db_session.add_all(
            [
                db_models.TrustedDevice(
                    account_id=test_account.id,
                    device_fingerprint="a" * 64,
                    expires_at=old + timedelta(days=30),
                    created_at=old,
                ),
                db_models.TrustedDevice(
                    account_id=test_account.id,
                    device_fingerprint="b" * 64,
                    expires_at=utc_now() + timedelta(days=10),
                    created_at=utc_now(),
                ),
            ]
        )
        db_session.commit()

        assert TrustedDeviceService.cleanup_stale_devices(db_session, 30) == 1
