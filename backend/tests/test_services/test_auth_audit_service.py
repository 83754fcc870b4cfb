"""Tests for AuthAuditService ledger, rollups and alerts."""

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

import repositories.db_models as db_models
from helpers.time_utils import utc_now
from models.auth_types import AuditEventType, RiskFactor
from models.config import settings
from models.exceptions import AlertNotFoundException, InvalidAlertTransitionException
from repositories.audit_repository import AuditEventRepository
from services.auth_audit_service import AuthAuditService, run_best_effort

AUTH = db_models.AuditCategory.AUTHENTICATION.value
UA = "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) Safari/605.1.15"


@pytest.fixture
def noon():
    return utc_now().replace(hour=12, minute=0, second=0, microsecond=0)


def log(db_session, account_id, now, event_type=AuditEventType.LOGIN, success=True, ip="10.0.0.1"):
    return AuthAuditService.log_event(
        db_session,
        event_type,
        AUTH,
        success=success,
        account_id=account_id,
        ip_address=ip,
        user_agent=UA,
        now=now,
    )


class TestLogEvent:
    """Tests for event ingestion and risk scoring."""

    def test_first_login_from_new_ip(self, db_session, test_account, noon) -> None:
        event_id = log(db_session, test_account.id, noon)

        event = AuditEventRepository(db_session).get_by_id(event_id)
        assert event.risk_score == 30
        assert RiskFactor.NEW_IP_ADDRESS in event.risk_factor_list
        assert RiskFactor.NEW_DEVICE in event.risk_factor_list

    def test_known_ip_scores_zero(self, db_session, test_account, noon) -> None:
        log(db_session, test_account.id, noon)
        event_id = log(db_session, test_account.id, noon + timedelta(minutes=1))

        assert AuditEventRepository(db_session).get_by_id(event_id).risk_score == 0

    def test_unusual_hours(self, db_session, test_account, noon) -> None:
        event_id = log(db_session, test_account.id, noon.replace(hour=3))

        event = AuditEventRepository(db_session).get_by_id(event_id)
        assert RiskFactor.UNUSUAL_HOURS in event.risk_factor_list

    def test_unusual_hours_use_configured_timezone(
        self, db_session, test_account, noon, monkeypatch
    ) -> None:
        monkeypatch.setattr(settings, "AUDIT_TIMEZONE", "America/New_York")
        event_id = log(db_session, test_account.id, noon.replace(hour=8))

        event = AuditEventRepository(db_session).get_by_id(event_id)
        assert RiskFactor.UNUSUAL_HOURS in event.risk_factor_list

    def test_sensitive_event(self, db_session, test_account, noon) -> None:
        log(db_session, test_account.id, noon)
        event_id = log(
            db_session, test_account.id, noon, event_type=AuditEventType.MFA_DISABLED
        )

        event = AuditEventRepository(db_session).get_by_id(event_id)
        assert event.risk_score == 20
        assert event.risk_factor_list == [RiskFactor.SENSITIVE_EVENT]

    def test_metadata_is_stored(self, db_session, test_account, noon) -> None:
        event_id = AuthAuditService.log_event(
            db_session,
            AuditEventType.LOGOUT,
            db_models.AuditCategory.SESSION.value,
            success=True,
            account_id=test_account.id,
            metadata={"tokens_revoked": 2, "at": noon},
            now=noon,
        )

        metadata = AuditEventRepository(db_session).get_by_id(event_id).metadata_dict
        assert metadata["tokens_revoked"] == 2
        assert "at" in metadata

    def test_storage_failure_returns_none(
        self, db_session, test_account, noon, monkeypatch
    ) -> None:
        """Audit writes fail open."""

        def broken(*args, **kwargs):
            raise OperationalError("INSERT", {}, Exception("locked"))

        monkeypatch.setattr(AuditEventRepository, "add_event", broken)

        assert log(db_session, test_account.id, noon) is None


class TestAlerts:
    """Tests for alert creation and lifecycle."""

    def _raise_alert(self, db_session, account_id, noon) -> None:
        for _ in range(3):
            log(db_session, account_id, noon, AuditEventType.LOGIN_FAILED, success=False)
        # fourth failure from a new address: 20 + 30 + 25
        log(
            db_session,
            account_id,
            noon,
            AuditEventType.LOGIN_FAILED,
            success=False,
            ip="192.0.2.50",
        )

    def test_high_risk_event_raises_alert(self, db_session, test_account, noon) -> None:
        self._raise_alert(db_session, test_account.id, noon)

        alerts = AuthAuditService.get_suspicious_alerts(db_session)
        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.risk_score == 75
        assert alert.severity == "high"
        assert alert.alert_type == "multiple_failures"
        assert alert.status == "new"
        assert alert.account_id == test_account.id
        assert alert.ip_address == "192.0.2.50"

    def test_low_risk_events_raise_nothing(self, db_session, test_account, noon) -> None:
        log(db_session, test_account.id, noon)
        assert AuthAuditService.get_suspicious_alerts(db_session) == []

    def test_score_at_threshold_raises_alert(self, db_session, test_account, noon) -> None:
        # failure + new address + sensitive event: 20 + 30 + 20
        event_id = log(
            db_session, test_account.id, noon, AuditEventType.MFA_DISABLED, success=False
        )

        assert AuditEventRepository(db_session).get_by_id(event_id).risk_score == 70
        alerts = AuthAuditService.get_suspicious_alerts(db_session)
        assert [alert.risk_score for alert in alerts] == [70]

    def test_score_below_threshold_raises_nothing(
        self, db_session, test_account, noon
    ) -> None:
        # failure + new address + unusual hour: 20 + 30 + 15
        event_id = log(
            db_session,
            test_account.id,
            noon.replace(hour=3),
            AuditEventType.LOGIN_FAILED,
            success=False,
        )

        assert AuditEventRepository(db_session).get_by_id(event_id).risk_score == 65
        assert AuthAuditService.get_suspicious_alerts(db_session) == []

    def test_transitions(self, db_session, test_account, admin_account, noon) -> None:
        self._raise_alert(db_session, test_account.id, noon)
        alert_id = AuthAuditService.get_suspicious_alerts(db_session)[0].id

        alert = AuthAuditService.update_alert_status(db_session, alert_id, "investigating")
        assert alert.status == "investigating"
        assert alert.resolved_at is None

        alert = AuthAuditService.update_alert_status(
            db_session, alert_id, "resolved", resolved_by=admin_account.id, notes="checked"
        )
        assert alert.resolved_by == admin_account.id
        assert alert.resolved_at is not None
        assert alert.notes == "checked"

        with pytest.raises(InvalidAlertTransitionException):
            AuthAuditService.update_alert_status(db_session, alert_id, "new")

    def test_investigating_cannot_go_back(self, db_session, test_account, noon) -> None:
        self._raise_alert(db_session, test_account.id, noon)
        alert_id = AuthAuditService.get_suspicious_alerts(db_session)[0].id
        AuthAuditService.update_alert_status(db_session, alert_id, "investigating")

        with pytest.raises(InvalidAlertTransitionException):
            AuthAuditService.update_alert_status(db_session, alert_id, "new")

    def test_unknown_alert(self, db_session) -> None:
        with pytest.raises(AlertNotFoundException):
            AuthAuditService.update_alert_status(db_session, 77, "resolved")

    def test_filter_by_severity(self, db_session, test_account, noon) -> None:
        self._raise_alert(db_session, test_account.id, noon)

        assert len(AuthAuditService.get_suspicious_alerts(db_session, severity="high")) == 1
        assert AuthAuditService.get_suspicious_alerts(db_session, severity="critical") == []


class TestDailySummary:
    """Tests for the per account rollup."""

    def test_counts_logins(self, db_session, test_account, noon) -> None:
        log(db_session, test_account.id, noon)
        log(db_session, test_account.id, noon, AuditEventType.LOGIN_FAILED, success=False)
        log(db_session, test_account.id, noon, ip="10.0.0.2")
        log(db_session, test_account.id, noon, AuditEventType.TOKEN_REFRESH)

        summary = AuthAuditService.get_daily_summary(db_session, test_account.id, noon.date())

        assert summary.successful_logins == 2
        assert summary.failed_logins == 1
        assert summary.token_refreshes == 1
        assert summary.unique_ips == 2
        assert summary.unique_devices == 1

    def test_no_summary_without_account(self, db_session, noon) -> None:
        log(db_session, None, noon, AuditEventType.LOGIN_FAILED, success=False)
        assert AuthAuditService.get_daily_summary(db_session, 1, noon.date()) is None

    def test_best_effort_failure_is_contained(self, db_session) -> None:
        def explode() -> None:
            raise RuntimeError("boom")

        assert run_best_effort(db_session, "explode", explode) is False


class TestReporting:
    """Tests for user log, stats and retention."""

    def test_user_audit_log_is_scoped(self, db_session, test_account, other_account) -> None:
        log(db_session, test_account.id, utc_now())
        log(db_session, other_account.id, utc_now())
        log(db_session, test_account.id, utc_now(), AuditEventType.LOGOUT)

        events = AuthAuditService.get_user_audit_log(db_session, test_account.id)
        assert len(events) == 2
        assert all(e.account_id == test_account.id for e in events)
        logouts = AuthAuditService.get_user_audit_log(
            db_session, test_account.id, event_type=AuditEventType.LOGOUT
        )
        assert len(logouts) == 1

    def test_audit_stats(self, db_session, test_account) -> None:
        now = utc_now()
        log(db_session, test_account.id, now)
        log(db_session, test_account.id, now, AuditEventType.LOGIN_FAILED, success=False)

        stats = AuthAuditService.get_audit_stats(db_session, days=7)

        assert stats["period_days"] == 7
        assert stats["total_events"] == 2
        assert stats["failed_events"] == 1
        assert stats["events_by_type"] == {"login": 1, "login_failed": 1}

    def test_cleanup(self, db_session, test_account) -> None:
        log(db_session, test_account.id, utc_now() - timedelta(days=120))
        log(db_session, test_account.id, utc_now())

        result = AuthAuditService.cleanup_old_audit_data(db_session)

        assert result["events"] == 1
        assert result["summaries"] == 1
        assert AuthAuditService.cleanup_old_audit_data(db_session) == {
            "events": 0,
            "summaries": 0,
            "alerts": 0,
        }
