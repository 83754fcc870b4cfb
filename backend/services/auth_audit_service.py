"""
Audit ledger and risk engine.

``log_event`` is the single ingestion point for security events raised by
the lockout tracker, token lifecycle and MFA services. Storage failures are
logged and swallowed so auditing never blocks authentication.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

import sentry_sdk
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from helpers.time_utils import utc_now
from models.auth_types import SENSITIVE_EVENT_TYPES, AuditEventType, RiskAssessment
from models.config import settings
from models.exceptions import AlertNotFoundException, InvalidAlertTransitionException
from repositories import db_models
from repositories.account_repository import AccountRepository
from repositories.audit_repository import (
    AlertRepository,
    AuditEventRepository,
    DailySummaryRepository,
)
from services.risk_scoring import (
    RiskSignals,
    classify_alert,
    describe_alert,
    score_risk,
)

NEW_IP_LOOKBACK = timedelta(days=30)
FAILURE_LOOKBACK = timedelta(hours=1)
RAPID_SUCCESSION_LOOKBACK = timedelta(minutes=5)

ALERT_TRANSITIONS: dict[str, set[str]] = {
    db_models.AlertStatus.NEW.value: {
        db_models.AlertStatus.INVESTIGATING.value,
        db_models.AlertStatus.RESOLVED.value,
        db_models.AlertStatus.FALSE_POSITIVE.value,
    },
    db_models.AlertStatus.INVESTIGATING.value: {
        db_models.AlertStatus.RESOLVED.value,
        db_models.AlertStatus.FALSE_POSITIVE.value,
    },
}


def _local_hour(now: datetime) -> int:
    if settings.AUDIT_TIMEZONE.upper() == "UTC":
        return now.astimezone(timezone.utc).hour
    return now.astimezone(ZoneInfo(settings.AUDIT_TIMEZONE)).hour


def run_best_effort(db: Session, name: str, task: Callable[[], None]) -> bool:
    """
    Run a secondary write in its own transaction.

    Errors are logged, reported to Sentry and rolled back; they never reach
    the caller. Returns whether the task committed.
    """
    try:
        task()
        db.commit()
        return True
    except Exception as e:
        db.rollback()
        sentry_sdk.capture_exception(e)
        logger.warning(f"Best-effort task '{name}' failed: {e!r}")
        return False


class AuthAuditService:
    """Service for audit logging, risk scoring and alerting."""

    @staticmethod
    def assess_risk(
        db: Session,
        event_type: str,
        success: bool,
        account_id: Optional[int],
        ip_address: Optional[str],
        user_agent: Optional[str],
        now: datetime,
    ) -> RiskAssessment:
        """Gather signals from prior events and score the new one."""
        repo = AuditEventRepository(db)
        new_ip = new_device = False
        recent_failures = recent_events = 0

        if account_id is not None:
            if ip_address:
                new_ip = not repo.has_ip_history(
                    account_id, ip_address, now - NEW_IP_LOOKBACK
                )
            if user_agent:
                new_device = not repo.has_user_agent_history(
                    account_id, user_agent, now - NEW_IP_LOOKBACK
                )
            recent_failures = repo.count_failures(account_id, now - FAILURE_LOOKBACK)
            recent_events = repo.count_events(
                account_id, now - RAPID_SUCCESSION_LOOKBACK
            )

        return score_risk(
            RiskSignals(
                failed=not success,
                new_ip=new_ip,
                new_device=new_device,
                recent_failures=recent_failures,
                recent_events=recent_events,
                local_hour=_local_hour(now),
                sensitive=event_type in SENSITIVE_EVENT_TYPES,
            )
        )

    @staticmethod
    def log_event(
        db: Session,
        event_type: str,
        category: str,
        success: bool,
        account_id: Optional[int] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        failure_reason: Optional[str] = None,
        metadata: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> Optional[int]:
        """
        Record a security event and raise an alert when it is risky enough.

        Callers commit their own work first: a storage failure here rolls
        back the session.

        Args:
            db: Database session
            event_type: One of ``AuditEventType``
            category: One of ``AuditCategory``
            success: Whether the action succeeded
            account_id: Account involved, if known
            ip_address: Client IP address
            user_agent: Client user agent
            failure_reason: Short machine-readable reason on failure
            metadata: Extra JSON-serializable details
            now: Clock override for tests

        Returns:
            The new event id, or None when the write failed.
        """
        now = now or utc_now()
        try:
            assessment = AuthAuditService.assess_risk(
                db, event_type, success, account_id, ip_address, user_agent, now
            )
            event = AuditEventRepository(db).add_event(
                event_type=event_type,
                category=category,
                success=success,
                account_id=account_id,
                ip_address=ip_address,
                user_agent=user_agent[:500] if user_agent else None,
                risk_score=assessment.score,
                risk_factors=assessment.factors,
                failure_reason=failure_reason,
                metadata=metadata,
                created_at=now,
            )
            if account_id is not None:
                AccountRepository(db).touch_audit(account_id, now)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            sentry_sdk.capture_exception(e)
            logger.error(f"Audit write failed for {event_type}: {e!r}")
            return None

        event_id = event.id
        high_risk = assessment.score >= settings.AUDIT_ALERT_THRESHOLD
        log = logger.warning if high_risk else logger.info
        log(
            f"Audit event: {event_type}",
            event_type=event_type,
            account_id=account_id,
            success=success,
            risk_score=assessment.score,
        )

        if account_id is not None:
            run_best_effort(
                db,
                "daily_summary",
                lambda: AuthAuditService.update_daily_summary(
                    db, account_id, event_type, success, assessment.score, now.date()
                ),
            )
        if high_risk:
            run_best_effort(
                db,
                "suspicious_activity_alert",
                lambda: AuthAuditService.create_alert(
                    db, event_id, event_type, account_id, ip_address, assessment
                ),
            )
        return event_id

    @staticmethod
    def create_alert(
        db: Session,
        event_id: Optional[int],
        event_type: str,
        account_id: Optional[int],
        ip_address: Optional[str],
        assessment: RiskAssessment,
    ) -> db_models.SuspiciousActivityAlert:
        """Stage an alert for a high risk event. Caller commits."""
        severity, alert_type = classify_alert(assessment)
        alert = db_models.SuspiciousActivityAlert(
            account_id=account_id,
            audit_event_id=event_id,
            alert_type=alert_type,
            severity=severity,
            status=db_models.AlertStatus.NEW.value,
            description=describe_alert(assessment, event_type),
            risk_score=assessment.score,
            ip_address=ip_address,
            created_at=utc_now(),
        )
        AlertRepository(db).add(alert)
        db.flush()
        logger.warning(
            f"Suspicious activity alert raised: {alert_type} ({severity})",
            account_id=account_id,
            risk_score=assessment.score,
        )
        if severity == db_models.AlertSeverity.CRITICAL.value:
            sentry_sdk.capture_message(
                f"Critical suspicious activity: {alert_type}", level="warning"
            )
        return alert

    @staticmethod
    def update_daily_summary(
        db: Session,
        account_id: int,
        event_type: str,
        success: bool,
        risk_score: int,
        day: date,
    ) -> None:
        """
        Upsert the (account, day) rollup.

        Unique IP and device counts are recomputed from that day's events.
        """
        increments = {
            "successful_logins": int(event_type == AuditEventType.LOGIN and success),
            "failed_logins": int(
                event_type == AuditEventType.LOGIN_FAILED
                or (event_type == AuditEventType.LOGIN and not success)
            ),
            "password_changes": int(
                event_type
                in (AuditEventType.PASSWORD_CHANGE, AuditEventType.PASSWORD_RESET)
                and success
            ),
            "token_refreshes": int(event_type == AuditEventType.TOKEN_REFRESH and success),
            "high_risk_events": int(risk_score >= settings.AUDIT_ALERT_THRESHOLD),
        }
        repo = DailySummaryRepository(db)
        summary = repo.get_or_create(account_id, day)
        repo.increment(summary.id, increments)
        unique_ips, unique_devices = AuditEventRepository(db).count_distinct_for_day(
            account_id, day
        )
        repo.set_unique_counts(summary.id, unique_ips, unique_devices)

    @staticmethod
    def get_user_audit_log(
        db: Session,
        account_id: int,
        limit: int = 50,
        event_type: Optional[str] = None,
    ) -> list[db_models.AuditEvent]:
        return AuditEventRepository(db).get_events(
            account_id=account_id, event_type=event_type, limit=limit
        )

    @staticmethod
    def get_daily_summary(
        db: Session, account_id: int, day: Optional[date] = None
    ) -> Optional[db_models.DailyAuditSummary]:
        return DailySummaryRepository(db).get(account_id, day or utc_now().date())

    @staticmethod
    def get_suspicious_alerts(
        db: Session,
        status: Optional[str] = None,
        severity: Optional[str] = None,
        limit: int = 50,
    ) -> list[db_models.SuspiciousActivityAlert]:
        return AlertRepository(db).get_alerts(
            status=status, severity=severity, limit=limit
        )

    @staticmethod
    def update_alert_status(
        db: Session,
        alert_id: int,
        status: str,
        resolved_by: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> db_models.SuspiciousActivityAlert:
        """
        Move an alert along new -> investigating -> resolved / false_positive.

        Raises:
            AlertNotFoundException: If the alert does not exist.
            InvalidAlertTransitionException: If the move is not allowed.
        """
        repo = AlertRepository(db)
        alert = repo.get_by_id(alert_id)
        if alert is None:
            raise AlertNotFoundException(alert_id)
        if status not in ALERT_TRANSITIONS.get(alert.status, set()):
            raise InvalidAlertTransitionException(alert.status, status)

        alert.status = status
        if notes:
            alert.notes = notes
        if status in (
            db_models.AlertStatus.RESOLVED.value,
            db_models.AlertStatus.FALSE_POSITIVE.value,
        ):
            alert.resolved_by = resolved_by
            alert.resolved_at = utc_now()
        repo.commit()
        repo.refresh(alert)
        logger.info(f"Alert {alert_id} moved to {status}", resolved_by=resolved_by)
        return alert

    @staticmethod
    def get_audit_stats(db: Session, days: int = 7) -> dict:
        since = utc_now() - timedelta(days=days)
        events = AuditEventRepository(db)
        return {
            "period_days": days,
            "total_events": events.count_since(since),
            "failed_events": events.count_since(since, success=False),
            "high_risk_events": events.count_since(
                since, min_risk=settings.AUDIT_ALERT_THRESHOLD
            ),
            "events_by_type": events.counts_by_type(since),
            "alerts_by_status": AlertRepository(db).counts_by_status(),
        }

    @staticmethod
    def cleanup_old_audit_data(
        db: Session, retention_days: Optional[int] = None, commit: bool = True
    ) -> dict:
        """
        Delete audit events, summaries and closed alerts past retention.

        Idempotent: a second run deletes nothing.
        """
        days = retention_days or settings.AUDIT_RETENTION_DAYS
        alerts = AlertRepository(db).cleanup_closed_alerts(days)
        events = AuditEventRepository(db).cleanup_old_events(days)
        summaries = DailySummaryRepository(db).cleanup_old_summaries(days)
        if commit:
            db.commit()
        result = {"events": events, "summaries": summaries, "alerts": alerts}
        logger.info(f"Audit retention cleanup removed {result}")
        return result
