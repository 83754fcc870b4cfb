"""
Audit ledger repositories.

Provides data access for audit events, the per-day rollups and the
suspicious activity alerts raised from high risk events.
"""

import json
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from repositories import db_models
from repositories.base import BaseRepository


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """UTC [start, end) datetimes for a calendar day."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


class AuditEventRepository(BaseRepository[db_models.AuditEvent]):
    """Repository for audit event operations."""

    def __init__(self, db: Session):
        """Initialize repository."""
        super().__init__(db_models.AuditEvent, db)

    def add_event(
        self,
        event_type: str,
        category: str,
        success: bool,
        account_id: Optional[int],
        ip_address: Optional[str],
        user_agent: Optional[str],
        risk_score: int,
        risk_factors: list[str],
        failure_reason: Optional[str] = None,
        metadata: Optional[dict] = None,
        created_at: Optional[datetime] = None,
    ) -> db_models.AuditEvent:
        event = db_models.AuditEvent(
            event_type=event_type,
            category=category,
            account_id=account_id,
            success=success,
            failure_reason=failure_reason,
            ip_address=ip_address,
            user_agent=user_agent,
            risk_score=risk_score,
            risk_factors=json.dumps(risk_factors),
            details=json.dumps(metadata, default=str) if metadata else None,
            created_at=created_at,
        )
        self.db.add(event)
        self.db.flush()
        return event

    def _build_query(
        self,
        event_type: Optional[str] = None,
        account_id: Optional[int] = None,
        ip_address: Optional[str] = None,
        success: Optional[bool] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ):
        """Build filtered query for audit events."""
        query = self.db.query(self.model)

        if event_type:
            query = query.filter(self.model.event_type == event_type)
        if account_id is not None:
            query = query.filter(self.model.account_id == account_id)
        if ip_address:
            query = query.filter(self.model.ip_address == ip_address)
        if success is not None:
            query = query.filter(self.model.success.is_(success))
        if start_date:
            query = query.filter(self.model.created_at >= start_date)
        if end_date:
            query = query.filter(self.model.created_at < end_date)

        return query

    def get_events(
        self,
        account_id: Optional[int] = None,
        event_type: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[db_models.AuditEvent]:
        return (
            self._build_query(event_type=event_type, account_id=account_id)
            .order_by(self.model.created_at.desc(), self.model.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    # Risk signal queries

    def has_ip_history(self, account_id: int, ip_address: str, since: datetime) -> bool:
        return (
            self._build_query(
                account_id=account_id, ip_address=ip_address, start_date=since
            ).first()
            is not None
        )

    def has_user_agent_history(
        self, account_id: int, user_agent: str, since: datetime
    ) -> bool:
        return (
            self._build_query(account_id=account_id, start_date=since)
            .filter(self.model.user_agent == user_agent)
            .first()
            is not None
        )

    def count_failures(self, account_id: int, since: datetime) -> int:
        return self._build_query(
            account_id=account_id, success=False, start_date=since
        ).count()

    def count_events(self, account_id: int, since: datetime) -> int:
        return self._build_query(account_id=account_id, start_date=since).count()

    def count_distinct_for_day(self, account_id: int, day: date) -> tuple[int, int]:
        """(unique IPs, unique user agents) seen for an account on ``day``."""
        start, end = day_bounds(day)
        row = (
            self.db.query(
                func.count(func.distinct(self.model.ip_address)),
                func.count(func.distinct(self.model.user_agent)),
            )
            .filter(
                self.model.account_id == account_id,
                self.model.created_at >= start,
                self.model.created_at < end,
            )
            .one()
        )
        return row[0] or 0, row[1] or 0

    # Reporting

    def counts_by_type(self, since: datetime) -> dict[str, int]:
        rows = (
            self.db.query(self.model.event_type, func.count(self.model.id))
            .filter(self.model.created_at >= since)
            .group_by(self.model.event_type)
            .all()
        )
        return {event_type: count for event_type, count in rows}

    def count_since(
        self,
        since: datetime,
        success: Optional[bool] = None,
        min_risk: Optional[int] = None,
    ) -> int:
        query = self._build_query(success=success, start_date=since)
        if min_risk is not None:
            query = query.filter(self.model.risk_score >= min_risk)
        return query.count()

    def cleanup_old_events(self, retention_days: int) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
        return self.delete_older_than(self.model.created_at, cutoff)


class DailySummaryRepository(BaseRepository[db_models.DailyAuditSummary]):
    """Repository for per account daily rollups."""

    COUNTERS = (
        "successful_logins",
        "failed_logins",
        "password_changes",
        "token_refreshes",
        "high_risk_events",
    )

    def __init__(self, db: Session):
        super().__init__(db_models.DailyAuditSummary, db)

    def get(self, account_id: int, day: date) -> db_models.DailyAuditSummary | None:
        return (
            self.db.query(self.model)
            .filter(self.model.account_id == account_id, self.model.summary_date == day)
            .first()
        )

    def get_or_create(self, account_id: int, day: date) -> db_models.DailyAuditSummary:
        """
        Fetch the row for (account, day), inserting it if missing.

        Only called once the triggering event is committed: a concurrent
        insert of the same row loses on the unique constraint, rolls back
        and falls back to the row the other writer created.
        """
        summary = self.get(account_id, day)
        if summary is not None:
            return summary
        summary = db_models.DailyAuditSummary(account_id=account_id, summary_date=day)
        self.db.add(summary)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            summary = self.get(account_id, day)
            if summary is None:
                raise
        return summary

    def increment(self, summary_id: int, increments: dict[str, int]) -> None:
        """Add to counters with a single UPDATE evaluated by the database."""
        values = {
            getattr(self.model, name): getattr(self.model, name) + amount
            for name, amount in increments.items()
            if name in self.COUNTERS and amount
        }
        if not values:
            return
        self.db.query(self.model).filter(self.model.id == summary_id).update(
            values, synchronize_session=False
        )

    def set_unique_counts(self, summary_id: int, unique_ips: int, unique_devices: int):
        self.db.query(self.model).filter(self.model.id == summary_id).update(
            {
                self.model.unique_ips: unique_ips,
                self.model.unique_devices: unique_devices,
            },
            synchronize_session=False,
        )

    def cleanup_old_summaries(self, retention_days: int) -> int:
        cutoff = (datetime.now(timezone.utc) - timedelta(days=retention_days)).date()
        return (
            self.db.query(self.model)
            .filter(self.model.summary_date < cutoff)
            .delete(synchronize_session=False)
        )


class AlertRepository(BaseRepository[db_models.SuspiciousActivityAlert]):
    """Repository for suspicious activity alerts."""

    def __init__(self, db: Session):
        super().__init__(db_models.SuspiciousActivityAlert, db)

    def get_alerts(
        self,
        status: Optional[str] = None,
        severity: Optional[str] = None,
        account_id: Optional[int] = None,
        limit: int = 50,
    ) -> list[db_models.SuspiciousActivityAlert]:
        query = self.db.query(self.model)
        if status:
            query = query.filter(self.model.status == status)
        if severity:
            query = query.filter(self.model.severity == severity)
        if account_id is not None:
            query = query.filter(self.model.account_id == account_id)
        return (
            query.order_by(self.model.created_at.desc(), self.model.id.desc())
            .limit(limit)
            .all()
        )

    def counts_by_status(self) -> dict[str, int]:
        rows = (
            self.db.query(self.model.status, func.count(self.model.id))
            .group_by(self.model.status)
            .all()
        )
        return {status: count for status, count in rows}

    def cleanup_closed_alerts(self, retention_days: int) -> int:
        """Delete resolved or false-positive alerts older than the window."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
        return self.delete_older_than(
            self.model.created_at,
            cutoff,
            self.model.status.in_(
                [
                    db_models.AlertStatus.RESOLVED.value,
                    db_models.AlertStatus.FALSE_POSITIVE.value,
                ]
            ),
        )
