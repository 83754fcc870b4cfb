"""Audit ledger router: personal audit log and summaries, admin alerts and stats."""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

import authentication.auth as auth
import models.schemas as schemas
import repositories.db_models as db_models
from repositories.database import get_db
from services.auth_audit_service import AuthAuditService

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/me", response_model=List[schemas.AuditEventResponse])
def get_my_audit_log(
    limit: int = Query(50, ge=1, le=200),
    event_type: Optional[str] = None,
    current_account: db_models.Account = Depends(auth.get_current_account),
    db: Session = Depends(get_db),
) -> list[db_models.AuditEvent]:
    """Most recent authentication events of the current account, newest first."""
    return AuthAuditService.get_user_audit_log(
        db, current_account.id, limit=limit, event_type=event_type
    )


@router.get("/summary", response_model=Optional[schemas.DailySummaryResponse])
def get_my_daily_summary(
    day: Optional[date] = None,
    current_account: db_models.Account = Depends(auth.get_current_account),
    db: Session = Depends(get_db),
) -> Optional[db_models.DailyAuditSummary]:
    """Daily counters for the current account. Null when nothing happened that day."""
    return AuthAuditService.get_daily_summary(db, current_account.id, day)


# ============================================================================
# Admin Endpoints
# ============================================================================


@router.get("/alerts", response_model=List[schemas.AlertResponse])
def list_alerts(
    status: Optional[db_models.AlertStatus] = None,
    severity: Optional[db_models.AlertSeverity] = None,
    limit: int = Query(50, ge=1, le=200),
    admin: db_models.Account = Depends(auth.get_admin_account),
    db: Session = Depends(get_db),
) -> list[db_models.SuspiciousActivityAlert]:
    return AuthAuditService.get_suspicious_alerts(
        db,
        status=status.value if status else None,
        severity=severity.value if severity else None,
        limit=limit,
    )


@router.patch("/alerts/{alert_id}", response_model=schemas.AlertResponse)
def update_alert(
    alert_id: int,
    body: schemas.AlertUpdateRequest,
    admin: db_models.Account = Depends(auth.get_admin_account),
    db: Session = Depends(get_db),
) -> db_models.SuspiciousActivityAlert:
    return AuthAuditService.update_alert_status(
        db, alert_id, body.status.value, resolved_by=admin.id, notes=body.notes
    )


@router.get("/stats", response_model=schemas.AuditStatsResponse)
def get_audit_stats(
    days: int = Query(7, ge=1, le=365),
    admin: db_models.Account = Depends(auth.get_admin_account),
    db: Session = Depends(get_db),
) -> dict:
    return AuthAuditService.get_audit_stats(db, days=days)
