"""
Risk scoring for audit events.

Pure functions: the audit service gathers the signals from the store and
these turn them into a score and an alert classification.
"""

from dataclasses import dataclass

from models.auth_types import RiskAssessment, RiskFactor
from repositories.db_models import AlertSeverity

MAX_RISK_SCORE = 100

FAILED_EVENT_POINTS = 20
NEW_IP_POINTS = 30
REPEATED_FAILURES_POINTS = 25
UNUSUAL_HOURS_POINTS = 15
SENSITIVE_EVENT_POINTS = 20

REPEATED_FAILURES_THRESHOLD = 3
RAPID_SUCCESSION_THRESHOLD = 10
UNUSUAL_HOURS = range(2, 5)
CRITICAL_SCORE = 90


@dataclass(frozen=True)
class RiskSignals:
    """Independent observations about a single event."""

    failed: bool = False
    new_ip: bool = False
    new_device: bool = False
    recent_failures: int = 0
    recent_events: int = 0
    local_hour: int = 12
    sensitive: bool = False


def score_risk(signals: RiskSignals) -> RiskAssessment:
    """
    Additive 0-100 score.

    ``new_device`` and ``rapid_succession`` are recorded as factors but
    carry no points; they only shape the alert severity.
    """
    score = 0
    factors: list[str] = []

    if signals.failed:
        score += FAILED_EVENT_POINTS
        factors.append(RiskFactor.AUTHENTICATION_FAILURE)
    if signals.new_ip:
        score += NEW_IP_POINTS
        factors.append(RiskFactor.NEW_IP_ADDRESS)
    if signals.recent_failures >= REPEATED_FAILURES_THRESHOLD:
        score += REPEATED_FAILURES_POINTS
        factors.append(RiskFactor.REPEATED_FAILURES)
    if signals.local_hour in UNUSUAL_HOURS:
        score += UNUSUAL_HOURS_POINTS
        factors.append(RiskFactor.UNUSUAL_HOURS)
    if signals.sensitive:
        score += SENSITIVE_EVENT_POINTS
        factors.append(RiskFactor.SENSITIVE_EVENT)
    if signals.new_device:
        factors.append(RiskFactor.NEW_DEVICE)
    if signals.recent_events >= RAPID_SUCCESSION_THRESHOLD:
        factors.append(RiskFactor.RAPID_SUCCESSION)

    return RiskAssessment(score=min(score, MAX_RISK_SCORE), factors=factors)


def classify_alert(assessment: RiskAssessment) -> tuple[str, str]:
    """
    Map an assessment to ``(severity, alert_type)``.

    Repeated or rapid failures outrank the new IP plus new device pairing;
    a score of 90 or more is critical whatever fired.
    """
    factors = set(assessment.factors)
    severity = AlertSeverity.MEDIUM.value
    alert_type = "unusual_activity"

    if RiskFactor.NEW_IP_ADDRESS in factors and RiskFactor.NEW_DEVICE in factors:
        severity = AlertSeverity.MEDIUM.value
        alert_type = "new_device"
    if factors & {RiskFactor.REPEATED_FAILURES, RiskFactor.RAPID_SUCCESSION}:
        severity = AlertSeverity.HIGH.value
        alert_type = "multiple_failures"
    if assessment.score >= CRITICAL_SCORE:
        severity = AlertSeverity.CRITICAL.value

    return severity, alert_type


def describe_alert(assessment: RiskAssessment, event_type: str) -> str:
    factors = ", ".join(assessment.factors) or "none"
    return (
        f"High risk {event_type} event (score {assessment.score}). "
        f"Risk factors: {factors}"
    )
