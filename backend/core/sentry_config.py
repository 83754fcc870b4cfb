"""
Sentry SDK configuration.

Credentials never leave the process: passwords, one-time codes, TOTP
secrets, refresh tokens and challenge session tokens are scrubbed from
request bodies before an event is sent.
"""

from typing import Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.loguru import LoguruIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.types import Event, Hint

from models.config import settings

FILTERED = "[Filtered]"

SENSITIVE_FIELDS = frozenset(
    {
        "password",
        "code",
        "secret",
        "refresh_token",
        "access_token",
        "session_token",
        "mfa_session_token",
        "backup_codes",
        "provisioning_uri",
    }
)

SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "x-api-key"})

HEALTH_PATHS = ("/health", "/api/health")


def _scrub(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: FILTERED if str(key).lower() in SENSITIVE_FIELDS else _scrub(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_scrub(item) for item in value]
    return value


def _before_send(event: Event, hint: Hint) -> Event | None:
    """Drop emails and credentials from the event, keep only the account id."""
    user = event.get("user")
    if user:
        user.pop("email", None)
        user.pop("username", None)
        if "ip_address" in user:
            user["ip_address"] = "{{auto}}"

    request = event.get("request")
    if request and isinstance(request, dict):
        request.pop("cookies", None)
        headers = request.get("headers")
        if isinstance(headers, dict):
            for name in list(headers):
                if name.lower() in SENSITIVE_HEADERS:
                    headers[name] = FILTERED
        if "data" in request:
            request["data"] = _scrub(request["data"])

    extra = event.get("extra")
    if isinstance(extra, dict):
        event["extra"] = _scrub(extra)

    return event


def _before_send_transaction(event: Event, hint: Hint) -> Event | None:
    transaction_name = event.get("transaction", "")
    if any(transaction_name.endswith(path) for path in HEALTH_PATHS):
        return None
    return event


def _traces_sampler(sampling_context: dict[str, Any]) -> float:
    """Trace every auth and MFA request at a higher rate than the default."""
    if sampling_context.get("parent_sampled") is True:
        return 1.0

    path = sampling_context.get("asgi_scope", {}).get("path", "")
    if path in HEALTH_PATHS:
        return 0.0
    if path.startswith(("/api/auth", "/api/mfa")):
        return min(1.0, settings.SENTRY_TRACES_SAMPLE_RATE * 5)
    return settings.SENTRY_TRACES_SAMPLE_RATE


def init_sentry() -> bool:
    """
    Initialize Sentry. Call this BEFORE creating the FastAPI app instance.

    Returns:
        True when Sentry was initialized, False when SENTRY_DSN is empty.
    """
    if not settings.SENTRY_DSN:
        return False

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT or settings.ENVIRONMENT,
        send_default_pii=False,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoguruIntegration(),
        ],
        traces_sampler=_traces_sampler,
        sample_rate=1.0,
        before_send=_before_send,
        before_send_transaction=_before_send_transaction,
        attach_stacktrace=True,
        max_breadcrumbs=50,
        ignore_errors=[KeyboardInterrupt, SystemExit],
    )
    return True
