"""
Request correlation IDs.

Every request gets a short ID that is attached to log records, Sentry events
and error responses so a reported failure can be traced end to end.
"""

import uuid
from contextvars import ContextVar

CORRELATION_HEADER = "X-Correlation-ID"

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")


def generate_correlation_id() -> str:
    """Eight hex characters, short enough to read out over the phone."""
    return uuid.uuid4().hex[:8]


def get_correlation_id() -> str:
    return correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)
