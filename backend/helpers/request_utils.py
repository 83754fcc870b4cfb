"""
Request utilities for extracting client information.

Provides helpers to extract IP addresses and user agent strings from
HTTP requests, handling proxy headers correctly.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

MAX_USER_AGENT_LENGTH = 500


@dataclass(frozen=True)
class ClientContext:
    """IP and user agent of the caller, passed down to the services."""

    ip_address: Optional[str]
    user_agent: Optional[str]


def get_client_ip(request: Request) -> Optional[str]:
    """
    Extract the client's real IP address from the request.

    Handles common proxy headers in order of precedence:
    1. CF-Connecting-IP (Cloudflare)
    2. X-Real-IP (nginx)
    3. X-Forwarded-For (standard proxy header, first IP)
    4. Direct client.host

    Args:
        request: FastAPI request object

    Returns:
        Client IP address or None if not available
    """
    cf_ip = request.headers.get("CF-Connecting-IP")
    if cf_ip:
        return cf_ip.strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        first_ip = forwarded_for.split(",")[0].strip()
        if first_ip:
            return first_ip

    if request.client:
        return request.client.host

    return None


def get_user_agent(request: Request) -> Optional[str]:
    """User agent header truncated to the column width, or None."""
    user_agent = request.headers.get("User-Agent")
    if user_agent:
        return user_agent[:MAX_USER_AGENT_LENGTH]
    return None


def get_client_context(request: Request) -> ClientContext:
    """FastAPI dependency bundling IP and user agent for service calls."""
    return ClientContext(
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
