"""Rate limiter shared by main.py and the routers.

Requests are keyed by the proxy-aware client IP so every user behind the
same reverse proxy does not share one bucket.
"""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from helpers.request_utils import get_client_ip

LOGIN_RATE_LIMIT = "10/minute"
REFRESH_RATE_LIMIT = "30/minute"


def client_ip_key(request: Request) -> str:
    return get_client_ip(request) or get_remote_address(request)


limiter = Limiter(key_func=client_ip_key)
