"""
User agent parsing for session and trusted device listings.

Extracts a coarse browser / OS / device description; it is display data,
never used for security decisions.
"""

import re
from typing import Optional


def _extract_version(ua: str, browser_name: str) -> str:
    """Extract browser name and major version from user agent."""
    match = re.search(rf"{browser_name}/(\d+)", ua, re.IGNORECASE)
    if match:
        return f"{browser_name} {match.group(1)}"
    return browser_name


def _detect_browser(ua: str) -> str:
    ua_lower = ua.lower()
    if "edg" in ua_lower:
        return _extract_version(ua, "Edg").replace("Edg", "Edge", 1)
    if "chrome" in ua_lower:
        return _extract_version(ua, "Chrome")
    if "firefox" in ua_lower:
        return _extract_version(ua, "Firefox")
    if "safari" in ua_lower:
        return _extract_version(ua, "Safari")
    return "Unknown"


def _detect_os(ua: str) -> str:
    ua_lower = ua.lower()
    if "windows" in ua_lower:
        return "Windows"
    if "iphone" in ua_lower or "ipad" in ua_lower:
        return "iOS"
    if "android" in ua_lower:
        return "Android"
    if "mac os" in ua_lower or "macintosh" in ua_lower:
        return "macOS"
    if "linux" in ua_lower:
        return "Linux"
    return "Unknown"


def _detect_device(ua: str) -> str:
    ua_lower = ua.lower()
    if "ipad" in ua_lower or "tablet" in ua_lower:
        return "Tablet"
    if "mobile" in ua_lower or "iphone" in ua_lower or "android" in ua_lower:
        return "Mobile"
    return "Desktop"


def parse_user_agent(user_agent: Optional[str]) -> dict[str, str]:
    """
    Describe a user agent as ``{"browser", "os", "device"}``.

    >>> parse_user_agent("Mozilla/5.0 (Windows NT 10.0) Chrome/120.0")["browser"]
    'Chrome 120'
    """
    if not user_agent:
        return {"browser": "Unknown", "os": "Unknown", "device": "Unknown"}
    return {
        "browser": _detect_browser(user_agent),
        "os": _detect_os(user_agent),
        "device": _detect_device(user_agent),
    }
