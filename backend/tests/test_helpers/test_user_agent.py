"""Tests for user agent parsing."""

import pytest

from helpers.user_agent import parse_user_agent


@pytest.mark.parametrize(
    "user_agent,expected",
    [
        (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            {"browser": "Chrome 120", "os": "Windows", "device": "Desktop"},
        ),
        (
            "Mozilla/5.0 (Windows NT 10.0) AppleWebKit/537.36 Chrome/120.0 "
            "Safari/537.36 Edg/120.0",
            {"browser": "Edge 120", "os": "Windows", "device": "Desktop"},
        ),
        (
            "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
            "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1",
            {"browser": "Safari 604", "os": "iOS", "device": "Mobile"},
        ),
        (
            "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0",
            {"browser": "Firefox 121", "os": "Linux", "device": "Desktop"},
        ),
        (
            "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) Safari/604.1",
            {"browser": "Safari 604", "os": "iOS", "device": "Tablet"},
        ),
    ],
)
def test_parse_user_agent(user_agent, expected):
    assert parse_user_agent(user_agent) == expected


def test_unknown_user_agent():
    assert parse_user_agent(None) == {
        "browser": "Unknown",
        "os": "Unknown",
        "device": "Unknown",
    }


def test_unrecognized_user_agent():
    assert parse_user_agent("curl/8.0") == {
        "browser": "Unknown",
        "os": "Unknown",
        "device": "Desktop",
    }
