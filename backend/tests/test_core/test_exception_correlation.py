"""Tests for domain exception payloads and correlation IDs."""

from datetime import timedelta

import pytest

from core.correlation import set_correlation_id
from helpers.time_utils import utc_now
from models.exceptions import (
    AccountLockedException,
    AuthenticationException,
    DomainException,
    InvalidCredentialsException,
    MFAVerificationFailedException,
    NotFoundException,
    PermissionDeniedException,
    RateLimitedException,
    ValidationException,
)


class TestDomainExceptionCorrelationId:
    """Tests for correlation ID resolution."""

    def setup_method(self) -> None:
        set_correlation_id("")

    def test_uses_context_correlation_id(self) -> None:
        set_correlation_id("context1")
        assert DomainException("Test error").correlation_id == "context1"

    def test_generates_id_when_no_context(self) -> None:
        exc = DomainException("Test error")
        assert len(exc.correlation_id) == 8

    def test_explicit_overrides_context(self) -> None:
        set_correlation_id("context_id")
        exc = DomainException("Test error", correlation_id="override")
        assert exc.correlation_id == "override"

    @pytest.mark.parametrize(
        "exception_class",
        [
            NotFoundException,
            PermissionDeniedException,
            ValidationException,
            AuthenticationException,
        ],
    )
    def test_children_use_context_id(self, exception_class) -> None:
        set_correlation_id("inherited")
        assert exception_class("Test error").correlation_id == "inherited"


class TestAuthExceptions:
    """Tests for the authentication exception payloads."""

    def test_invalid_credentials_message(self) -> None:
        assert str(InvalidCredentialsException()) == "Invalid email or password"

    def test_account_locked_minutes_remaining(self) -> None:
        exc = AccountLockedException(utc_now() + timedelta(minutes=14, seconds=30))

        assert exc.minutes_remaining == 15
        assert isinstance(exc, AuthenticationException)

    def test_rate_limited_retry_after(self) -> None:
        assert RateLimitedException(retry_after=1800).retry_after == 1800

    def test_mfa_attempts_remaining(self) -> None:
        exc = MFAVerificationFailedException(attempts_remaining=3)
        assert exc.attempts_remaining == 3
