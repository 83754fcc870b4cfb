"""Tests for correlation ID generation and context management."""

import re

from core.correlation import (
    correlation_id_var,
    generate_correlation_id,
    get_correlation_id,
    set_correlation_id,
)


class TestGenerateCorrelationId:
    """Tests for generate_correlation_id."""

    def test_returns_eight_hex_characters(self) -> None:
        assert re.match(r"^[0-9a-f]{8}$", generate_correlation_id())

    def test_generates_unique_ids(self) -> None:
        ids = {generate_correlation_id() for _ in range(500)}
        assert len(ids) == 500


class TestCorrelationIdContext:
    """Tests for the context variable helpers."""

    def test_set_and_get(self) -> None:
        set_correlation_id("abc12345")
        assert get_correlation_id() == "abc12345"

    def test_empty_when_not_set(self) -> None:
        correlation_id_var.set("")
        assert get_correlation_id() == ""

    def test_can_be_overwritten(self) -> None:
        set_correlation_id("first_id")
        set_correlation_id("second_id")
        assert get_correlation_id() == "second_id"


class TestCorrelationMiddleware:
    """The correlation header flows from request to response and error bodies."""

    def test_generated_when_missing(self, client) -> None:
        response = client.get("/api/health")
        assert re.match(r"^[0-9a-f]{8}$", response.headers["X-Correlation-ID"])

    def test_echoes_incoming_header(self, client) -> None:
        response = client.get("/api/health", headers={"X-Correlation-ID": "trace001"})
        assert response.headers["X-Correlation-ID"] == "trace001"

    def test_error_body_carries_request_id(self, client) -> None:
        response = client.post(
            "/api/auth/login",
            json={"email": "nobody@example.com", "password": "whatever"},
            headers={"X-Correlation-ID": "trace002"},
        )

        assert response.status_code == 401
        assert response.json()["correlation_id"] == "trace002"
