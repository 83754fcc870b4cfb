# ruff: noqa: E402
# E402 disabled: load_dotenv() must run before other imports for Sentry DSN

import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv

load_dotenv()

import sentry_sdk
from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from core.correlation import (
    CORRELATION_HEADER,
    generate_correlation_id,
    get_correlation_id,
    set_correlation_id,
)
from core.logging_config import configure_logging
from core.scheduler import get_scheduler_status, setup_scheduler, shutdown_scheduler
from core.sentry_config import init_sentry
from helpers.rate_limiter import limiter
from helpers.security_headers import SecurityHeadersMiddleware
from models.config import settings
from models.exceptions import (
    AccountLockedException,
    AuthenticationException,
    BusinessRuleException,
    ChallengeExpiredException,
    ConflictException,
    DomainException,
    EnrollmentRequiredException,
    MFAAlreadyEnabledException,
    MFAConfigurationException,
    MFANotEnabledException,
    MFAVerificationFailedException,
    NotFoundException,
    PermissionDeniedException,
    RateLimitedException,
    ValidationException,
)
from repositories.database import Base, engine
from routers import audit_router, auth_router, mfa_router

# Initialize Sentry BEFORE app creation
init_sentry()

configure_logging(settings.LOG_FORMAT, settings.LOG_LEVEL, settings.LOG_DIR)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    - Optionally create tables when `AUTO_CREATE_DB` is enabled (development).
    - Start the retention scheduler outside of tests.
    """
    if settings.AUTO_CREATE_DB:
        logger.info(
            "AUTO_CREATE_DB enabled; creating database tables via SQLAlchemy create_all()"
        )
        Base.metadata.create_all(bind=engine)

    if settings.ENVIRONMENT != "test":
        setup_scheduler()

    try:
        yield
    finally:
        if settings.ENVIRONMENT != "test":
            shutdown_scheduler()


app = FastAPI(title="Auth Security Core API", lifespan=lifespan)

# Attach rate limiter to app
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Inject correlation ID into request context and Sentry."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        correlation_id = (
            request.headers.get(CORRELATION_HEADER) or generate_correlation_id()
        )
        set_correlation_id(correlation_id)
        sentry_sdk.set_tag("correlation_id", correlation_id)

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log all incoming requests with performance monitoring."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        logger.info(
            f"{request.method} {request.url.path} "
            f"status={response.status_code} duration={duration:.3f}s"
        )
        if duration > settings.SLOW_REQUEST_THRESHOLD:
            logger.warning(
                f"Slow request: {request.method} {request.url.path} "
                f"took {duration:.2f}s (threshold: {settings.SLOW_REQUEST_THRESHOLD}s)"
            )

        response.headers["X-Response-Time"] = f"{duration:.3f}s"
        return response


# Middleware runs in reverse order - security headers wrap everything
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(RequestLoggingMiddleware)

cors_origins = ["*"] if settings.ENVIRONMENT == "development" else settings.CORS_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=settings.ENVIRONMENT != "development",
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(
    request: Request,
    exc: DomainException,
    status_code: int,
    error_type: str,
    extra: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Log a domain exception and render it as the standard JSON error body."""
    sentry_sdk.set_tag("correlation_id", exc.correlation_id)
    sentry_sdk.set_tag("exception_type", exc.__class__.__name__)

    logger.warning(
        f"{error_type}: {exc.message}",
        correlation_id=exc.correlation_id,
        exception_type=exc.__class__.__name__,
        path=str(request.url.path),
    )

    content: dict[str, Any] = {
        "detail": exc.message,
        "type": error_type,
        "correlation_id": exc.correlation_id,
    }
    if extra:
        content.update(extra)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


# Global unhandled exception handler (returns generic 500 and logs details)
@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch all unhandled exceptions with full Sentry capture."""
    correlation_id = get_correlation_id() or generate_correlation_id()

    sentry_sdk.set_tag("correlation_id", correlation_id)
    sentry_sdk.capture_exception(exc)

    # repr() escapes curly braces that loguru would treat as placeholders
    logger.exception(
        f"Unhandled exception: {exc!r}",
        correlation_id=correlation_id,
        path=str(request.url.path),
        method=request.method,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "correlation_id": correlation_id,
        },
    )


# Centralized exception handlers
@app.exception_handler(NotFoundException)
async def not_found_exception_handler(
    request: Request, exc: NotFoundException
) -> JSONResponse:
    return _error_response(request, exc, status.HTTP_404_NOT_FOUND, "not_found")


@app.exception_handler(ValidationException)
async def validation_exception_handler(
    request: Request, exc: ValidationException
) -> JSONResponse:
    return _error_response(
        request, exc, status.HTTP_422_UNPROCESSABLE_CONTENT, "validation_error"
    )


@app.exception_handler(ConflictException)
async def conflict_exception_handler(
    request: Request, exc: ConflictException
) -> JSONResponse:
    return _error_response(request, exc, status.HTTP_409_CONFLICT, "conflict")


@app.exception_handler(PermissionDeniedException)
async def permission_denied_exception_handler(
    request: Request, exc: PermissionDeniedException
) -> JSONResponse:
    return _error_response(request, exc, status.HTTP_403_FORBIDDEN, "permission_denied")


@app.exception_handler(BusinessRuleException)
async def business_rule_exception_handler(
    request: Request, exc: BusinessRuleException
) -> JSONResponse:
    return _error_response(
        request, exc, status.HTTP_400_BAD_REQUEST, "business_rule_violation"
    )


@app.exception_handler(AuthenticationException)
async def authentication_exception_handler(
    request: Request, exc: AuthenticationException
) -> JSONResponse:
    return _error_response(
        request,
        exc,
        status.HTTP_401_UNAUTHORIZED,
        "authentication_failed",
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(AccountLockedException)
async def account_locked_exception_handler(
    request: Request, exc: AccountLockedException
) -> JSONResponse:
    return _error_response(
        request,
        exc,
        status.HTTP_423_LOCKED,
        "account_locked",
        extra={
            "locked_until": exc.locked_until.isoformat(),
            "minutes_remaining": exc.minutes_remaining,
        },
    )


@app.exception_handler(RateLimitedException)
async def rate_limited_exception_handler(
    request: Request, exc: RateLimitedException
) -> JSONResponse:
    headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
    return _error_response(
        request,
        exc,
        status.HTTP_429_TOO_MANY_REQUESTS,
        "rate_limited",
        extra={"retry_after": exc.retry_after},
        headers=headers,
    )


@app.exception_handler(DomainException)
async def domain_exception_handler(
    request: Request, exc: DomainException
) -> JSONResponse:
    """Fallback for domain exceptions without a dedicated category."""
    return _error_response(request, exc, status.HTTP_400_BAD_REQUEST, "domain_error")


def _register_mfa_handlers(app_instance: FastAPI) -> None:
    """Register MFA exception handlers."""

    @app_instance.exception_handler(MFAVerificationFailedException)
    async def mfa_verification_failed_handler(
        request: Request, exc: MFAVerificationFailedException
    ) -> JSONResponse:
        extra = (
            {"attempts_remaining": exc.attempts_remaining}
            if exc.attempts_remaining is not None
            else None
        )
        return _error_response(
            request, exc, status.HTTP_401_UNAUTHORIZED, "mfa_invalid_code", extra=extra
        )

    @app_instance.exception_handler(ChallengeExpiredException)
    async def challenge_expired_handler(
        request: Request, exc: ChallengeExpiredException
    ) -> JSONResponse:
        return _error_response(
            request, exc, status.HTTP_401_UNAUTHORIZED, "mfa_challenge_expired"
        )

    @app_instance.exception_handler(EnrollmentRequiredException)
    async def enrollment_required_handler(
        request: Request, exc: EnrollmentRequiredException
    ) -> JSONResponse:
        return _error_response(
            request, exc, status.HTTP_400_BAD_REQUEST, "mfa_enrollment_required"
        )

    @app_instance.exception_handler(MFAAlreadyEnabledException)
    async def mfa_already_enabled_handler(
        request: Request, exc: MFAAlreadyEnabledException
    ) -> JSONResponse:
        return _error_response(
            request, exc, status.HTTP_409_CONFLICT, "mfa_already_enabled"
        )

    @app_instance.exception_handler(MFANotEnabledException)
    async def mfa_not_enabled_handler(
        request: Request, exc: MFANotEnabledException
    ) -> JSONResponse:
        return _error_response(
            request, exc, status.HTTP_400_BAD_REQUEST, "mfa_not_enabled"
        )

    @app_instance.exception_handler(MFAConfigurationException)
    async def mfa_configuration_handler(
        request: Request, exc: MFAConfigurationException
    ) -> JSONResponse:
        sentry_sdk.capture_exception(exc)  # Configuration issues are critical
        return _error_response(
            request,
            exc,
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "mfa_configuration_error",
        )


_register_mfa_handlers(app)


app.include_router(auth_router.router, prefix="/api")
app.include_router(mfa_router.router, prefix="/api")
app.include_router(audit_router.router, prefix="/api")


@app.get("/api/health")
def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "healthy", "scheduler": get_scheduler_status()}
