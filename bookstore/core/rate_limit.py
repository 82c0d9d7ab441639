"""
Rate Limiting Configuration

SlowAPI with in-memory storage (multi-instance deployments should point the
limiter at Redis). Anonymous routes (register, login) are keyed on the client
IP; subscription writes are keyed on the authenticated user so one account
cannot hammer subscribe from many addresses.
"""
import logging
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from starlette.requests import Request
from starlette.responses import JSONResponse

from bookstore.core.config import settings
from bookstore.core.exceptions import UnauthenticatedError
from bookstore.core.security import get_token_subject

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """
    Get client IP, respecting X-Forwarded-For for proxied requests.
    Falls back to direct IP if header not present.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


def get_principal_key(request: Request) -> str:
    """
    "user:<id>" for a valid bearer token, otherwise "ip:<address>".

    Only the token is inspected; the request is rejected later by the
    authentication dependency if the account is gone or disabled.
    """
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token:
        try:
            return f"user:{get_token_subject(token.strip())}"
        except UnauthenticatedError:
            pass
    return f"ip:{get_client_ip(request)}"


limiter = Limiter(
    key_func=get_client_ip,
    enabled=settings.RATE_LIMIT_ENABLED,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
)


def auth_limit():
    """Stricter per-IP limit for register/login."""
    return limiter.limit(settings.RATE_LIMIT_AUTH)


def subscription_write_limit():
    """Per-user limit for subscribe/cancel/auto-renew."""
    return limiter.limit(settings.RATE_LIMIT_SUBSCRIPTION, key_func=get_principal_key)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """
    Custom handler for rate limit exceeded errors.
    Returns structured JSON response with retry-after header.
    """
    logger.warning(
        f"Rate limit exceeded: {get_principal_key(request)} on {request.url.path}"
    )

    retry_after = exc.detail.split("per")[0].strip() if exc.detail else "1 minute"

    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "message": f"Too many requests. Please try again in {retry_after}.",
            "retry_after": retry_after,
        },
        headers={"Retry-After": "60"},
    )
