"""HTTP route definitions for registration and login."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel

from ..config import get_settings
from ..domain.account import PublicAccount
from ..domain.errors import AuthError, InfrastructureError
from ..domain.service import AuthenticationService, RegistrationService
from ..security.rate_limiter import RateLimiter, SlidingWindowRateLimiter
from ..security.redis_rate_limiter import RedisSlidingWindowRateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/auth")

RATE_LIMITED_DETAIL = {
    "code": "rate_limited",
    "message": "Too many attempts, please try again later.",
}


class AccountResponse(BaseModel):
    """Serialised password-free account returned by registration."""

    account_id: str
    username: str
    email: str
    role: str
    created_at: datetime | None

    @classmethod
    def from_domain(cls, account: PublicAccount) -> "AccountResponse":
        return cls(
            account_id=account.account_id,
            username=account.username,
            email=account.email,
            role=account.role.value,
            created_at=account.created_at,
        )


class SessionAccountResponse(BaseModel):
    """Account summary embedded in a login response."""

    account_id: str
    username: str
    email: str
    role: str
    last_login_at: datetime | None

    @classmethod
    def from_domain(cls, account: PublicAccount) -> "SessionAccountResponse":
        return cls(
            account_id=account.account_id,
            username=account.username,
            email=account.email,
            role=account.role.value,
            last_login_at=account.last_login_at,
        )


# Fields are optional on purpose: presence and format rules live in
# ``domain.validation`` and answer with the structured 400 error.
class RegisterRequest(BaseModel):
    username: Any = None
    email: Any = None
    password: Any = None
    role: Any = None


class LoginRequest(BaseModel):
    identifier: Any = None
    password: Any = None


class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_in: int
    account: SessionAccountResponse


settings = get_settings()


def _build_rate_limiter() -> RateLimiter:
    """Instantiate the configured rate limiter backend, preferring Redis when available."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        import redis

        try:
            client = redis.from_url(settings.redis_url)
            client.ping()
        except redis.RedisError as exc:
            logger.warning("redis rate limiter unavailable, falling back to in-memory: %s", exc)
        else:
            logger.info("rate limiter configured for redis backend")
            return RedisSlidingWindowRateLimiter(
                client,
                max_requests=settings.rate_limit_requests,
                window_seconds=settings.rate_limit_window_seconds,
            )

    logger.info("rate limiter using in-memory backend")
    return SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


rate_limiter = _build_rate_limiter()


def get_registration_service(request: Request) -> RegistrationService:
    service: RegistrationService = request.app.state.registration_service
    return service


def get_authentication_service(request: Request) -> AuthenticationService:
    service: AuthenticationService = request.app.state.authentication_service
    return service


def _client_key(request: Request, action: str) -> str:
    host = request.client.host if request.client else "unknown"
    return f"{action}:{host}"


def _enforce_rate_limit(request: Request, action: str) -> None:
    if not rate_limiter.allow(_client_key(request, action)):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=RATE_LIMITED_DETAIL)


def _http_error(exc: AuthError) -> HTTPException:
    if isinstance(exc, InfrastructureError):
        logger.exception("request failed on infrastructure error")
    return HTTPException(status_code=exc.status_code, detail=exc.to_dict())


@router.post("/register", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def register(
    request: Request,
    payload: RegisterRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> AccountResponse:
    """Create an account and return its password-free projection."""
    _enforce_rate_limit(request, "register")
    try:
        account = service.register(payload.username, payload.email, payload.password, payload.role)
    except AuthError as exc:
        raise _http_error(exc) from exc
    return AccountResponse.from_domain(account)


@router.post("/login", response_model=LoginResponse)
def login(
    request: Request,
    payload: LoginRequest,
    service: AuthenticationService = Depends(get_authentication_service),
) -> LoginResponse:
    """Verify credentials and issue a session token."""
    _enforce_rate_limit(request, "login")
    try:
        result = service.authenticate(payload.identifier, payload.password)
    except AuthError as exc:
        raise _http_error(exc) from exc
    return LoginResponse(
        token=result.token,
        token_type=result.token_type,
        expires_in=result.expires_in,
        account=SessionAccountResponse.from_domain(result.account),
    )
