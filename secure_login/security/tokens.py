"""Utilities for issuing and validating session JWTs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from ..config import get_settings

ALGORITHM = "HS256"


@dataclass(slots=True, frozen=True)
class IssuedToken:
    token: str
    expires_in: int
    expires_at: datetime


def issue_access_token(*, subject: str, role: str, now: datetime | None = None) -> IssuedToken:
    """Create a signed JWT for an authenticated account.

    Parameters
    ----------
    subject:
        Account identifier embedded in the ``sub`` claim.
    role:
        Account role carried as the ``role`` claim.
    now:
        Issue time; defaults to the current UTC time.

    Returns
    -------
    IssuedToken
        The encoded token with its TTL (in seconds) and absolute expiry.
    """

    settings = get_settings()
    issued_at = (now or datetime.now(timezone.utc)).replace(microsecond=0)
    expires_in = settings.jwt_ttl_seconds
    expires_at = issued_at + timedelta(seconds=expires_in)
    payload: dict[str, Any] = {
        "iss": settings.jwt_issuer,
        "sub": subject,
        "role": role,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }

    token = jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)
    return IssuedToken(token=token, expires_in=expires_in, expires_at=expires_at)


def decode_access_token(token: str, *, verify_exp: bool = True) -> dict[str, Any]:
    """Decode and verify a JWT returning its payload.

    Raises
    ------
    jwt.PyJWTError
        Propagated when the token is invalid, expired, or signed by another issuer.
    """

    settings = get_settings()
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[ALGORITHM],
        issuer=settings.jwt_issuer,
        options={"require": ["sub", "exp", "iat"], "verify_exp": verify_exp},
    )
