from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    user = "User"
    admin = "Admin"


@dataclass(slots=True)
class PublicAccount:
    """Password-free projection of an account handed back to callers."""

    account_id: str
    username: str
    email: str
    role: Role
    created_at: datetime
    last_login_at: datetime | None = None


@dataclass(slots=True)
class Account:
    """Aggregate root for a credential-backed identity."""

    account_id: str
    username: str
    email: str
    password_hash: str = field(repr=False)
    role: Role = Role.user
    is_active: bool = True
    failed_attempts: int = 0
    locked_until: datetime | None = None
    last_login_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_public(self) -> PublicAccount:
        """Strip the password hash and bookkeeping counters."""
        return PublicAccount(
            account_id=self.account_id,
            username=self.username,
            email=self.email,
            role=self.role,
            created_at=self.created_at,
            last_login_at=self.last_login_at,
        )
