"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Mapping, Protocol

from .account import Account, Role
from .lockout import LockoutTransition


@dataclass(slots=True)
class RegistrationInput:
    """Validated registration fields; ``email`` is already normalised."""

    username: str
    email: str
    password: str = field(repr=False)
    role: Role = Role.user


@dataclass(slots=True)
class LoginInput:
    identifier: str
    password: str = field(repr=False)


@dataclass(slots=True)
class NewAccount:
    """Record handed to the repository; carries the digest, never the plaintext."""

    username: str
    email: str
    password_hash: str = field(repr=False)
    role: Role = Role.user
    is_active: bool = True


class AccountStore(Protocol):
    """Persistence contract the services depend on; see ``AccountRepository``."""

    def find_by_username_or_email(self, identifier: str) -> Account | None: ...

    def exists_by_username_or_email(self, username: str, email: str) -> bool: ...

    def create(self, payload: NewAccount) -> Account: ...

    def update(
        self,
        account_id: str,
        fields: Mapping[str, Any],
        *,
        unless_locked_at: datetime | None = None,
    ) -> bool: ...

    def apply_failure(
        self,
        account_id: str,
        transition: Callable[[Account], LockoutTransition],
    ) -> LockoutTransition | None: ...
