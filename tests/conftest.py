from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

import pytest

from secure_login.domain.account import Account
from secure_login.domain.contracts import NewAccount
from secure_login.domain.errors import DuplicateKeyError
from secure_login.domain.lockout import LockoutPolicy, LockoutTransition
from secure_login.domain.service import AuthenticationService, RegistrationService
from secure_login.repository import UPDATABLE_FIELDS
from secure_login.security.passwords import PasswordHasher


class FakeRepository:
    """In-memory repository mimicking the Postgres-backed behaviours."""

    def __init__(self) -> None:
        self.accounts: dict[str, Account] = {}
        self.update_calls: list[tuple[str, dict[str, Any]]] = []
        self._row_lock = threading.Lock()

    def find_by_username_or_email(self, identifier: str) -> Account | None:
        for account in self.accounts.values():
            if account.username == identifier:
                return replace(account)
        for account in self.accounts.values():
            if account.email == identifier.lower():
                return replace(account)
        return None

    def exists_by_username_or_email(self, username: str, email: str) -> bool:
        return any(
            account.username == username or account.email == email.lower()
            for account in self.accounts.values()
        )

    def create(self, payload: NewAccount) -> Account:
        # checked against the stored rows, as the unique constraints are
        if any(
            account.username == payload.username or account.email == payload.email.lower()
            for account in self.accounts.values()
        ):
            raise DuplicateKeyError()
        now = datetime.now(timezone.utc)
        account = Account(
            account_id=str(uuid.uuid4()),
            username=payload.username,
            email=payload.email.lower(),
            password_hash=payload.password_hash,
            role=payload.role,
            is_active=payload.is_active,
            created_at=now,
            updated_at=now,
        )
        self.accounts[account.account_id] = account
        return replace(account)

    def update(
        self,
        account_id: str,
        fields: Mapping[str, Any],
        *,
        unless_locked_at: datetime | None = None,
    ) -> bool:
        assert set(fields) <= UPDATABLE_FIELDS
        self.update_calls.append((account_id, dict(fields)))
        account = self.accounts.get(account_id)
        if account is None:
            return False
        if (
            unless_locked_at is not None
            and account.locked_until is not None
            and account.locked_until > unless_locked_at
        ):
            return False
        for name, value in fields.items():
            setattr(account, name, value)
        account.updated_at = datetime.now(timezone.utc)
        return True

    def apply_failure(
        self,
        account_id: str,
        transition: Callable[[Account], LockoutTransition],
    ) -> LockoutTransition | None:
        # the lock stands in for the row lock taken with SELECT ... FOR UPDATE
        with self._row_lock:
            account = self.accounts.get(account_id)
            if account is None:
                return None
            outcome = transition(replace(account))
            assert set(outcome.changes) <= UPDATABLE_FIELDS
            self.update_calls.append((account_id, dict(outcome.changes)))
            for name, value in outcome.changes.items():
                setattr(account, name, value)
            account.updated_at = datetime.now(timezone.utc)
            return outcome

    def get(self, username: str) -> Account:
        return next(a for a in self.accounts.values() if a.username == username)


class FrozenClock:
    """Controllable replacement for the services' UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    # minimum bcrypt cost keeps the suite fast
    return PasswordHasher(rounds=4)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def registration(repository, hasher) -> RegistrationService:
    return RegistrationService(repository, hasher)


@pytest.fixture
def authentication(repository, hasher, clock) -> AuthenticationService:
    return AuthenticationService(repository, hasher, LockoutPolicy(), clock=clock)
