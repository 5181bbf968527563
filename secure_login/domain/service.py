"""Registration and authentication workflows."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from .account import PublicAccount, Role
from .contracts import AccountStore, NewAccount
from .errors import (
    AccountLocked,
    ConflictError,
    DuplicateKeyError,
    InvalidCredentials,
    ValidationError,
)
from .lockout import LockoutPolicy, is_locked
from .validation import validate_login, validate_registration
from .. import metrics
from ..security.passwords import PasswordHasher
from ..security.tokens import issue_access_token

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class AuthResult:
    """Session token plus the password-free account returned on login."""

    token: str
    expires_in: int
    expires_at: datetime
    account: PublicAccount
    token_type: str = "bearer"


class RegistrationService:
    """Creates accounts after validation and uniqueness checks."""

    def __init__(self, repository: AccountStore, hasher: PasswordHasher) -> None:
        self._repository = repository
        self._hasher = hasher

    def register(
        self,
        username: Any,
        email: Any,
        password: Any,
        role: Role | str | None = None,
    ) -> PublicAccount:
        """Persist exactly one new account or raise without persisting anything.

        Raises
        ------
        ValidationError
            Missing or malformed fields.
        ConflictError
            Username or email already taken, whether caught by the pre-check or
            by the store's unique constraint when two registrations race.
        HashingError, RepositoryError
            Infrastructure failures; not retried here.
        """
        try:
            payload = validate_registration(username, email, password, role)
        except ValidationError:
            metrics.REGISTRATIONS.labels(outcome="invalid").inc()
            raise

        if self._repository.exists_by_username_or_email(payload.username, payload.email):
            metrics.REGISTRATIONS.labels(outcome="conflict").inc()
            raise ConflictError()

        password_hash = self._hasher.hash(payload.password)
        try:
            account = self._repository.create(
                NewAccount(
                    username=payload.username,
                    email=payload.email,
                    password_hash=password_hash,
                    role=payload.role,
                )
            )
        except DuplicateKeyError as exc:
            logger.info("registration for %s lost a uniqueness race", payload.username)
            metrics.REGISTRATIONS.labels(outcome="conflict").inc()
            raise ConflictError() from exc

        logger.info("account %s registered with role %s", account.account_id, account.role.value)
        metrics.REGISTRATIONS.labels(outcome="created").inc()
        return account.to_public()


class AuthenticationService:
    """Verifies credentials, applies the lockout policy and issues session tokens."""

    def __init__(
        self,
        repository: AccountStore,
        hasher: PasswordHasher,
        policy: LockoutPolicy | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._repository = repository
        self._hasher = hasher
        self._policy = policy or LockoutPolicy()
        self._clock = clock

    def authenticate(self, identifier: Any, password: Any) -> AuthResult:
        """Exchange an identifier (username or email) and password for a token.

        Unknown identifiers and wrong passwords raise the same
        :class:`InvalidCredentials`. A locked account raises
        :class:`AccountLocked`, including on the failure that triggers the lock.
        Only known accounts are ever written to.
        """
        credentials = validate_login(identifier, password)

        account = self._repository.find_by_username_or_email(credentials.identifier)
        if account is None:
            self._hasher.verify_dummy(credentials.password)
            metrics.AUTHENTICATIONS.labels(outcome="invalid_credentials").inc()
            raise InvalidCredentials()

        now = self._clock()
        if self._policy.is_locked(account, now):
            metrics.AUTHENTICATIONS.labels(outcome="locked").inc()
            raise AccountLocked(account.locked_until)

        if not self._hasher.verify(credentials.password, account.password_hash):
            transition = self._repository.apply_failure(
                account.account_id,
                lambda current: self._policy.record_failure(current, now),
            )
            if transition is None:
                metrics.AUTHENTICATIONS.labels(outcome="invalid_credentials").inc()
                raise InvalidCredentials()
            if transition.locked:
                logger.warning(
                    "account %s locked until %s after %d failed attempts",
                    account.account_id,
                    transition.locked_until.isoformat(),
                    transition.changes["failed_attempts"],
                )
                metrics.LOCKOUTS.inc()
                metrics.AUTHENTICATIONS.labels(outcome="locked").inc()
                raise AccountLocked(transition.locked_until)
            if is_locked(transition.locked_until, now):
                # locked by a concurrent failure after this request read the row
                metrics.AUTHENTICATIONS.labels(outcome="locked").inc()
                raise AccountLocked(transition.locked_until)
            logger.info(
                "failed login for account %s (attempt %d)",
                account.account_id,
                transition.changes["failed_attempts"],
            )
            metrics.AUTHENTICATIONS.labels(outcome="invalid_credentials").inc()
            raise InvalidCredentials()

        transition = self._policy.record_success(now)
        if not self._repository.update(account.account_id, transition.changes, unless_locked_at=now):
            # a concurrent failure locked the account after it was read
            locked = self._repository.find_by_username_or_email(credentials.identifier)
            metrics.AUTHENTICATIONS.labels(outcome="locked").inc()
            raise AccountLocked(locked.locked_until if locked else None)

        account.failed_attempts = 0
        account.locked_until = None
        account.last_login_at = now

        issued = issue_access_token(subject=account.account_id, role=account.role.value, now=now)
        logger.info("account %s authenticated", account.account_id)
        metrics.AUTHENTICATIONS.labels(outcome="success").inc()
        return AuthResult(
            token=issued.token,
            expires_in=issued.expires_in,
            expires_at=issued.expires_at,
            account=account.to_public(),
        )
