"""Database repository for credential-backed accounts."""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Mapping

import psycopg
from psycopg import errors
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.account import Account, Role
from .domain.contracts import NewAccount
from .domain.errors import DuplicateKeyError, RepositoryError
from .domain.lockout import LockoutTransition

logger = logging.getLogger(__name__)

# Columns the authentication workflow may change after creation.
UPDATABLE_FIELDS = frozenset({"failed_attempts", "locked_until", "last_login_at"})

_ACCOUNT_COLUMNS = """
    account_id, username, email, password_hash, role, is_active,
    failed_attempts, locked_until, last_login_at, created_at, updated_at
"""

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS accounts (
    account_id      TEXT PRIMARY KEY,
    username        TEXT NOT NULL UNIQUE,
    email           TEXT NOT NULL UNIQUE,
    password_hash   TEXT NOT NULL,
    role            TEXT NOT NULL DEFAULT 'User' CHECK (role IN ('User', 'Admin')),
    is_active       BOOLEAN NOT NULL DEFAULT TRUE,
    failed_attempts INTEGER NOT NULL DEFAULT 0 CHECK (failed_attempts >= 0),
    locked_until    TIMESTAMPTZ,
    last_login_at   TIMESTAMPTZ,
    created_at      TIMESTAMPTZ NOT NULL,
    updated_at      TIMESTAMPTZ NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS accounts_email_lower_idx ON accounts (lower(email));
"""


def _update_statement(
    account_id: str,
    fields: Mapping[str, Any],
    unless_locked_at: datetime | None = None,
) -> tuple[str, list[Any]]:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"fields not updatable: {sorted(unknown)}")

    assignments = [f"{name} = %s" for name in fields]
    params: list[Any] = list(fields.values())
    assignments.append("updated_at = %s")
    params.append(datetime.now(timezone.utc))

    clauses = ["account_id = %s"]
    params.append(account_id)
    if unless_locked_at is not None:
        clauses.append("(locked_until IS NULL OR locked_until <= %s)")
        params.append(unless_locked_at)

    query = f"UPDATE accounts SET {', '.join(assignments)} WHERE {' AND '.join(clauses)}"
    return query, params


class AccountRepository:
    """Postgres-backed account persistence.

    Uniqueness of usernames and emails is enforced by the table constraints;
    every write commits as one transaction so callers never observe half an update.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    @contextmanager
    def _cursor(self) -> Iterator[psycopg.Cursor]:
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    yield cur
                conn.commit()
        except errors.UniqueViolation as exc:
            raise DuplicateKeyError() from exc
        except psycopg.Error as exc:
            logger.error("account storage failure: %s", exc.__class__.__name__)
            raise RepositoryError() from exc

    def ensure_schema(self) -> None:
        """Create the accounts table and indexes when missing."""
        with self._cursor() as cur:
            cur.execute(SCHEMA_SQL)

    def find_by_username_or_email(self, identifier: str) -> Account | None:
        """Return the account whose username or (lowercased) email matches."""
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT {_ACCOUNT_COLUMNS}
                FROM accounts
                WHERE username = %s OR email = %s
                ORDER BY (username = %s) DESC
                LIMIT 1
                """,
                (identifier, identifier.lower(), identifier),
            )
            row = cur.fetchone()
        if not row:
            return None
        return self._map_record(row)

    def exists_by_username_or_email(self, username: str, email: str) -> bool:
        with self._cursor() as cur:
            cur.execute(
                "SELECT EXISTS (SELECT 1 FROM accounts WHERE username = %s OR email = %s)",
                (username, email.lower()),
            )
            row = cur.fetchone()
        return bool(row and row[0])

    def create(self, payload: NewAccount) -> Account:
        """Insert a new account; raises ``DuplicateKeyError`` on a unique violation."""
        account_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        with self._cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO accounts (
                    account_id, username, email, password_hash, role, is_active,
                    failed_attempts, created_at, updated_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, 0, %s, %s)
                RETURNING {_ACCOUNT_COLUMNS}
                """,
                (
                    account_id,
                    payload.username,
                    payload.email.lower(),
                    payload.password_hash,
                    payload.role.value,
                    payload.is_active,
                    now,
                    now,
                ),
            )
            row = cur.fetchone()
        return self._map_record(row)

    def update(
        self,
        account_id: str,
        fields: Mapping[str, Any],
        *,
        unless_locked_at: datetime | None = None,
    ) -> bool:
        """Apply lockout/last-login changes in one statement.

        With ``unless_locked_at`` the row is only touched when it is not locked
        at that instant. Returns whether a row was updated.
        """
        query, params = _update_statement(account_id, fields, unless_locked_at)
        with self._cursor() as cur:
            cur.execute(query, params)
            return cur.rowcount == 1

    def apply_failure(
        self,
        account_id: str,
        transition: Callable[[Account], LockoutTransition],
    ) -> LockoutTransition | None:
        """Record a failed attempt against the current row.

        The row is read ``FOR UPDATE`` and written back in the same
        transaction, so ``transition`` always sees the counters and lock left
        by the previous writer. Returns ``None`` when the account is gone.
        """
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE account_id = %s FOR UPDATE",
                (account_id,),
            )
            row = cur.fetchone()
            if not row:
                return None
            outcome = transition(self._map_record(row))
            query, params = _update_statement(account_id, outcome.changes)
            cur.execute(query, params)
        return outcome

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=row[0],
            username=row[1],
            email=row[2],
            password_hash=row[3],
            role=Role(row[4]),
            is_active=row[5],
            failed_attempts=row[6],
            locked_until=row[7],
            last_login_at=row[8],
            created_at=row[9],
            updated_at=row[10],
        )
