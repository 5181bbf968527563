"""Repository tests against a mocked connection pool."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from psycopg import errors

from secure_login.domain.account import Role
from secure_login.domain.contracts import NewAccount
from secure_login.domain.errors import DuplicateKeyError, RepositoryError
from secure_login.domain.lockout import LockoutPolicy
from secure_login.repository import AccountRepository

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def cursor():
    return MagicMock()


@pytest.fixture
def pool(cursor):
    pool = MagicMock()
    conn = pool.connection.return_value.__enter__.return_value
    conn.cursor.return_value.__enter__.return_value = cursor
    return pool


def _row(**overrides):
    values = {
        "account_id": "acc-1",
        "username": "alice",
        "email": "alice@example.com",
        "password_hash": "$2b$04$hash",
        "role": "Admin",
        "is_active": True,
        "failed_attempts": 2,
        "locked_until": None,
        "last_login_at": None,
        "created_at": NOW,
        "updated_at": NOW,
    }
    values.update(overrides)
    return tuple(values.values())


def test_find_maps_row_and_lowercases_email_lookup(pool, cursor):
    cursor.fetchone.return_value = _row()

    account = AccountRepository(pool).find_by_username_or_email("Alice@Example.com")

    assert account.username == "alice"
    assert account.role is Role.admin
    assert account.failed_attempts == 2
    params = cursor.execute.call_args.args[1]
    assert params == ("Alice@Example.com", "alice@example.com", "Alice@Example.com")


def test_find_returns_none_when_missing(pool, cursor):
    cursor.fetchone.return_value = None

    assert AccountRepository(pool).find_by_username_or_email("nobody") is None


def test_exists_reads_boolean(pool, cursor):
    cursor.fetchone.return_value = (True,)

    assert AccountRepository(pool).exists_by_username_or_email("alice", "ALICE@example.com")
    assert cursor.execute.call_args.args[1] == ("alice", "alice@example.com")


def test_create_translates_unique_violation(pool, cursor):
    cursor.execute.side_effect = errors.UniqueViolation("duplicate key value")

    with pytest.raises(DuplicateKeyError):
        AccountRepository(pool).create(
            NewAccount(username="alice", email="alice@example.com", password_hash="h", role=Role.user)
        )


def test_driver_errors_become_repository_errors(pool, cursor):
    cursor.execute.side_effect = errors.OperationalError("server closed the connection")

    with pytest.raises(RepositoryError) as excinfo:
        AccountRepository(pool).find_by_username_or_email("alice")
    assert not isinstance(excinfo.value, DuplicateKeyError)


def test_update_is_one_statement_with_optional_lock_guard(pool, cursor):
    cursor.rowcount = 1

    updated = AccountRepository(pool).update(
        "acc-1",
        {"failed_attempts": 0, "locked_until": None, "last_login_at": NOW},
        unless_locked_at=NOW,
    )

    assert updated
    assert cursor.execute.call_count == 1
    query, params = cursor.execute.call_args.args
    assert query.startswith("UPDATE accounts SET failed_attempts = %s, locked_until = %s, last_login_at = %s")
    assert "(locked_until IS NULL OR locked_until <= %s)" in query
    assert params[:3] == [0, None, NOW]
    assert params[-2:] == ["acc-1", NOW]


def test_update_reports_guarded_miss(pool, cursor):
    cursor.rowcount = 0

    assert not AccountRepository(pool).update("acc-1", {"failed_attempts": 0}, unless_locked_at=NOW)


def test_update_rejects_other_columns(pool):
    with pytest.raises(ValueError):
        AccountRepository(pool).update("acc-1", {"password_hash": "x"})


def test_apply_failure_locks_row_before_writing(pool, cursor):
    cursor.fetchone.return_value = _row(failed_attempts=4)
    policy = LockoutPolicy()
    seen = []

    def transition(account):
        seen.append(account.failed_attempts)
        return policy.record_failure(account, NOW)

    outcome = AccountRepository(pool).apply_failure("acc-1", transition)

    assert seen == [4]
    assert outcome.locked
    select, update = cursor.execute.call_args_list
    assert select.args[0].rstrip().endswith("FOR UPDATE")
    assert select.args[1] == ("acc-1",)
    assert update.args[0].startswith("UPDATE accounts SET failed_attempts = %s, locked_until = %s")
    assert update.args[1][:2] == [5, NOW + timedelta(hours=2)]
    assert update.args[1][-1] == "acc-1"
    pool.connection.return_value.__enter__.return_value.commit.assert_called_once()


def test_apply_failure_skips_missing_account(pool, cursor):
    cursor.fetchone.return_value = None
    transition = MagicMock()

    assert AccountRepository(pool).apply_failure("gone", transition) is None
    transition.assert_not_called()
    assert cursor.execute.call_count == 1
