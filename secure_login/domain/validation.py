"""Authoritative input rules for registration and login.

The HTTP layer deliberately accepts absent fields so that these rules are the
only place where presence and format are decided.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .account import Role
from .contracts import LoginInput, RegistrationInput
from .errors import ValidationError

USERNAME_PATTERN = re.compile(r"[A-Za-z0-9_]{3,20}")
PASSWORD_MIN_LENGTH = 8
# bcrypt only looks at the first 72 bytes of its input
PASSWORD_MAX_BYTES = 72

USERNAME_MESSAGE = "Username must be 3-20 characters and contain only letters, numbers, and underscores."
EMAIL_MESSAGE = "Invalid email address."
PASSWORD_MESSAGE = f"Password must be at least {PASSWORD_MIN_LENGTH} characters."
PASSWORD_TOO_LONG_MESSAGE = f"Password cannot exceed {PASSWORD_MAX_BYTES} bytes."
ROLE_MESSAGE = "Role must be User or Admin."

_email_adapter = TypeAdapter(EmailStr)


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _missing_errors(fields: dict[str, Any]) -> list[dict[str, str]]:
    return [
        {"field": name, "message": f"{name} is required."}
        for name, value in fields.items()
        if _is_missing(value)
    ]


def normalize_email(email: str) -> str:
    return email.strip().lower()


def parse_role(role: Role | str | None) -> Role:
    """Resolve a role name, defaulting to ``Role.user`` when none is given."""
    if role is None or role == "":
        return Role.user
    if isinstance(role, Role):
        return role
    try:
        return Role(role)
    except ValueError as exc:
        raise ValidationError([{"field": "role", "message": ROLE_MESSAGE}]) from exc


def validate_registration(
    username: Any,
    email: Any,
    password: Any,
    role: Role | str | None = None,
) -> RegistrationInput:
    """Return normalised registration input or raise ``ValidationError``.

    Missing fields are reported on their own so the caller sees exactly which
    ones to supply; format problems are collected together afterwards.
    """
    missing = _missing_errors({"username": username, "email": email, "password": password})
    if missing:
        names = ", ".join(error["field"] for error in missing)
        raise ValidationError(missing, f"Missing required fields: {names}.")

    errors: list[dict[str, str]] = []

    if not isinstance(username, str) or not USERNAME_PATTERN.fullmatch(username):
        errors.append({"field": "username", "message": USERNAME_MESSAGE})

    normalized_email = ""
    if isinstance(email, str):
        normalized_email = normalize_email(email)
        try:
            _email_adapter.validate_python(normalized_email)
        except PydanticValidationError:
            errors.append({"field": "email", "message": EMAIL_MESSAGE})
    else:
        errors.append({"field": "email", "message": EMAIL_MESSAGE})

    if not isinstance(password, str) or len(password) < PASSWORD_MIN_LENGTH:
        errors.append({"field": "password", "message": PASSWORD_MESSAGE})
    elif len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        errors.append({"field": "password", "message": PASSWORD_TOO_LONG_MESSAGE})

    resolved_role = Role.user
    try:
        resolved_role = parse_role(role)
    except ValidationError as exc:
        errors.extend(exc.errors)

    if errors:
        raise ValidationError(errors)

    return RegistrationInput(
        username=username,
        email=normalized_email,
        password=password,
        role=resolved_role,
    )


def validate_login(identifier: Any, password: Any) -> LoginInput:
    """Only presence is checked at login; format rules would leak nothing useful."""
    missing = _missing_errors({"identifier": identifier, "password": password})
    if missing:
        names = ", ".join(error["field"] for error in missing)
        raise ValidationError(missing, f"Missing required fields: {names}.")
    if not isinstance(identifier, str) or not isinstance(password, str):
        raise ValidationError(
            [{"field": "identifier", "message": "identifier and password must be strings."}]
        )
    return LoginInput(identifier=identifier.strip(), password=password)
