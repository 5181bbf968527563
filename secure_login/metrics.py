"""Prometheus counters for registration and login outcomes."""

from __future__ import annotations

from prometheus_client import Counter

REGISTRATIONS = Counter(
    "secure_login_registrations_total",
    "Registration attempts by outcome.",
    ["outcome"],
)

AUTHENTICATIONS = Counter(
    "secure_login_authentications_total",
    "Authentication attempts by outcome.",
    ["outcome"],
)

LOCKOUTS = Counter(
    "secure_login_lockouts_total",
    "Accounts locked after reaching the failed-attempt threshold.",
)
