"""bcrypt password hashing.

Every call to :meth:`PasswordHasher.hash` draws a fresh salt that bcrypt embeds
in the digest together with the cost factor, so digests of the same password
never repeat and verification needs nothing but the digest itself.
``bcrypt.checkpw`` compares in constant time.
"""

from __future__ import annotations

import logging

import bcrypt

from ..domain.errors import HashingError

logger = logging.getLogger(__name__)

DEFAULT_ROUNDS = 12
# bcrypt refuses or ignores input past this length
MAX_SECRET_BYTES = 72
_DUMMY_PASSWORD = "secure-login-timing-dummy"


class PasswordHasher:
    """One-way password hashing with a configurable bcrypt work factor."""

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        if not 4 <= rounds <= 31:
            raise ValueError("bcrypt rounds must be between 4 and 31")
        self._rounds = rounds
        self._dummy_hash: bytes | None = None

    @property
    def rounds(self) -> int:
        return self._rounds

    def hash(self, plaintext: str) -> str:
        """Return the bcrypt digest of ``plaintext`` as text."""
        try:
            digest = bcrypt.hashpw(plaintext.encode("utf-8"), bcrypt.gensalt(rounds=self._rounds))
        except (ValueError, TypeError, OSError) as exc:
            raise HashingError() from exc
        return digest.decode("utf-8")

    def verify(self, plaintext: str, digest: str) -> bool:
        """Return ``True`` only when ``plaintext`` produced ``digest``.

        A digest bcrypt cannot parse means the stored record is corrupt; that is
        reported as :class:`HashingError` rather than as a mismatch.
        """
        secret = plaintext.encode("utf-8")
        try:
            matched = bcrypt.checkpw(secret[:MAX_SECRET_BYTES], digest.encode("utf-8"))
        except (ValueError, TypeError) as exc:
            logger.error("stored password digest could not be checked")
            raise HashingError() from exc
        # registration never accepts longer passwords
        return matched and len(secret) <= MAX_SECRET_BYTES

    def verify_dummy(self, plaintext: str) -> None:
        """Spend one verification's worth of work against a throwaway digest.

        Called when no account matches so that unknown identifiers cost the same
        as wrong passwords.
        """
        if self._dummy_hash is None:
            self._dummy_hash = self.hash(_DUMMY_PASSWORD).encode("utf-8")
        try:
            bcrypt.checkpw(plaintext.encode("utf-8")[:MAX_SECRET_BYTES], self._dummy_hash)
        except (ValueError, TypeError) as exc:
            raise HashingError() from exc
