"""
Password hashing and password policy.

bcrypt is used with a per-call random salt. ``verify`` returns False on a
malformed hash instead of raising.
"""
from __future__ import annotations

import re
import secrets
from functools import cached_property
from typing import Optional

import bcrypt

PASSWORD_SYMBOLS = "!@#$%^&*"
PASSWORD_MIN_LENGTH = 6
# bcrypt only reads the first 72 bytes
PASSWORD_MAX_BYTES = 72
PASSWORD_POLICY_MESSAGE = (
    "Password needs to be at least 6 characters long, use one number and one special character."
)

_DIGIT = re.compile(r"[0-9]")
_SYMBOL = re.compile("[" + re.escape(PASSWORD_SYMBOLS) + "]")


# PUBLIC_INTERFACE
def validate_password_policy(password: str) -> Optional[str]:
    """
    Check a candidate password against the complexity policy.

    Returns:
        None when the password is acceptable, otherwise the policy message.
    """
    if len(password) < PASSWORD_MIN_LENGTH:
        return PASSWORD_POLICY_MESSAGE
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        return f"Password cannot exceed {PASSWORD_MAX_BYTES} bytes."
    if not _DIGIT.search(password) or not _SYMBOL.search(password):
        return PASSWORD_POLICY_MESSAGE
    return None


# PUBLIC_INTERFACE
class PasswordHasher:
    """
    bcrypt wrapper with a configurable work factor.

    >>> hasher = PasswordHasher(rounds=4)
    >>> stored = hasher.hash("abc123!")
    >>> hasher.verify("abc123!", stored)
    True
    """

    def __init__(self, rounds: int = 12) -> None:
        self._rounds = rounds

    def hash(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self._rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except (ValueError, TypeError):
            # Invalid hash format
            return False

    @cached_property
    def _dummy_hash(self) -> str:
        return self.hash(secrets.token_urlsafe(16))

    def dummy_verify(self, password: str) -> bool:
        """
        Spend the same bcrypt cost as a real verification and return False.
        Used when no stored hash exists for the submitted email.
        """
        self.verify(password, self._dummy_hash)
        return False
