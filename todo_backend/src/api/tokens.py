"""
Session token issuing and verification.

Tokens are HS256 JWTs carrying ``sub`` (the identity id), ``iat``, ``nbf``,
``exp`` and a random ``jti``. Audience, issuer and subject-format checks are
disabled: whether the subject names a real identity is decided later by the
authentication gate.
"""
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Mapping

import jwt

from .results import Ok, Result, authentication_error

ALGORITHM = "HS256"
DEFAULT_LIFETIME_SECONDS = 4 * 60 * 60
DEFAULT_LEEWAY_SECONDS = 15

_DECODE_OPTIONS = {
    "require": ["sub", "iat", "nbf", "exp"],
    "verify_signature": True,
    # exp is checked without leeway below
    "verify_exp": False,
    "verify_nbf": True,
    "verify_iat": False,
    "verify_aud": False,
    "verify_iss": False,
    "verify_sub": False,
    "verify_jti": False,
}


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class VerifiedToken:
    """A token whose signature and validity window have been checked."""

    raw: str
    subject: str
    claims: Dict[str, Any]


# PUBLIC_INTERFACE
class TokenService:
    """
    Issues and verifies session tokens with a process-wide HMAC secret.

    The secret is read once from settings and passed in at construction; it is
    never rotated at runtime.
    """

    def __init__(
        self,
        secret_key: str,
        lifetime_seconds: int = DEFAULT_LIFETIME_SECONDS,
        leeway_seconds: int = DEFAULT_LEEWAY_SECONDS,
    ) -> None:
        if not secret_key:
            raise ValueError("JWT secret key cannot be empty")
        self._secret_key = secret_key
        self._lifetime = lifetime_seconds
        self._leeway = leeway_seconds

    def issue(self, identity_id: str) -> str:
        now = int(time.time())
        payload = {
            "sub": identity_id,
            "iat": now,
            "nbf": now,
            "exp": now + self._lifetime,
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self._secret_key, algorithm=ALGORITHM)

    def verify(self, token: str) -> Result[VerifiedToken]:
        """
        Check the signature and the [nbf - leeway, exp] window.

        Returns:
            Ok(VerifiedToken) or an AUTHENTICATION Err with reason
            'expired' or 'invalid-token'.
        """
        try:
            claims = jwt.decode(
                token,
                self._secret_key,
                algorithms=[ALGORITHM],
                options=_DECODE_OPTIONS,
                leeway=self._leeway,
            )
        except jwt.InvalidTokenError:
            return authentication_error("Invalid token", "invalid-token")
        try:
            expires_at = int(claims["exp"])
        except (TypeError, ValueError):
            return authentication_error("Invalid token", "invalid-token")
        if time.time() > expires_at:
            return authentication_error("Token has expired", "expired")
        return Ok(VerifiedToken(raw=token, subject=str(claims["sub"]), claims=claims))

    @staticmethod
    def remaining_lifetime(claims: Mapping[str, Any]) -> int:
        """Seconds until the token described by claims expires, never negative."""
        return max(0, int(claims["exp"]) - int(time.time()))
