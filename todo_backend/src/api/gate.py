"""
Request-time authentication.

The gate runs a fixed pipeline for every protected request:

1. extract the bearer token          -> missing-credential
2. verify signature and time window  -> invalid-token / expired
3. check the revocation store        -> revoked / store-unavailable
4. resolve the subject to a user     -> unknown-identity

The first failing step decides the outcome; later steps are not run. A
revocation store failure rejects the request rather than treating the token
as not revoked.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .logging_config import get_logger
from .repositories import UserRepository
from .results import Err, Ok, Result, authentication_error, internal_error
from .revocation import RevocationStore, RevocationStoreError
from .tokens import TokenService

logger = get_logger(__name__)

UNAUTHORIZED_MESSAGE = "Missing authentication"
INVALID_TOKEN_MESSAGE = "Invalid or expired token"
REVOKED_MESSAGE = "Token has been revoked"


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class AuthContext:
    """The identity resolved for an accepted request."""

    user_id: str
    name: str
    email: str
    token: str
    claims: Dict[str, Any]


# PUBLIC_INTERFACE
class AuthenticationGate:
    """Combines token verification, revocation check and identity lookup into one verdict."""

    def __init__(self, tokens: TokenService, revocations: RevocationStore, users: UserRepository) -> None:
        self._tokens = tokens
        self._revocations = revocations
        self._users = users

    def authenticate(self, token: Optional[str]) -> Result[AuthContext]:
        if not token:
            return self._reject(authentication_error(UNAUTHORIZED_MESSAGE, "missing-credential"))

        verified = self._tokens.verify(token)
        if isinstance(verified, Err):
            return self._reject(authentication_error(INVALID_TOKEN_MESSAGE, verified.error.reason))

        try:
            revoked = self._revocations.is_blacklisted(verified.value.raw)
        except RevocationStoreError:
            return self._reject(authentication_error(INVALID_TOKEN_MESSAGE, "store-unavailable"))
        if revoked:
            return self._reject(authentication_error(REVOKED_MESSAGE, "revoked"))

        try:
            user = self._users.get(verified.value.subject)
        except Exception:
            logger.exception("identity_lookup_failed")
            return internal_error("identity-lookup-failed")
        if user is None:
            return self._reject(authentication_error(INVALID_TOKEN_MESSAGE, "unknown-identity"))

        return Ok(
            AuthContext(
                user_id=user["id"],
                name=user["name"],
                email=user["email"],
                token=verified.value.raw,
                claims=verified.value.claims,
            )
        )

    @staticmethod
    def _reject(err: Err) -> Err:
        logger.info("authentication_rejected", reason=err.error.reason)
        return err
