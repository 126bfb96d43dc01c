from __future__ import annotations

import time
from abc import ABC, abstractmethod
from threading import RLock
from typing import Dict, Optional

import redis

from .logging_config import get_logger
from .settings import Settings

logger = get_logger(__name__)

KEY_PREFIX = "blacklist:"
BLACKLIST_VALUE = "blacklisted"


class RevocationStoreError(Exception):
    """Raised when the revocation store cannot be reached or fails a command."""


# PUBLIC_INTERFACE
class RevocationStore(ABC):
    """Key-value store with per-key expiry holding blacklisted session tokens."""

    def __init__(self, default_ttl_seconds: int = 3600) -> None:
        self.default_ttl_seconds = default_ttl_seconds

    @abstractmethod
    def blacklist(self, token: str, ttl_seconds: Optional[int] = None) -> None:
        """Mark the raw token as revoked for ttl_seconds (default_ttl_seconds if omitted)."""

    @abstractmethod
    def is_blacklisted(self, token: str) -> bool:
        """Return True if the raw token is currently revoked."""


class InMemoryRevocationStore(RevocationStore):
    """
    Thread-safe in-memory revocation store suitable for testing and single-process runs.
    Expired entries are dropped on lookup and swept on every write.
    """

    def __init__(self, default_ttl_seconds: int = 3600) -> None:
        super().__init__(default_ttl_seconds)
        self._lock = RLock()
        self._deadlines: Dict[str, float] = {}

    def _now(self) -> float:
        return time.monotonic()

    def blacklist(self, token: str, ttl_seconds: Optional[int] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds
        with self._lock:
            now = self._now()
            expired = [k for k, deadline in self._deadlines.items() if deadline <= now]
            for k in expired:
                del self._deadlines[k]
            self._deadlines[token] = now + ttl

    def is_blacklisted(self, token: str) -> bool:
        with self._lock:
            deadline = self._deadlines.get(token)
            if deadline is None:
                return False
            if deadline <= self._now():
                del self._deadlines[token]
                return False
            return True


class RedisRevocationStore(RevocationStore):
    """
    Redis-backed revocation store.

    A client is opened for every operation and closed when the operation ends,
    whether it succeeded or raised. Socket timeouts bound every call; any Redis
    failure surfaces as RevocationStoreError.
    """

    def __init__(
        self,
        host: str,
        port: int = 6379,
        password: Optional[str] = None,
        db: int = 0,
        timeout_seconds: float = 5.0,
        default_ttl_seconds: int = 3600,
    ) -> None:
        super().__init__(default_ttl_seconds)
        self._host = host
        self._port = port
        self._password = password
        self._db = db
        self._timeout = timeout_seconds

    def _connect(self) -> redis.Redis:
        return redis.Redis(
            host=self._host,
            port=self._port,
            password=self._password,
            db=self._db,
            socket_timeout=self._timeout,
            socket_connect_timeout=self._timeout,
            decode_responses=True,
        )

    @staticmethod
    def _key(token: str) -> str:
        return f"{KEY_PREFIX}{token}"

    def blacklist(self, token: str, ttl_seconds: Optional[int] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds
        try:
            with self._connect() as client:
                client.set(self._key(token), BLACKLIST_VALUE, ex=max(1, int(ttl)))
        except redis.RedisError as exc:
            logger.error("blacklist_write_failed", error=str(exc))
            raise RevocationStoreError("Revocation store unavailable") from exc
        logger.info("token_blacklisted", ttl_seconds=ttl)

    def is_blacklisted(self, token: str) -> bool:
        try:
            with self._connect() as client:
                return bool(client.exists(self._key(token)))
        except redis.RedisError as exc:
            logger.error("blacklist_read_failed", error=str(exc))
            raise RevocationStoreError("Revocation store unavailable") from exc


# PUBLIC_INTERFACE
def build_revocation_store(settings: Settings) -> RevocationStore:
    """
    Return the configured revocation store.
    - memory: InMemoryRevocationStore
    - redis: RedisRevocationStore
    """
    if settings.revocation_backend == "redis":
        return RedisRevocationStore(
            host=settings.redis_host,
            port=settings.redis_port,
            password=settings.redis_password,
            db=settings.redis_db,
            timeout_seconds=settings.redis_timeout_seconds,
            default_ttl_seconds=settings.blacklist_ttl_seconds,
        )
    return InMemoryRevocationStore(default_ttl_seconds=settings.blacklist_ttl_seconds)
