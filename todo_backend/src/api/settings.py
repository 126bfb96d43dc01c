from __future__ import annotations

import os
import secrets
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/todos.db'
    - SQLITE_TIMEOUT_SECONDS: sqlite busy timeout (default: 5)
    - JWT_SECRET: HMAC key used to sign session tokens (random per process if unset)
    - TOKEN_LIFETIME_SECONDS: session token lifetime (default: 14400)
    - TOKEN_LEEWAY_SECONDS: allowed clock skew when checking nbf/exp (default: 15)
    - BCRYPT_ROUNDS: bcrypt work factor (default: 12)
    - REVOCATION_BACKEND: 'memory' (default) or 'redis'
    - REDIS_HOST / REDIS_PORT / REDIS_PASSWORD / REDIS_DB: revocation store connection
    - REDIS_TIMEOUT_SECONDS: socket timeout for revocation store calls (default: 5)
    - BLACKLIST_TTL_SECONDS: minimum lifetime of a blacklist entry (default: 3600)
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    - LOG_JSON: 'true' for JSON log lines, 'false' for console output (default: true)
    """

    persistence_backend: str
    sqlite_db_path: str
    sqlite_timeout_seconds: float
    jwt_secret: str
    jwt_secret_generated: bool
    token_lifetime_seconds: int
    token_leeway_seconds: int
    bcrypt_rounds: int
    revocation_backend: str
    redis_host: str
    redis_port: int
    redis_password: Optional[str]
    redis_db: int
    redis_timeout_seconds: float
    blacklist_ttl_seconds: int
    cors_allow_origins: List[str]
    log_level: str
    log_json: bool


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_bool(value: str, default: bool = False) -> bool:
    v = value.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_int(value: str, default: int, minimum: int = 0) -> int:
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _parse_float(value: str, default: float) -> float:
    try:
        parsed = float(value.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables (and .env, if present)."""
    load_dotenv()

    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "sqlite"}:
        # Fallback to memory if unsupported
        backend = "memory"

    revocation = _get_env("REVOCATION_BACKEND", "memory").strip().lower()
    if revocation not in {"memory", "redis"}:
        revocation = "memory"

    secret = os.getenv("JWT_SECRET") or ""
    generated = not secret
    if generated:
        # Tokens will not survive a restart
        secret = secrets.token_urlsafe(48)

    return Settings(
        persistence_backend=backend,
        sqlite_db_path=_get_env("SQLITE_DB_PATH", "./data/todos.db").strip(),
        sqlite_timeout_seconds=_parse_float(_get_env("SQLITE_TIMEOUT_SECONDS", "5"), 5.0),
        jwt_secret=secret,
        jwt_secret_generated=generated,
        token_lifetime_seconds=_parse_int(_get_env("TOKEN_LIFETIME_SECONDS", "14400"), 14400, minimum=1),
        token_leeway_seconds=_parse_int(_get_env("TOKEN_LEEWAY_SECONDS", "15"), 15),
        bcrypt_rounds=_parse_int(_get_env("BCRYPT_ROUNDS", "12"), 12, minimum=4),
        revocation_backend=revocation,
        redis_host=_get_env("REDIS_HOST", "localhost").strip(),
        redis_port=_parse_int(_get_env("REDIS_PORT", "6379"), 6379, minimum=1),
        redis_password=os.getenv("REDIS_PASSWORD") or None,
        redis_db=_parse_int(_get_env("REDIS_DB", "0"), 0),
        redis_timeout_seconds=_parse_float(_get_env("REDIS_TIMEOUT_SECONDS", "5"), 5.0),
        blacklist_ttl_seconds=_parse_int(_get_env("BLACKLIST_TTL_SECONDS", "3600"), 3600, minimum=1),
        cors_allow_origins=_parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*")),
        log_level=_get_env("LOG_LEVEL", "INFO").strip().upper(),
        log_json=_parse_bool(_get_env("LOG_JSON", "true"), True),
    )
