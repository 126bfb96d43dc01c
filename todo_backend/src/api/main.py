from __future__ import annotations

import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .errors import setup_exception_handlers
from .gate import AuthenticationGate
from .logging_config import configure_logging, get_logger
from .repositories import build_repositories
from .revocation import build_revocation_store
from .routers import todos as todos_router
from .routers import users as users_router
from .security import PasswordHasher
from .services import TodoService, UserService
from .settings import Settings, get_settings
from .tokens import TokenService

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {"name": "users", "description": "Registration, login/logout and the caller's profile."},
    {"name": "todos", "description": "The caller's tasks, with state filtering and ordering."},
]

logger = get_logger(__name__)


# PUBLIC_INTERFACE
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    All components (stores, hasher, token service, gate, services) are created
    here from one immutable Settings object and stored on ``app.state``.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_json)
    if settings.jwt_secret_generated:
        logger.warning("jwt_secret_not_configured", detail="using a random per-process signing key")

    app = FastAPI(
        title="Todo Backend",
        description="Backend API service for personal todo lists with token authentication.",
        version="0.2.0",
        openapi_tags=openapi_tags,
    )

    users, todos = build_repositories(settings)
    revocations = build_revocation_store(settings)
    tokens = TokenService(
        settings.jwt_secret,
        lifetime_seconds=settings.token_lifetime_seconds,
        leeway_seconds=settings.token_leeway_seconds,
    )
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds)

    app.state.settings = settings
    app.state.gate = AuthenticationGate(tokens, revocations, users)
    app.state.user_service = UserService(users, hasher, tokens, revocations)
    app.state.todo_service = TodoService(todos)

    # Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
    allow_all = (settings.cors_allow_origins == ["*"]) or (len(settings.cors_allow_origins) == 0)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_allow_origins,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response

    setup_exception_handlers(app)

    @app.get("/", summary="Health Check", tags=["health"])
    def health_check():
        """
        Health check endpoint.

        Returns:
            A JSON object indicating service health.
        """
        return {
            "message": "Healthy",
            "backend": settings.persistence_backend,
            "revocation": settings.revocation_backend,
        }

    app.include_router(users_router.router)
    app.include_router(todos_router.router)
    logger.info(
        "app_created",
        persistence=settings.persistence_backend,
        revocation=settings.revocation_backend,
    )
    return app


app = create_app()
