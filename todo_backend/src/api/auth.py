from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import unwrap
from .gate import AuthContext, AuthenticationGate
from .services import TodoService, UserService

_security = HTTPBearer(auto_error=False)


def get_gate(request: Request) -> AuthenticationGate:
    return request.app.state.gate


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


def get_todo_service(request: Request) -> TodoService:
    return request.app.state.todo_service


# PUBLIC_INTERFACE
def require_auth(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(_security),
    gate: AuthenticationGate = Depends(get_gate),
) -> AuthContext:
    """
    FastAPI dependency enforcing Bearer authentication.

    Behavior:
    - Missing header, non-Bearer scheme, bad signature, expired, revoked or
      unknown-subject tokens all end the request with 401.
    - On success, returns the resolved AuthContext for the handler.

    Usage:
        @router.get("/me")
        def me(auth: AuthContext = Depends(require_auth)) -> ...
    """
    token = creds.credentials if creds is not None else None
    return unwrap(gate.authenticate(token))
