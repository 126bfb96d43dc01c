from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..auth import get_user_service, require_auth
from ..errors import unwrap
from ..gate import AuthContext
from ..models import UserEntity
from ..schemas import (
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    MeUpdate,
    UserCreate,
    UserPublic,
)
from ..services import UserService

router = APIRouter(tags=["users"])

_UNAUTHORIZED = {401: {"model": ErrorResponse, "description": "Missing, invalid or revoked token"}}
_BAD_REQUEST = {400: {"model": ErrorResponse, "description": "Invalid input"}}


def _public(user: UserEntity) -> UserPublic:
    return UserPublic(id=user["id"], name=user["name"], email=user["email"])


# PUBLIC_INTERFACE
@router.post(
    "/users",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register User",
    description="Creates a user from the email, password and name in the payload.",
    responses={**_BAD_REQUEST},
)
def register(payload: UserCreate, service: UserService = Depends(get_user_service)) -> MessageResponse:
    """
    Register a new identity. Never echoes the password or its hash.
    """
    unwrap(service.register(payload))
    return MessageResponse(message="User registered")


# PUBLIC_INTERFACE
@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Login",
    description="Checks the credentials and returns a session token with the user's public profile.",
    responses={**_UNAUTHORIZED, **_BAD_REQUEST},
)
def login(payload: LoginRequest, service: UserService = Depends(get_user_service)) -> LoginResponse:
    """
    Issue a token. Unknown email and wrong password produce the same 401 body.
    """
    token, user = unwrap(service.login(str(payload.email), payload.password))
    return LoginResponse(token=token, user=_public(user))


# PUBLIC_INTERFACE
@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Logout",
    description="Revokes the token used to authenticate this request.",
    responses={**_UNAUTHORIZED},
)
def logout(
    auth: AuthContext = Depends(require_auth),
    service: UserService = Depends(get_user_service),
) -> MessageResponse:
    unwrap(service.logout(auth))
    return MessageResponse(message="Logged out successfully")


# PUBLIC_INTERFACE
@router.get(
    "/me",
    response_model=MeResponse,
    summary="Get Current User",
    responses={**_UNAUTHORIZED, 404: {"model": ErrorResponse, "description": "User not found"}},
)
def get_me(
    auth: AuthContext = Depends(require_auth),
    service: UserService = Depends(get_user_service),
) -> MeResponse:
    return MeResponse(user=_public(unwrap(service.get_me(auth))))


# PUBLIC_INTERFACE
@router.patch(
    "/me",
    response_model=MessageResponse,
    summary="Update Current User",
    description="Updates the caller's email, name and/or password. A password change requires currentPassword.",
    responses={**_UNAUTHORIZED, **_BAD_REQUEST, 404: {"model": ErrorResponse, "description": "User not found"}},
)
def update_me(
    payload: MeUpdate,
    auth: AuthContext = Depends(require_auth),
    service: UserService = Depends(get_user_service),
) -> MessageResponse:
    unwrap(service.update_me(auth, payload))
    return MessageResponse(message="User update successful.")
