from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from .gate import AuthContext
from .logging_config import get_logger
from .models import STATE_COMPLETE, STATE_INCOMPLETE, TodoEntity, UserEntity
from .repositories import DuplicateEmailError, ListQuery, TodoRepository, UserRepository, utc_now
from .results import (
    Ok,
    Result,
    authentication_error,
    conflict,
    internal_error,
    not_found,
    validation_error,
)
from .revocation import RevocationStore, RevocationStoreError
from .schemas import MeUpdate, TodoFilter, TodoOrder, TodoUpdate, UserCreate
from .security import PasswordHasher, validate_password_policy
from .tokens import TokenService

logger = get_logger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"
EMAIL_IN_USE_MESSAGE = "That email is already in use."
TASK_NOT_FOUND_MESSAGE = "Task not found"
USER_NOT_FOUND_MESSAGE = "User not found"


# PUBLIC_INTERFACE
class UserService:
    """
    Registration, login, logout and profile management.

    Login failures are uniform: an unknown email and a wrong
    password both cost one bcrypt verification and return the same error.
    """

    def __init__(
        self,
        users: UserRepository,
        hasher: PasswordHasher,
        tokens: TokenService,
        revocations: RevocationStore,
    ) -> None:
        self._users = users
        self._hasher = hasher
        self._tokens = tokens
        self._revocations = revocations

    def register(self, payload: UserCreate) -> Result[UserEntity]:
        email = str(payload.email)
        if self._users.get_by_email(email) is not None:
            return conflict(EMAIL_IN_USE_MESSAGE, "duplicate-email")
        policy_error = validate_password_policy(payload.password)
        if policy_error:
            return validation_error(policy_error, "password-policy")
        try:
            user = self._users.create(email=email, name=payload.name, password_hash=self._hasher.hash(payload.password))
        except DuplicateEmailError:
            return conflict(EMAIL_IN_USE_MESSAGE, "duplicate-email")
        logger.info("user_registered", user_id=user["id"])
        return Ok(user)

    def login(self, email: str, password: str) -> Result[Tuple[str, UserEntity]]:
        user = self._users.get_by_email(email)
        if user is None:
            self._hasher.dummy_verify(password)
            return authentication_error(INVALID_CREDENTIALS_MESSAGE, "invalid-credentials")
        if not self._hasher.verify(password, user["password_hash"]):
            return authentication_error(INVALID_CREDENTIALS_MESSAGE, "invalid-credentials")
        token = self._tokens.issue(user["id"])
        logger.info("user_logged_in", user_id=user["id"])
        return Ok((token, user))

    def logout(self, auth: AuthContext) -> Result[None]:
        """
        Blacklist the caller's token. The entry lives at least as long as the
        token itself, and never shorter than the configured blacklist TTL.
        """
        remaining = self._tokens.remaining_lifetime(auth.claims)
        ttl = max(self._revocations.default_ttl_seconds, remaining)
        try:
            self._revocations.blacklist(auth.token, ttl_seconds=ttl)
        except RevocationStoreError:
            return internal_error("revocation-store-unavailable")
        logger.info("user_logged_out", user_id=auth.user_id)
        return Ok(None)

    def get_me(self, auth: AuthContext) -> Result[UserEntity]:
        user = self._users.get(auth.user_id)
        if user is None:
            return not_found(USER_NOT_FOUND_MESSAGE)
        return Ok(user)

    def update_me(self, auth: AuthContext, payload: MeUpdate) -> Result[UserEntity]:
        user = self._users.get(auth.user_id)
        if user is None:
            return not_found(USER_NOT_FOUND_MESSAGE)

        fields: Dict[str, Any] = {}
        if payload.new_password is not None:
            if not payload.current_password or not self._hasher.verify(payload.current_password, user["password_hash"]):
                return validation_error("Current password is incorrect.", "wrong-current-password")
            policy_error = validate_password_policy(payload.new_password)
            if policy_error:
                return validation_error(policy_error, "password-policy")

        if payload.new_email is not None and str(payload.new_email) != user["email"]:
            new_email = str(payload.new_email)
            if self._users.get_by_email(new_email) is not None:
                return conflict(EMAIL_IN_USE_MESSAGE, "duplicate-email")
            fields["email"] = new_email
        if payload.new_name is not None:
            fields["name"] = payload.new_name
        if payload.new_password is not None:
            fields["password_hash"] = self._hasher.hash(payload.new_password)

        try:
            updated = self._users.update(user["id"], fields)
        except DuplicateEmailError:
            return conflict(EMAIL_IN_USE_MESSAGE, "duplicate-email")
        if updated is None:
            return not_found(USER_NOT_FOUND_MESSAGE)
        logger.info("user_updated", user_id=user["id"], fields=sorted(fields))
        return Ok(updated)


# PUBLIC_INTERFACE
class TodoService:
    """Task operations, always scoped to the authenticated owner."""

    def __init__(self, todos: TodoRepository) -> None:
        self._todos = todos

    def list(
        self,
        auth: AuthContext,
        state_filter: TodoFilter = TodoFilter.ALL,
        order_by: TodoOrder = TodoOrder.CREATED_AT,
    ) -> Result[List[TodoEntity]]:
        state: Optional[str] = None if state_filter == TodoFilter.ALL else state_filter.value
        return Ok(self._todos.list(auth.user_id, ListQuery(state=state, order_by=order_by.value)))

    def create(self, auth: AuthContext, description: str) -> Result[TodoEntity]:
        created = self._todos.create(auth.user_id, description)
        logger.info("todo_created", todo_id=created["id"], user_id=auth.user_id)
        return Ok(created)

    def get(self, auth: AuthContext, todo_id: str) -> Result[TodoEntity]:
        item = self._todos.get(todo_id, auth.user_id)
        if item is None:
            return not_found(TASK_NOT_FOUND_MESSAGE)
        return Ok(item)

    def update(self, auth: AuthContext, todo_id: str, payload: TodoUpdate) -> Result[TodoEntity]:
        """
        Apply a PATCH.

        - a description change on a COMPLETE task is rejected before any write
        - COMPLETE stamps completed_at (kept as-is if already COMPLETE)
        - INCOMPLETE clears completed_at
        """
        current = self._todos.get(todo_id, auth.user_id)
        if current is None:
            return not_found(TASK_NOT_FOUND_MESSAGE)

        if payload.description is not None and current["state"] == STATE_COMPLETE:
            return validation_error("Cannot change the description of a completed task.", "completed-task")

        fields: Dict[str, Any] = {}
        if payload.description is not None:
            fields["description"] = payload.description
        if payload.state == STATE_COMPLETE and current["state"] != STATE_COMPLETE:
            fields["state"] = STATE_COMPLETE
            fields["completed_at"] = utc_now()
        elif payload.state == STATE_INCOMPLETE:
            fields["state"] = STATE_INCOMPLETE
            fields["completed_at"] = None

        if not fields:
            return Ok(current)
        updated = self._todos.update(todo_id, auth.user_id, fields)
        if updated is None:
            return not_found(TASK_NOT_FOUND_MESSAGE)
        return Ok(updated)

    def delete(self, auth: AuthContext, todo_id: str) -> Result[None]:
        if not self._todos.delete(todo_id, auth.user_id):
            return not_found(TASK_NOT_FOUND_MESSAGE)
        logger.info("todo_deleted", todo_id=todo_id, user_id=auth.user_id)
        return Ok(None)
