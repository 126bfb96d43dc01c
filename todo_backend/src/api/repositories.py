from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .models import STATE_INCOMPLETE, TodoEntity, UserEntity
from .settings import Settings

USER_MUTABLE_FIELDS = frozenset({"email", "name", "password_hash", "oauth_provider", "oauth_id"})
TODO_MUTABLE_FIELDS = frozenset({"description", "state", "completed_at"})

ORDER_FIELDS = {
    "CREATED_AT": "created_at",
    "COMPLETED_AT": "completed_at",
    "DESCRIPTION": "description",
}


class DuplicateEmailError(Exception):
    """Raised by user repositories when an email is already registered."""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class ListQuery:
    """
    Query parameters for listing one owner's todos.
    """
    state: Optional[str] = None  # None means all states
    order_by: str = "CREATED_AT"  # allowed: CREATED_AT, COMPLETED_AT, DESCRIPTION (ascending)


# PUBLIC_INTERFACE
class UserRepository(ABC):
    """Abstract repository contract for identity storage backends."""

    @abstractmethod
    def create(
        self,
        email: str,
        name: str,
        password_hash: str,
        oauth_provider: Optional[str] = None,
        oauth_id: Optional[str] = None,
    ) -> UserEntity:
        """Create and return a new UserEntity. Raises DuplicateEmailError if the email is taken."""

    @abstractmethod
    def get(self, user_id: str) -> Optional[UserEntity]:
        """Return a UserEntity by id, or None if not found."""

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[UserEntity]:
        """Return a UserEntity by exact email, or None if not found."""

    @abstractmethod
    def update(self, user_id: str, fields: Mapping[str, Any]) -> Optional[UserEntity]:
        """
        Apply the given field values in one write. Return the updated entity or None if not found.
        Raises DuplicateEmailError if a new email is already taken by another user.
        """


# PUBLIC_INTERFACE
class TodoRepository(ABC):
    """
    Abstract repository contract for task storage backends.

    Every lookup takes the owner's id and matches it in the same predicate as the
    task id, so another user's task is indistinguishable from a missing one.
    """

    @abstractmethod
    def create(self, creator_id: str, description: str) -> TodoEntity:
        """Create and return a new INCOMPLETE TodoEntity owned by creator_id."""

    @abstractmethod
    def get(self, todo_id: str, creator_id: str) -> Optional[TodoEntity]:
        """Return the owner's TodoEntity by id, or None."""

    @abstractmethod
    def update(self, todo_id: str, creator_id: str, fields: Mapping[str, Any]) -> Optional[TodoEntity]:
        """Apply the given field values in one write. Return updated entity or None if not found."""

    @abstractmethod
    def delete(self, todo_id: str, creator_id: str) -> bool:
        """Delete the owner's TodoEntity by id. Return True if deleted, False if not found."""

    @abstractmethod
    def list(self, creator_id: str, query: Optional[ListQuery] = None) -> List[TodoEntity]:
        """
        Return the owner's todos.
        - Optional filter by state
        - Ascending order by created_at, completed_at (nulls last) or description
        """


def _check_fields(fields: Mapping[str, Any], allowed: frozenset) -> None:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Unsupported fields: {sorted(unknown)}")


def _sort_key(field: str):
    if field == "completed_at":
        # nulls last, then chronological
        return lambda t: (t["completed_at"] is None, t["completed_at"] or t["created_at"], t["created_at"])
    return lambda t: (t[field], t["created_at"])


class InMemoryUserRepository(UserRepository):
    """
    Thread-safe in-memory identity store suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[str, UserEntity] = {}
        self._by_email: Dict[str, str] = {}

    def create(
        self,
        email: str,
        name: str,
        password_hash: str,
        oauth_provider: Optional[str] = None,
        oauth_id: Optional[str] = None,
    ) -> UserEntity:
        entity: UserEntity = {
            "id": new_id(),
            "email": email,
            "name": name,
            "password_hash": password_hash,
            "oauth_provider": oauth_provider,
            "oauth_id": oauth_id,
        }
        with self._lock:
            if email in self._by_email:
                raise DuplicateEmailError(email)
            self._items[entity["id"]] = entity
            self._by_email[email] = entity["id"]
        return entity.copy()

    def get(self, user_id: str) -> Optional[UserEntity]:
        with self._lock:
            item = self._items.get(user_id)
            return None if item is None else item.copy()

    def get_by_email(self, email: str) -> Optional[UserEntity]:
        with self._lock:
            user_id = self._by_email.get(email)
            return None if user_id is None else self._items[user_id].copy()

    def update(self, user_id: str, fields: Mapping[str, Any]) -> Optional[UserEntity]:
        _check_fields(fields, USER_MUTABLE_FIELDS)
        with self._lock:
            existing = self._items.get(user_id)
            if existing is None:
                return None
            new_email = fields.get("email")
            if new_email is not None and new_email != existing["email"]:
                if new_email in self._by_email:
                    raise DuplicateEmailError(new_email)
                del self._by_email[existing["email"]]
                self._by_email[new_email] = user_id
            updated = existing.copy()
            updated.update(fields)  # type: ignore[typeddict-item]
            self._items[user_id] = updated
            return updated.copy()


class InMemoryTodoRepository(TodoRepository):
    """
    Thread-safe in-memory task store suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[str, TodoEntity] = {}

    def _owned(self, todo_id: str, creator_id: str) -> Optional[TodoEntity]:
        item = self._items.get(todo_id)
        if item is None or item["creator_id"] != creator_id:
            return None
        return item

    def create(self, creator_id: str, description: str) -> TodoEntity:
        entity: TodoEntity = {
            "id": new_id(),
            "description": description,
            "state": STATE_INCOMPLETE,
            "created_at": utc_now(),
            "completed_at": None,
            "creator_id": creator_id,
        }
        with self._lock:
            self._items[entity["id"]] = entity
        return entity.copy()

    def get(self, todo_id: str, creator_id: str) -> Optional[TodoEntity]:
        with self._lock:
            item = self._owned(todo_id, creator_id)
            return None if item is None else item.copy()

    def update(self, todo_id: str, creator_id: str, fields: Mapping[str, Any]) -> Optional[TodoEntity]:
        _check_fields(fields, TODO_MUTABLE_FIELDS)
        with self._lock:
            existing = self._owned(todo_id, creator_id)
            if existing is None:
                return None
            updated = existing.copy()
            updated.update(fields)  # type: ignore[typeddict-item]
            self._items[todo_id] = updated
            return updated.copy()

    def delete(self, todo_id: str, creator_id: str) -> bool:
        with self._lock:
            if self._owned(todo_id, creator_id) is None:
                return False
            del self._items[todo_id]
            return True

    def list(self, creator_id: str, query: Optional[ListQuery] = None) -> List[TodoEntity]:
        q = query or ListQuery()
        with self._lock:
            items = [t for t in self._items.values() if t["creator_id"] == creator_id]
            if q.state is not None:
                items = [t for t in items if t["state"] == q.state]
            field = ORDER_FIELDS.get(q.order_by, "created_at")
            items_sorted = sorted(items, key=_sort_key(field))
            return [t.copy() for t in items_sorted]


# PUBLIC_INTERFACE
def build_repositories(settings: Settings) -> Tuple[UserRepository, TodoRepository]:
    """
    Return the configured (users, todos) repositories based on settings.
    - memory: InMemoryUserRepository / InMemoryTodoRepository
    - sqlite: SQLiteUserRepository / SQLiteTodoRepository sharing one database file
    """
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteDatabase, SQLiteTodoRepository, SQLiteUserRepository

        database = SQLiteDatabase(settings.sqlite_db_path, timeout=settings.sqlite_timeout_seconds)
        return SQLiteUserRepository(database), SQLiteTodoRepository(database)
    return InMemoryUserRepository(), InMemoryTodoRepository()
