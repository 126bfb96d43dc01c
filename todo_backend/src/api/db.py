from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generator, List, Mapping, Optional

from .logging_config import get_logger
from .models import STATE_COMPLETE, STATE_INCOMPLETE, TodoEntity, UserEntity
from .repositories import (
    ORDER_FIELDS,
    TODO_MUTABLE_FIELDS,
    USER_MUTABLE_FIELDS,
    DuplicateEmailError,
    ListQuery,
    TodoRepository,
    UserRepository,
    _check_fields,
    new_id,
    utc_now,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class _UserCols:
    table: str = "users"
    id: str = "id"
    email: str = "email"
    name: str = "name"
    password_hash: str = "password_hash"
    oauth_provider: str = "oauth_provider"
    oauth_id: str = "oauth_id"


@dataclass(frozen=True)
class _TodoCols:
    table: str = "todos"
    id: str = "id"
    description: str = "description"
    state: str = "state"
    created_at: str = "created_at"
    completed_at: str = "completed_at"
    creator_id: str = "creator_id"


_U = _UserCols()
_T = _TodoCols()


def _parse_dt(s: Optional[str]) -> Optional[datetime]:
    if s is None:
        return None
    return datetime.fromisoformat(s)


def _dt_to_str(value: Any) -> Any:
    return value.isoformat() if isinstance(value, datetime) else value


class SQLiteDatabase:
    """
    Connection factory and schema bootstrap for the SQLite backend.

    Connections are opened per operation and always closed; foreign keys are
    enabled on each connection so deleting a user cascades to its todos.
    """

    def __init__(self, db_path: str, timeout: float = 5.0) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._timeout = timeout
        self._init_db()

    @contextmanager
    def connect(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path, timeout=self._timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self.connect() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_U.table} (
                    {_U.id} TEXT PRIMARY KEY,
                    {_U.email} TEXT NOT NULL UNIQUE,
                    {_U.name} TEXT NOT NULL,
                    {_U.password_hash} TEXT NOT NULL,
                    {_U.oauth_provider} TEXT NULL,
                    {_U.oauth_id} TEXT NULL
                )
                """
            )
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_T.table} (
                    {_T.id} TEXT PRIMARY KEY,
                    {_T.description} TEXT NOT NULL,
                    {_T.state} TEXT NOT NULL DEFAULT '{STATE_INCOMPLETE}'
                        CHECK ({_T.state} IN ('{STATE_INCOMPLETE}', '{STATE_COMPLETE}')),
                    {_T.created_at} TEXT NOT NULL,
                    {_T.completed_at} TEXT NULL,
                    {_T.creator_id} TEXT NOT NULL
                        REFERENCES {_U.table}({_U.id}) ON DELETE CASCADE ON UPDATE CASCADE
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_T.table}_creator_id ON {_T.table}({_T.creator_id})"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_T.table}_state ON {_T.table}({_T.state})"
            )
        logger.info("sqlite_schema_ready", path=self._db_path)


class SQLiteUserRepository(UserRepository):
    """SQLite identity store; email uniqueness is enforced by the table's UNIQUE constraint."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def _row_to_entity(self, row: sqlite3.Row) -> UserEntity:
        return {
            "id": str(row[_U.id]),
            "email": str(row[_U.email]),
            "name": str(row[_U.name]),
            "password_hash": str(row[_U.password_hash]),
            "oauth_provider": row[_U.oauth_provider],
            "oauth_id": row[_U.oauth_id],
        }

    def _select_one(self, conn: sqlite3.Connection, column: str, value: str) -> Optional[UserEntity]:
        row = conn.execute(f"SELECT * FROM {_U.table} WHERE {column} = ?", (value,)).fetchone()
        return self._row_to_entity(row) if row else None

    def create(
        self,
        email: str,
        name: str,
        password_hash: str,
        oauth_provider: Optional[str] = None,
        oauth_id: Optional[str] = None,
    ) -> UserEntity:
        user_id = new_id()
        try:
            with self._db.connect() as conn:
                conn.execute(
                    f"""
                    INSERT INTO {_U.table} ({_U.id}, {_U.email}, {_U.name}, {_U.password_hash},
                        {_U.oauth_provider}, {_U.oauth_id})
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (user_id, email, name, password_hash, oauth_provider, oauth_id),
                )
                created = self._select_one(conn, _U.id, user_id)
        except sqlite3.IntegrityError as exc:
            raise DuplicateEmailError(email) from exc
        assert created is not None
        return created

    def get(self, user_id: str) -> Optional[UserEntity]:
        with self._db.connect() as conn:
            return self._select_one(conn, _U.id, user_id)

    def get_by_email(self, email: str) -> Optional[UserEntity]:
        with self._db.connect() as conn:
            return self._select_one(conn, _U.email, email)

    def update(self, user_id: str, fields: Mapping[str, Any]) -> Optional[UserEntity]:
        _check_fields(fields, USER_MUTABLE_FIELDS)
        if not fields:
            return self.get(user_id)
        columns = list(fields)
        assignments = ", ".join(f"{c} = ?" for c in columns)
        try:
            with self._db.connect() as conn:
                cur = conn.execute(
                    f"UPDATE {_U.table} SET {assignments} WHERE {_U.id} = ?",
                    [*(fields[c] for c in columns), user_id],
                )
                if cur.rowcount == 0:
                    return None
                return self._select_one(conn, _U.id, user_id)
        except sqlite3.IntegrityError as exc:
            raise DuplicateEmailError(str(fields.get("email"))) from exc


class SQLiteTodoRepository(TodoRepository):
    """
    SQLite task store. Every statement matches on both id and creator_id.
    """

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def _row_to_entity(self, row: sqlite3.Row) -> TodoEntity:
        return {
            "id": str(row[_T.id]),
            "description": str(row[_T.description]),
            "state": str(row[_T.state]),
            "created_at": _parse_dt(row[_T.created_at]),  # type: ignore
            "completed_at": _parse_dt(row[_T.completed_at]),
            "creator_id": str(row[_T.creator_id]),
        }

    def _select_owned(self, conn: sqlite3.Connection, todo_id: str, creator_id: str) -> Optional[TodoEntity]:
        row = conn.execute(
            f"SELECT * FROM {_T.table} WHERE {_T.id} = ? AND {_T.creator_id} = ?",
            (todo_id, creator_id),
        ).fetchone()
        return self._row_to_entity(row) if row else None

    def create(self, creator_id: str, description: str) -> TodoEntity:
        todo_id = new_id()
        with self._db.connect() as conn:
            conn.execute(
                f"""
                INSERT INTO {_T.table} ({_T.id}, {_T.description}, {_T.state},
                    {_T.created_at}, {_T.completed_at}, {_T.creator_id})
                VALUES (?, ?, ?, ?, NULL, ?)
                """,
                (todo_id, description, STATE_INCOMPLETE, utc_now().isoformat(), creator_id),
            )
            created = self._select_owned(conn, todo_id, creator_id)
        assert created is not None
        return created

    def get(self, todo_id: str, creator_id: str) -> Optional[TodoEntity]:
        with self._db.connect() as conn:
            return self._select_owned(conn, todo_id, creator_id)

    def update(self, todo_id: str, creator_id: str, fields: Mapping[str, Any]) -> Optional[TodoEntity]:
        _check_fields(fields, TODO_MUTABLE_FIELDS)
        if not fields:
            return self.get(todo_id, creator_id)
        columns = list(fields)
        assignments = ", ".join(f"{c} = ?" for c in columns)
        with self._db.connect() as conn:
            cur = conn.execute(
                f"UPDATE {_T.table} SET {assignments} WHERE {_T.id} = ? AND {_T.creator_id} = ?",
                [*(_dt_to_str(fields[c]) for c in columns), todo_id, creator_id],
            )
            if cur.rowcount == 0:
                return None
            return self._select_owned(conn, todo_id, creator_id)

    def delete(self, todo_id: str, creator_id: str) -> bool:
        with self._db.connect() as conn:
            cur = conn.execute(
                f"DELETE FROM {_T.table} WHERE {_T.id} = ? AND {_T.creator_id} = ?",
                (todo_id, creator_id),
            )
            return cur.rowcount > 0

    def list(self, creator_id: str, query: Optional[ListQuery] = None) -> List[TodoEntity]:
        q = query or ListQuery()
        clauses = [f"{_T.creator_id} = ?"]
        params: list = [creator_id]

        if q.state is not None:
            clauses.append(f"{_T.state} = ?")
            params.append(q.state)

        field = ORDER_FIELDS.get(q.order_by, "created_at")
        # NULLs last, as in ascending Postgres order
        order_sql = f"ORDER BY {field} IS NULL, {field} ASC, {_T.created_at} ASC"

        with self._db.connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM {_T.table} WHERE {' AND '.join(clauses)} {order_sql}",
                params,
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]
