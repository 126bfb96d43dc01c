import dataclasses
import os
import sqlite3
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from conftest import auth_headers, register_and_login
from src.api.db import SQLiteDatabase, SQLiteTodoRepository, SQLiteUserRepository
from src.api.main import create_app
from src.api.repositories import DuplicateEmailError, ListQuery


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "nested" / "todos.db")


@pytest.fixture
def database(db_path):
    return SQLiteDatabase(db_path)


@pytest.fixture
def users(database):
    return SQLiteUserRepository(database)


@pytest.fixture
def todos(database):
    return SQLiteTodoRepository(database)


@pytest.fixture
def owner(users):
    return users.create(email="a@test.com", name="Alice", password_hash="hash-a")


class TestSchemaBootstrap:
    def test_creates_parent_directory_and_tables(self, db_path, database):
        assert os.path.exists(db_path)
        with sqlite3.connect(db_path) as conn:
            tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        assert {"users", "todos"} <= tables

    def test_bootstrap_is_repeatable(self, db_path, users, owner):
        SQLiteDatabase(db_path)
        assert SQLiteUserRepository(SQLiteDatabase(db_path)).get(owner["id"]) == owner


class TestSQLiteUsers:
    def test_create_and_lookup(self, users, owner):
        assert owner["email"] == "a@test.com"
        assert owner["oauth_provider"] is None
        assert users.get(owner["id"]) == owner
        assert users.get_by_email("a@test.com") == owner
        assert users.get_by_email("A@test.com") is None
        assert users.get("missing") is None

    def test_duplicate_email(self, users, owner):
        with pytest.raises(DuplicateEmailError):
            users.create(email="a@test.com", name="Other", password_hash="x")

    def test_update(self, users, owner):
        updated = users.update(owner["id"], {"name": "Alicia", "password_hash": "hash-b"})
        assert updated["name"] == "Alicia"
        assert updated["password_hash"] == "hash-b"
        assert users.update("missing", {"name": "x"}) is None

    def test_update_to_taken_email(self, users, owner):
        users.create(email="b@test.com", name="Bob", password_hash="x")
        with pytest.raises(DuplicateEmailError):
            users.update(owner["id"], {"email": "b@test.com"})
        assert users.get(owner["id"])["email"] == "a@test.com"

    def test_update_rejects_unknown_fields(self, users, owner):
        with pytest.raises(ValueError):
            users.update(owner["id"], {"id": "other"})


class TestSQLiteTodos:
    def test_create(self, todos, owner):
        todo = todos.create(owner["id"], "Buy milk")
        assert todo["state"] == "INCOMPLETE"
        assert todo["completed_at"] is None
        assert todo["creator_id"] == owner["id"]
        assert isinstance(todo["created_at"], datetime)
        assert todo["created_at"].tzinfo is not None

    def test_operations_are_scoped_to_owner(self, users, todos, owner):
        other = users.create(email="b@test.com", name="Bob", password_hash="x")
        todo = todos.create(owner["id"], "Private")

        assert todos.get(todo["id"], other["id"]) is None
        assert todos.update(todo["id"], other["id"], {"state": "COMPLETE"}) is None
        assert todos.delete(todo["id"], other["id"]) is False
        assert todos.list(other["id"]) == []

        assert todos.get(todo["id"], owner["id"])["state"] == "INCOMPLETE"

    def test_update_round_trips_datetimes(self, todos, owner):
        todo = todos.create(owner["id"], "Task")
        done_at = datetime(2026, 3, 1, 12, 30, tzinfo=timezone.utc)
        updated = todos.update(todo["id"], owner["id"], {"state": "COMPLETE", "completed_at": done_at})
        assert updated["completed_at"] == done_at

        reopened = todos.update(todo["id"], owner["id"], {"state": "INCOMPLETE", "completed_at": None})
        assert reopened["completed_at"] is None

    def test_delete(self, todos, owner):
        todo = todos.create(owner["id"], "Task")
        assert todos.delete(todo["id"], owner["id"]) is True
        assert todos.delete(todo["id"], owner["id"]) is False
        assert todos.get(todo["id"], owner["id"]) is None

    def test_state_check_constraint(self, todos, owner):
        todo = todos.create(owner["id"], "Task")
        with pytest.raises(sqlite3.IntegrityError):
            todos.update(todo["id"], owner["id"], {"state": "DONE"})

    def test_filter_and_ordering(self, todos, owner):
        charlie = todos.create(owner["id"], "Charlie")
        alpha = todos.create(owner["id"], "Alpha")
        bravo = todos.create(owner["id"], "Bravo")
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        todos.update(charlie["id"], owner["id"], {"state": "COMPLETE", "completed_at": base + timedelta(hours=2)})
        todos.update(bravo["id"], owner["id"], {"state": "COMPLETE", "completed_at": base + timedelta(hours=1)})

        def descriptions(query=None):
            return [t["description"] for t in todos.list(owner["id"], query)]

        assert descriptions() == ["Charlie", "Alpha", "Bravo"]
        assert descriptions(ListQuery(order_by="DESCRIPTION")) == ["Alpha", "Bravo", "Charlie"]
        assert descriptions(ListQuery(order_by="COMPLETED_AT")) == ["Bravo", "Charlie", "Alpha"]
        assert descriptions(ListQuery(state="INCOMPLETE")) == ["Alpha"]
        assert descriptions(ListQuery(state="COMPLETE", order_by="COMPLETED_AT")) == ["Bravo", "Charlie"]
        assert alpha["id"] in {t["id"] for t in todos.list(owner["id"])}

    def test_deleting_a_user_cascades_to_tasks(self, database, todos, owner):
        todo = todos.create(owner["id"], "Task")
        with database.connect() as conn:
            conn.execute("DELETE FROM users WHERE id = ?", (owner["id"],))
        assert todos.get(todo["id"], owner["id"]) is None

    def test_task_requires_existing_creator(self, todos):
        with pytest.raises(sqlite3.IntegrityError):
            todos.create("no-such-user", "Orphan")


class TestSQLiteBackedApi:
    @pytest.fixture
    def client(self, settings, db_path):
        app = create_app(dataclasses.replace(settings, persistence_backend="sqlite", sqlite_db_path=db_path))
        return TestClient(app)

    def test_health_reports_backend(self, client):
        assert client.get("/").json()["backend"] == "sqlite"

    def test_task_lifecycle(self, client):
        headers = auth_headers(register_and_login(client))
        res = client.post("/todos", json={"description": "Buy milk"}, headers=headers)
        assert res.status_code == 201
        todo_id = res.json()["id"]

        res = client.patch(f"/todo/{todo_id}", json={"state": "COMPLETE"}, headers=headers)
        assert res.status_code == 202
        assert res.json()["completedAt"] is not None

        assert [t["id"] for t in client.get("/todos?filter=COMPLETE", headers=headers).json()] == [todo_id]
        assert client.delete(f"/todo/{todo_id}", headers=headers).status_code == 204
        assert client.get("/todos", headers=headers).json() == []

    def test_duplicate_registration(self, client):
        register_and_login(client)
        res = client.post("/users", json={"email": "a@test.com", "password": "abc123!", "name": "Again"})
        assert res.status_code == 400
        assert res.json()["message"] == "That email is already in use."

    def test_data_survives_app_restart(self, settings, db_path, client):
        headers = auth_headers(register_and_login(client))
        client.post("/todos", json={"description": "Persisted"}, headers=headers)

        restarted = TestClient(
            create_app(dataclasses.replace(settings, persistence_backend="sqlite", sqlite_db_path=db_path))
        )
        listed = restarted.get("/todos", headers=headers).json()
        assert [t["description"] for t in listed] == ["Persisted"]
