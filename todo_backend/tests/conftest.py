import dataclasses
import os

# In-memory backends unless overridden
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")
os.environ.setdefault("REVOCATION_BACKEND", "memory")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-testing-only")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOG_JSON", "false")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from src.api.main import create_app  # noqa: E402
from src.api.settings import get_settings  # noqa: E402

DEFAULT_PASSWORD = "abc123!"


@pytest.fixture
def settings():
    return dataclasses.replace(
        get_settings(),
        persistence_backend="memory",
        revocation_backend="memory",
        jwt_secret="test-secret-key-for-testing-only",
        jwt_secret_generated=False,
        bcrypt_rounds=4,
        log_json=False,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    return TestClient(app)


def register(client, email="a@test.com", password=DEFAULT_PASSWORD, name="Alice"):
    return client.post("/users", json={"email": email, "password": password, "name": name})


def login(client, email="a@test.com", password=DEFAULT_PASSWORD):
    return client.post("/login", json={"email": email, "password": password})


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


def register_and_login(client, email="a@test.com", password=DEFAULT_PASSWORD, name="Alice"):
    res = register(client, email=email, password=password, name=name)
    assert res.status_code == 201, res.text
    res = login(client, email=email, password=password)
    assert res.status_code == 200, res.text
    return res.json()["token"]


@pytest.fixture
def token(client):
    return register_and_login(client)


@pytest.fixture
def headers(token):
    return auth_headers(token)
