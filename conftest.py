"""
Pytest configuration and shared fixtures.

Environment variables are set here before any app import so settings are
built with test values. Each test gets its own JSON record store in tmp_path,
injected through app.dependency_overrides.
"""

import os
import tempfile

_test_root = tempfile.mkdtemp(prefix="blueme-tests-")
os.environ.setdefault("SESSION_SECRET", "test-session-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("DATA_DIR", os.path.join(_test_root, "data"))
os.environ.setdefault("UPLOAD_DIR", os.path.join(_test_root, "uploads"))

import pytest
from fastapi.testclient import TestClient

# Clear settings cache before any app imports to ensure test env vars are used
from blueme.config import get_settings
get_settings.cache_clear()

from blueme.main import app
from blueme.storage import JsonFileStore, get_store


ALICE = {"phone": "5551234567", "password": "secret1", "name": "Alice"}
BOB = {"phone": "5559876543", "password": "secret2", "name": "Bob"}
CAROL = {"phone": "5550001111", "password": "secret3", "name": "Carol"}


@pytest.fixture
def store(tmp_path):
    """Fresh JSON file store for each test."""
    return JsonFileStore(tmp_path / "data")


@pytest.fixture
def test_app(store):
    app.dependency_overrides[get_store] = lambda: store
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def make_client(test_app):
    """Factory for independent clients, each with its own cookie jar."""
    clients = []

    def _make() -> TestClient:
        client = TestClient(test_app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client):
    return make_client()


def register(client, phone: str, password: str, name: str) -> dict:
    """Register a user and return the response body."""
    response = client.post("/auth/register", json={"phone": phone, "password": password, "name": name})
    assert response.status_code == 201, response.text
    return response.json()


def login(client, phone: str, password: str) -> dict:
    """Log in; the session cookie is kept on the client."""
    response = client.post("/auth/login", json={"phone": phone, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["user"]


def signed_in(make_client, person: dict):
    """Register and log in person on a new client. Returns (client, user)."""
    client = make_client()
    user = register(client, **person)
    login(client, person["phone"], person["password"])
    return client, user


@pytest.fixture
def alice(make_client):
    return signed_in(make_client, ALICE)


@pytest.fixture
def bob(make_client):
    return signed_in(make_client, BOB)
