import uuid

import pytest
from fastapi.testclient import TestClient

from refund.api import create_app
from refund.config import Settings


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        jwt_secret="test-secret",
        tmp_folder=str(tmp_path / "tmp"),
        uploads_folder=str(tmp_path / "uploads"),
        rate_limit_enabled=False,
    )


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as client:
        yield client


@pytest.fixture
def register(client):
    """Create a user through the API and return its credentials."""

    def _register(name="Maria Silva", role="employee", password="secret123"):
        email = f"user_{uuid.uuid4().hex[:12]}@email.com"
        resp = client.post(
            "/users",
            json={"name": name, "email": email, "password": password, "role": role},
        )
        assert resp.status_code == 201
        return email, password

    return _register


@pytest.fixture
def login(client, register):
    """Register a user, open a session and return auth headers and the user."""

    def _login(name="Maria Silva", role="employee"):
        email, password = register(name=name, role=role)
        resp = client.post("/sessions", json={"email": email, "password": password})
        assert resp.status_code == 200
        data = resp.json()
        return {"Authorization": f"Bearer {data['token']}"}, data["user"]

    return _login
