import os
import tempfile
import uuid

# Settings are read at import time, so the environment must be in place first
_DB_DIR = tempfile.mkdtemp(prefix="tourist-safety-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ADMIN_EMAIL"] = "admin@example.com"
os.environ["ADMIN_PASSWORD"] = "admin-password"
os.environ["HAZARD_FEED_URL"] = ""
os.environ["PASSWORD_HASH_ITERATIONS"] = "1000"
os.environ["SMTP_USERNAME"] = ""
os.environ["RESPONDER_WEBHOOK_URL"] = ""

import pytest
from fastapi.testclient import TestClient

from app.main import app


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def _signup(client: TestClient) -> dict:
    email = f"tourist-{uuid.uuid4().hex[:10]}@example.com"
    resp = client.post("/api/auth/signup", json={"email": email, "password": "correct-horse"})
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.fixture
def tourist(client):
    data = _signup(client)
    return {
        "id": data["id"],
        "email": data["email"],
        "token": data["access_token"],
        "headers": {"Authorization": f"Bearer {data['access_token']}"},
    }


@pytest.fixture
def other_tourist(client):
    data = _signup(client)
    return {
        "id": data["id"],
        "token": data["access_token"],
        "headers": {"Authorization": f"Bearer {data['access_token']}"},
    }


@pytest.fixture
def admin(client):
    resp = client.post(
        "/api/auth/signin",
        json={"email": "admin@example.com", "password": "admin-password"},
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    return {
        "id": data["id"],
        "token": data["access_token"],
        "headers": {"Authorization": f"Bearer {data['access_token']}"},
    }
