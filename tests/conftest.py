import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="gearhub-tests-")

# settings are read at import time, so the environment must be ready first
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["JWT_SECRET"] = "test-secret-that-is-long-enough-for-hs256"
os.environ["AUTO_VERIFY_USERS"] = "true"
os.environ["RATE_LIMIT"] = "10000/minute"
os.environ["STORAGE_LOCAL_DIR"] = os.path.join(_TMP, "storage")
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("OPENWEATHER_API_KEY", None)
os.environ.pop("AZURE_BLOB_CONNECTION", None)
os.environ.pop("SMTP_HOST", None)

import pytest
from fastapi.testclient import TestClient

from gearhub.db import Base, SessionLocal, engine
from gearhub.main import app


PASSWORD = "password123"


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def outbox(monkeypatch):
    sent = []

    def fake_send(to, subject, body):
        sent.append({"to": to, "subject": subject, "body": body})
        return True

    monkeypatch.setattr("gearhub.auth.router.send_email", fake_send)
    return sent


def register(client, email="alice@example.com", password=PASSWORD, **extra):
    resp = client.post("/auth/register", json={"email": email, "password": password, **extra})
    assert resp.status_code == 201, resp.text
    return resp.json()


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def alice(client):
    return auth_headers(register(client, "alice@example.com")["token"])


@pytest.fixture
def bob(client):
    return auth_headers(register(client, "bob@example.com")["token"])


def make_location(client, headers, name="Lake Michigan", latitude=41.88, longitude=-87.63, **extra):
    body = {"name": name, "coordinates": {"latitude": latitude, "longitude": longitude}, **extra}
    resp = client.post("/locations", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["location"]


def make_category(client, headers, name="Sails", **extra):
    resp = client.post("/categories", json={"name": name, **extra}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["category"]


def make_item(client, headers, name="Freeride 6.5", **extra):
    resp = client.post("/items", json={"name": name, **extra}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["item"]
