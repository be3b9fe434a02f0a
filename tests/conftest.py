# tests/conftest.py
import os

# The app reads these at import time; point it at a throwaway in-memory store.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from datetime import datetime, timedelta

import httpx
import pytest
from fastapi.testclient import TestClient

import auth_service.main as auth_main
from auth_service.db import Base, engine
from auth_service.mailer import get_mailer
from common.config import Settings, get_settings
from common.http import get_http_client
from gateway_service.main import app

TEST_PASSWORD = "pw123"


class RecordingMailer:
    """Stands in for the SMTP mailer and keeps every code it was asked to send."""

    def __init__(self):
        self.sent = []
        self.succeed = True

    async def send_otp(self, email, code):
        self.sent.append((email, code))
        return self.succeed

    @property
    def last_code(self):
        return self.sent[-1][1]


class FakeUpstream:
    """Answers outbound HTTP calls in-process and records the requests."""

    def __init__(self):
        self.requests = []
        self.responder = lambda request: httpx.Response(200, json={"co2e": 12.5, "co2e_unit": "kg"})

    def handler(self, request):
        self.requests.append(request)
        return self.responder(request)


class FrozenClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def settings():
    return Settings(
        jwt_secret_key="test-secret",
        database_url="sqlite://",
        climatiq_api_key="climatiq-test-key",
        climatiq_api_url="https://climatiq.test/data/v1/estimate",
        openai_api_key="openai-test-key",
        openai_api_url="https://llm.test/v1/chat/completions",
    )


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def clock(monkeypatch):
    frozen = FrozenClock(datetime(2026, 3, 2, 9, 0, 0))
    monkeypatch.setattr(auth_main, "utcnow", frozen)
    return frozen


@pytest.fixture
def client(settings, mailer, upstream):
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_http_client] = lambda: httpx.AsyncClient(
        transport=httpx.MockTransport(upstream.handler)
    )
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def register_user(client, username, email, password=TEST_PASSWORD):
    r = client.post("/api/auth/register", json={"username": username, "email": email, "password": password})
    assert r.status_code == 201, r.text
    return r.json()["userId"]


def register_verified_user(client, mailer, username, email, password=TEST_PASSWORD):
    user_id = register_user(client, username, email, password)
    r = client.post("/api/auth/verify-otp", json={"userId": user_id, "otp": mailer.last_code})
    assert r.status_code == 200, r.text
    return user_id


@pytest.fixture
def auth_headers(client, mailer):
    """Registers, verifies and logs in a user; returns the bearer header."""
    register_verified_user(client, mailer, "chat_user", "chat@lca.org")
    r = client.post("/api/auth/login", json={"username": "chat_user", "password": TEST_PASSWORD})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['token']}"}
