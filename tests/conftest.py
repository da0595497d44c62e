import os

# Keep the module-level app in vaultmemo.main off the disk during tests
os.environ.setdefault("KV_BACKEND", "memory")

import pytest
from fastapi.testclient import TestClient

from vaultmemo.core.config import Settings
from vaultmemo.db import MemoryKV
from vaultmemo.main import create_app

MEMO_UUID = "3f2504e0-4f89-11d3-9a0c-0305e82c3301"
MEMO_PASSWORD = "memo-pass-123"


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_settings(**overrides) -> Settings:
    s = Settings()
    s.KV_BACKEND = "memory"
    s.AUDIT_LOG_FILE = ""
    s.CSRF_ENABLED = True
    s.TRUST_PROXY = False
    s.COOKIE_SECURE = False
    s.CUSTOM_PASSWORD = ""
    s.ACCESS_PASSWORD = MEMO_PASSWORD
    s.ACCESS_UUID = MEMO_UUID
    s.MULTI_AUTH_CODE = ""
    s.MAX_LOGIN_ATTEMPTS = 5
    s.LOCKOUT_SECONDS = 600
    s.ATTEMPT_WINDOW_SECONDS = 86400
    s.VAULT_SESSION_SECONDS = 86400
    s.MEMO_SESSION_SECONDS = 7200
    s.CSRF_TTL_SECONDS = 7200
    s.DYNAMIC_LOCK_SECONDS = 10
    for key, value in overrides.items():
        setattr(s, key, value)
    return s


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryKV(clock)


@pytest.fixture
def vault_app(store, clock):
    return create_app("vault", settings=make_settings(), store=store, clock=clock)


@pytest.fixture
def vault_client(vault_app):
    return TestClient(vault_app)


@pytest.fixture
def memo_app(store, clock):
    return create_app("memo", settings=make_settings(), store=store, clock=clock)


@pytest.fixture
def memo_client(memo_app):
    return TestClient(memo_app)


@pytest.fixture
def vault_password(vault_client):
    resp = vault_client.get("/api/check-setup")
    assert resp.status_code == 200
    return resp.json()["password"]


def vault_login(client, password):
    resp = client.post("/api/login", json={"password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()


def memo_login(client, password=MEMO_PASSWORD, uuid=MEMO_UUID, **extra):
    lock = client.get("/api/dynamic-lock").json()["lock"]
    return client.post(
        "/api/verify",
        json={"password": password, "uuid": uuid, **extra},
        headers={"X-Dynamic-Lock": lock},
    )


def csrf_headers(login_body):
    return {"X-CSRF-Token": login_body["csrfToken"], "X-Session-ID": login_body["sessionId"]}
