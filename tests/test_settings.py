import base64

from conftest import make_settings, vault_login
from fastapi.testclient import TestClient

from vaultmemo.db import SnapshotKV
from vaultmemo.main import create_app
from vaultmemo.services.app_settings import DEFAULT_SETTINGS
from vaultmemo.services.snapshot import COOKIE_NAME


def test_default_theme(vault_client):
    resp = vault_client.get("/api/settings")
    assert resp.status_code == 200
    assert resp.headers["cache-control"] == "no-store"
    assert resp.json()["settings"] == DEFAULT_SETTINGS


def test_update_merges_and_stamps(vault_client):
    resp = vault_client.post("/api/settings", json={"loginTitle": "My Vault"})
    assert resp.status_code == 200
    first = resp.json()["settings"]
    assert first["loginTitle"] == "My Vault"
    assert first["lastUpdated"].endswith("Z")

    vault_client.post("/api/settings", json={"theme": {"primaryColor": "#123456"}})
    current = vault_client.get("/api/settings").json()["settings"]
    assert current["loginTitle"] == "My Vault"
    assert current["theme"] == {"primaryColor": "#123456"}


def test_server_fields_cannot_be_written(vault_client, vault_password):
    vault_client.post("/api/settings", json={"currentPassword": "hijack", "deployTime": "never"})

    vault_login(vault_client, vault_password)
    current = vault_client.get("/api/settings").json()["settings"]
    assert current["currentPassword"] == vault_password
    assert current["deployTime"] != "never"


def test_current_password_only_visible_when_logged_in(vault_client, vault_password):
    assert "currentPassword" not in vault_client.get("/api/settings").json()["settings"]

    vault_login(vault_client, vault_password)
    assert vault_client.get("/api/settings").json()["settings"]["currentPassword"] == vault_password


def test_oversized_background_rejected(store, clock):
    app = create_app("vault", settings=make_settings(MAX_BG_IMAGE_BYTES=1024), store=store, clock=clock)
    client = TestClient(app)

    small = "data:image/png;base64," + base64.b64encode(b"x" * 512).decode()
    big = "data:image/png;base64," + base64.b64encode(b"x" * 4096).decode()

    assert client.post("/api/settings", json={"loginBgImage": small}).status_code == 200
    resp = client.post("/api/settings", json={"loginBgImage": big})
    assert resp.status_code == 400
    assert client.get("/api/settings").json()["settings"]["loginBgImage"] == small


def test_settings_body_must_be_object(vault_client):
    resp = vault_client.post("/api/settings", json=["not", "an", "object"])
    assert resp.status_code == 400


def _snapshot_app(clock, secret="snapshot-secret"):
    return create_app("vault", settings=make_settings(SECRET_KEY=secret), store=SnapshotKV(clock), clock=clock)


def _owner_with_item(clock, secret="snapshot-secret"):
    app = _snapshot_app(clock, secret)
    owner = TestClient(app)
    password = owner.get("/api/check-setup").json()["password"]
    vault_login(owner, password)
    owner.post("/api/items", json={"platform": "bank", "title": "bank login", "content": "PIN-1234"})
    return app, owner, password


def test_snapshot_cookie_restores_data_into_fresh_store(clock):
    _, owner, password = _owner_with_item(clock)
    snapshot = owner.cookies.get(COOKIE_NAME)
    assert snapshot

    # A new process: empty store, only the browser's snapshot cookie survives
    app = _snapshot_app(clock)
    second = TestClient(app)
    second.cookies.set(COOKIE_NAME, snapshot)

    # Waiting for the owner's login, so no new password is generated
    assert second.post("/api/check-setup").json() == {"isFirstTime": False}
    assert not app.state.services.store.has_data()

    vault_login(second, password)
    titles = [i["title"] for i in second.get("/api/items").json()["items"]]
    assert titles == ["bank login"]


def test_anonymous_client_never_gets_snapshot(clock):
    app, owner, _ = _owner_with_item(clock)
    assert owner.cookies.get(COOKIE_NAME)

    stranger = TestClient(app)
    resp = stranger.post("/api/settings", json={"loginTitle": "hello"})
    assert resp.status_code == 200
    assert COOKIE_NAME not in resp.headers.get("set-cookie", "")

    resp = stranger.get("/api/check-setup")
    assert COOKIE_NAME not in resp.headers.get("set-cookie", "")
    assert stranger.cookies.get(COOKIE_NAME) is None

    # The pending change reaches the owner on their next request
    resp = owner.get("/api/items")
    assert COOKIE_NAME in resp.headers.get("set-cookie", "")


def test_snapshot_restore_needs_owner_password(clock):
    _, owner, password = _owner_with_item(clock)
    snapshot = owner.cookies.get(COOKIE_NAME)

    app = _snapshot_app(clock)
    replayer = TestClient(app)
    replayer.cookies.set(COOKIE_NAME, snapshot)

    assert replayer.post("/api/login", json={"password": "guess"}).status_code == 401
    assert not app.state.services.store.has_data()
    assert replayer.get("/api/items").status_code == 401

    vault_login(replayer, password)
    assert app.state.services.store.has_data()


def test_snapshot_cookie_from_other_secret_is_ignored(clock):
    _, owner, _ = _owner_with_item(clock, secret="one")
    snapshot = owner.cookies.get(COOKIE_NAME)

    second = TestClient(_snapshot_app(clock, secret="two"))
    second.cookies.set(COOKIE_NAME, snapshot)
    assert second.post("/api/check-setup").json()["isFirstTime"] is True


def test_health(vault_client, memo_client):
    assert vault_client.get("/health").json() == {"ok": True, "app": "vault"}
    assert memo_client.get("/health").json() == {"ok": True, "app": "memo"}
