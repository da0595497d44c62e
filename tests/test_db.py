import secrets

import pytest
from conftest import FakeClock, make_settings

from vaultmemo.core.config import DEFAULT_SECRET_KEY
from vaultmemo.db import MemoryKV, SnapshotKV, SqliteKV, StoreUnavailable, open_store
from vaultmemo.services.snapshot import SnapshotCodec


def test_memory_kv_basic_operations():
    store = MemoryKV(FakeClock())
    store.put("item:1", "a")
    store.put("item:2", "b")
    store.put("other", "c")

    assert store.get("item:1") == "a"
    assert store.list("item:") == ["item:1", "item:2"]

    store.delete("item:1")
    store.delete("item:1")
    assert store.get("item:1") is None
    assert store.list("item:") == ["item:2"]


def test_memory_kv_ttl():
    clock = FakeClock()
    store = MemoryKV(clock)
    store.put("session:x", "v", ttl=30)
    store.put("session:y", "v", ttl=300)

    clock.advance(31)
    assert store.get("session:x") is None
    assert store.list("session:") == ["session:y"]


def test_memory_kv_purge_expired():
    clock = FakeClock()
    store = MemoryKV(clock)
    store.put("a", "1", ttl=10)
    store.put("b", "2", ttl=10)
    store.put("c", "3")

    clock.advance(11)
    assert store.purge_expired() == 2
    assert store.list() == ["c"]


def test_get_json_falls_back_on_corrupt_value():
    store = MemoryKV(FakeClock())
    store.put("all_memos", "{not json")
    assert store.get_json("all_memos", []) == []
    assert store.get_json("missing") is None


def test_put_json_keeps_unicode():
    store = MemoryKV(FakeClock())
    store.put_json("k", {"platform": "邮箱"})
    assert "邮箱" in store.get("k")
    assert store.get_json("k") == {"platform": "邮箱"}


def test_sqlite_kv_persists(tmp_path):
    clock = FakeClock()
    path = str(tmp_path / "kv.db")
    store = SqliteKV(path, clock)
    store.put("item:1", "a")
    store.put("item:1", "b")
    store.put("session:t", "s", ttl=60)
    store.close()

    reopened = SqliteKV(path, clock)
    assert reopened.get("item:1") == "b"
    assert reopened.get("session:t") == "s"

    clock.advance(61)
    assert reopened.get("session:t") is None
    assert reopened.purge_expired() == 1
    reopened.close()


def test_sqlite_kv_prefix_is_literal(tmp_path):
    store = SqliteKV(str(tmp_path / "kv.db"), FakeClock())
    store.put("a_b:1", "x")
    store.put("axb:1", "y")
    store.put("a%b:1", "z")

    assert store.list("a_b:") == ["a_b:1"]
    assert store.list("a%b:") == ["a%b:1"]
    store.delete("a_b:1")
    assert store.list("a") == ["a%b:1", "axb:1"]
    store.close()


def test_sqlite_unavailable(tmp_path):
    store = SqliteKV(str(tmp_path / "missing-dir" / "kv.db"), FakeClock())
    with pytest.raises(StoreUnavailable):
        store.get("x")


def test_open_store_falls_back_to_snapshot(tmp_path):
    bad_path = str(tmp_path / "missing-dir" / "kv.db")

    store = open_store(make_settings(KV_BACKEND="sqlite", KV_PATH=bad_path, KV_FALLBACK=True, SECRET_KEY="s3cret"))
    assert isinstance(store, SnapshotKV)

    with pytest.raises(StoreUnavailable):
        open_store(make_settings(KV_BACKEND="sqlite", KV_PATH=bad_path, KV_FALLBACK=False))


def test_open_store_backends(tmp_path):
    assert isinstance(open_store(make_settings(KV_BACKEND="memory", KV_FALLBACK=False)), MemoryKV)
    sqlite_store = open_store(make_settings(KV_BACKEND="sqlite", KV_PATH=str(tmp_path / "ok.db")))
    assert isinstance(sqlite_store, SqliteKV)
    sqlite_store.close()

    with pytest.raises(ValueError):
        open_store(make_settings(KV_BACKEND="redis"))


def test_snapshot_kv_tracks_data_changes_only():
    store = SnapshotKV(FakeClock())
    store.put("session:abc", "{}")
    store.put("csrf:abc", "{}")
    assert not store.dirty
    assert not store.has_data()

    store.put("item:1", '{"id": "1"}')
    assert store.dirty
    assert store.dump_data() == {"item:1": '{"id": "1"}'}


def test_snapshot_kv_load_ignores_foreign_keys():
    store = SnapshotKV(FakeClock())
    loaded = store.load_data({"all_memos": "[]", "session:x": "{}", "item:9": "{}"})
    assert loaded == 2
    assert store.get("session:x") is None
    assert not store.dirty


def test_snapshot_codec_round_trip():
    codec = SnapshotCodec("secret-one")
    data = {"item:1": '{"title": "GitHub账号"}', "all_memos": "[]"}

    encoded = codec.encode(data)
    assert encoded.count(".") == 4  # compact JWE
    assert "GitHub" not in encoded
    assert codec.decode(encoded) == data


def test_snapshot_codec_rejects_foreign_or_garbage():
    encoded = SnapshotCodec("secret-one").encode({"item:1": "{}"})

    assert SnapshotCodec("secret-two").decode(encoded) is None
    assert SnapshotCodec("secret-one").decode("garbage") is None


def test_snapshot_codec_refuses_oversized_snapshots():
    codec = SnapshotCodec("secret-one")
    assert codec.encode({"item:1": secrets.token_hex(5000)}) is None


def test_snapshot_codec_rejects_stale_snapshots():
    clock = FakeClock()
    codec = SnapshotCodec("secret-one", max_age_seconds=3600, clock=clock)
    encoded = codec.encode({"item:1": "{}"})

    clock.advance(3599)
    assert codec.decode(encoded) == {"item:1": "{}"}
    clock.advance(2)
    assert codec.decode(encoded) is None


def test_snapshot_fallback_needs_a_real_secret(tmp_path):
    bad_path = str(tmp_path / "missing-dir" / "kv.db")

    for backend in ("memory", "sqlite"):
        store = open_store(make_settings(KV_BACKEND=backend, KV_PATH=bad_path, SECRET_KEY=DEFAULT_SECRET_KEY))
        assert type(store) is MemoryKV

    store = open_store(make_settings(KV_BACKEND="memory", SECRET_KEY="s3cret"))
    assert isinstance(store, SnapshotKV)
