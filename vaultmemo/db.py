import json
import logging
import sqlite3
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

from vaultmemo.core.config import DEFAULT_SECRET_KEY

logger = logging.getLogger(__name__)

# Keys holding user data, as opposed to auth bookkeeping. Only these are
# carried in the fallback snapshot cookie.
DATA_PREFIXES = ("item:", "all_memos", "app:settings", "admin:password")


class StoreUnavailable(Exception):
    """The key-value backend could not be reached or failed mid-operation."""


class KVStore:
    """String key -> string value store with optional per-key TTL (seconds)."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def put(self, key: str, value: str, ttl: Optional[float] = None) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def list(self, prefix: str = "") -> List[str]:
        raise NotImplementedError

    def purge_expired(self) -> int:
        return 0

    def get_json(self, key: str, default=None):
        """
        Reads and decodes a JSON value. Undecodable values are logged and
        `default` is returned so callers fall back to an empty state.
        """
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.error(f"Corrupt JSON under key={key}: {e}")
            return default

    def put_json(self, key: str, value, ttl: Optional[float] = None) -> None:
        self.put(key, json.dumps(value, ensure_ascii=False, separators=(",", ":")), ttl=ttl)


class MemoryKV(KVStore):
    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        # key -> (value, expires_at or None)
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()

    def _alive(self, key: str) -> bool:
        entry = self._data.get(key)
        if entry is None:
            return False
        expires_at = entry[1]
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return False
        return True

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            if not self._alive(key):
                return None
            return self._data[key][0]

    def put(self, key: str, value: str, ttl: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        with self._lock:
            self._data[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def list(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(k for k in list(self._data) if k.startswith(prefix) and self._alive(k))

    def purge_expired(self) -> int:
        with self._lock:
            before = len(self._data)
            for key in list(self._data):
                self._alive(key)
            return before - len(self._data)


class SnapshotKV(MemoryKV):
    """
    In-memory fallback used when the durable backend is unavailable.
    User data can be exported to / restored from a client-side snapshot
    (see services/snapshot.py) so it survives a process restart.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        super().__init__(clock)
        self.dirty = False

    def put(self, key: str, value: str, ttl: Optional[float] = None) -> None:
        super().put(key, value, ttl)
        if key.startswith(DATA_PREFIXES):
            self.dirty = True

    def delete(self, key: str) -> None:
        super().delete(key)
        if key.startswith(DATA_PREFIXES):
            self.dirty = True

    def has_data(self) -> bool:
        return any(self.list(prefix) for prefix in DATA_PREFIXES)

    def dump_data(self) -> Dict[str, str]:
        snapshot = {}
        for prefix in DATA_PREFIXES:
            for key in self.list(prefix):
                value = self.get(key)
                if value is not None:
                    snapshot[key] = value
        return snapshot

    def load_data(self, snapshot: Dict[str, str]) -> int:
        loaded = 0
        for key, value in snapshot.items():
            if isinstance(key, str) and isinstance(value, str) and key.startswith(DATA_PREFIXES):
                MemoryKV.put(self, key, value)
                loaded += 1
        self.dirty = False
        return loaded


class SqliteKV(KVStore):
    def __init__(self, path: str, clock: Callable[[], float] = time.time):
        self.path = path
        self._clock = clock
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def _connect(self) -> sqlite3.Connection:
        # Connection is opened lazily so importing the app never touches disk
        if self._conn is None:
            try:
                conn = sqlite3.connect(self.path, timeout=5, check_same_thread=False)
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS kv (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        expires_at REAL
                    )
                    """
                )
                conn.commit()
            except sqlite3.Error as e:
                raise StoreUnavailable(f"Cannot open sqlite store at {self.path}: {e}") from e
            self._conn = conn
        return self._conn

    def _run(self, sql: str, params: tuple = (), commit: bool = False) -> list:
        with self._lock:
            try:
                conn = self._connect()
                rows = conn.execute(sql, params).fetchall()
                if commit:
                    conn.commit()
                return rows
            except sqlite3.Error as e:
                logger.error(f"sqlite operation failed: {e}")
                raise StoreUnavailable(str(e)) from e

    def get(self, key: str) -> Optional[str]:
        rows = self._run(
            "SELECT value FROM kv WHERE key = ? AND (expires_at IS NULL OR expires_at > ?)",
            (key, self._clock()),
        )
        return rows[0][0] if rows else None

    def put(self, key: str, value: str, ttl: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        self._run(
            "INSERT INTO kv (key, value, expires_at) VALUES (?, ?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value, expires_at = excluded.expires_at",
            (key, value, expires_at),
            commit=True,
        )

    def delete(self, key: str) -> None:
        self._run("DELETE FROM kv WHERE key = ?", (key,), commit=True)

    def list(self, prefix: str = "") -> List[str]:
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        rows = self._run(
            "SELECT key FROM kv WHERE key LIKE ? ESCAPE '\\' "
            "AND (expires_at IS NULL OR expires_at > ?) ORDER BY key",
            (escaped + "%", self._clock()),
        )
        return [r[0] for r in rows]

    def purge_expired(self) -> int:
        with self._lock:
            try:
                conn = self._connect()
                cur = conn.execute(
                    "DELETE FROM kv WHERE expires_at IS NOT NULL AND expires_at <= ?",
                    (self._clock(),),
                )
                conn.commit()
                return cur.rowcount
            except sqlite3.Error as e:
                logger.error(f"sqlite purge failed: {e}")
                raise StoreUnavailable(str(e)) from e

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


def _memory_store(settings, clock: Callable[[], float]) -> KVStore:
    if not settings.KV_FALLBACK:
        return MemoryKV(clock)
    # The snapshot cookie is only as private as SECRET_KEY
    if settings.SECRET_KEY == DEFAULT_SECRET_KEY:
        logger.error("SECRET_KEY is the built-in default; snapshot cookie disabled, data is lost on restart")
        return MemoryKV(clock)
    return SnapshotKV(clock)


def open_store(settings, clock: Callable[[], float] = time.time) -> KVStore:
    """
    Builds the configured backend. When sqlite cannot be opened and the
    fallback is enabled, an in-memory SnapshotKV is returned instead
    (plain MemoryKV while SECRET_KEY is unset).
    """
    backend = settings.KV_BACKEND.lower()
    if backend == "memory":
        logger.warning("Using in-memory store: data and sessions are lost on restart")
        return _memory_store(settings, clock)

    if backend != "sqlite":
        raise ValueError(f"Unknown KV_BACKEND: {settings.KV_BACKEND}")

    store = SqliteKV(settings.KV_PATH, clock)
    try:
        store._run("SELECT 1")
    except StoreUnavailable as e:
        if not settings.KV_FALLBACK:
            raise
        logger.warning(f"Durable store unavailable ({e}); falling back to memory")
        return _memory_store(settings, clock)
    return store
