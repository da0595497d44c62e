import logging
import secrets
import time
from typing import Callable

from vaultmemo.db import KVStore

logger = logging.getLogger(__name__)

CSRF_PREFIX = "csrf:"


class CsrfTokens:
    """CSRF tokens bound to a session id, kept in the KV store with a TTL."""

    def __init__(self, store: KVStore, ttl_seconds: int = 7200, clock: Callable[[], float] = time.time):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def issue(self, session_id: str) -> str:
        now_ms = int(self._clock() * 1000)
        # The session fragment only helps when reading logs; binding is via the record
        token = f"{now_ms:x}.{secrets.token_hex(16)}.{session_id[:8]}"
        self.store.put_json(
            CSRF_PREFIX + token,
            {"sessionId": session_id, "expiry": now_ms + self.ttl_seconds * 1000},
            ttl=self.ttl_seconds,
        )
        return token

    def validate(self, token: str | None, session_id: str | None) -> bool:
        if not token or not session_id:
            return False

        record = self.store.get_json(CSRF_PREFIX + token)
        if not isinstance(record, dict):
            return False

        now_ms = int(self._clock() * 1000)
        if record.get("expiry", 0) <= now_ms:
            logger.info(f"CSRF token expired: {token[:12]}...")
            self.store.delete(CSRF_PREFIX + token)
            return False

        if not secrets.compare_digest(str(record.get("sessionId", "")).encode("utf-8"), session_id.encode("utf-8")):
            logger.warning(f"CSRF token session mismatch: {token[:12]}...")
            self.store.delete(CSRF_PREFIX + token)
            return False

        return True
