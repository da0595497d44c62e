# Rotating server-wide nonce ("dynamic lock"). Unauthenticated API calls
# must echo the current value. It slows down naive scripted access only;
# any client able to fetch the lock can pass the check.

import logging
import secrets
import time
import uuid
from typing import Callable

from vaultmemo.db import KVStore

logger = logging.getLogger(__name__)

LOCK_KEY = "lock:current"


class DynamicLock:
    def __init__(self, store: KVStore, interval_seconds: int = 10, clock: Callable[[], float] = time.time):
        self.store = store
        self.interval_ms = interval_seconds * 1000
        self._clock = clock

    def current(self) -> dict:
        """Returns {"uuid", "expiryTime"}, regenerating the value when stale."""
        now_ms = int(self._clock() * 1000)
        lock = self.store.get_json(LOCK_KEY)
        if isinstance(lock, dict) and lock.get("expiryTime", 0) > now_ms and lock.get("uuid"):
            return lock

        lock = {"uuid": str(uuid.uuid4()), "expiryTime": now_ms + self.interval_ms}
        self.store.put_json(LOCK_KEY, lock)
        logger.debug("Dynamic lock rotated")
        return lock

    def check(self, value: str | None) -> bool:
        if not value:
            return False
        return secrets.compare_digest(value.encode("utf-8"), self.current()["uuid"].encode("utf-8"))
