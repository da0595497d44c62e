import logging
import math
import time
from typing import Callable

from vaultmemo.core.errors import ApiError
from vaultmemo.db import KVStore

logger = logging.getLogger(__name__)

ATTEMPT_PREFIX = "attempts:"


class LoginLocked(ApiError):
    def __init__(self, remaining_seconds: int):
        minutes = max(1, math.ceil(remaining_seconds / 60))
        super().__init__(
            429,
            f"Too many failed attempts. Try again in {minutes} minute(s).",
            "LOGIN_LOCKED",
            headers={"Retry-After": str(remaining_seconds)},
            retryAfter=remaining_seconds,
        )


class BruteForceGuard:
    def __init__(
        self,
        store: KVStore,
        max_attempts: int = 5,
        lockout_seconds: int = 600,
        window_seconds: int = 86400,
        clock: Callable[[], float] = time.time,
    ):
        """
        Per client IP login attempt counter.

        :param max_attempts: attempts allowed before the next one triggers a lockout
        :param lockout_seconds: how long a locked IP is refused
        :param window_seconds: idle period after which a counter is forgotten
        """
        self.store = store
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self.window_seconds = window_seconds
        self._clock = clock

    def _get(self, ip: str) -> dict:
        record = self.store.get_json(ATTEMPT_PREFIX + ip)
        if not isinstance(record, dict):
            return {"count": 0, "lastAttempt": 0, "lockedUntil": 0}
        return record

    def _put(self, ip: str, record: dict) -> None:
        # Keep the record at least until the lock ends or the window closes
        now = self._clock()
        ttl = max(self.window_seconds, record.get("lockedUntil", 0) - now, 1)
        self.store.put_json(ATTEMPT_PREFIX + ip, record, ttl=ttl)

    def check(self, ip: str) -> int:
        """
        Registers a login attempt from `ip`.
        Raises LoginLocked when the IP is (or now becomes) locked,
        otherwise returns the number of attempts left after this one.
        """
        now = self._clock()
        record = self._get(ip)

        locked_until = record.get("lockedUntil", 0)
        if locked_until:
            if now < locked_until:
                raise LoginLocked(math.ceil(locked_until - now))
            record = {"count": 0, "lastAttempt": 0, "lockedUntil": 0}
        elif record["count"] and now - record.get("lastAttempt", 0) > self.window_seconds:
            record = {"count": 0, "lastAttempt": 0, "lockedUntil": 0}

        if record["count"] >= self.max_attempts:
            record["lockedUntil"] = now + self.lockout_seconds
            record["lastAttempt"] = now
            self._put(ip, record)
            logger.warning(f"Login locked: ip={ip}, attempts={record['count']}")
            raise LoginLocked(self.lockout_seconds)

        record["count"] += 1
        record["lastAttempt"] = now
        self._put(ip, record)
        return self.max_attempts - record["count"]

    def reset(self, ip: str) -> None:
        self.store.delete(ATTEMPT_PREFIX + ip)

    def attempts(self, ip: str) -> int:
        return self._get(ip)["count"]

    def purge(self) -> int:
        """Drops stale counters that carry no active lock."""
        now = self._clock()
        purged = 0
        for key in self.store.list(ATTEMPT_PREFIX):
            record = self.store.get_json(key)
            if not isinstance(record, dict):
                self.store.delete(key)
                purged += 1
                continue
            if record.get("lockedUntil", 0) > now:
                continue
            if now - record.get("lastAttempt", 0) > self.window_seconds:
                self.store.delete(key)
                purged += 1
        if purged:
            logger.info(f"Purged {purged} stale login attempt record(s)")
        return purged
