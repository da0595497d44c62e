# Server-side session management (creation, fingerprint check,
# sliding expiry and logout). Records live in the KV store with a TTL.

import logging
import secrets
import time
from dataclasses import asdict, dataclass
from typing import Callable, Optional

from vaultmemo.core.security import new_token
from vaultmemo.db import KVStore, StoreUnavailable

logger = logging.getLogger(__name__)

SESSION_PREFIX = "session:"


@dataclass
class Session:
    token: str
    ip: str
    userAgent: str
    createdAt: int  # epoch ms
    expiresAt: int  # epoch ms
    sessionKey: str

    def record(self) -> dict:
        data = asdict(self)
        data.pop("token")
        return data


class SessionManager:
    def __init__(self, store: KVStore, duration_seconds: int, clock: Callable[[], float] = time.time):
        self.store = store
        self.duration_ms = duration_seconds * 1000
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock() * 1000)

    def _save(self, session: Session) -> None:
        ttl = max((session.expiresAt - self._now()) / 1000, 1)
        self.store.put_json(SESSION_PREFIX + session.token, session.record(), ttl=ttl)

    def _load(self, token: str) -> Optional[Session]:
        data = self.store.get_json(SESSION_PREFIX + token)
        if not isinstance(data, dict):
            return None
        try:
            return Session(token=token, **data)
        except TypeError:
            logger.error(f"Malformed session record for token prefix={token[:6]}")
            return None

    def set_auth(self, authenticated: bool, token: Optional[str] = None, ip: str = "", user_agent: str = "") -> Optional[Session]:
        """
        set_auth(True, ...) issues a session; set_auth(False, token) ends it.
        """
        if not authenticated:
            if token:
                self.clear(token)
            return None

        now = self._now()
        session = Session(
            token=token or new_token(),
            ip=ip,
            userAgent=user_agent,
            createdAt=now,
            expiresAt=now + self.duration_ms,
            sessionKey=secrets.token_hex(16),
        )
        self._save(session)
        logger.info(f"Session created: key={session.sessionKey}, ip={ip}")
        return session

    def check_auth(self, token: Optional[str], ip: str, user_agent: str) -> Optional[Session]:
        """
        Returns the live session for `token`, or None.
        Extends the expiry once less than half the duration remains,
        never beyond createdAt + 2 x duration.
        """
        if not token:
            return None

        session = self._load(token)
        if session is None:
            return None

        now = self._now()
        if now >= session.expiresAt:
            logger.info(f"Session expired: key={session.sessionKey}")
            self.clear(token)
            return None

        # Either IP or User-Agent must still match
        if session.ip != ip and session.userAgent != user_agent:
            logger.warning(
                f"Session fingerprint mismatch: key={session.sessionKey}, "
                f"stored_ip={session.ip}, ip={ip}"
            )
            self.clear(token)
            return None

        if session.expiresAt - now < self.duration_ms / 2:
            hard_cap = session.createdAt + 2 * self.duration_ms
            extended = min(now + self.duration_ms, hard_cap)
            if extended > session.expiresAt:
                session.expiresAt = extended
                self._save(session)
                logger.info(f"Session extended: key={session.sessionKey}")

        return session

    def clear(self, token: str) -> None:
        # Logout must always appear to succeed, so store errors stop here
        try:
            self.store.delete(SESSION_PREFIX + token)
        except StoreUnavailable as e:
            logger.error(f"Failed to delete session: {e}")
