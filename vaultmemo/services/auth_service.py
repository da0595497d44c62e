import json
import logging
from dataclasses import dataclass
from typing import Optional

from vaultmemo.core.errors import ApiError, bad_request, unauthorized
from vaultmemo.core.security import (
    generate_random_password,
    hash_password,
    needs_rehash,
    plaintext_matches,
    verify_password,
)
from vaultmemo.db import KVStore, SnapshotKV
from vaultmemo.services.app_settings import AppSettings
from vaultmemo.services.csrf import CsrfTokens
from vaultmemo.services.limiter import BruteForceGuard
from vaultmemo.services.logger import AuditLog
from vaultmemo.services.sessions import Session, SessionManager

"""AuthService: login flows shared by the vault and memo apps"""

logger = logging.getLogger(__name__)

ADMIN_PASSWORD_KEY = "admin:password"
MIN_PASSWORD_LENGTH = 6


@dataclass
class LoginResult:
    session: Optional[Session] = None
    csrf_token: Optional[str] = None
    require_multi_auth: bool = False

    def body(self) -> dict:
        if self.session is None:
            return {"success": False, "requireMultiAuth": self.require_multi_auth}
        return {
            "success": True,
            "requireMultiAuth": False,
            "csrfToken": self.csrf_token,
            "sessionId": self.session.sessionKey,
        }


class AuthService:
    def __init__(
        self,
        settings,
        store: KVStore,
        sessions: SessionManager,
        guard: BruteForceGuard,
        csrf: CsrfTokens,
        app_settings: AppSettings,
        audit: AuditLog,
    ):
        self.settings = settings
        self.store = store
        self.sessions = sessions
        self.guard = guard
        self.csrf = csrf
        self.app_settings = app_settings
        self.audit = audit

    def _begin_attempt(self, ip: str, event: str = "login") -> int:
        # No background timers: stale records are cleared while handling logins
        self.guard.purge()
        self.store.purge_expired()
        try:
            return self.guard.check(ip)
        except ApiError:
            self.audit.log_event(event, ip, "locked")
            raise

    def _fail(self, ip: str, remaining: int, message: str, code: str = "INVALID_CREDENTIALS", event: str = "login"):
        logger.warning(f"{event} failed: ip={ip}, code={code}, remaining_attempts={remaining}")
        self.audit.log_event(event, ip, "failure", code)
        raise unauthorized(message, code, remainingAttempts=remaining)

    def _succeed(self, ip: str, user_agent: str, via: str) -> LoginResult:
        self.guard.reset(ip)
        session = self.sessions.set_auth(True, ip=ip, user_agent=user_agent)
        csrf_token = self.csrf.issue(session.sessionKey)
        logger.info(f"Login success: ip={ip}, via={via}")
        self.audit.log_event("login", ip, "success", via)
        return LoginResult(session=session, csrf_token=csrf_token)

    @staticmethod
    def _parse_hash(raw: Optional[str]):
        if raw is None:
            return None
        try:
            stored = json.loads(raw)
        except ValueError:
            return raw  # legacy bare hex digest
        return stored if isinstance(stored, dict) else raw

    def _stored_hash(self):
        return self._parse_hash(self.store.get(ADMIN_PASSWORD_KEY))

    def _restore(self, snapshot: Optional[dict]) -> None:
        """Loads a client snapshot into an empty fallback store."""
        if not snapshot or not isinstance(self.store, SnapshotKV) or self.store.has_data():
            return
        loaded = self.store.load_data(snapshot)
        logger.info(f"Restored {loaded} key(s) from snapshot cookie")

    def login(self, password: str, ip: str, user_agent: str, snapshot: Optional[dict] = None) -> LoginResult:
        """
        Vault login. Accepts either the host-configured plaintext password
        (CUSTOM_PASSWORD) or the stored salted hash.

        `snapshot` is user data carried in the client's snapshot cookie. It is
        restored only when the password also unlocks the snapshot itself.
        """
        remaining = self._begin_attempt(ip)

        if plaintext_matches(password, self.settings.CUSTOM_PASSWORD):
            self._restore(snapshot)
            return self._succeed(ip, user_agent, "custom_password")

        if snapshot and verify_password(password, self._parse_hash(snapshot.get(ADMIN_PASSWORD_KEY))):
            self._restore(snapshot)

        stored = self._stored_hash()
        if verify_password(password, stored):
            if needs_rehash(stored):
                self.store.put_json(ADMIN_PASSWORD_KEY, hash_password(password))
                logger.info("Upgraded legacy admin password hash to salted form")
            return self._succeed(ip, user_agent, "stored_hash")

        self._fail(ip, remaining, "Incorrect password, please check and try again")

    def verify(
        self,
        password: str,
        uuid: str,
        multi_auth_code: Optional[str],
        ip: str,
        user_agent: str,
        snapshot: Optional[dict] = None,
    ) -> LoginResult:
        """Memo login: UUID + password, plus the second factor when configured."""
        if not self.settings.ACCESS_PASSWORD or not self.settings.ACCESS_UUID:
            logger.error("ACCESS_PASSWORD / ACCESS_UUID are not configured")
            raise ApiError(500, "Access credentials are not configured", "NOT_CONFIGURED")

        remaining = self._begin_attempt(ip)

        # Evaluate both so timing does not reveal which one was wrong
        uuid_ok = plaintext_matches(uuid, self.settings.ACCESS_UUID)
        password_ok = plaintext_matches(password, self.settings.ACCESS_PASSWORD)
        if not (uuid_ok and password_ok):
            self._fail(ip, remaining, "Incorrect UUID or password")

        if self.settings.MULTI_AUTH_CODE:
            if not multi_auth_code:
                return LoginResult(require_multi_auth=True)
            if not plaintext_matches(multi_auth_code, self.settings.MULTI_AUTH_CODE):
                self._fail(ip, remaining, "Incorrect verification code", "INVALID_MULTI_AUTH")

        self._restore(snapshot)
        return self._succeed(ip, user_agent, "uuid_password")

    def logout(self, token: Optional[str], ip: str) -> None:
        if token:
            self.sessions.set_auth(False, token)
        try:
            self.audit.log_event("logout", ip, "success")
        except OSError as e:
            logger.error(f"Audit log write failed on logout: {e}")

    def check_setup(self, snapshot_pending: bool = False) -> dict:
        """First run: generate and store an initial admin password."""
        if self.store.get(ADMIN_PASSWORD_KEY) is not None:
            return {"isFirstTime": False}

        if snapshot_pending:
            # The owner's data is waiting in their snapshot cookie; it comes back on login
            logger.info("Snapshot cookie pending restore; not generating a new password")
            return {"isFirstTime": False}

        password = generate_random_password()
        self.store.put_json(ADMIN_PASSWORD_KEY, hash_password(password))
        self.app_settings.mirror_password(password, deployed=True)
        logger.info("Initial admin password generated")
        return {"isFirstTime": True, "password": password}

    def change_password(self, current_password: str, new_password: str, ip: str) -> None:
        remaining = self._begin_attempt(ip, "change_password")
        if not verify_password(current_password, self._stored_hash()):
            self._fail(ip, remaining, "Current password is incorrect", event="change_password")
        self.guard.reset(ip)

        if not new_password or len(new_password) < MIN_PASSWORD_LENGTH:
            raise bad_request(f"New password must be at least {MIN_PASSWORD_LENGTH} characters")

        self.store.put_json(ADMIN_PASSWORD_KEY, hash_password(new_password))
        self.app_settings.mirror_password(new_password)
        logger.info("Admin password changed")
        self.audit.log_event("change_password", ip, "success")
