# Per-app service wiring. One instance lives on app.state.services so that
# handlers get their state explicitly instead of through module globals.

import time
from dataclasses import dataclass
from typing import Callable, Optional

from vaultmemo.db import KVStore, open_store
from vaultmemo.services.app_settings import AppSettings
from vaultmemo.services.auth_service import AuthService
from vaultmemo.services.csrf import CsrfTokens
from vaultmemo.services.dynamic_lock import DynamicLock
from vaultmemo.services.items import ItemService
from vaultmemo.services.limiter import BruteForceGuard
from vaultmemo.services.logger import AuditLog
from vaultmemo.services.memos import MemoService
from vaultmemo.services.sessions import SessionManager
from vaultmemo.services.snapshot import SnapshotCodec

APP_KINDS = ("vault", "memo")


@dataclass
class Services:
    kind: str
    settings: object
    store: KVStore
    sessions: SessionManager
    guard: BruteForceGuard
    csrf: CsrfTokens
    lock: DynamicLock
    app_settings: AppSettings
    auth: AuthService
    items: ItemService
    memos: MemoService
    snapshot: SnapshotCodec
    audit: AuditLog

    @property
    def lock_required(self) -> bool:
        return self.settings.dynamic_lock_required(self.kind)


def build_services(kind: str, settings, store: Optional[KVStore] = None, clock: Callable[[], float] = time.time) -> Services:
    if kind not in APP_KINDS:
        raise ValueError(f"Unknown app kind: {kind}")

    if store is None:
        store = open_store(settings, clock)

    sessions = SessionManager(store, settings.session_seconds(kind), clock)
    guard = BruteForceGuard(
        store,
        max_attempts=settings.MAX_LOGIN_ATTEMPTS,
        lockout_seconds=settings.LOCKOUT_SECONDS,
        window_seconds=settings.ATTEMPT_WINDOW_SECONDS,
        clock=clock,
    )
    csrf = CsrfTokens(store, settings.CSRF_TTL_SECONDS, clock)
    app_settings = AppSettings(store, settings.MAX_BG_IMAGE_BYTES, clock)
    audit = AuditLog(settings.AUDIT_LOG_FILE, kind)

    return Services(
        kind=kind,
        settings=settings,
        store=store,
        sessions=sessions,
        guard=guard,
        csrf=csrf,
        lock=DynamicLock(store, settings.DYNAMIC_LOCK_SECONDS, clock),
        app_settings=app_settings,
        auth=AuthService(settings, store, sessions, guard, csrf, app_settings, audit),
        items=ItemService(store, clock),
        memos=MemoService(store, clock),
        snapshot=SnapshotCodec(settings.SECRET_KEY, clock=clock),
        audit=audit,
    )
