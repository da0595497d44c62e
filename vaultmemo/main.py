# FastAPI application entry point: builds the vault or memo app,
# registers routes, error handlers and the snapshot-cookie middleware.

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from vaultmemo.core.config import settings as default_settings
from vaultmemo.core.errors import ApiError
from vaultmemo.db import SnapshotKV, StoreUnavailable
from vaultmemo.routes import auth, items, memos, pages
from vaultmemo.routes import settings as settings_routes
from vaultmemo.services.container import build_services
from vaultmemo.services.snapshot import COOKIE_NAME, MAX_AGE_SECONDS

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str, code: str, headers=None, **extra) -> JSONResponse:
    body = {"success": False, "error": message, "code": code}
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        if isinstance(exc, ApiError):
            return _error(exc.status_code, exc.detail, exc.code, exc.headers, **exc.extra)
        return _error(exc.status_code, str(exc.detail), "HTTP_ERROR", getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if any(e.get("type") == "json_invalid" for e in errors):
            return _error(400, "Malformed JSON body", "INVALID_REQUEST")

        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg', 'invalid value')}" if field else first.get("msg", "Invalid request")
        return _error(400, message, "VALIDATION_ERROR")

    @app.exception_handler(StoreUnavailable)
    async def store_error(request: Request, exc: StoreUnavailable):
        logger.error(f"Store unavailable on {request.method} {request.url.path}: {exc}")
        return _error(500, "Storage is unavailable, please try again later", "STORE_UNAVAILABLE")

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return _error(500, "Server error", "INTERNAL_ERROR")


def create_app(kind: str | None = None, settings=None, store=None, clock=time.time) -> FastAPI:
    """
    Builds the vault (password/key manager) or memo app.
    `store` and `clock` can be injected, which the tests use.
    """
    settings = settings or default_settings
    kind = kind or settings.APP_KIND

    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    services = build_services(kind, settings, store=store, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Shutdown
        close = getattr(services.store, "close", None)
        if close is not None:
            close()
            logger.info(f"Closed {type(services.store).__name__}")

    app = FastAPI(title=f"{settings.APP_NAME} ({kind})", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Dynamic-Lock", "X-CSRF-Token", "X-Session-ID"],
        max_age=86400,
    )

    @app.middleware("http")
    async def snapshot_cookie(request: Request, call_next):
        store = services.store
        if not isinstance(store, SnapshotKV):
            return await call_next(request)

        # A fresh process only restores the snapshot once a login proves the
        # caller owns it (see AuthService); until then it just waits here.
        raw = request.cookies.get(COOKIE_NAME)
        if raw and not store.has_data():
            request.state.snapshot = services.snapshot.decode(raw)

        response = await call_next(request)

        # Only an authenticated caller may receive the user data
        if store.dirty and getattr(request.state, "session", None) is not None:
            encoded = services.snapshot.encode(store.dump_data())
            if encoded:
                response.set_cookie(
                    COOKIE_NAME,
                    encoded,
                    max_age=MAX_AGE_SECONDS,
                    path="/",
                    httponly=True,
                    samesite="strict",
                    secure=settings.COOKIE_SECURE,
                )
            store.dirty = False
        return response

    _register_error_handlers(app)

    app.include_router(pages.router)
    app.include_router(auth.common_router)
    app.include_router(settings_routes.router)
    if kind == "vault":
        app.include_router(auth.vault_router)
        app.include_router(items.router)
    else:
        app.include_router(auth.memo_router)
        app.include_router(memos.router)

    @app.get("/health")
    def health():
        return {"ok": True, "app": kind}

    logger.info(f"App created: kind={kind}, store={type(services.store).__name__}")
    return app


app = create_app()
