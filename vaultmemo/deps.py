# FastAPI dependencies: request context (client fingerprint + session),
# and the auth / CSRF / dynamic-lock gates used by the routers.

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request

from vaultmemo.core.errors import forbidden, unauthorized
from vaultmemo.services.container import Services
from vaultmemo.services.sessions import Session

SESSION_COOKIE = "session"


@dataclass
class RequestContext:
    ip: str
    user_agent: str
    token: Optional[str]
    session: Optional[Session]


def get_services(request: Request) -> Services:
    return request.app.state.services


def client_ip(request: Request, trust_proxy: bool) -> str:
    if trust_proxy:
        forwarded = request.headers.get("cf-connecting-ip") or request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


def get_context(request: Request, services: Services = Depends(get_services)) -> RequestContext:
    ip = client_ip(request, services.settings.TRUST_PROXY)
    user_agent = request.headers.get("user-agent", "")
    token = request.cookies.get(SESSION_COOKIE)
    session = services.sessions.check_auth(token, ip, user_agent)
    # Read back by the snapshot-cookie middleware in main.py
    request.state.session = session
    return RequestContext(ip=ip, user_agent=user_agent, token=token, session=session)


def require_session(ctx: RequestContext = Depends(get_context)) -> Session:
    if ctx.session is None:
        raise unauthorized()
    return ctx.session


def require_csrf(
    request: Request,
    session: Session = Depends(require_session),
    services: Services = Depends(get_services),
) -> Session:
    """Sensitive mutations need X-CSRF-Token plus the matching X-Session-ID."""
    if not services.settings.CSRF_ENABLED:
        return session

    token = request.headers.get("x-csrf-token")
    declared = request.headers.get("x-session-id")
    if declared != session.sessionKey or not services.csrf.validate(token, declared):
        ip = client_ip(request, services.settings.TRUST_PROXY)
        services.audit.log_event("csrf", ip, "rejected", request.url.path)
        raise forbidden("Invalid or expired CSRF token", "CSRF_INVALID")
    return session


def require_lock(
    request: Request,
    ctx: RequestContext = Depends(get_context),
    services: Services = Depends(get_services),
) -> None:
    """Unauthenticated callers must echo the current dynamic lock."""
    if not services.lock_required or ctx.session is not None:
        return
    if not services.lock.check(request.headers.get("x-dynamic-lock")):
        raise forbidden("Security lock missing or expired, please refresh", "LOCK_INVALID")
