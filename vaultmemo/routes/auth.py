# Authentication routes: password login (vault), UUID/password verify (memo),
# logout, first-run setup, password change and the dynamic lock.

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel

from vaultmemo.deps import (
    SESSION_COOKIE,
    RequestContext,
    client_ip,
    get_context,
    get_services,
    require_csrf,
    require_lock,
)
from vaultmemo.services.auth_service import LoginResult
from vaultmemo.services.container import Services

common_router = APIRouter(prefix="/api", tags=["auth"])
vault_router = APIRouter(prefix="/api", tags=["auth"])
memo_router = APIRouter(prefix="/api", tags=["auth"])


class LoginReq(BaseModel):
    password: str


class VerifyReq(BaseModel):
    password: str
    uuid: str
    multiAuthCode: Optional[str] = None


class ChangePasswordReq(BaseModel):
    currentPassword: str
    newPassword: str


def _set_session_cookie(response: Response, services: Services, result: LoginResult) -> None:
    # Cookie outlives the base duration; the server enforces the real expiry
    max_age = services.sessions.duration_ms // 1000 * 2
    response.set_cookie(
        SESSION_COOKIE,
        result.session.token,
        max_age=max_age,
        path="/",
        httponly=True,
        samesite="strict",
        secure=services.settings.COOKIE_SECURE,
    )
    response.headers["Cache-Control"] = "no-store"


@vault_router.post("/login")
def login(
    req: LoginReq,
    request: Request,
    response: Response,
    ctx: RequestContext = Depends(get_context),
    services: Services = Depends(get_services),
):
    snapshot = getattr(request.state, "snapshot", None)
    result = services.auth.login(req.password, ctx.ip, ctx.user_agent, snapshot=snapshot)
    request.state.session = result.session
    _set_session_cookie(response, services, result)
    return result.body()


@vault_router.api_route("/check-setup", methods=["GET", "POST"])
def check_setup(request: Request, response: Response, services: Services = Depends(get_services)):
    response.headers["Cache-Control"] = "no-store"
    pending = getattr(request.state, "snapshot", None) is not None
    return services.auth.check_setup(snapshot_pending=pending)


@vault_router.post("/change-password")
def change_password(
    req: ChangePasswordReq,
    ctx: RequestContext = Depends(get_context),
    _session=Depends(require_csrf),
    services: Services = Depends(get_services),
):
    services.auth.change_password(req.currentPassword, req.newPassword, ctx.ip)
    return {"success": True, "message": "Password changed"}


@memo_router.post("/verify", dependencies=[Depends(require_lock)])
def verify(
    req: VerifyReq,
    request: Request,
    response: Response,
    ctx: RequestContext = Depends(get_context),
    services: Services = Depends(get_services),
):
    snapshot = getattr(request.state, "snapshot", None)
    result = services.auth.verify(
        req.password, req.uuid, req.multiAuthCode, ctx.ip, ctx.user_agent, snapshot=snapshot
    )
    request.state.session = result.session
    if result.session is not None:
        _set_session_cookie(response, services, result)
    return result.body()


@common_router.post("/logout")
def logout(request: Request, response: Response, services: Services = Depends(get_services)):
    # No session lookup here: logout has to succeed even when the store is down
    token = request.cookies.get(SESSION_COOKIE)
    services.auth.logout(token, client_ip(request, services.settings.TRUST_PROXY))
    response.delete_cookie(
        SESSION_COOKIE,
        path="/",
        httponly=True,
        samesite="strict",
        secure=services.settings.COOKIE_SECURE,
    )
    response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"
    return {"success": True, "message": "Logged out"}


@common_router.get("/dynamic-lock")
def dynamic_lock(response: Response, services: Services = Depends(get_services)):
    lock = services.lock.current()
    response.headers["Cache-Control"] = "no-store"
    return {"lock": lock["uuid"], "expiresAt": lock["expiryTime"]}
