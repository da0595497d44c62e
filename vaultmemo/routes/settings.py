# Theme / background settings. Readable and writable without a session.

from fastapi import APIRouter, Body, Depends, Response

from vaultmemo.deps import RequestContext, get_context, get_services, require_lock
from vaultmemo.services.container import Services

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("")
def get_settings(
    response: Response,
    ctx: RequestContext = Depends(get_context),
    services: Services = Depends(get_services),
):
    response.headers["Cache-Control"] = "no-store"
    settings = services.app_settings.get(include_password=ctx.session is not None)
    return {"success": True, "settings": settings}


@router.post("", dependencies=[Depends(require_lock)])
def save_settings(
    response: Response,
    payload: dict = Body(...),
    services: Services = Depends(get_services),
):
    response.headers["Cache-Control"] = "no-store"
    return {"success": True, "settings": services.app_settings.update(payload)}
