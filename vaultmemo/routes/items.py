# Password/key manager routes.

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from vaultmemo.deps import get_services, require_csrf, require_session
from vaultmemo.services.container import Services

router = APIRouter(prefix="/api/items", tags=["items"])


class ItemCreateReq(BaseModel):
    platform: str
    title: str
    content: str


@router.get("", dependencies=[Depends(require_session)])
def list_items(response: Response, services: Services = Depends(get_services)):
    response.headers["Cache-Control"] = "no-store"
    return {"success": True, "items": services.items.list_items()}


@router.post("", status_code=201, dependencies=[Depends(require_session)])
def create_item(req: ItemCreateReq, services: Services = Depends(get_services)):
    item = services.items.create_item(req.platform, req.title, req.content)
    return {"success": True, "message": "Item added", "item": item, "id": item["id"]}


@router.delete("/{item_id}", dependencies=[Depends(require_csrf)])
def delete_item(item_id: str, services: Services = Depends(get_services)):
    services.items.delete_item(item_id)
    return {"success": True}
