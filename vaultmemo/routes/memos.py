# Memo manager routes: CRUD plus bulk import.

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel

from vaultmemo.deps import get_services, require_csrf, require_session
from vaultmemo.services.container import Services

router = APIRouter(prefix="/api/memos", tags=["memos"])


class MemoCreateReq(BaseModel):
    title: str
    content: str
    category: Optional[str] = None
    categoryColor: Optional[int] = None


class MemoUpdateReq(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    category: Optional[str] = None
    categoryColor: Optional[int] = None


@router.get("", dependencies=[Depends(require_session)])
def list_memos(category: Optional[str] = None, services: Services = Depends(get_services)):
    return {"success": True, "memos": services.memos.list_memos(category)}


@router.post("", status_code=201, dependencies=[Depends(require_session)])
def create_memo(req: MemoCreateReq, services: Services = Depends(get_services)):
    memo = services.memos.create_memo(req.title, req.content, req.category, req.categoryColor)
    return {"success": True, "memo": memo}


@router.post("/import", dependencies=[Depends(require_csrf)])
def import_memos(payload: Any = Body(...), services: Services = Depends(get_services)):
    result = services.memos.import_memos(payload)
    return {"success": True, **result}


@router.get("/{memo_id}", dependencies=[Depends(require_session)])
def get_memo(memo_id: str, services: Services = Depends(get_services)):
    return {"success": True, "memo": services.memos.get_memo(memo_id)}


@router.put("/{memo_id}", dependencies=[Depends(require_session)])
def update_memo(memo_id: str, req: MemoUpdateReq, services: Services = Depends(get_services)):
    memo = services.memos.update_memo(memo_id, req.model_dump(exclude_unset=True))
    return {"success": True, "memo": memo}


@router.delete("/{memo_id}", dependencies=[Depends(require_csrf)])
def delete_memo(memo_id: str, services: Services = Depends(get_services)):
    services.memos.delete_memo(memo_id)
    return {"success": True}
