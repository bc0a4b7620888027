"""DIA endpoints.

Login, synchronization, approval batches and ERP lookups.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.dependencies import get_current_user_id, get_services
from connectors.dia.dia_models import DiaCredentials, DiaSession
from core.errors import NoSessionError
from core.models.transactions import ApprovalAction
from core.services import AppServices


router = APIRouter()


class LoginRequest(BaseModel):
    """DIA web service credentials as entered in the dashboard."""
    sunucuAdi: str
    apiKey: str
    wsKullanici: str
    wsSifre: str
    firmaKodu: int = 1
    donemKodu: int = 1


class ApproveRequest(BaseModel):
    """Decision to apply to a batch of local transactions."""
    transactionIds: List[str] = Field(..., min_length=1)
    action: ApprovalAction
    reason: Optional[str] = None


class DetailRequest(BaseModel):
    """Single-record detail lookup."""
    transactionType: str
    recordKey: str


async def _require_session(services: AppServices, user_id: str) -> DiaSession:
    session = await services.sessions.get_valid_session(user_id)
    if session is None:
        raise NoSessionError()
    return session


@router.post("/login")
async def login(
    request: LoginRequest,
    user_id: str = Depends(get_current_user_id),
    services: AppServices = Depends(get_services),
) -> Dict[str, Any]:
    """Log in to DIA and store the (encrypted) credentials."""
    credentials = DiaCredentials(
        server_name=request.sunucuAdi.strip(),
        api_key=request.apiKey,
        username=request.wsKullanici.strip(),
        password=request.wsSifre,
        firma_kodu=request.firmaKodu,
        donem_kodu=request.donemKodu,
    )

    result = await services.sessions.login(user_id, credentials)
    if not result.success:
        raise HTTPException(status_code=401, detail=result.error or "DIA login failed")

    # A new login may point at another company; cached names are stale
    services.directory.invalidate(user_id)

    return {
        "success": True,
        "sessionExpires": result.session.expires_at.isoformat(),
    }


@router.post("/sync")
async def sync(
    user_id: str = Depends(get_current_user_id),
    services: AppServices = Depends(get_services),
) -> Dict[str, Any]:
    """Pull pending records from DIA into the local store."""
    result = await services.sync_engine.sync_transactions(user_id)
    return result.to_dict()


@router.post("/approve")
async def approve(
    request: ApproveRequest,
    user_id: str = Depends(get_current_user_id),
    services: AppServices = Depends(get_services),
) -> Dict[str, Any]:
    """Approve, reject or mark for analysis a batch of transactions."""
    result = await services.dispatcher.process_transactions(
        user_id,
        request.transactionIds,
        request.action,
        request.reason,
    )
    return result.to_dict()


@router.get("/users")
async def list_dia_users(
    user_id: str = Depends(get_current_user_id),
    services: AppServices = Depends(get_services),
) -> Dict[str, Any]:
    """DIA user directory (key to display name)."""
    session = await _require_session(services, user_id)
    directory = await services.directory.get(user_id, session)
    return {
        "success": True,
        "users": [{"key": key, "name": name} for key, name in sorted(directory.items())],
    }


@router.get("/ust-islem-turleri")
async def list_operation_types(
    user_id: str = Depends(get_current_user_id),
    services: AppServices = Depends(get_services),
) -> Dict[str, Any]:
    """Active approval categories, for picking the approve/reject/analyze keys."""
    session = await _require_session(services, user_id)
    categories = await services.client.fetch_approval_category_list(session)
    return {"success": True, "items": [c.to_dict() for c in categories]}


@router.post("/detail")
async def transaction_detail(
    request: DetailRequest,
    user_id: str = Depends(get_current_user_id),
    services: AppServices = Depends(get_services),
) -> Dict[str, Any]:
    """Raw DIA detail for one record."""
    session = await _require_session(services, user_id)
    raw = await services.client.fetch_detail(session, request.transactionType, request.recordKey)
    return {"success": True, "data": raw.get("result")}
