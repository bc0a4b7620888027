"""Request dependencies.

Authentication is handled by the gateway in front of this service; it
forwards the authenticated local user id in the X-User-Id header.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from core.services import AppServices


def get_services(request: Request) -> AppServices:
    """Services built at startup (see api.server.lifespan)."""
    return request.app.state.services


def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    services: AppServices = Depends(get_services),
) -> str:
    """Resolve the acting user, rejecting unknown or missing ids."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if services.users.get_user(x_user_id) is None:
        raise HTTPException(status_code=401, detail="Kullanıcı bulunamadı")
    return x_user_id
