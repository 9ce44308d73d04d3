from __future__ import annotations

from fastapi import Header, HTTPException, Request, status

from hotelbot.core.config import ADMIN_API_TOKEN
from hotelbot.services.concierge import ConciergeService
from hotelbot.services.stores import SqlMenuSource


def get_concierge(request: Request) -> ConciergeService:
    concierge = getattr(request.app.state, "concierge", None)
    if concierge is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service is starting up")
    return concierge


def get_menu_source(request: Request) -> SqlMenuSource:
    return get_concierge(request).menus


def require_admin_token(x_admin_token: str | None = Header(default=None)) -> None:
    # No token configured means the admin surface is open (local development)
    if not ADMIN_API_TOKEN:
        return
    if x_admin_token != ADMIN_API_TOKEN:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")
