from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from hotelbot.core.errors import InvalidStatusTransition, OrderNotFound, PersistenceFailure
from hotelbot.deps import get_concierge, get_menu_source, require_admin_token
from hotelbot.schemas.menu import MenuConfig
from hotelbot.schemas.orders import Order, OrderStatusUpdate
from hotelbot.schemas.tenants import SessionStatus, TenantCreate, TenantProfile
from hotelbot.services.concierge import ConciergeService
from hotelbot.services.stores import SqlMenuSource

router = APIRouter(
    prefix="/api/admin/tenants",
    tags=["admin"],
    dependencies=[Depends(require_admin_token)],
)
logger = logging.getLogger(__name__)


async def _require_tenant(concierge: ConciergeService, tenant_id: str) -> TenantProfile:
    tenant = await asyncio.to_thread(concierge.tenants.get, tenant_id)
    if tenant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")
    return tenant


@router.post("", response_model=TenantProfile, status_code=201)
async def register_tenant(
    payload: TenantCreate,
    activate: bool = Query(default=True),
    concierge: ConciergeService = Depends(get_concierge),
):
    return await concierge.register_tenant(payload, activate=activate)


@router.get("/{tenant_id}/session", response_model=SessionStatus)
async def get_session_status(tenant_id: str, concierge: ConciergeService = Depends(get_concierge)):
    await _require_tenant(concierge, tenant_id)
    return concierge.sessions.status(tenant_id)


@router.post("/{tenant_id}/session/connect", response_model=SessionStatus)
async def connect_session(tenant_id: str, concierge: ConciergeService = Depends(get_concierge)):
    await _require_tenant(concierge, tenant_id)
    await concierge.activate_tenant(tenant_id)
    return concierge.sessions.status(tenant_id)


@router.post("/{tenant_id}/session/disconnect", response_model=SessionStatus)
async def disconnect_session(tenant_id: str, concierge: ConciergeService = Depends(get_concierge)):
    await _require_tenant(concierge, tenant_id)
    await concierge.disconnect_tenant(tenant_id)
    return concierge.sessions.status(tenant_id)


@router.post("/{tenant_id}/session/logout", response_model=SessionStatus)
async def logout_session(tenant_id: str, concierge: ConciergeService = Depends(get_concierge)):
    await _require_tenant(concierge, tenant_id)
    await concierge.disconnect_tenant(tenant_id, logout=True)
    return concierge.sessions.status(tenant_id)


@router.get("/{tenant_id}/orders", response_model=list[Order])
async def list_orders(
    tenant_id: str,
    limit: int = Query(default=50, ge=1, le=500),
    concierge: ConciergeService = Depends(get_concierge),
):
    await _require_tenant(concierge, tenant_id)
    try:
        return await concierge.pipeline.list_orders(tenant_id, limit=limit)
    except PersistenceFailure as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.patch("/{tenant_id}/orders/{order_id}/status", response_model=Order)
async def update_order_status(
    tenant_id: str,
    order_id: int,
    payload: OrderStatusUpdate,
    concierge: ConciergeService = Depends(get_concierge),
):
    tenant = await _require_tenant(concierge, tenant_id)
    try:
        return await concierge.pipeline.update_status(tenant, order_id, payload.status)
    except OrderNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    except InvalidStatusTransition as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except PersistenceFailure as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.get("/{tenant_id}/menu", response_model=MenuConfig)
async def get_menu(
    tenant_id: str,
    concierge: ConciergeService = Depends(get_concierge),
    menus: SqlMenuSource = Depends(get_menu_source),
):
    await _require_tenant(concierge, tenant_id)
    return await asyncio.to_thread(menus.config, tenant_id)


@router.put("/{tenant_id}/menu", response_model=MenuConfig)
async def replace_menu(
    tenant_id: str,
    payload: MenuConfig,
    concierge: ConciergeService = Depends(get_concierge),
    menus: SqlMenuSource = Depends(get_menu_source),
):
    await _require_tenant(concierge, tenant_id)
    try:
        catalog = await asyncio.to_thread(menus.replace, tenant_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    logger.info("menu updated via admin", extra={"tenant_id": tenant_id, "items": len(catalog)})
    return await asyncio.to_thread(menus.config, tenant_id)
