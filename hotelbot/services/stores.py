from __future__ import annotations

import json
import logging
from datetime import timezone
from threading import Lock
from typing import Any, Callable

from sqlalchemy.orm import Session

from hotelbot.models.menu_category import MenuCategory as MenuCategoryRecord
from hotelbot.models.menu_item import MenuItemRecord
from hotelbot.models.order import OrderRecord
from hotelbot.models.session_credential import SessionCredential
from hotelbot.models.tenant import Tenant
from hotelbot.schemas.menu import MenuCategoryConfig, MenuConfig
from hotelbot.schemas.orders import Order, OrderLine
from hotelbot.schemas.tenants import TenantCreate, TenantProfile
from hotelbot.services.menu_catalog import DEFAULT_MENU, MenuCatalog
from hotelbot.services.orders import format_price

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


def _order_from_record(record: OrderRecord) -> Order:
    created_at = record.created_at
    if created_at is not None and created_at.tzinfo is None:
        # SQLite drops tzinfo
        created_at = created_at.replace(tzinfo=timezone.utc)
    return Order(
        id=record.id,
        tenant_id=record.tenant_id,
        guest_id=record.guest_id,
        room_number=record.room_number,
        lines=[OrderLine(**line) for line in json.loads(record.items_json or "[]")],
        total=record.total,
        status=record.status,
        rating=record.rating,
        created_at=created_at,
    )


class SqlOrderStore:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def append(self, order: Order) -> None:
        db = self._session_factory()
        try:
            existing = db.get(OrderRecord, order.id)
            if existing is not None:
                # A retried append whose first attempt did land
                return
            db.add(
                OrderRecord(
                    id=order.id,
                    tenant_id=order.tenant_id,
                    guest_id=order.guest_id,
                    room_number=order.room_number,
                    items_json=json.dumps([line.model_dump() for line in order.lines], ensure_ascii=False),
                    total=order.total,
                    status=order.status,
                    created_at=order.created_at,
                )
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def get(self, tenant_id: str, order_id: int) -> Order | None:
        db = self._session_factory()
        try:
            record = (
                db.query(OrderRecord)
                .filter(OrderRecord.tenant_id == tenant_id, OrderRecord.id == order_id)
                .first()
            )
            return _order_from_record(record) if record else None
        finally:
            db.close()

    def list(self, tenant_id: str, *, limit: int = 50) -> list[Order]:
        db = self._session_factory()
        try:
            records = (
                db.query(OrderRecord)
                .filter(OrderRecord.tenant_id == tenant_id)
                .order_by(OrderRecord.id.desc())
                .limit(limit)
                .all()
            )
            return [_order_from_record(record) for record in records]
        finally:
            db.close()

    def update(self, order: Order) -> None:
        db = self._session_factory()
        try:
            record = (
                db.query(OrderRecord)
                .filter(OrderRecord.tenant_id == order.tenant_id, OrderRecord.id == order.id)
                .first()
            )
            if record is None:
                raise LookupError(f"order {order.id} not found")
            record.status = order.status
            record.rating = order.rating
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class SqlCredentialStore:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def load(self, tenant_id: str) -> dict[str, Any] | None:
        db = self._session_factory()
        try:
            record = db.get(SessionCredential, tenant_id)
            if record is None:
                return None
            try:
                return json.loads(record.payload_json)
            except json.JSONDecodeError:
                logger.warning("stored credentials are not valid JSON", extra={"tenant_id": tenant_id})
                return None
        finally:
            db.close()

    def save(self, tenant_id: str, credentials: dict[str, Any]) -> None:
        db = self._session_factory()
        try:
            record = db.get(SessionCredential, tenant_id)
            payload = json.dumps(credentials, ensure_ascii=False)
            if record is None:
                db.add(SessionCredential(tenant_id=tenant_id, payload_json=payload))
            else:
                record.payload_json = payload
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def clear(self, tenant_id: str) -> None:
        db = self._session_factory()
        try:
            db.query(SessionCredential).filter(SessionCredential.tenant_id == tenant_id).delete()
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


def _profile_from_record(record: Tenant) -> TenantProfile:
    return TenantProfile(
        id=record.id,
        name=record.name,
        admin_target=record.admin_target,
        reception_extension=record.reception_extension,
        require_room=record.require_room,
        is_active=record.is_active,
    )


class TenantRepository:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, tenant_id: str) -> TenantProfile | None:
        db = self._session_factory()
        try:
            record = db.get(Tenant, tenant_id)
            return _profile_from_record(record) if record else None
        finally:
            db.close()

    def list_active(self) -> list[TenantProfile]:
        db = self._session_factory()
        try:
            records = db.query(Tenant).filter(Tenant.is_active.is_(True)).order_by(Tenant.id.asc()).all()
            return [_profile_from_record(record) for record in records]
        finally:
            db.close()

    def upsert(self, payload: TenantCreate) -> TenantProfile:
        db = self._session_factory()
        try:
            record = db.get(Tenant, payload.id)
            if record is None:
                record = Tenant(id=payload.id)
                db.add(record)
            record.name = payload.name
            record.admin_target = payload.admin_target
            record.reception_extension = payload.reception_extension
            record.require_room = payload.require_room
            record.is_active = True
            db.commit()
            db.refresh(record)
            return _profile_from_record(record)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def set_active(self, tenant_id: str, active: bool) -> None:
        db = self._session_factory()
        try:
            record = db.get(Tenant, tenant_id)
            if record is not None:
                record.is_active = active
                db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class SqlMenuSource:
    """Per-tenant menu snapshots backed by ``menu_categories``/``menu_items``.

    Snapshots are cached and replaced wholesale; readers keep whatever
    snapshot they fetched. Tenants without a configured menu get the
    built-in default.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory
        self._cache: dict[str, MenuCatalog] = {}
        self._lock = Lock()

    def current(self, tenant_id: str) -> MenuCatalog:
        with self._lock:
            cached = self._cache.get(tenant_id)
        if cached is not None:
            return cached
        catalog = MenuCatalog.from_config(self._load_config(tenant_id))
        with self._lock:
            self._cache[tenant_id] = catalog
        return catalog

    def invalidate(self, tenant_id: str | None = None) -> None:
        with self._lock:
            if tenant_id is None:
                self._cache.clear()
            else:
                self._cache.pop(tenant_id, None)

    def config(self, tenant_id: str) -> MenuConfig:
        raw = self._load_config(tenant_id)
        return MenuConfig(
            categories={
                key: MenuCategoryConfig(hours=body.get("hours", ""), items=list(body.get("items", [])))
                for key, body in raw.items()
            }
        )

    def replace(self, tenant_id: str, config: MenuConfig) -> MenuCatalog:
        raw = {key: body.model_dump() for key, body in config.categories.items()}
        # Validate before touching the database; raises ValueError on bad entries
        catalog = MenuCatalog.from_config(raw)

        db = self._session_factory()
        try:
            db.query(MenuItemRecord).filter(MenuItemRecord.tenant_id == tenant_id).delete()
            db.query(MenuCategoryRecord).filter(MenuCategoryRecord.tenant_id == tenant_id).delete()
            for position, category in enumerate(catalog.categories):
                record = MenuCategoryRecord(
                    tenant_id=tenant_id,
                    key=category.key,
                    hours=category.hours,
                    sort_order=position,
                )
                db.add(record)
                db.flush()
                for item_position, item in enumerate(category.items):
                    db.add(
                        MenuItemRecord(
                            tenant_id=tenant_id,
                            category_id=record.id,
                            name=item.name,
                            price=item.price,
                            sort_order=item_position,
                        )
                    )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        with self._lock:
            self._cache[tenant_id] = catalog
        logger.info("menu replaced with %s items", len(catalog), extra={"tenant_id": tenant_id})
        return catalog

    def _load_config(self, tenant_id: str) -> dict[str, dict]:
        db = self._session_factory()
        try:
            categories = (
                db.query(MenuCategoryRecord)
                .filter(MenuCategoryRecord.tenant_id == tenant_id)
                .order_by(MenuCategoryRecord.sort_order.asc(), MenuCategoryRecord.id.asc())
                .all()
            )
            if not categories:
                return DEFAULT_MENU
            items = (
                db.query(MenuItemRecord)
                .filter(MenuItemRecord.tenant_id == tenant_id, MenuItemRecord.active.is_(True))
                .order_by(MenuItemRecord.sort_order.asc(), MenuItemRecord.id.asc())
                .all()
            )
        finally:
            db.close()

        by_category: dict[int, list[str]] = {}
        for item in items:
            by_category.setdefault(item.category_id, []).append(f"{item.name} - {format_price(item.price)}")
        config: dict[str, dict] = {}
        for category in categories:
            config[category.key] = {"hours": category.hours, "items": by_category.get(category.id, [])}
        return config
