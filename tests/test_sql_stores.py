from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import hotelbot.models  # noqa: F401
from hotelbot.core.database import Base
from hotelbot.schemas.menu import MenuCategoryConfig, MenuConfig
from hotelbot.schemas.orders import Order, OrderLine
from hotelbot.schemas.tenants import TenantCreate
from hotelbot.services.stores import SqlCredentialStore, SqlMenuSource, SqlOrderStore, TenantRepository


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


def _order(order_id: int = 1_700_000_000_000, tenant_id: str = "hotel-a") -> Order:
    return Order(
        id=order_id,
        tenant_id=tenant_id,
        guest_id="guest@c.us",
        room_number="105",
        lines=[OrderLine(name="Margherita Pizza", quantity=2, unit_price=800, subtotal=1600)],
        total=1600,
        created_at=datetime(2026, 1, 5, 9, 30, tzinfo=timezone.utc),
    )


def test_order_store_round_trip_and_updates(session_factory) -> None:
    store = SqlOrderStore(session_factory)
    order = _order()

    store.append(order)
    store.append(order)
    store.update(order.model_copy(update={"status": "Confirmed", "rating": 4}))

    loaded = store.get("hotel-a", order.id)
    assert loaded.status == "Confirmed"
    assert loaded.rating == 4
    assert loaded.lines == order.lines
    assert loaded.created_at.tzinfo is not None
    assert len(store.list("hotel-a")) == 1


def test_order_store_is_tenant_scoped(session_factory) -> None:
    store = SqlOrderStore(session_factory)
    store.append(_order(1, "hotel-a"))
    store.append(_order(2, "hotel-b"))
    store.append(_order(3, "hotel-a"))

    assert store.get("hotel-b", 1) is None
    assert [order.id for order in store.list("hotel-a")] == [3, 1]


def test_updating_missing_order_raises(session_factory) -> None:
    store = SqlOrderStore(session_factory)

    with pytest.raises(LookupError):
        store.update(_order())


def test_credential_store_save_load_clear(session_factory) -> None:
    store = SqlCredentialStore(session_factory)

    assert store.load("hotel-a") is None
    store.save("hotel-a", {"access_token": "t1", "phone_number_id": "123"})
    store.save("hotel-a", {"access_token": "t2", "phone_number_id": "123"})
    assert store.load("hotel-a") == {"access_token": "t2", "phone_number_id": "123"}

    store.clear("hotel-a")
    assert store.load("hotel-a") is None


def test_tenant_repository_upsert_and_deactivate(session_factory) -> None:
    repo = TenantRepository(session_factory)

    repo.upsert(TenantCreate(id="hotel-a", name="Sea View"))
    repo.upsert(TenantCreate(id="hotel-a", name="Sea View Hotel", reception_extension="9"))
    repo.upsert(TenantCreate(id="hotel-b", name="Hill Resort"))
    repo.set_active("hotel-b", False)

    profile = repo.get("hotel-a")
    assert profile.name == "Sea View Hotel"
    assert profile.reception_extension == "9"
    assert [tenant.id for tenant in repo.list_active()] == ["hotel-a"]
    assert repo.get("missing") is None


def test_menu_source_defaults_then_replaces(session_factory) -> None:
    menus = SqlMenuSource(session_factory)

    default = menus.current("hotel-a")
    assert [category.key for category in default.categories] == ["breakfast", "lunch", "dinner", "roomService"]

    catalog = menus.replace(
        "hotel-a",
        MenuConfig(
            categories={
                "lunch": MenuCategoryConfig(hours="12-3", items=["Margherita Pizza - ₹800"]),
                "drinks": MenuCategoryConfig(hours="24/7", items=["Filter Coffee - ₹150"]),
            }
        ),
    )

    assert menus.current("hotel-a") is catalog
    menus.invalidate("hotel-a")
    reloaded = menus.current("hotel-a")
    assert [category.key for category in reloaded.categories] == ["lunch", "drinks"]
    assert reloaded.get("Filter Coffee").price == 150
    assert menus.config("hotel-a").categories["lunch"].items == ["Margherita Pizza - ₹800"]
    assert [category.key for category in menus.current("hotel-b").categories][0] == "breakfast"


def test_invalid_menu_is_rejected_before_writing(session_factory) -> None:
    menus = SqlMenuSource(session_factory)

    with pytest.raises(ValueError):
        menus.replace("hotel-a", MenuConfig(categories={"lunch": MenuCategoryConfig(items=["no price here"])}))

    assert [category.key for category in menus.current("hotel-a").categories][0] == "breakfast"
