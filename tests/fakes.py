from __future__ import annotations

from typing import Any

from hotelbot.schemas.orders import Order
from hotelbot.schemas.tenants import TenantCreate, TenantProfile
from hotelbot.services.menu_catalog import MenuCatalog


class FakeOrderStore:
    def __init__(self, *, fail_appends: int = 0):
        self.orders: dict[int, Order] = {}
        self.fail_appends = fail_appends
        self.append_calls = 0

    def append(self, order: Order) -> None:
        self.append_calls += 1
        if self.fail_appends > 0:
            self.fail_appends -= 1
            raise RuntimeError("database is locked")
        self.orders[order.id] = order

    def get(self, tenant_id: str, order_id: int) -> Order | None:
        order = self.orders.get(order_id)
        if order is None or order.tenant_id != tenant_id:
            return None
        return order

    def list(self, tenant_id: str, *, limit: int = 50) -> list[Order]:
        orders = [order for order in self.orders.values() if order.tenant_id == tenant_id]
        return sorted(orders, key=lambda order: order.id, reverse=True)[:limit]

    def update(self, order: Order) -> None:
        self.orders[order.id] = order


class FakeNotifier:
    def __init__(self, *, failing_targets: set[str] | None = None):
        self.sent: list[tuple[str, str, str]] = []
        self.failing_targets = failing_targets or set()

    async def notify(self, tenant_id: str, target: str, text: str) -> None:
        if target in self.failing_targets:
            raise RuntimeError(f"cannot reach {target}")
        self.sent.append((tenant_id, target, text))

    def texts_to(self, target: str) -> list[str]:
        return [text for _, sent_target, text in self.sent if sent_target == target]


class FakeTenantDirectory:
    def __init__(self, *tenants: TenantProfile):
        self.tenants = {tenant.id: tenant for tenant in tenants}

    def get(self, tenant_id: str) -> TenantProfile | None:
        return self.tenants.get(tenant_id)

    def list_active(self) -> list[TenantProfile]:
        return [tenant for tenant in self.tenants.values() if tenant.is_active]

    def upsert(self, payload: TenantCreate) -> TenantProfile:
        profile = TenantProfile(**payload.model_dump())
        self.tenants[profile.id] = profile
        return profile


class FakeMenuSource:
    def __init__(self, config: dict[str, dict]):
        self.catalog = MenuCatalog.from_config(config)

    def current(self, tenant_id: str) -> MenuCatalog:
        return self.catalog


class FakeCredentialStore:
    def __init__(self, initial: dict[str, dict[str, Any]] | None = None):
        self.data: dict[str, dict[str, Any]] = dict(initial or {})
        self.cleared: list[str] = []

    def load(self, tenant_id: str) -> dict[str, Any] | None:
        return self.data.get(tenant_id)

    def save(self, tenant_id: str, credentials: dict[str, Any]) -> None:
        self.data[tenant_id] = credentials

    def clear(self, tenant_id: str) -> None:
        self.cleared.append(tenant_id)
        self.data.pop(tenant_id, None)
