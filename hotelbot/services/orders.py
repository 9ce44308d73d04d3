from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable, Protocol

from hotelbot.core.config import CURRENCY_SYMBOL, STORE_MAX_RETRIES, STORE_TIMEOUT_SECONDS
from hotelbot.core.errors import (
    IncompleteOrder,
    InvalidStatusTransition,
    OrderNotFound,
    PersistenceFailure,
)
from hotelbot.schemas.orders import STATUS_TRANSITIONS, Order, OrderLine
from hotelbot.schemas.tenants import TenantProfile
from hotelbot.services.conversation_store import GuestConversation

logger = logging.getLogger(__name__)


class OrderStore(Protocol):
    def append(self, order: Order) -> None:
        ...

    def get(self, tenant_id: str, order_id: int) -> Order | None:
        ...

    def list(self, tenant_id: str, *, limit: int = 50) -> list[Order]:
        ...

    def update(self, order: Order) -> None:
        ...


class Notifier(Protocol):
    async def notify(self, tenant_id: str, target: str, text: str) -> None:
        ...


@dataclass
class PlacementResult:
    order: Order
    failed_notifications: list[str] = field(default_factory=list)

    @property
    def guest_notified(self) -> bool:
        return "guest" not in self.failed_notifications


def format_price(amount: int) -> str:
    return f"{CURRENCY_SYMBOL}{amount}"


def _admin_text(order: Order) -> str:
    lines = "\n".join(f"{line.quantity} x {line.name}" for line in order.lines)
    return (
        f"📢 NEW ORDER\n#{order.id}\n🏨 Room: {order.room_number}\n🍽 Items:\n{lines}\n"
        f"💵 Total: {format_price(order.total)}\n\nPlease confirm when ready."
    )


def _guest_text(order: Order) -> str:
    summary = ", ".join(f"{line.quantity} x {line.name}" for line in order.lines)
    return (
        f"✅ Order #{order.id} placed successfully!\n\n🏨 Room: {order.room_number}\n"
        f"🍽 Items: {summary}\n💵 Total: {format_price(order.total)}\n\n"
        "We'll notify you when your order is confirmed. You can check status anytime by typing \"status\"."
    )


def status_update_text(order: Order) -> str | None:
    summary = ", ".join(f"{line.quantity} x {line.name}" for line in order.lines)
    if order.status == "Confirmed":
        return f"✅ Your order #{order.id} for {summary} has been *confirmed* and is being prepared."
    if order.status == "Done":
        return f"✅ Your order #{order.id} for {summary} has been *completed*. Thank you for staying with us!"
    if order.status == "Rejected":
        return f"❌ Your order #{order.id} for {summary} was *rejected* by the manager. Please contact reception for help."
    return None


class OrderPipeline:
    """Turns a confirmed cart into a durable order and tells people about it.

    Persistence is all-or-nothing: either ``place`` returns a stored order
    or it raises and nothing was written. Notifications are best effort
    and reported back in the result.
    """

    def __init__(
        self,
        store: OrderStore,
        notifier: Notifier,
        *,
        timeout_seconds: float = STORE_TIMEOUT_SECONDS,
        max_retries: int = STORE_MAX_RETRIES,
        retry_delay_seconds: float = 0.2,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.timeout_seconds = timeout_seconds
        self.max_retries = max(1, max_retries)
        self.retry_delay_seconds = retry_delay_seconds
        self._clock = clock
        self._last_id = 0
        self._id_lock = Lock()

    def next_order_id(self) -> int:
        candidate = int(self._clock() * 1000)
        with self._id_lock:
            if candidate <= self._last_id:
                candidate = self._last_id + 1
            self._last_id = candidate
            return candidate

    def build_order(self, tenant: TenantProfile, conversation: GuestConversation) -> Order:
        if not conversation.room_number:
            raise IncompleteOrder("room number")
        if not conversation.cart:
            raise IncompleteOrder("items")
        lines = [
            OrderLine(name=line.name, quantity=line.quantity, unit_price=line.unit_price, subtotal=line.subtotal)
            for line in conversation.cart
        ]
        return Order(
            id=self.next_order_id(),
            tenant_id=tenant.id,
            guest_id=conversation.guest_id,
            room_number=conversation.room_number.strip(),
            lines=lines,
            total=sum(line.subtotal for line in lines),
            status="Pending",
            created_at=datetime.now(timezone.utc),
        )

    async def place(self, tenant: TenantProfile, conversation: GuestConversation) -> PlacementResult:
        order = self.build_order(tenant, conversation)
        await self._append(order)
        logger.info(
            "order placed",
            extra={"tenant_id": tenant.id, "guest_id": order.guest_id, "order_id": order.id},
        )

        failed: list[str] = []
        if not await self._notify(tenant.id, tenant.admin_address, _admin_text(order), order.id):
            failed.append("admin")
        if not await self._notify(tenant.id, order.guest_id, _guest_text(order), order.id):
            failed.append("guest")
        return PlacementResult(order=order, failed_notifications=failed)

    async def get_order(self, tenant_id: str, order_id: int) -> Order | None:
        return await self._persist("get", self.store.get, tenant_id, order_id)

    async def list_orders(self, tenant_id: str, *, limit: int = 50) -> list[Order]:
        return await self._persist("list", lambda: self.store.list(tenant_id, limit=limit))

    async def update_status(self, tenant: TenantProfile, order_id: int, status: str) -> Order:
        order = await self.get_order(tenant.id, order_id)
        if order is None:
            raise OrderNotFound(f"order {order_id} not found")
        if order.status == status:
            return order
        if status not in STATUS_TRANSITIONS.get(order.status, set()):
            raise InvalidStatusTransition(order.status, status)

        updated = order.model_copy(update={"status": status})
        await self._persist("update", self.store.update, updated)
        logger.info(
            "order status changed to %s",
            status,
            extra={"tenant_id": tenant.id, "order_id": order_id},
        )
        text = status_update_text(updated)
        if text:
            await self._notify(tenant.id, updated.guest_id, text, order_id)
        return updated

    async def record_rating(self, tenant: TenantProfile, order_id: int, rating: int) -> Order | None:
        order = await self.get_order(tenant.id, order_id)
        if order is None:
            return None
        updated = order.model_copy(update={"rating": rating})
        await self._persist("update", self.store.update, updated)
        return updated

    async def _append(self, order: Order) -> None:
        """Store ``order`` at most once.

        A write that outlives the timeout keeps running in its worker
        thread, so it is waited on again rather than issued a second time.
        A new write only starts after the previous one failed outright and
        the order is confirmed absent from the store.
        """
        pending: asyncio.Future | None = None
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            if pending is None:
                pending = asyncio.ensure_future(asyncio.to_thread(self.store.append, order))
            done, _ = await asyncio.wait({pending}, timeout=self.timeout_seconds)
            if done:
                try:
                    pending.result()
                    return
                except Exception as exc:
                    last_error = exc
                    pending = None
            else:
                last_error = asyncio.TimeoutError(f"append still running after {self.timeout_seconds}s")
            logger.warning(
                "order store append failed: %s",
                last_error,
                extra={"attempt": attempt, "order_id": order.id},
            )
            if await self._is_stored(order):
                return
            if pending is None and attempt < self.max_retries:
                await asyncio.sleep(self.retry_delay_seconds * attempt)

        if pending is not None:
            pending.add_done_callback(lambda future: self._report_late_append(order, future))
        raise PersistenceFailure(f"order store append failed after {self.max_retries} attempts") from last_error

    async def _is_stored(self, order: Order) -> bool:
        try:
            found = await asyncio.wait_for(
                asyncio.to_thread(self.store.get, order.tenant_id, order.id),
                timeout=self.timeout_seconds,
            )
        except Exception:
            logger.warning("could not check whether order was stored", extra={"order_id": order.id})
            return False
        return found is not None

    def _report_late_append(self, order: Order, future: asyncio.Future) -> None:
        if future.cancelled() or future.exception() is not None:
            return
        logger.error(
            "order stored after placement was reported as failed",
            extra={"tenant_id": order.tenant_id, "order_id": order.id},
        )

    async def _persist(self, operation: str, func: Callable[..., Any], *args: Any) -> Any:
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self.timeout_seconds)
            except Exception as exc:
                last_error = exc
            logger.warning(
                "order store %s failed: %s",
                operation,
                last_error,
                extra={"attempt": attempt},
            )
            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_delay_seconds * attempt)
        raise PersistenceFailure(f"order store {operation} failed after {self.max_retries} attempts") from last_error

    async def _notify(self, tenant_id: str, target: str, text: str, order_id: int) -> bool:
        try:
            await self.notifier.notify(tenant_id, target, text)
            return True
        except Exception:
            logger.exception(
                "order notification failed target=%s",
                target,
                extra={"tenant_id": tenant_id, "order_id": order_id},
            )
            return False
